"""Backup repository and main backup orchestration for pitbackup.

A backup is a folder whose immediate children are snapshots named after
their timestamps. ``Backup`` lists them and adds new ones; ``run_backup``
drives a complete backup from the configuration:

- Resolve backup root, input paths and incremental mode
- Open the backup
- Create the snapshot (incremental against the latest one if enabled)
- Log statistics
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple
import logging
import time

from pitbackup.config import Configuration
from pitbackup.logger import log_snapshot_completion, log_snapshot_start
from pitbackup.paths import PathLike, validate_input_paths
from pitbackup.snapshot import Snapshot, SnapshotError, SnapshotPreview
from pitbackup.verify import IntegrityCheckResult


logger = logging.getLogger(__name__)


# Exit codes shared by run_backup and the command line
EXIT_SUCCESS = 0
EXIT_GENERAL_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_BACKUP_ERROR = 3
EXIT_SNAPSHOT_ERROR = 4
EXIT_INTEGRITY_ERROR = 5


class BackupError(Exception):
    """Base exception for backup errors."""

    def __init__(self, message: str, exit_code: int = EXIT_BACKUP_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


@dataclass
class BackupResult:
    """Result of a backup operation."""
    success: bool
    exit_code: int
    snapshot_name: Optional[str] = None
    error_message: Optional[str] = None
    duration_seconds: float = 0.0


class Backup:
    """The snapshots stored below one backup root."""

    def __init__(self, root: PathLike, snapshots: Iterable[SnapshotPreview] = ()):
        self.root = Path(root)
        self._snapshots: List[SnapshotPreview] = sorted(snapshots)

    @classmethod
    def open(cls, root: PathLike) -> "Backup":
        """
        Load the list of snapshots below ``root``.

        Children that are not snapshots are reported and otherwise ignored.

        Raises:
            BackupError: If the root doesn't exist or can't be listed
        """
        root = Path(root)
        if not root.is_dir():
            raise BackupError("Folder with backup doesn't exist or isn't accessible")

        try:
            children = sorted(root.iterdir())
        except OSError as e:
            raise BackupError(
                f"Folder with backup doesn't exist or isn't accessible: {e}"
            )

        snapshots = []
        for child in children:
            preview = SnapshotPreview.open(child)
            if preview is None:
                logger.warning(f"Found unrecognized entry in backup folder: {child}")
                continue
            snapshots.append(preview)
        logger.debug(f"Opened backup {root} with {len(snapshots)} snapshot(s)")
        return cls(root, snapshots)

    @property
    def snapshots(self) -> Tuple[SnapshotPreview, ...]:
        """Snapshots in ascending timestamp order."""
        return tuple(self._snapshots)

    def latest_snapshot(self) -> Optional[SnapshotPreview]:
        return self._snapshots[-1] if self._snapshots else None

    def add_snapshot(self, paths: Iterable[PathLike], incremental: bool = True) -> str:
        """
        Take a new snapshot of ``paths``.

        Input paths are validated first: missing ones, duplicates and paths
        nested inside other inputs are dropped with a warning.

        Returns:
            Name of the new snapshot

        Raises:
            SnapshotError: If the snapshot can't be created or saved
        """
        return self.take_snapshot(paths, incremental).name

    def take_snapshot(self, paths: Iterable[PathLike], incremental: bool) -> Snapshot:
        """Same as ``add_snapshot`` but returns the saved Snapshot with its statistics."""
        inputs = validate_input_paths(paths)
        latest = self.latest_snapshot()

        snapshot = Snapshot.create(self.root, latest)
        if incremental:
            snapshot.set_base_snapshot(latest)

        for path in inputs:
            logger.debug(f"Adding to snapshot {snapshot.name}: {path}")
            snapshot.add_files_to_snapshot(path)

        snapshot.save_index()
        self._snapshots.append(snapshot.to_preview())
        self._snapshots.sort()
        return snapshot

    def check_integrity(self, name: str) -> IntegrityCheckResult:
        """Check the snapshot called ``name`` below this backup's root."""
        return Snapshot.check_integrity(self.root / name)


def run_backup(
    config: Configuration,
    paths: Optional[List[PathLike]] = None,
    backup_root: Optional[PathLike] = None,
    incremental: Optional[bool] = None,
) -> BackupResult:
    """
    Run a complete backup operation.

    Arguments override the matching configuration values.

    Args:
        config: Loaded configuration
        paths: Input paths; defaults to ``config.sources``
        backup_root: Backup folder; defaults to ``config.backup_root``
        incremental: Snapshot mode; defaults to ``config.incremental``

    Returns:
        BackupResult with success status, exit code and snapshot name
    """
    start_time = time.time()

    if backup_root is None:
        backup_root = config.backup_root
    if paths is None:
        paths = list(config.sources)
    if incremental is None:
        incremental = config.incremental

    if backup_root is None:
        return BackupResult(
            success=False,
            exit_code=EXIT_CONFIG_ERROR,
            error_message="No backup root given and none configured",
        )
    if not paths:
        return BackupResult(
            success=False,
            exit_code=EXIT_CONFIG_ERROR,
            error_message="No input paths given and no sources configured",
        )

    backup_root = Path(backup_root).expanduser()
    paths = [Path(p).expanduser() for p in paths]
    log_snapshot_start(logger, paths, backup_root, incremental)

    try:
        backup = Backup.open(backup_root)
        snapshot = backup.take_snapshot(paths, incremental)
    except BackupError as e:
        logger.error(f"Backup failed: {e}")
        return BackupResult(
            success=False,
            exit_code=e.exit_code,
            error_message=str(e),
            duration_seconds=time.time() - start_time,
        )
    except SnapshotError as e:
        logger.error(f"Snapshot failed: {e}")
        return BackupResult(
            success=False,
            exit_code=EXIT_SNAPSHOT_ERROR,
            error_message=str(e),
            duration_seconds=time.time() - start_time,
        )

    duration = time.time() - start_time
    log_snapshot_completion(
        logger,
        snapshot_name=snapshot.name,
        duration_seconds=duration,
        entries_indexed=len(snapshot.index),
        entries_copied=snapshot.entries_copied,
        size_bytes=snapshot.files.size_bytes,
    )
    return BackupResult(
        success=True,
        exit_code=EXIT_SUCCESS,
        snapshot_name=snapshot.name,
        duration_seconds=duration,
    )
