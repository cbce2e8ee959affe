"""Snapshot engine for pitbackup.

A snapshot lives in ``<backup root>/<timestamp>/`` and holds an ``index.txt``
listing every captured path together with the snapshot that owns its content,
and a ``files/`` store with the content this snapshot copied itself.

When a baseline (the previous snapshot's index) is set, an entry that has not
been modified since the baseline captured it is only indexed, pointing at the
older snapshot, and nothing is copied.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional
import logging
import os

from pitbackup.files import FILES_DIRNAME, FilesStore, FilesStoreError, disk_usage
from pitbackup.index import (
    INDEX_FILENAME,
    Index,
    IndexFormatError,
    IndexPreview,
    is_indexable,
)
from pitbackup.logger import TRACE
from pitbackup.paths import PathLike, canonicalize
from pitbackup.timestamp import Timestamp, TimestampError
from pitbackup.verify import IntegrityCheckResult, IntegrityProblem


logger = logging.getLogger(__name__)

# Entries modified less than this before the baseline's timestamp are recopied.
# Timestamps only have minute precision, so a file written during the minute
# the baseline was taken must not be trusted.
CHANGE_MARGIN = timedelta(minutes=1)


class SnapshotError(Exception):
    """Raised when snapshot creation fails."""
    pass


@dataclass(frozen=True, order=True)
class SnapshotPreview:
    """A saved snapshot found on disk, ordered by timestamp."""
    timestamp: Timestamp
    location: Path = field(compare=False)

    @classmethod
    def open(cls, location: PathLike) -> Optional["SnapshotPreview"]:
        """
        Recognise a snapshot directory.

        Returns None unless the directory name is a valid timestamp and both
        ``index.txt`` and ``files/`` are present.
        """
        location = Path(location)
        try:
            timestamp = Timestamp.parse(location.name)
        except TimestampError:
            return None
        if not (location / INDEX_FILENAME).is_file():
            return None
        if not (location / FILES_DIRNAME).is_dir():
            return None
        return cls(timestamp=timestamp, location=location)

    @property
    def name(self) -> str:
        return str(self.timestamp)

    @property
    def index_path(self) -> Path:
        return self.location / INDEX_FILENAME

    @property
    def files_path(self) -> Path:
        return self.location / FILES_DIRNAME

    def entry_count(self) -> int:
        """Number of lines in the snapshot's index."""
        try:
            with open(self.index_path, "rb") as f:
                return sum(1 for _ in f)
        except OSError as e:
            logger.warning(f"Cannot read index of snapshot {self.name}: {e}")
            return 0

    def size_bytes(self) -> int:
        """Size of the content this snapshot copied itself."""
        return disk_usage(self.files_path)


class Snapshot:
    """
    A snapshot being built.

    Use ``Snapshot.create`` to allocate the directory, optionally
    ``set_base_snapshot`` for an incremental snapshot, then
    ``add_files_to_snapshot`` once per input path and finally ``save_index``.
    """

    def __init__(self, timestamp: Timestamp, location: PathLike):
        self.timestamp = timestamp
        self.location = Path(location)
        self.files = FilesStore(self.location / FILES_DIRNAME)
        self.index = Index(self.location / INDEX_FILENAME)
        self.base: Optional[IndexPreview] = None
        self.entries_copied = 0

    @property
    def name(self) -> str:
        return str(self.timestamp)

    @classmethod
    def create(cls, root: PathLike, latest: Optional[SnapshotPreview] = None) -> "Snapshot":
        """
        Create an empty snapshot directory below ``root``.

        The snapshot is named after the current minute. If ``latest`` is
        not older than that, the name is moved past it, and while the name
        is taken it is moved forward one minute at a time.

        Raises:
            SnapshotError: If the root is missing or the folder can't be created
        """
        root = Path(root)
        if not root.is_dir():
            raise SnapshotError("Folder with backup does not exist or is not accessible")

        timestamp = Timestamp.now()
        if latest is not None and latest.timestamp >= timestamp:
            timestamp = latest.timestamp.next()
        while (root / str(timestamp)).exists():
            logger.debug(f"Snapshot {timestamp} already exists, trying next minute")
            timestamp = timestamp.next()

        location = root / str(timestamp)
        try:
            location.mkdir()
            snapshot = cls(timestamp, location)
        except OSError as e:
            raise SnapshotError(f"Cannot create snapshot folder {location}: {e}")

        logger.debug(f"Created empty snapshot: {location}")
        return snapshot

    def set_base_snapshot(self, preview: Optional[SnapshotPreview]) -> None:
        """
        Use ``preview`` as the baseline of an incremental snapshot.

        A baseline whose index can't be loaded is dropped with a warning and
        the snapshot falls back to copying everything.
        """
        if preview is None:
            self.base = None
            return
        try:
            self.base = IndexPreview.open(preview.index_path)
        except (OSError, IndexFormatError) as e:
            logger.warning(
                f"Cannot load index of snapshot {preview.name}, "
                f"creating a full snapshot instead: {e}"
            )
            self.base = None
            return
        logger.debug(f"Using snapshot {preview.name} as base ({len(self.base)} entries)")

    def add_files_to_snapshot(self, path: PathLike) -> None:
        """
        Capture ``path`` and, for a directory, everything below it.

        Entries are visited parents first with names sorted. Symbolic links
        are captured as links and never followed. Failures on a single entry
        are logged and the entry is left out of the snapshot.
        """
        path = Path(path)
        self._process_entry(path)
        if path.is_symlink() or not path.is_dir():
            return

        for dirpath, dirnames, filenames in os.walk(
            path, onerror=self._log_walk_error, followlinks=False
        ):
            dirnames.sort()
            for name in sorted(dirnames + filenames):
                self._process_entry(Path(dirpath) / name)

    def save_index(self) -> None:
        """
        Write the index to disk.

        Raises:
            SnapshotError: If the index can't be written
        """
        try:
            self.index.save()
        except OSError as e:
            raise SnapshotError(f"Cannot save index of snapshot {self.name}: {e}")

    def to_preview(self) -> SnapshotPreview:
        return SnapshotPreview(timestamp=self.timestamp, location=self.location)

    def _log_walk_error(self, error: OSError) -> None:
        logger.error(f"Failed to read folder: {error.filename}: {error.strerror}")

    def _process_entry(self, path: Path) -> None:
        if not is_indexable(path):
            logger.error(f"Failed to index: {path!r}: name contains a line break")
            return
        owner = self._find_in_base(path)
        if owner is not None:
            logger.log(TRACE, f"Unchanged since {owner}: {path}")
            self._index(owner, path)
            return
        self._copy_and_index(path)

    def _find_in_base(self, path: Path) -> Optional[Timestamp]:
        """Timestamp of the baseline snapshot to reuse, or None to copy."""
        if self.base is None:
            return None
        owner = self.base.find(path)
        if owner is None:
            return None

        try:
            entry_stat = os.lstat(path)
        except OSError as e:
            logger.debug(f"Cannot read metadata of {path}, copying it: {e}")
            return None

        # file times keep their seconds
        threshold = (owner - CHANGE_MARGIN).moment.timestamp()
        times = [entry_stat.st_mtime]
        birthtime = getattr(entry_stat, "st_birthtime", None)
        if birthtime is not None:
            times.append(birthtime)
        if any(t > threshold for t in times):
            return None
        return owner

    def _copy_and_index(self, path: Path) -> None:
        try:
            self.files.copy_entry(path)
        except (OSError, RuntimeError, FilesStoreError) as e:
            logger.error(f"Failed to copy: {path}: {e}")
            return
        self.entries_copied += 1
        logger.log(TRACE, f"Copied: {path}")
        self._index(self.timestamp, path)

    def _index(self, timestamp: Timestamp, path: Path) -> None:
        try:
            absolute = canonicalize(path)
        except (OSError, RuntimeError) as e:
            logger.error(f"Failed to index: {path}: {e}")
            return
        if not is_indexable(absolute):
            logger.error(f"Failed to index: {absolute!r}: name contains a line break")
            return
        self.index.push(timestamp, absolute)

    @staticmethod
    def check_integrity(location: PathLike) -> IntegrityCheckResult:
        """
        Check a single snapshot for consistency between index and files.

        Only entries owned by this snapshot are compared with its files
        store; entries pointing at older snapshots are not followed.
        """
        location = Path(location)
        if not location.is_dir():
            return IntegrityCheckResult.failed(IntegrityProblem.SNAPSHOT_NOT_FOUND)

        try:
            timestamp = Timestamp.parse(location.name)
        except TimestampError:
            return IntegrityCheckResult.failed(
                IntegrityProblem.INVALID_SNAPSHOT_NAME, detail=location.name
            )

        index_path = location / INDEX_FILENAME
        files_path = location / FILES_DIRNAME
        if not index_path.is_file():
            return IntegrityCheckResult.failed(IntegrityProblem.INDEX_MISSING)
        if not files_path.is_dir():
            return IntegrityCheckResult.failed(IntegrityProblem.FILES_DIR_MISSING)

        result = Index.check_integrity(index_path)
        if not result.success:
            return result

        try:
            index = Index.open(index_path)
        except (OSError, IndexFormatError) as e:
            return IntegrityCheckResult.failed(
                IntegrityProblem.UNEXPECTED_ERROR, detail=str(e)
            )

        owned = [entry.path for entry in index.entries_owned_by(timestamp)]
        return FilesStore.check_integrity(files_path, owned)
