"""pitbackup - Point-in-time incremental backup of files and folders."""

__version__ = "0.1.0"

from pitbackup.timestamp import Timestamp, TimestampError
from pitbackup.config import (
    Configuration,
    ConfigurationError,
    LoggingConfig,
    ValidationError,
    parse_config,
    format_config,
    create_default_config,
)
from pitbackup.index import (
    Index,
    IndexEntry,
    IndexFormatError,
    IndexPreview,
)
from pitbackup.files import (
    FilesStore,
    FilesStoreError,
    UnknownEntryTypeError,
    UnsupportedEntryError,
)
from pitbackup.verify import IntegrityCheckResult, IntegrityProblem
from pitbackup.snapshot import (
    CHANGE_MARGIN,
    Snapshot,
    SnapshotError,
    SnapshotPreview,
)
from pitbackup.logger import (
    TRACE,
    LoggingError,
    setup_logging,
    get_logger,
)
from pitbackup.backup import (
    Backup,
    BackupError,
    BackupResult,
    run_backup,
    EXIT_SUCCESS,
    EXIT_GENERAL_ERROR,
    EXIT_CONFIG_ERROR,
    EXIT_BACKUP_ERROR,
    EXIT_SNAPSHOT_ERROR,
    EXIT_INTEGRITY_ERROR,
)

__all__ = [
    "Timestamp",
    "TimestampError",
    "Configuration",
    "ConfigurationError",
    "LoggingConfig",
    "ValidationError",
    "parse_config",
    "format_config",
    "create_default_config",
    "Index",
    "IndexEntry",
    "IndexFormatError",
    "IndexPreview",
    "FilesStore",
    "FilesStoreError",
    "UnknownEntryTypeError",
    "UnsupportedEntryError",
    "IntegrityCheckResult",
    "IntegrityProblem",
    "CHANGE_MARGIN",
    "Snapshot",
    "SnapshotError",
    "SnapshotPreview",
    "TRACE",
    "LoggingError",
    "setup_logging",
    "get_logger",
    "Backup",
    "BackupError",
    "BackupResult",
    "run_backup",
    "EXIT_SUCCESS",
    "EXIT_GENERAL_ERROR",
    "EXIT_CONFIG_ERROR",
    "EXIT_BACKUP_ERROR",
    "EXIT_SNAPSHOT_ERROR",
    "EXIT_INTEGRITY_ERROR",
]
