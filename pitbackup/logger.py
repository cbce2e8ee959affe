"""Logging configuration for pitbackup.

The snapshot engine only ever calls ``logging.getLogger(__name__)``; it works
the same with logging disabled, redirected or configured here. The command
line calls ``setup_logging`` once to attach handlers to the package logger:

- console output on stderr
- optional rotating log file and error-only log file, gzip-compressed on rotation

Verbosity follows the ``-v`` count: warnings and errors by default, ``-v``
adds debug messages about the steps of a backup, ``-vv`` adds a trace line
for every file being indexed and copied.
"""

import gzip
import logging
import os
import shutil
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

from pitbackup.config import VALID_LOG_LEVELS, LoggingConfig


# Logger name for the pitbackup package
LOGGER_NAME = "pitbackup"

# Below DEBUG, used for per-entry messages
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


class LoggingError(Exception):
    """Raised when logging setup fails."""
    pass


class GzipRotatingFileHandler(RotatingFileHandler):
    """
    Rotating file handler that compresses rotated files with gzip.

    Rotated files get a ``.gz`` suffix, e.g. ``pitbackup.log.1.gz``.
    """

    def rotation_filename(self, default_name: str) -> str:
        return default_name + ".gz"

    def rotate(self, source: str, dest: str) -> None:
        if not os.path.exists(source):
            return

        try:
            with open(source, 'rb') as f_in:
                with gzip.open(dest, 'wb') as f_out:
                    shutil.copyfileobj(f_in, f_out)
            os.remove(source)
        except OSError:
            # Compression failed, keep the log uncompressed
            if os.path.exists(source):
                fallback_dest = dest[:-3] if dest.endswith('.gz') else dest
                try:
                    os.rename(source, fallback_dest)
                except OSError:
                    pass


def _ensure_log_directory(log_path: Path) -> None:
    """Ensure the parent directory for a log file exists."""
    log_dir = log_path.parent
    if not log_dir.exists():
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LoggingError(f"Failed to create log directory {log_dir}: {e}")


def get_log_level(level_str: str) -> int:
    """Convert a log level name to its numeric value."""
    level_str = level_str.upper()
    if level_str not in VALID_LOG_LEVELS:
        raise LoggingError(
            f"Invalid log level '{level_str}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )
    if level_str == "TRACE":
        return TRACE
    return getattr(logging, level_str)


def level_for_verbosity(verbosity: int, default: str = "WARNING") -> str:
    """Map the number of ``-v`` flags to a log level name."""
    if verbosity <= 0:
        return default
    if verbosity == 1:
        return "DEBUG"
    return "TRACE"


def _file_handler(path: Path, level: int, max_bytes: int, backup_count: int,
                  formatter: logging.Formatter) -> logging.Handler:
    path = Path(os.path.expanduser(str(path)))
    _ensure_log_directory(path)
    handler = GzipRotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    config: Optional[LoggingConfig] = None,
    level: Optional[str] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure the pitbackup logger.

    Args:
        config: Logging settings; defaults to console-only at WARNING level
        level: Level name overriding ``config.level`` (used for ``-v``)
        console: Whether to log to stderr

    Returns:
        Configured logger instance

    Raises:
        LoggingError: If a log directory cannot be created or level is invalid
    """
    if config is None:
        config = LoggingConfig()
    log_level = get_log_level(level or config.level)

    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    # Handlers filter, the logger passes everything through
    logger.setLevel(TRACE)
    logger.propagate = False

    detailed_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if config.log_file is not None:
        logger.addHandler(_file_handler(
            config.log_file, log_level, config.log_max_bytes,
            config.log_backup_count, detailed_formatter,
        ))

    if config.error_log_file is not None:
        logger.addHandler(_file_handler(
            config.error_log_file, logging.ERROR, config.log_max_bytes,
            config.log_backup_count, detailed_formatter,
        ))

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logger.addHandler(console_handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the pitbackup package logger."""
    return logging.getLogger(LOGGER_NAME)


def log_snapshot_start(
    logger: logging.Logger,
    sources: Iterable[Path],
    backup_root: Path,
    incremental: bool,
) -> None:
    """Log the start of a snapshot."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    sources_str = ", ".join(str(s) for s in sources)
    kind = "incremental" if incremental else "full"
    logger.info(f"Backup started at {timestamp} ({kind} snapshot)")
    logger.info(f"Input paths: {sources_str}")
    logger.info(f"Backup root: {backup_root}")


def log_snapshot_completion(
    logger: logging.Logger,
    snapshot_name: str,
    duration_seconds: float,
    entries_indexed: int,
    entries_copied: int,
    size_bytes: int,
) -> None:
    """Log the completion of a snapshot."""
    logger.info(f"Snapshot {snapshot_name} completed")
    logger.info(f"Duration: {duration_seconds:.2f} seconds")
    logger.info(f"Entries indexed: {entries_indexed}, copied: {entries_copied}")
    logger.info(f"Copied size: {format_size(size_bytes)}")


def format_size(size_bytes: int) -> str:
    """Format size in bytes to human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"
