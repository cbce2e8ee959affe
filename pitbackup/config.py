"""Configuration management for pitbackup.

This module provides dataclasses for configuration and functions for
parsing/formatting TOML configuration files.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import tomllib


class ConfigurationError(Exception):
    """Raised when configuration file is missing or malformed."""
    pass


class ValidationError(Exception):
    """Raised when configuration values have invalid types."""
    pass


VALID_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "WARNING"
    log_file: Optional[Path] = None
    error_log_file: Optional[Path] = None
    log_max_size_mb: int = 10  # Maximum log file size in MB before rotation
    log_backup_count: int = 5  # Number of rotated log files to keep

    @property
    def log_max_bytes(self) -> int:
        """Return max size in bytes for use with RotatingFileHandler."""
        return self.log_max_size_mb * 1024 * 1024


@dataclass
class Configuration:
    """Main configuration for pitbackup."""
    backup_root: Optional[Path] = None
    sources: List[Path] = field(default_factory=list)
    incremental: bool = True
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Default config file path
DEFAULT_CONFIG_PATH = Path.home() / ".config/pitbackup/config.toml"


def _validate_type(value: Any, expected_type: type, key: str) -> None:
    """Validate that a value has the expected type."""
    # bool is a subclass of int, TOML keeps them apart
    if expected_type is int and isinstance(value, bool):
        raise ValidationError(
            f"Key '{key}' has invalid type: expected int, got bool"
        )
    if not isinstance(value, expected_type):
        raise ValidationError(
            f"Key '{key}' has invalid type: expected {expected_type.__name__}, "
            f"got {type(value).__name__}"
        )


def _optional_path(data: Dict[str, Any], key: str, qualified: str) -> Optional[Path]:
    value = data.get(key)
    if value is None:
        return None
    _validate_type(value, str, qualified)
    return Path(value)


def _parse_logging_config(data: Dict[str, Any]) -> LoggingConfig:
    """Parse logging configuration from dict."""
    logging_data = data.get("logging", {})
    _validate_type(logging_data, dict, "logging")

    level = logging_data.get("level", "WARNING")
    _validate_type(level, str, "logging.level")
    if level.upper() not in VALID_LOG_LEVELS:
        raise ValidationError(
            f"Key 'logging.level' must be one of {', '.join(VALID_LOG_LEVELS)}, "
            f"got '{level}'"
        )

    log_max_size_mb = logging_data.get("log_max_size_mb", 10)
    _validate_type(log_max_size_mb, int, "logging.log_max_size_mb")
    if log_max_size_mb <= 0:
        raise ValidationError("Key 'logging.log_max_size_mb' must be positive")

    log_backup_count = logging_data.get("log_backup_count", 5)
    _validate_type(log_backup_count, int, "logging.log_backup_count")
    if log_backup_count < 0:
        raise ValidationError("Key 'logging.log_backup_count' must not be negative")

    return LoggingConfig(
        level=level.upper(),
        log_file=_optional_path(logging_data, "log_file", "logging.log_file"),
        error_log_file=_optional_path(
            logging_data, "error_log_file", "logging.error_log_file"
        ),
        log_max_size_mb=log_max_size_mb,
        log_backup_count=log_backup_count,
    )


def parse_config_string(toml_content: str) -> Configuration:
    """
    Parse TOML string into Configuration object.

    Every key is optional; an empty document yields the defaults.

    Args:
        toml_content: TOML formatted string

    Returns:
        Configuration object

    Raises:
        ConfigurationError: If the TOML itself is malformed
        ValidationError: If value has wrong type
    """
    try:
        data = tomllib.loads(toml_content)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML format: {e}")

    # Get main section (may be nested under [main] or at root)
    main_data = data.get("main", data)
    _validate_type(main_data, dict, "main")

    sources = main_data.get("sources", [])
    _validate_type(sources, list, "sources")
    for i, src in enumerate(sources):
        _validate_type(src, str, f"sources[{i}]")

    incremental = main_data.get("incremental", True)
    _validate_type(incremental, bool, "incremental")

    return Configuration(
        backup_root=_optional_path(main_data, "backup_root", "backup_root"),
        sources=[Path(s) for s in sources],
        incremental=incremental,
        logging=_parse_logging_config(data),
    )


def parse_config(config_path: Optional[Path] = None) -> Configuration:
    """
    Parse TOML configuration file into Configuration object.

    Args:
        config_path: Path to config file. Defaults to ~/.config/pitbackup/config.toml,
            where a missing file simply means default settings

    Returns:
        Configuration object

    Raises:
        ConfigurationError: If an explicit file doesn't exist or can't be read
        ValidationError: If value has wrong type
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return Configuration()
        config_path = DEFAULT_CONFIG_PATH

    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}"
        )

    try:
        content = config_path.read_text(encoding="utf-8")
    except PermissionError:
        raise ConfigurationError(
            f"Permission denied reading configuration file: {config_path}"
        )
    except OSError as e:
        raise ConfigurationError(
            f"Error reading configuration file {config_path}: {e}"
        )

    return parse_config_string(content)


def _escape_toml_string(s: str) -> str:
    """Escape a string for TOML basic string format."""
    # Must escape backslashes first, then quotes
    return s.replace("\\", "\\\\").replace('"', '\\"')


def format_config(config: Configuration) -> str:
    """
    Format Configuration object back to TOML string.

    Unset optional paths are left out, so parsing the output gives an equal
    Configuration.
    """
    lines = []

    lines.append("[main]")
    if config.backup_root is not None:
        lines.append(f'backup_root = "{_escape_toml_string(str(config.backup_root))}"')

    if config.sources:
        lines.append("sources = [")
        for src in config.sources:
            lines.append(f'    "{_escape_toml_string(str(src))}",')
        lines.append("]")
    else:
        lines.append("sources = []")
    lines.append(f"incremental = {'true' if config.incremental else 'false'}")
    lines.append("")

    lines.append("[logging]")
    lines.append(f'level = "{_escape_toml_string(config.logging.level)}"')
    if config.logging.log_file is not None:
        lines.append(f'log_file = "{_escape_toml_string(str(config.logging.log_file))}"')
    if config.logging.error_log_file is not None:
        lines.append(
            f'error_log_file = "{_escape_toml_string(str(config.logging.error_log_file))}"'
        )
    lines.append(f"log_max_size_mb = {config.logging.log_max_size_mb}")
    lines.append(f"log_backup_count = {config.logging.log_backup_count}")

    return "\n".join(lines) + "\n"


def create_default_config() -> str:
    """
    Generate default configuration TOML for `pitbackup init`.

    Returns:
        TOML formatted string with default configuration
    """
    return '''# pitbackup configuration file

[main]
# Folder holding the snapshots, used by `pitbackup run` and `pitbackup list`
# backup_root = "/mnt/backup/pitbackup"

# Files and folders captured by `pitbackup run`
sources = [
    "~/Documents",
]

# Reuse unchanged files from the latest snapshot
incremental = true

[logging]
# Log level: TRACE, DEBUG, INFO, WARNING, ERROR
level = "WARNING"
# log_file = "~/.local/log/pitbackup.log"
# error_log_file = "~/.local/log/pitbackup.err"
# Log rotation settings
log_max_size_mb = 10
log_backup_count = 5
'''
