"""Configuration management for linkbackup.

This module provides dataclasses for configuration and functions for
parsing/formatting TOML configuration files. The source and target of a
run come from the command line; the file only tunes how a run behaves.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import os
import tomllib


class ConfigurationError(Exception):
    """Raised when configuration file is missing or malformed."""
    pass


class ValidationError(Exception):
    """Raised when configuration values have invalid types."""
    pass


# Valid log levels
VALID_LOG_LEVELS = ("DEBUG", "INFO", "ERROR")


@dataclass
class RsyncConfig:
    """Configuration for the rsync transport."""
    binary: str = "rsync"
    rsh: str = ""  # remote shell passed with -e, empty = rsync default
    timeout_seconds: int = 0  # 0 = no timeout


@dataclass
class LockConfig:
    """Configuration for the run lock."""
    enabled: bool = True
    lock_dir: Path = field(
        default_factory=lambda: Path.home() / ".cache/linkbackup"
    )
    timeout_seconds: int = 5


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"  # "DEBUG", "INFO", "ERROR"
    log_dir: Path = field(
        default_factory=lambda: Path.home() / ".local/log/linkbackup"
    )
    console: bool = True


@dataclass
class Configuration:
    """Main configuration for linkbackup."""
    ignore_file: Path = field(
        default_factory=lambda: Path.home() / ".config/linkbackup/ignore"
    )
    strict_excludes: bool = False
    mirror_deletions: bool = False
    rsync: RsyncConfig = field(default_factory=RsyncConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Default config file path
DEFAULT_CONFIG_PATH = Path.home() / ".config/linkbackup/config.toml"


def _validate_type(value: Any, expected_type: type, key: str) -> None:
    """Validate that a value has the expected type."""
    # bool is a subclass of int; don't let `true` pass as a number
    if expected_type is int and isinstance(value, bool):
        raise ValidationError(
            f"Key '{key}' has invalid type: expected int, got bool"
        )
    if not isinstance(value, expected_type):
        raise ValidationError(
            f"Key '{key}' has invalid type: expected {expected_type.__name__}, "
            f"got {type(value).__name__}"
        )


def _expand_path(value: str) -> Path:
    return Path(os.path.expanduser(value))


def _parse_rsync_config(data: Dict[str, Any]) -> RsyncConfig:
    """Parse rsync configuration from dict."""
    rsync_data = data.get("rsync", {})

    binary = rsync_data.get("binary", "rsync")
    _validate_type(binary, str, "rsync.binary")
    if not binary.strip():
        raise ValidationError("Key 'rsync.binary' must not be empty")

    rsh = rsync_data.get("rsh", "")
    _validate_type(rsh, str, "rsync.rsh")

    timeout_seconds = rsync_data.get("timeout_seconds", 0)
    _validate_type(timeout_seconds, int, "rsync.timeout_seconds")
    if timeout_seconds < 0:
        raise ValidationError("Key 'rsync.timeout_seconds' must be >= 0")

    return RsyncConfig(binary=binary, rsh=rsh, timeout_seconds=timeout_seconds)


def _parse_lock_config(data: Dict[str, Any]) -> LockConfig:
    """Parse lock configuration from dict."""
    lock_data = data.get("lock", {})

    enabled = lock_data.get("enabled", True)
    _validate_type(enabled, bool, "lock.enabled")

    lock_dir = lock_data.get("lock_dir", str(Path.home() / ".cache/linkbackup"))
    _validate_type(lock_dir, str, "lock.lock_dir")

    timeout_seconds = lock_data.get("timeout_seconds", 5)
    _validate_type(timeout_seconds, int, "lock.timeout_seconds")

    return LockConfig(
        enabled=enabled,
        lock_dir=_expand_path(lock_dir),
        timeout_seconds=timeout_seconds,
    )


def _parse_logging_config(data: Dict[str, Any]) -> LoggingConfig:
    """Parse logging configuration from dict."""
    logging_data = data.get("logging", {})

    level = logging_data.get("level", "INFO")
    _validate_type(level, str, "logging.level")
    if level.upper() not in VALID_LOG_LEVELS:
        raise ValidationError(
            f"Key 'logging.level' must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    log_dir = logging_data.get(
        "log_dir",
        str(Path.home() / ".local/log/linkbackup")
    )
    _validate_type(log_dir, str, "logging.log_dir")

    console = logging_data.get("console", True)
    _validate_type(console, bool, "logging.console")

    return LoggingConfig(
        level=level.upper(),
        log_dir=_expand_path(log_dir),
        console=console,
    )


def parse_config_string(toml_content: str) -> Configuration:
    """
    Parse TOML string into Configuration object.

    Every section and key is optional; missing values take the defaults.

    Args:
        toml_content: TOML formatted string

    Returns:
        Configuration object

    Raises:
        ConfigurationError: If the content is not valid TOML
        ValidationError: If value has wrong type
    """
    try:
        data = tomllib.loads(toml_content)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML format: {e}")

    main_data = data.get("main", {})

    ignore_file = main_data.get(
        "ignore_file",
        str(Path.home() / ".config/linkbackup/ignore")
    )
    _validate_type(ignore_file, str, "main.ignore_file")

    strict_excludes = main_data.get("strict_excludes", False)
    _validate_type(strict_excludes, bool, "main.strict_excludes")

    mirror_deletions = main_data.get("mirror_deletions", False)
    _validate_type(mirror_deletions, bool, "main.mirror_deletions")

    return Configuration(
        ignore_file=_expand_path(ignore_file),
        strict_excludes=strict_excludes,
        mirror_deletions=mirror_deletions,
        rsync=_parse_rsync_config(data),
        lock=_parse_lock_config(data),
        logging=_parse_logging_config(data),
    )


def parse_config(config_path: Optional[Path] = None) -> Configuration:
    """
    Parse TOML configuration file into Configuration object.

    Args:
        config_path: Path to config file. Defaults to ~/.config/linkbackup/config.toml.
                     A missing default file yields the default configuration;
                     a missing explicit file is an error.

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

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}"
        )

    try:
        content = config_path.read_text()
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


def _toml_bool(value: bool) -> str:
    return "true" if value else "false"


def format_config(config: Configuration) -> str:
    """
    Format Configuration object back to TOML string.

    Args:
        config: Configuration object to format

    Returns:
        TOML formatted string
    """
    lines = []

    lines.append("[main]")
    lines.append(f'ignore_file = "{_escape_toml_string(str(config.ignore_file))}"')
    lines.append(f"strict_excludes = {_toml_bool(config.strict_excludes)}")
    lines.append(f"mirror_deletions = {_toml_bool(config.mirror_deletions)}")
    lines.append("")

    lines.append("[rsync]")
    lines.append(f'binary = "{_escape_toml_string(config.rsync.binary)}"')
    lines.append(f'rsh = "{_escape_toml_string(config.rsync.rsh)}"')
    lines.append(f"timeout_seconds = {config.rsync.timeout_seconds}")
    lines.append("")

    lines.append("[lock]")
    lines.append(f"enabled = {_toml_bool(config.lock.enabled)}")
    lines.append(f'lock_dir = "{_escape_toml_string(str(config.lock.lock_dir))}"')
    lines.append(f"timeout_seconds = {config.lock.timeout_seconds}")
    lines.append("")

    lines.append("[logging]")
    lines.append(f'level = "{_escape_toml_string(config.logging.level)}"')
    lines.append(f'log_dir = "{_escape_toml_string(str(config.logging.log_dir))}"')
    lines.append(f"console = {_toml_bool(config.logging.console)}")

    return "\n".join(lines)


def create_default_config() -> str:
    """
    Generate default configuration TOML.

    Returns:
        TOML formatted string with default configuration
    """
    return '''# linkbackup configuration file
# Usage: linkbackup SOURCE TARGET

[main]
# Whitespace-separated names to exclude from every snapshot.
# Only letters, digits, ".", "-" and "_" are kept in each name.
ignore_file = "~/.config/linkbackup/ignore"
# Reject names with other characters instead of stripping them
strict_excludes = false
# Remove files from the new snapshot that are gone from the source
mirror_deletions = false

[rsync]
binary = "rsync"
# Remote shell for remote targets, e.g. "ssh -p 2222"
rsh = ""
# I/O timeout in seconds (0 = none)
timeout_seconds = 0

[lock]
# Refuse to start while another run against the same target is active
enabled = true
lock_dir = "~/.cache/linkbackup"
timeout_seconds = 5

[logging]
# Log level: DEBUG, INFO, ERROR
level = "INFO"
# One log file per run, named after the run's timestamp
log_dir = "~/.local/log/linkbackup"
console = true
'''
