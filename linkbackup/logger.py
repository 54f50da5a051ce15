"""Logging configuration for linkbackup.

Every run writes its own append-only log file, named after the run's
timestamp, with section markers between the phases of the run and the
literal rsync commands that were executed. Errors carry an error code and
troubleshooting guidance.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from linkbackup.config import LoggingConfig, VALID_LOG_LEVELS


# Logger name for the linkbackup package
LOGGER_NAME = "linkbackup"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

SECTION_MARKER = "====="


class ErrorCode(Enum):
    """Error codes for run diagnostics."""
    LOCK_HELD = "E2001"
    PROVISIONING_MARKER_MISSING = "E3001"
    PROVISIONING_CONTAINER_MISSING = "E3002"
    TRANSFER_FAILED = "E4001"
    TRANSFER_UNAVAILABLE = "E4002"
    POINTER_COMMIT_FAILED = "E5001"
    EXCLUDE_INVALID = "E6001"
    INTERRUPTED = "E7001"
    UNKNOWN_ERROR = "E0001"


ERROR_GUIDANCE: Dict[ErrorCode, str] = {
    ErrorCode.LOCK_HELD: "Another run against this target is active. Wait for it to finish.",
    ErrorCode.PROVISIONING_MARKER_MISSING: "The target has no backup_enabled file. Create it to allow backups there.",
    ErrorCode.PROVISIONING_CONTAINER_MISSING: "The target has no hourly/ directory. Create it to allow backups there.",
    ErrorCode.TRANSFER_FAILED: "rsync failed. The partial snapshot was left in place; the next run still links against the last good snapshot.",
    ErrorCode.TRANSFER_UNAVAILABLE: "rsync could not be started. Check that it is installed and on PATH.",
    ErrorCode.POINTER_COMMIT_FAILED: "The snapshot was written but last_successful_timestamp was not updated. The next run will link against the previous snapshot.",
    ErrorCode.EXCLUDE_INVALID: "The ignore file holds an entry outside the allowed characters (letters, digits, '.', '-', '_').",
    ErrorCode.INTERRUPTED: "The run was interrupted. The pointer was not changed.",
    ErrorCode.UNKNOWN_ERROR: "An unexpected error occurred. Check the run log for details.",
}


class LoggingError(Exception):
    """Raised when logging setup fails."""
    pass


def get_error_guidance(error_code: ErrorCode) -> str:
    """Get troubleshooting guidance for an error code."""
    return ERROR_GUIDANCE.get(error_code, ERROR_GUIDANCE[ErrorCode.UNKNOWN_ERROR])


def _get_log_level(level_str: str) -> int:
    """Convert log level string to logging constant."""
    level_str = level_str.upper()
    if level_str not in VALID_LOG_LEVELS:
        raise LoggingError(
            f"Invalid log level '{level_str}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )
    return getattr(logging, level_str)


def setup_run_logging(
    config: Optional[LoggingConfig] = None,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure logging for one run.

    Sets up:
    - An append-mode file handler for the run log (log_file), if given
    - Console output for immediate feedback, if enabled in config

    Args:
        config: LoggingConfig with level and console settings
        log_file: Path of this run's log file

    Returns:
        Configured logger instance

    Raises:
        LoggingError: If the log directory cannot be created or level is invalid
    """
    if config is None:
        config = LoggingConfig()

    log_level = _get_log_level(config.level)

    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    logger.setLevel(logging.DEBUG)  # Allow all levels, handlers will filter

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LoggingError(f"Failed to create log directory {log_file.parent}: {e}")

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if config.console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def close_run_logging() -> None:
    """Flush and detach all handlers from the linkbackup logger."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def get_logger() -> logging.Logger:
    """Get the linkbackup logger instance."""
    return logging.getLogger(LOGGER_NAME)


def log_section(logger: logging.Logger, title: str) -> None:
    """Write a section marker into the run log."""
    logger.info(f"{SECTION_MARKER} {title} {SECTION_MARKER}")


def log_run_start(
    logger: logging.Logger,
    source: str,
    target: str,
    timestamp: str,
) -> None:
    """Log the start of a run."""
    log_section(logger, f"backup {timestamp}")
    logger.info(f"Source: {source}")
    logger.info(f"Target: {target}")


def log_run_completion(
    logger: logging.Logger,
    duration_seconds: float,
    snapshot_location: str,
    link_basis: Optional[str] = None,
) -> None:
    """Log the successful end of a run."""
    log_section(logger, "done")
    logger.info(f"Snapshot: {snapshot_location}")
    if link_basis:
        logger.info(f"Hardlink basis: {link_basis}")
    else:
        logger.info("Hardlink basis: none (full copy)")
    logger.info(f"Duration: {duration_seconds:.2f} seconds")


def log_run_error(
    logger: logging.Logger,
    error: Exception,
    context: Optional[str] = None,
    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
) -> None:
    """
    Log a failed run.

    Args:
        logger: Logger instance
        error: The exception that occurred
        context: What was happening when it failed
        error_code: Code whose guidance is logged along with the error
    """
    if context:
        logger.error(f"[{error_code.value}] Backup failed during {context}: {error}")
    else:
        logger.error(f"[{error_code.value}] Backup failed: {error}")
    logger.error(get_error_guidance(error_code))


def log_rsync_output(logger: logging.Logger, output: str) -> None:
    """Log rsync output (only at DEBUG level)."""
    if output.strip():
        for line in output.strip().split("\n"):
            logger.debug(f"rsync: {line}")
