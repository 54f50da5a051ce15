"""linkbackup - Hardlink-based rotating snapshot backups with rsync."""

__version__ = "0.1.0"

from linkbackup.config import (
    Configuration,
    ConfigurationError,
    ValidationError,
    parse_config,
    format_config,
    create_default_config,
)
from linkbackup.context import RunContext, generate_timestamp
from linkbackup.transport import (
    Transport,
    RsyncTransport,
    SyncOptions,
    SyncResult,
    TransferError,
)
from linkbackup.destination import ProvisioningError, validate_target
from linkbackup.excludes import (
    ExcludeError,
    ExcludePattern,
    sanitize_pattern,
    load_excludes,
    build_exclude_args,
)
from linkbackup.pointer import (
    PointerError,
    resolve_previous_timestamp,
    commit_pointer,
)
from linkbackup.snapshot import SnapshotCreator, SnapshotResult
from linkbackup.lock import LockManager, LockError
from linkbackup.logger import LoggingError, setup_run_logging, get_logger
from linkbackup.backup import (
    BackupResult,
    run_backup,
    EXIT_SUCCESS,
    EXIT_CONFIG_ERROR,
    EXIT_USAGE_ERROR,
    EXIT_LOCK_ERROR,
    EXIT_PROVISIONING_ERROR,
    EXIT_TRANSFER_ERROR,
    EXIT_POINTER_ERROR,
    EXIT_EXCLUDE_ERROR,
    EXIT_UNEXPECTED_ERROR,
)

__all__ = [
    "Configuration",
    "ConfigurationError",
    "ValidationError",
    "parse_config",
    "format_config",
    "create_default_config",
    "RunContext",
    "generate_timestamp",
    "Transport",
    "RsyncTransport",
    "SyncOptions",
    "SyncResult",
    "TransferError",
    "ProvisioningError",
    "validate_target",
    "ExcludeError",
    "ExcludePattern",
    "sanitize_pattern",
    "load_excludes",
    "build_exclude_args",
    "PointerError",
    "resolve_previous_timestamp",
    "commit_pointer",
    "SnapshotCreator",
    "SnapshotResult",
    "LockManager",
    "LockError",
    "LoggingError",
    "setup_run_logging",
    "get_logger",
    "BackupResult",
    "run_backup",
    "EXIT_SUCCESS",
    "EXIT_CONFIG_ERROR",
    "EXIT_USAGE_ERROR",
    "EXIT_LOCK_ERROR",
    "EXIT_PROVISIONING_ERROR",
    "EXIT_TRANSFER_ERROR",
    "EXIT_POINTER_ERROR",
    "EXIT_EXCLUDE_ERROR",
    "EXIT_UNEXPECTED_ERROR",
]
