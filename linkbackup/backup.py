"""Main backup orchestration for linkbackup.

One run goes through these steps in order:
- Load configuration and build the run context
- Acquire the per-target run lock
- Check the target is provisioned (marker file and hourly/ container)
- Read the ignore list
- Resolve the previous snapshot from the pointer file
- Create the snapshot, hardlinked against the previous one
- On success, commit the pointer; on failure, leave it alone
- Release the lock

Every failure ends the run; there is no retry within a run. Nothing is
ever deleted from the target, and the pointer only moves after a
snapshot has completed.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import time

from linkbackup.config import (
    Configuration,
    ConfigurationError,
    ValidationError,
    parse_config,
)
from linkbackup.context import RunContext
from linkbackup.destination import ProvisioningError, validate_target
from linkbackup.excludes import ExcludeError, load_excludes
from linkbackup.lock import LockError, LockManager, lock_path_for_target
from linkbackup.logger import (
    ErrorCode,
    LoggingError,
    close_run_logging,
    get_logger,
    log_run_completion,
    log_run_error,
    log_run_start,
    log_section,
    setup_run_logging,
)
from linkbackup.pointer import PointerError, commit_pointer, resolve_previous_timestamp
from linkbackup.signal_handler import SignalHandler
from linkbackup.snapshot import SnapshotCreator, SnapshotResult
from linkbackup.transport import RsyncTransport, TransferError, Transport


# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_USAGE_ERROR = 2
EXIT_LOCK_ERROR = 3
EXIT_PROVISIONING_ERROR = 4
EXIT_TRANSFER_ERROR = 5
EXIT_POINTER_ERROR = 6
EXIT_EXCLUDE_ERROR = 7
EXIT_UNEXPECTED_ERROR = 8


@dataclass
class BackupResult:
    """Result of a backup run."""
    success: bool
    exit_code: int
    timestamp: Optional[str] = None
    previous_timestamp: Optional[str] = None
    snapshot_result: Optional[SnapshotResult] = None
    pointer_updated: bool = False
    error_message: Optional[str] = None
    log_file: Optional[Path] = None


def create_transport(config: Configuration) -> RsyncTransport:
    """Build the rsync transport described by the configuration."""
    return RsyncTransport(
        binary=config.rsync.binary,
        rsh=config.rsync.rsh,
        timeout_seconds=config.rsync.timeout_seconds,
    )


def _fail(
    logger: logging.Logger,
    context: RunContext,
    error: Exception,
    stage: str,
    exit_code: int,
    error_code: ErrorCode,
    **fields,
) -> BackupResult:
    log_run_error(logger, error, stage, error_code)
    return BackupResult(
        success=False,
        exit_code=exit_code,
        timestamp=context.timestamp,
        error_message=str(error),
        log_file=context.log_file,
        **fields,
    )


def execute_run(
    context: RunContext,
    transport: Transport,
    config: Configuration,
    logger: Optional[logging.Logger] = None,
) -> BackupResult:
    """
    Run the snapshot steps for an already-built context.

    This is the lock-free core of a run: gate, excludes, previous
    timestamp, snapshot, pointer. Expected failures are returned as a
    BackupResult rather than raised.
    """
    if logger is None:
        logger = get_logger()
    start_time = time.time()

    log_section(logger, "checking target")
    try:
        validate_target(transport, context)
    except ProvisioningError as e:
        code = (
            ErrorCode.PROVISIONING_MARKER_MISSING
            if e.missing == "backup_enabled"
            else ErrorCode.PROVISIONING_CONTAINER_MISSING
        )
        return _fail(logger, context, e, "target check", EXIT_PROVISIONING_ERROR, code)
    except TransferError as e:
        return _fail(
            logger, context, e, "target check",
            EXIT_TRANSFER_ERROR, ErrorCode.TRANSFER_UNAVAILABLE,
        )

    log_section(logger, "reading ignore list")
    try:
        excludes = load_excludes(context.ignore_file, strict=config.strict_excludes)
    except ExcludeError as e:
        return _fail(
            logger, context, e, "ignore list",
            EXIT_EXCLUDE_ERROR, ErrorCode.EXCLUDE_INVALID,
        )

    log_section(logger, "resolving previous snapshot")
    previous = resolve_previous_timestamp(transport, context)

    log_section(logger, "creating snapshot")
    creator = SnapshotCreator(transport, mirror_deletions=config.mirror_deletions)
    snapshot_result = creator.create_snapshot(context, excludes, previous)

    if not snapshot_result.success:
        return _fail(
            logger, context,
            TransferError(snapshot_result.error_message or "Unknown error"),
            "snapshot creation",
            EXIT_TRANSFER_ERROR, ErrorCode.TRANSFER_FAILED,
            previous_timestamp=previous,
            snapshot_result=snapshot_result,
        )

    log_section(logger, "updating pointer")
    try:
        pointer_updated = commit_pointer(transport, context)
    except PointerError as e:
        return _fail(
            logger, context, e, "pointer update",
            EXIT_POINTER_ERROR, ErrorCode.POINTER_COMMIT_FAILED,
            previous_timestamp=previous,
            snapshot_result=snapshot_result,
        )

    log_run_completion(
        logger,
        duration_seconds=time.time() - start_time,
        snapshot_location=snapshot_result.snapshot_location,
        link_basis=previous,
    )
    return BackupResult(
        success=True,
        exit_code=EXIT_SUCCESS,
        timestamp=context.timestamp,
        previous_timestamp=previous,
        snapshot_result=snapshot_result,
        pointer_updated=pointer_updated,
        log_file=context.log_file,
    )


def run_backup(
    source: str,
    target: str,
    config_path: Optional[Path] = None,
    config: Optional[Configuration] = None,
    transport: Optional[Transport] = None,
    now: Optional[datetime] = None,
) -> BackupResult:
    """
    Run one complete backup of ``source`` into ``target``.

    Args:
        source: Directory to back up (local path or rsync location)
        target: Provisioned target root (local path or rsync location)
        config_path: Path to configuration file. If None, uses default path.
        config: Pre-loaded Configuration. If provided, config_path is ignored.
        transport: Transport to use. Defaults to rsync built from config.
        now: Time to stamp the run with. Defaults to the current time.

    Returns:
        BackupResult with success status, exit code, and run details.
    """
    if config is None:
        try:
            config = parse_config(config_path)
        except (ConfigurationError, ValidationError) as e:
            return BackupResult(
                success=False,
                exit_code=EXIT_CONFIG_ERROR,
                error_message=str(e),
            )

    context = RunContext.create(
        source=source,
        target=target,
        ignore_file=config.ignore_file,
        log_dir=config.logging.log_dir,
        now=now,
    )

    try:
        logger = setup_run_logging(config.logging, context.log_file)
    except (LoggingError, OSError) as e:
        # Continue without the run log rather than skip the backup
        logger = get_logger()
        logger.warning(f"Failed to set up run log: {e}")

    if transport is None:
        transport = create_transport(config)

    log_run_start(logger, context.source, context.target, context.timestamp)

    lock_manager: Optional[LockManager] = None
    signal_handler: Optional[SignalHandler] = None
    try:
        if config.lock.enabled:
            lock_manager = LockManager(
                lock_path_for_target(config.lock.lock_dir, context.target),
                timeout=config.lock.timeout_seconds,
            )
            try:
                lock_manager.acquire()
                logger.debug(f"Lock acquired: {lock_manager.lock_path}")
            except LockError as e:
                lock_manager = None
                return _fail(
                    logger, context, e, "lock acquisition",
                    EXIT_LOCK_ERROR, ErrorCode.LOCK_HELD,
                )

        signal_handler = SignalHandler()
        signal_handler.register(lock_manager=lock_manager)
        if isinstance(transport, RsyncTransport):
            transport.signal_handler = signal_handler

        return execute_run(context, transport, config, logger)

    except Exception as e:
        return _fail(
            logger, context, Exception(f"Unexpected error: {e}"), "run",
            EXIT_UNEXPECTED_ERROR, ErrorCode.UNKNOWN_ERROR,
        )

    finally:
        if signal_handler is not None:
            if isinstance(transport, RsyncTransport):
                transport.signal_handler = None
            signal_handler.unregister()
        if lock_manager is not None:
            lock_manager.release()
            logger.debug("Lock released")
        close_run_logging()
