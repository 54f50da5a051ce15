"""Signal handling for interrupted runs.

On SIGTERM or SIGINT the running rsync child is stopped, the run lock is
released and the process exits with 128 + signal number. The pointer is
not touched and the partial snapshot directory is left where it is; the
next run still links against the last good snapshot.
"""

import logging
import signal
import subprocess
import sys
import threading
from typing import Any, Dict, Optional

from linkbackup.logger import LOGGER_NAME, ErrorCode, log_run_error


class SignalHandler:
    """
    Handles OS signals for an orderly stop during a run.

    Usage:
        handler = SignalHandler()
        handler.register(lock_manager=lock)
        handler.set_rsync_process(process)
        # ... run ...
        handler.unregister()
    """

    SIGNALS = (signal.SIGTERM, signal.SIGINT)

    def __init__(self):
        self._lock_manager: Optional[Any] = None  # LockManager
        self._rsync_process: Optional[subprocess.Popen] = None
        self._original_handlers: Dict[int, Any] = {}
        self._registered = False
        self._logger = logging.getLogger(f"{LOGGER_NAME}.signals")

    def register(self, lock_manager: Optional[Any] = None) -> None:
        """
        Register handlers for SIGTERM and SIGINT.

        Signal handlers can only be installed from the main thread; from any
        other thread the lock manager is still tracked but no handler is
        installed.
        """
        self._lock_manager = lock_manager

        if threading.current_thread() is not threading.main_thread():
            self._logger.debug("Signal handlers not registered: not running in main thread")
            self._registered = True
            return

        for sig in self.SIGNALS:
            self._original_handlers[sig] = signal.signal(sig, self._handle_signal)
        self._registered = True
        self._logger.debug("Signal handlers registered")

    def set_rsync_process(self, process: Optional[subprocess.Popen]) -> None:
        """Track the rsync child to stop on signal."""
        self._rsync_process = process

    def unregister(self) -> None:
        """Restore the original signal handlers."""
        if not self._registered:
            return

        if self._original_handlers and threading.current_thread() is threading.main_thread():
            for sig, handler in self._original_handlers.items():
                signal.signal(sig, handler)

        self._original_handlers.clear()
        self._lock_manager = None
        self._rsync_process = None
        self._registered = False
        self._logger.debug("Signal handlers unregistered")

    @property
    def is_registered(self) -> bool:
        return self._registered

    def _terminate_rsync(self) -> None:
        process = self._rsync_process
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        self._logger.debug("rsync subprocess terminated")

    def _handle_signal(self, signum: int, frame: Any) -> None:
        sig_name = signal.Signals(signum).name
        log_run_error(
            self._logger,
            Exception(f"received {sig_name}"),
            "run",
            ErrorCode.INTERRUPTED,
        )

        try:
            self._terminate_rsync()
        except OSError as e:
            self._logger.warning(f"Error terminating rsync process: {e}")

        if self._lock_manager is not None:
            self._lock_manager.release()
            self._logger.debug("Lock released")

        exit_code = 128 + signum
        self._logger.info(f"Exiting with code {exit_code}")
        sys.exit(exit_code)
