"""File transfer for linkbackup.

The orchestration code only ever talks to a Transport, which has two
operations: probe whether a location exists, and sync one location onto
another. RsyncTransport implements both with the rsync command, so local
paths and remote ``host:path`` targets are handled the same way.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple
import logging
import shlex
import subprocess
import time

from linkbackup.logger import LOGGER_NAME, log_rsync_output


logger = logging.getLogger(f"{LOGGER_NAME}.transport")


class TransferError(Exception):
    """Raised when the transport cannot be used at all, or a sync fails."""
    pass


@dataclass(frozen=True)
class SyncOptions:
    """How a sync should behave."""
    excludes: Tuple[str, ...] = ()  # rsync exclude directives, passed verbatim
    link_dest: Optional[str] = None  # hardlink basis, relative to the destination
    archive: bool = True
    partial: bool = True
    delete: bool = False
    checksum: bool = False  # compare contents, not size and mtime


@dataclass
class SyncResult:
    """Result of a sync operation."""
    returncode: int
    command: List[str] = field(default_factory=list)
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    started: bool = True  # False when rsync could not be executed

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def error_message(self) -> Optional[str]:
        if self.success:
            return None
        detail = self.stderr.strip().splitlines()
        if detail:
            return f"rsync exited with code {self.returncode}: {detail[-1]}"
        return f"rsync exited with code {self.returncode}"


class Transport(ABC):
    """Interface to the underlying file-transfer mechanism."""

    @abstractmethod
    def exists(self, location: str) -> bool:
        """Return True if ``location`` can be listed. Never writes."""

    @abstractmethod
    def sync(self, source: str, destination: str, options: SyncOptions) -> SyncResult:
        """Copy ``source`` onto ``destination``."""


class RsyncTransport(Transport):
    """
    Transport backed by the rsync command line tool.

    Flags used:
    - -a (archive): preserves permissions, timestamps, symlinks, etc.
    - --partial: keep partially transferred files so a rerun can resume
    - --link-dest: create hard links to unchanged files in the basis dir
    - --checksum: used for the pointer, whose size never changes
    - --exclude: one per sanitized ignore entry
    - --list-only: existence probes
    """

    # rsync exit code used when the binary could not be started
    EXIT_NOT_RUNNABLE = 127

    def __init__(
        self,
        binary: str = "rsync",
        rsh: str = "",
        timeout_seconds: int = 0,
        signal_handler: Optional[Any] = None,
    ):
        """
        Initialize the rsync transport.

        Args:
            binary: rsync executable name or path
            rsh: Remote shell command passed with -e (empty for rsync default)
            timeout_seconds: rsync I/O timeout, 0 for none
            signal_handler: Optional SignalHandler told about each rsync child
        """
        self.binary = binary
        self.rsh = rsh
        self.timeout_seconds = timeout_seconds
        self.signal_handler = signal_handler

    def _base_command(self) -> List[str]:
        cmd = [self.binary]
        if self.rsh:
            cmd.extend(["-e", self.rsh])
        if self.timeout_seconds:
            cmd.append(f"--timeout={self.timeout_seconds}")
        return cmd

    def build_list_command(self, location: str) -> List[str]:
        return self._base_command() + ["--list-only", location]

    def build_sync_command(
        self,
        source: str,
        destination: str,
        options: SyncOptions,
    ) -> List[str]:
        """
        Build the rsync command for a sync.

        Returns:
            List of command arguments for subprocess
        """
        cmd = self._base_command()
        if options.archive:
            cmd.append("-a")
        if options.partial:
            cmd.append("--partial")
        if options.delete:
            cmd.append("--delete")
        if options.checksum:
            cmd.append("--checksum")
        if options.link_dest is not None:
            cmd.append(f"--link-dest={options.link_dest}")
        cmd.extend(options.excludes)
        cmd.append(source)
        cmd.append(destination)
        return cmd

    def _run(self, cmd: List[str]) -> SyncResult:
        start_time = time.time()
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            return SyncResult(
                returncode=self.EXIT_NOT_RUNNABLE,
                command=cmd,
                stderr=f"cannot run {cmd[0]}: {e}",
                duration_seconds=time.time() - start_time,
                started=False,
            )

        if self.signal_handler is not None:
            self.signal_handler.set_rsync_process(process)
        try:
            stdout_bytes, stderr_bytes = process.communicate()
        finally:
            if self.signal_handler is not None:
                self.signal_handler.set_rsync_process(None)

        return SyncResult(
            returncode=process.returncode,
            command=cmd,
            # Decode with error handling for odd file names
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
            duration_seconds=time.time() - start_time,
        )

    def exists(self, location: str) -> bool:
        """
        Probe a location with ``rsync --list-only``.

        Raises:
            TransferError: If rsync itself cannot be started
        """
        cmd = self.build_list_command(location)
        logger.debug(f"Probe: {shlex.join(cmd)}")
        result = self._run(cmd)
        if not result.started:
            raise TransferError(result.stderr)
        if not result.success:
            logger.debug(f"Probe of {location} failed: {result.error_message}")
        return result.success

    def sync(self, source: str, destination: str, options: SyncOptions) -> SyncResult:
        cmd = self.build_sync_command(source, destination, options)
        logger.info(f"Command: {shlex.join(cmd)}")
        result = self._run(cmd)
        log_rsync_output(logger, result.stdout)
        log_rsync_output(logger, result.stderr)
        return result
