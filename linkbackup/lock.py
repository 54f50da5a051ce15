"""Run locking for linkbackup.

Two runs against the same target could both read the same pointer and
race on updating it. LockManager keeps one run per target at a time with
an fcntl.flock on a local lock file named after the target, and records
the holder's PID.
"""

import fcntl
import hashlib
import os
import re
import time
from pathlib import Path
from typing import Optional


class LockError(Exception):
    """Raised when lock cannot be acquired."""
    pass


def lock_path_for_target(lock_dir: Path, target: str) -> Path:
    """
    Return the lock file used for runs against ``target``.

    The name keeps a readable slug of the target plus a hash so that
    distinct targets never share a lock.
    """
    slug = re.sub(r"[^A-Za-z0-9._-]+", "_", target).strip("_")[:48] or "target"
    digest = hashlib.sha256(target.encode("utf-8")).hexdigest()[:12]
    return Path(lock_dir) / f"{slug}-{digest}.lock"


class LockManager:
    """
    Manages the exclusive lock for one target.

    Stale detection happens while holding the flock, so there is no
    check-then-acquire window. Usable as a context manager.
    """

    def __init__(self, lock_path: Path, timeout: float = 5):
        """
        Initialize LockManager.

        Args:
            lock_path: Path to lock file
            timeout: Seconds to wait for the lock before giving up
        """
        self.lock_path = Path(lock_path)
        self.timeout = timeout
        self._lock_fd: Optional[int] = None

    @property
    def acquired(self) -> bool:
        return self._lock_fd is not None

    def _open_lock_file(self) -> int:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            return os.open(str(self.lock_path), os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise LockError(f"Cannot open lock file {self.lock_path}: {e}")

    def _is_current_file(self, fd: int) -> bool:
        """True if ``fd`` is still the file found at lock_path."""
        try:
            return os.fstat(fd).st_ino == os.stat(self.lock_path).st_ino
        except OSError:
            return False

    def acquire(self) -> bool:
        """
        Acquire the exclusive lock.

        Returns True once the lock is held.

        Raises:
            LockError: If another process holds the lock past the timeout,
                       or the lock file cannot be opened.
        """
        fd = self._open_lock_file()

        start_time = time.time()
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                if time.time() - start_time >= self.timeout:
                    os.close(fd)
                    holder_pid = self.get_lock_holder_pid()
                    if holder_pid:
                        raise LockError(
                            f"Lock held by process {holder_pid} after {self.timeout}s timeout"
                        )
                    raise LockError(
                        f"Lock held by another process after {self.timeout}s timeout"
                    )
                time.sleep(0.1)
                continue

            if self._is_current_file(fd):
                break
            # The file was replaced while we waited; lock the one on disk
            os.close(fd)
            fd = self._open_lock_file()

        # We hold the flock. A PID left in the file belongs to a process
        # that died without releasing, so it is simply overwritten.
        self._lock_fd = fd
        self._write_pid()
        return True

    def release(self) -> None:
        """
        Release the lock.

        The lock file stays on disk so every run locks the same inode; only
        the recorded PID is cleared.
        """
        if self._lock_fd is None:
            return

        try:
            os.ftruncate(self._lock_fd, 0)
        except OSError:
            pass

        try:
            fcntl.flock(self._lock_fd, fcntl.LOCK_UN)
        except OSError:
            pass
        try:
            os.close(self._lock_fd)
        except OSError:
            pass
        self._lock_fd = None

    def is_locked(self) -> bool:
        """Check if lock is currently held (by any process)."""
        if self.acquired:
            return True
        if not self.lock_path.exists():
            return False

        try:
            fd = os.open(str(self.lock_path), os.O_RDONLY)
        except OSError:
            return False
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            fcntl.flock(fd, fcntl.LOCK_UN)
            return False
        except BlockingIOError:
            return True
        finally:
            os.close(fd)

    def get_lock_holder_pid(self) -> Optional[int]:
        """Return PID of process holding lock, or None."""
        try:
            content = self.lock_path.read_text().strip()
            if content:
                return int(content)
        except (OSError, ValueError):
            pass
        return None

    def _write_pid(self) -> None:
        if self._lock_fd is None:
            return
        try:
            os.ftruncate(self._lock_fd, 0)
            os.lseek(self._lock_fd, 0, os.SEEK_SET)
            os.write(self._lock_fd, str(os.getpid()).encode())
        except OSError:
            pass  # PID is informational only

    def __enter__(self) -> "LockManager":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.release()
        return False
