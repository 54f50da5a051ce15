"""Per-run context for linkbackup.

A RunContext is built once at the start of a run and passed to every
component. It never changes during the run.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional


# Timestamp format for snapshot directories, e.g. 2025-01-01T12-00-00
TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"

# Target layout
MARKER_NAME = "backup_enabled"
POINTER_NAME = "last_successful_timestamp"
CONTAINER_NAME = "hourly"


def generate_timestamp(now: Optional[datetime] = None) -> str:
    """Return the snapshot identifier for the given (or current) local time."""
    if now is None:
        now = datetime.now()
    return now.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a snapshot identifier, returning None if it is not one."""
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        return None


def join_location(base: str, *parts: str) -> str:
    """
    Join path components onto a local path or rsync remote location.

    Remote locations such as ``host:`` or ``user@host:/srv`` are plain
    strings to rsync, so this works on strings rather than Path objects.
    """
    location = base
    for part in parts:
        if location.endswith(":") or location.endswith("/"):
            location = f"{location}{part}"
        else:
            location = f"{location}/{part}"
    return location


@dataclass(frozen=True)
class RunContext:
    """Everything one run needs to know, fixed at start-up."""
    source: str
    target: str
    timestamp: str
    ignore_file: Path
    log_file: Optional[Path] = None

    @classmethod
    def create(
        cls,
        source: str,
        target: str,
        ignore_file: Path,
        log_dir: Optional[Path] = None,
        now: Optional[datetime] = None,
    ) -> "RunContext":
        """Build a context stamped with the current time."""
        timestamp = generate_timestamp(now)
        log_file = Path(log_dir) / f"{timestamp}.log" if log_dir is not None else None
        return cls(
            source=source,
            target=target,
            timestamp=timestamp,
            ignore_file=Path(ignore_file),
            log_file=log_file,
        )

    @property
    def marker_location(self) -> str:
        return join_location(self.target, MARKER_NAME)

    @property
    def pointer_location(self) -> str:
        return join_location(self.target, POINTER_NAME)

    @property
    def container(self) -> str:
        return join_location(self.target, CONTAINER_NAME)

    @property
    def snapshot_location(self) -> str:
        return join_location(self.target, CONTAINER_NAME, self.timestamp)
