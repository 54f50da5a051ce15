"""The last-successful-timestamp pointer.

The pointer file at the target root names the newest complete snapshot.
The next run hardlinks against whatever it names, so it is only ever
written after a snapshot has been created successfully, and never moved
backwards.
"""

from pathlib import Path
from typing import Optional
import logging
import tempfile

from linkbackup.context import POINTER_NAME, RunContext, parse_timestamp
from linkbackup.logger import LOGGER_NAME
from linkbackup.transport import SyncOptions, Transport


logger = logging.getLogger(f"{LOGGER_NAME}.pointer")

# Pointer transfers copy a single small file. Every pointer has the same
# size, so a write within the same second as the last one would pass the
# size and mtime check; compare contents instead.
POINTER_SYNC_OPTIONS = SyncOptions(archive=True, partial=False, checksum=True)


class PointerError(Exception):
    """Raised when the pointer cannot be written to the target."""
    pass


def resolve_previous_timestamp(transport: Transport, context: RunContext) -> Optional[str]:
    """
    Fetch the pointer and return the identifier it holds.

    A failed fetch, a missing file and an empty file all mean "no previous
    snapshot". Whether the named snapshot still exists is not checked;
    rsync falls back to a full copy when the link basis is missing.

    Returns:
        The previous snapshot identifier, or None
    """
    with tempfile.TemporaryDirectory(prefix="linkbackup_") as scratch:
        local_copy = Path(scratch) / POINTER_NAME
        result = transport.sync(context.pointer_location, str(local_copy), POINTER_SYNC_OPTIONS)
        if not result.success or not local_copy.is_file():
            logger.info("No previous timestamp found, this will be a full copy")
            return None
        previous = local_copy.read_text(encoding="utf-8", errors="replace").strip()

    if not previous:
        logger.warning(f"{context.pointer_location} is empty, treating as first run")
        return None

    logger.info(f"Previous timestamp: {previous}")
    return previous


def commit_pointer(transport: Transport, context: RunContext) -> bool:
    """
    Point the target at this run's snapshot.

    Only call this after the snapshot was created successfully. If the
    pointer already names a later snapshot the commit is skipped. A
    pointer that does not hold a timestamp is overwritten.

    Returns:
        True if the pointer was written, False if it was left alone

    Raises:
        PointerError: If the pointer transfer fails
    """
    current = resolve_previous_timestamp(transport, context)
    if current is not None:
        current_time = parse_timestamp(current)
        if current_time is None:
            logger.warning(f"Pointer holds {current!r}, not a timestamp; overwriting")
        elif current_time > parse_timestamp(context.timestamp):
            logger.warning(
                f"Pointer already names {current}, newer than {context.timestamp}; not updating"
            )
            return False

    with tempfile.TemporaryDirectory(prefix="linkbackup_") as scratch:
        local_copy = Path(scratch) / POINTER_NAME
        local_copy.write_text(f"{context.timestamp}\n", encoding="utf-8")
        result = transport.sync(str(local_copy), context.pointer_location, POINTER_SYNC_OPTIONS)

    if not result.success:
        raise PointerError(
            f"Failed to update {context.pointer_location}: {result.error_message}"
        )

    logger.info(f"Pointer updated to {context.timestamp}")
    return True
