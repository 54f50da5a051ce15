"""Snapshot creation for linkbackup.

This module provides the SnapshotCreator class that creates incremental
snapshots using rsync with hard links for space efficiency.
"""

from dataclasses import dataclass
from typing import List, Optional
import logging

from linkbackup.context import RunContext
from linkbackup.excludes import ExcludePattern, build_exclude_args
from linkbackup.logger import LOGGER_NAME
from linkbackup.transport import SyncOptions, SyncResult, Transport


logger = logging.getLogger(f"{LOGGER_NAME}.snapshot")


@dataclass
class SnapshotResult:
    """Result of a snapshot operation."""
    success: bool
    snapshot_location: str
    link_basis: Optional[str]
    returncode: int
    command: List[str]
    duration_seconds: float
    error_message: Optional[str]


class SnapshotCreator:
    """
    Creates snapshots under TARGET/hourly/<timestamp>/.

    Unchanged files are hard-linked to the previous snapshot, which is
    passed to rsync as ``--link-dest=../<previous>``. The basis is given
    relative to the new snapshot directory so it resolves on the receiving
    side for local and remote targets alike.

    Files deleted from the source are not removed from the new snapshot
    unless mirror_deletions is set.
    """

    def __init__(self, transport: Transport, mirror_deletions: bool = False):
        """
        Initialize the snapshot creator.

        Args:
            transport: Transport used for the sync
            mirror_deletions: Pass --delete to rsync
        """
        self.transport = transport
        self.mirror_deletions = mirror_deletions

    @staticmethod
    def link_basis_for(previous: Optional[str]) -> Optional[str]:
        """Return the --link-dest value for a previous snapshot identifier."""
        if not previous:
            return None
        return f"../{previous}"

    def build_options(
        self,
        excludes: List[ExcludePattern],
        previous: Optional[str],
    ) -> SyncOptions:
        return SyncOptions(
            excludes=tuple(build_exclude_args(excludes)),
            link_dest=self.link_basis_for(previous),
            archive=True,
            partial=True,
            delete=self.mirror_deletions,
        )

    def create_snapshot(
        self,
        context: RunContext,
        excludes: List[ExcludePattern],
        previous: Optional[str],
    ) -> SnapshotResult:
        """
        Create the snapshot for this run.

        A failed transfer is reported in the result, not raised. Whatever
        rsync managed to write stays in place; nothing points at it.

        Args:
            context: Current run context
            excludes: Patterns to leave out of the snapshot
            previous: Identifier of the last good snapshot, or None

        Returns:
            SnapshotResult with success status and the command that ran
        """
        options = self.build_options(excludes, previous)
        if options.link_dest is None:
            logger.info("No link basis, performing a full copy")
        else:
            logger.info(f"Linking unchanged files against {previous}")

        # Trailing slashes: copy the contents of source into the snapshot dir
        source = context.source.rstrip("/") + "/"
        destination = context.snapshot_location + "/"
        result: SyncResult = self.transport.sync(source, destination, options)

        if result.success:
            logger.info(f"Snapshot created: {context.snapshot_location}")
        else:
            logger.error(f"Snapshot failed: {result.error_message}")

        return SnapshotResult(
            success=result.success,
            snapshot_location=context.snapshot_location,
            link_basis=options.link_dest,
            returncode=result.returncode,
            command=list(result.command),
            duration_seconds=result.duration_seconds,
            error_message=result.error_message,
        )
