"""Target provisioning checks for linkbackup.

A target is only written to once somebody has prepared it by hand: it must
hold a ``backup_enabled`` marker file and an ``hourly/`` directory. Both are
probed read-only over the same transport used for the sync, so local and
remote targets are checked the same way.
"""

import logging

from linkbackup.context import CONTAINER_NAME, MARKER_NAME, RunContext
from linkbackup.logger import LOGGER_NAME
from linkbackup.transport import Transport


logger = logging.getLogger(f"{LOGGER_NAME}.destination")


class ProvisioningError(Exception):
    """Raised when the target has not been provisioned for backups."""

    def __init__(self, message: str, missing: str):
        super().__init__(message)
        self.missing = missing


def validate_target(transport: Transport, context: RunContext) -> None:
    """
    Validate the backup target is provisioned.

    Checks:
    1. The marker file is reachable
    2. The snapshot container directory is reachable

    Args:
        transport: Transport used for the probes
        context: Current run context

    Raises:
        ProvisioningError: If either item is missing. Nothing has been
                           written when this is raised.
    """
    if not transport.exists(context.marker_location):
        raise ProvisioningError(
            f"Target not provisioned: {context.marker_location} not found",
            missing=MARKER_NAME,
        )
    logger.debug(f"Marker found: {context.marker_location}")

    if not transport.exists(context.container + "/"):
        raise ProvisioningError(
            f"Target not provisioned: {context.container}/ not found",
            missing=CONTAINER_NAME,
        )
    logger.debug(f"Container found: {context.container}")
