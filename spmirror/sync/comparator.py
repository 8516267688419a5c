"""Decision logic for one-way sync of remote files."""

import logging
from dataclasses import dataclass
from enum import Enum

from ..models import RemoteFileDescriptor
from ..utils import to_local_time
from .scanner import LocalTarget

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    """Actions that can be taken for a remote file."""

    SKIP = "skip"
    """Local copy is up to date"""

    CREATE = "create"
    """No local copy exists yet"""

    UPDATE = "update"
    """Local copy is older or cannot be inspected"""

    @property
    def transfers(self) -> bool:
        return self is not SyncAction.SKIP


@dataclass(frozen=True)
class SyncDecision:
    """Represents a decision about how to sync a file."""

    action: SyncAction
    reason: str
    descriptor: RemoteFileDescriptor
    local: LocalTarget


class FileComparator:
    """Compares remote modification times with local ones."""

    def decide(
        self, descriptor: RemoteFileDescriptor, local: LocalTarget
    ) -> SyncDecision:
        """Determine the action for one remote file.

        A local file whose modification time is equal to or newer than the
        remote one is up to date.

        Args:
            descriptor: Remote file
            local: Freshly read state of its local target

        Returns:
            SyncDecision for this file
        """
        if not local.exists:
            return SyncDecision(SyncAction.CREATE, "New remote file", descriptor, local)

        if local.mtime is None:
            logger.info(
                f"Cannot read attributes of {local.path} ({local.metadata_error}), "
                "downloading again"
            )
            return SyncDecision(
                SyncAction.UPDATE,
                "Local metadata unreadable",
                descriptor,
                local,
            )

        remote_mtime = to_local_time(descriptor.modified_at)
        if remote_mtime <= local.mtime:
            return SyncDecision(SyncAction.SKIP, "Up to date", descriptor, local)

        return SyncDecision(
            SyncAction.UPDATE, "Remote file is newer", descriptor, local
        )
