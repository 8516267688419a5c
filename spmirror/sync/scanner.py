"""Reading the current state of local mirror targets."""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..utils import ns_to_local_datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalTarget:
    """The on-disk state of the path a remote file maps to."""

    path: Path
    """Absolute path of the mirrored file"""

    exists: bool
    """Whether anything exists at the path"""

    mtime: Optional[datetime] = None
    """Last modification time in local time (None if missing or unreadable)"""

    metadata_error: Optional[str] = None
    """Why the metadata of an existing file could not be read"""

    @property
    def metadata_readable(self) -> bool:
        return self.exists and self.mtime is not None


def read_local_target(path: Path) -> LocalTarget:
    """Stat ``path`` without raising.

    Called right before each decision so the state is never stale.

    Args:
        path: Local path to inspect

    Returns:
        LocalTarget; an existing file whose attributes cannot be read is
        reported with ``metadata_error`` set instead of raising
    """
    if not os.path.lexists(path):
        return LocalTarget(path=path, exists=False)

    try:
        stat = path.stat()
    except OSError as e:
        return LocalTarget(path=path, exists=True, metadata_error=str(e))

    return LocalTarget(
        path=path,
        exists=True,
        mtime=ns_to_local_datetime(stat.st_mtime_ns),
    )
