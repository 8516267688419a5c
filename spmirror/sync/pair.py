"""Sync pair definition: a document library and its local mirror."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class SyncPair:
    """A remote library mirrored onto a local directory."""

    local: Path
    """Local target root"""

    library: str
    """Document library title"""

    remote_root: Optional[str] = None
    """Server-relative prefix stripped from item paths; defaults to the
    library's root folder once resolved"""

    log_skips: bool = False
    """Log every up-to-date file as it is skipped"""

    def __post_init__(self) -> None:
        self.local = Path(self.local).expanduser()
        if not self.library or not self.library.strip():
            raise ValueError("Library name cannot be empty")
        self.library = self.library.strip()
        if self.remote_root is not None:
            self.remote_root = "/" + self.remote_root.strip("/")
