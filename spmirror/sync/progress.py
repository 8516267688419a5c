"""Progress events emitted by the sync engine.

The engine only reports what happened; rendering is left to the
callback owner (see ``spmirror.cli_progress``).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class SyncProgressEvent(str, Enum):
    LISTING_PAGE = "listing_page"
    LISTING_COMPLETE = "listing_complete"
    FILE_COMPLETE = "file_complete"


@dataclass(frozen=True)
class SyncProgressInfo:
    """Snapshot sent with every progress event."""

    event: SyncProgressEvent
    files_listed: int = 0
    pages_listed: int = 0
    files_total: int = 0
    files_processed: int = 0
    current_file: str = ""
    outcome: str = ""


class SyncProgressTracker:
    """Forwards progress events to a callback."""

    def __init__(self, callback: Optional[Callable[[SyncProgressInfo], None]] = None):
        self.callback = callback

    def emit(self, info: SyncProgressInfo) -> None:
        if self.callback is not None:
            self.callback(info)

    def listing_page(self, page_num: int, files_listed: int) -> None:
        self.emit(
            SyncProgressInfo(
                SyncProgressEvent.LISTING_PAGE,
                files_listed=files_listed,
                pages_listed=page_num,
            )
        )

    def listing_complete(self, files_total: int) -> None:
        self.emit(
            SyncProgressInfo(
                SyncProgressEvent.LISTING_COMPLETE,
                files_listed=files_total,
                files_total=files_total,
            )
        )

    def file_complete(
        self, files_processed: int, files_total: int, name: str, outcome: str
    ) -> None:
        self.emit(
            SyncProgressInfo(
                SyncProgressEvent.FILE_COMPLETE,
                files_total=files_total,
                files_processed=files_processed,
                current_file=name,
                outcome=outcome,
            )
        )
