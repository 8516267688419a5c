"""Outcome accounting for a sync run.

Every listed file ends up in exactly one of downloaded, skipped or one of
the file-failing error kinds. A ``TIMESTAMP_SET`` error is recorded next to
a download, never instead of it, and ``OTHER`` only ever holds the single
run-level failure that aborted processing.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Categories of failures tracked during a run."""

    DIRECTORY_CREATION = "directory_creation"
    """The parent directory of the target could not be created"""

    DOWNLOAD = "download"
    """Fetching the file content failed"""

    MISSING_AFTER_DOWNLOAD = "missing_after_download"
    """The fetch reported success but produced no file"""

    TIMESTAMP_SET = "timestamp_set"
    """The file was downloaded but its modification time could not be set"""

    OTHER = "other"
    """Run-level failure that aborted listing or processing"""

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    ErrorKind.DIRECTORY_CREATION: "Directory creation errors",
    ErrorKind.DOWNLOAD: "Download errors",
    ErrorKind.MISSING_AFTER_DOWNLOAD: "Missing after download",
    ErrorKind.TIMESTAMP_SET: "Timestamp errors",
    ErrorKind.OTHER: "Other errors",
}

# Kinds that mean the file was not mirrored in this run
FILE_FAILING_KINDS = (
    ErrorKind.DIRECTORY_CREATION,
    ErrorKind.DOWNLOAD,
    ErrorKind.MISSING_AFTER_DOWNLOAD,
)


@dataclass(frozen=True)
class ErrorRecord:
    """A single classified failure."""

    kind: ErrorKind
    file_name: str
    local_path: str
    message: str
    remote_path: Optional[str] = None


class RunTally:
    """Running totals for one sync run.

    A fresh instance is created per run. Updates are guarded by a lock so
    worker threads can record outcomes concurrently.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total_files = 0
        self.processed = 0
        self.downloaded = 0
        self.skipped = 0
        self.planned_creates = 0
        self.planned_updates = 0
        self.total_errors = 0
        self.errors_by_kind: dict[ErrorKind, int] = {kind: 0 for kind in ErrorKind}
        self.records: dict[ErrorKind, list[ErrorRecord]] = {
            kind: [] for kind in ErrorKind
        }
        self.cancelled = False
        self.aborted = False

    def set_total_files(self, total: int) -> None:
        with self._lock:
            self.total_files = total

    def mark_processed(self) -> None:
        with self._lock:
            self.processed += 1

    def record_download(self) -> None:
        with self._lock:
            self.downloaded += 1

    def record_skip(self) -> None:
        with self._lock:
            self.skipped += 1

    def record_planned(self, create: bool) -> None:
        """Count a transfer that a dry run would have performed."""
        with self._lock:
            if create:
                self.planned_creates += 1
            else:
                self.planned_updates += 1

    def record_error(self, record: ErrorRecord) -> None:
        """Classify a failure under ``record.kind`` and keep the record."""
        with self._lock:
            self.errors_by_kind[record.kind] += 1
            self.total_errors += 1
            self.records[record.kind].append(record)

    def record_fatal(self, exc: BaseException, context: str = "") -> ErrorRecord:
        """Record the run-level failure that stopped processing.

        Only the first call counts; a run aborts at most once.
        """
        record = ErrorRecord(
            kind=ErrorKind.OTHER,
            file_name=context or "(run)",
            local_path="",
            message=f"{type(exc).__name__}: {exc}",
        )
        with self._lock:
            if self.aborted:
                return record
            self.aborted = True
        self.record_error(record)
        return record

    @property
    def failed_files(self) -> int:
        """Files that were not mirrored because of an error."""
        return sum(self.errors_by_kind[kind] for kind in FILE_FAILING_KINDS)

    def is_consistent(self) -> bool:
        """Check the accounting invariants of the tally."""
        accounted = (
            self.downloaded
            + self.skipped
            + self.failed_files
            + self.planned_creates
            + self.planned_updates
        )
        return (
            self.total_errors == sum(self.errors_by_kind.values())
            and accounted == self.processed
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_files": self.total_files,
            "processed": self.processed,
            "downloaded": self.downloaded,
            "skipped": self.skipped,
            "planned_creates": self.planned_creates,
            "planned_updates": self.planned_updates,
            "errors_by_kind": {
                kind.value: count for kind, count in self.errors_by_kind.items()
            },
            "total_errors": self.total_errors,
            "cancelled": self.cancelled,
            "aborted": self.aborted,
        }
