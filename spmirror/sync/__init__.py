"""Sync engine for spmirror - one-way mirroring of a document library."""

from .comparator import FileComparator, SyncAction, SyncDecision
from .engine import RunResult, SyncEngine
from .operations import SyncOperations, TransferOutcome
from .pair import SyncPair
from .paths import PathTranslator
from .progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker
from .report import RunReporter, Severity, classify_severity, error_report_path
from .scanner import LocalTarget, read_local_target
from .tally import ErrorKind, ErrorRecord, RunTally

__all__ = [
    "SyncEngine",
    "RunResult",
    "SyncPair",
    "SyncOperations",
    "TransferOutcome",
    "FileComparator",
    "SyncAction",
    "SyncDecision",
    "PathTranslator",
    "LocalTarget",
    "read_local_target",
    "ErrorKind",
    "ErrorRecord",
    "RunTally",
    "RunReporter",
    "Severity",
    "classify_severity",
    "error_report_path",
    "SyncProgressEvent",
    "SyncProgressInfo",
    "SyncProgressTracker",
]
