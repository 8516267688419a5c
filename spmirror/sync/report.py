"""Run summaries and persisted error reports."""

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from ..utils import MINOR_ISSUES_PERCENT, format_duration, format_timestamp
from .tally import ErrorKind, RunTally

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Overall outcome of a run."""

    SUCCESS = "success"
    MINOR_ISSUES = "minor issues"
    SIGNIFICANT_ERRORS = "significant errors"


def classify_severity(total_errors: int, total_files: int) -> Severity:
    """Grade a run by its error rate.

    Examples:
        >>> classify_severity(0, 100).value
        'success'
        >>> classify_severity(3, 100).value
        'minor issues'
        >>> classify_severity(6, 100).value
        'significant errors'
    """
    if total_errors == 0:
        return Severity.SUCCESS
    if total_errors * 100 < total_files * MINOR_ISSUES_PERCENT:
        return Severity.MINOR_ISSUES
    return Severity.SIGNIFICANT_ERRORS


def error_report_path(log_path: Path) -> Path:
    """Error report path for a transcript log (``sync.log`` -> ``sync_errors.log``)."""
    suffix = log_path.suffix or ".txt"
    return log_path.with_name(f"{log_path.stem}_errors{suffix}")


_BANNERS = {
    Severity.SUCCESS: "Sync completed successfully",
    Severity.MINOR_ISSUES: "Sync completed with minor issues",
    Severity.SIGNIFICANT_ERRORS: "Sync completed with significant errors",
}


class RunReporter:
    """Turns a finished RunTally into text and files."""

    def __init__(self, library_title: str = "", target_path: Optional[Path] = None):
        self.library_title = library_title
        self.target_path = target_path

    def banner(self, tally: RunTally) -> tuple[Severity, str]:
        severity = classify_severity(tally.total_errors, tally.total_files)
        text = _BANNERS[severity]
        if tally.cancelled:
            text += " (cancelled)"
        if tally.aborted:
            text += " (aborted)"
        return severity, text

    def summarize(
        self,
        tally: RunTally,
        started_at: datetime,
        finished_at: datetime,
        dry_run: bool = False,
    ) -> str:
        """Build the human-readable run summary.

        Args:
            tally: Final tally of the run
            started_at: Run start time
            finished_at: Run end time
            dry_run: Whether transfers were only planned

        Returns:
            Multi-line summary text
        """
        duration = (finished_at - started_at).total_seconds()
        _, banner = self.banner(tally)

        lines = ["=" * 60, "Sync summary" + (" (dry run)" if dry_run else ""), "=" * 60]
        if self.library_title:
            lines.append(f"Library:             {self.library_title}")
        if self.target_path is not None:
            lines.append(f"Target:              {self.target_path}")
        lines += [
            f"Started:             {format_timestamp(started_at)}",
            f"Finished:            {format_timestamp(finished_at)}",
            f"Duration:            {format_duration(duration)}",
            f"Remote files:        {tally.total_files}",
            f"Processed:           {tally.processed}",
        ]
        if dry_run:
            lines += [
                f"Would create:        {tally.planned_creates}",
                f"Would update:        {tally.planned_updates}",
            ]
        else:
            lines.append(f"Downloaded:          {tally.downloaded}")
        lines.append(f"Skipped (current):   {tally.skipped}")
        for kind in ErrorKind:
            lines.append(f"{kind.label + ':':<21}{tally.errors_by_kind[kind]}")
        lines += [f"Total errors:        {tally.total_errors}", "-" * 60, banner]
        return "\n".join(lines)

    def write_error_report(self, tally: RunTally, path: Path) -> Optional[Path]:
        """Write every error record, grouped by kind, to ``path``.

        Nothing is written for a run without errors.

        Returns:
            The report path, or None if there was nothing to report
        """
        if tally.total_errors == 0:
            return None

        lines = [
            "spmirror error report",
            f"Generated: {format_timestamp(datetime.now().astimezone())}",
        ]
        if self.library_title:
            lines.append(f"Library: {self.library_title}")
        lines.append(f"Total errors: {tally.total_errors}")

        for kind in ErrorKind:
            records = tally.records[kind]
            if not records:
                continue
            lines += ["", f"== {kind.label} ({len(records)}) =="]
            for record in records:
                lines.append(f"- {record.file_name}")
                if record.remote_path:
                    lines.append(f"    Remote: {record.remote_path}")
                if record.local_path:
                    lines.append(f"    Local:  {record.local_path}")
                lines.append(f"    Error:  {record.message}")

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
        logger.info(f"Wrote error report to {path}")
        return path
