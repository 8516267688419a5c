"""Tests for run summaries and error reports."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from spmirror.sync.report import (
    RunReporter,
    Severity,
    classify_severity,
    error_report_path,
)
from spmirror.sync.tally import ErrorKind, ErrorRecord, RunTally

STARTED = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
FINISHED = STARTED + timedelta(minutes=1, seconds=5)


def tally_with_errors(total_files, errors):
    tally = RunTally()
    tally.set_total_files(total_files)
    for i in range(errors):
        tally.record_error(
            ErrorRecord(
                kind=ErrorKind.DOWNLOAD,
                file_name=f"f{i}.txt",
                local_path=f"/mirror/f{i}.txt",
                message="HTTP 403",
                remote_path=f"/sites/T/Docs/f{i}.txt",
            )
        )
    return tally


class TestClassifySeverity:
    """Tests for classify_severity."""

    @pytest.mark.parametrize(
        "errors,files,expected",
        [
            (0, 100, Severity.SUCCESS),
            (0, 0, Severity.SUCCESS),
            (3, 100, Severity.MINOR_ISSUES),
            (4, 100, Severity.MINOR_ISSUES),
            (5, 100, Severity.SIGNIFICANT_ERRORS),
            (6, 100, Severity.SIGNIFICANT_ERRORS),
            (1, 0, Severity.SIGNIFICANT_ERRORS),
            (1, 21, Severity.MINOR_ISSUES),
            (1, 20, Severity.SIGNIFICANT_ERRORS),
        ],
    )
    def test_thresholds(self, errors, files, expected):
        assert classify_severity(errors, files) == expected


class TestErrorReportPath:
    def test_with_suffix(self):
        result = error_report_path(Path("/logs/sync.log"))
        assert result == Path("/logs/sync_errors.log")

    def test_without_suffix(self):
        assert error_report_path(Path("/logs/sync")) == Path("/logs/sync_errors.txt")


class TestRunReporter:
    """Tests for RunReporter."""

    def test_banner_success(self):
        severity, text = RunReporter().banner(tally_with_errors(100, 0))
        assert severity == Severity.SUCCESS
        assert text == "Sync completed successfully"

    def test_banner_minor_and_significant(self):
        assert RunReporter().banner(tally_with_errors(100, 3))[0] == (
            Severity.MINOR_ISSUES
        )
        _, text = RunReporter().banner(tally_with_errors(100, 6))
        assert text == "Sync completed with significant errors"

    def test_banner_marks_cancelled_runs(self):
        tally = tally_with_errors(10, 0)
        tally.cancelled = True
        assert RunReporter().banner(tally)[1].endswith("(cancelled)")

    def test_summary_lists_counts(self):
        tally = tally_with_errors(10, 2)
        tally.downloaded = 5
        tally.skipped = 3
        tally.processed = 10

        summary = RunReporter("Documents", Path("/mirror")).summarize(
            tally, STARTED, FINISHED
        )

        assert "Library:             Documents" in summary
        assert "Duration:            00:01:05" in summary
        assert "Downloaded:          5" in summary
        assert "Skipped (current):   3" in summary
        assert "Download errors:     2" in summary
        assert "Timestamp errors:    0" in summary
        assert "Total errors:        2" in summary
        assert summary.splitlines()[-1] == "Sync completed with significant errors"

    def test_dry_run_summary(self):
        tally = tally_with_errors(2, 0)
        tally.planned_creates = 2

        summary = RunReporter().summarize(tally, STARTED, FINISHED, dry_run=True)

        assert "(dry run)" in summary
        assert "Would create:        2" in summary
        assert "Downloaded:" not in summary

    def test_no_report_without_errors(self, tmp_path):
        path = tmp_path / "sync_errors.log"
        assert RunReporter().write_error_report(tally_with_errors(5, 0), path) is None
        assert not path.exists()

    def test_report_written_with_errors(self, tmp_path):
        path = tmp_path / "logs" / "sync_errors.log"
        tally = tally_with_errors(5, 2)
        tally.record_error(
            ErrorRecord(
                kind=ErrorKind.TIMESTAMP_SET,
                file_name="t.txt",
                local_path="/mirror/t.txt",
                message="Cannot set modification time",
            )
        )

        result = RunReporter("Documents").write_error_report(tally, path)

        assert result == path
        content = path.read_text(encoding="utf-8")
        assert "Total errors: 3" in content
        assert "== Download errors (2) ==" in content
        assert "== Timestamp errors (1) ==" in content
        assert "Remote: /sites/T/Docs/f0.txt" in content
        assert "Missing after download" not in content
