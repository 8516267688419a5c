"""Tests for file transfers and timestamp reconciliation."""

import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from spmirror.exceptions import (
    SharePointAPIError,
    SharePointDownloadError,
    SharePointNetworkError,
)
from spmirror.models import RemoteFileDescriptor
from spmirror.sync.operations import TEMP_SUFFIX, SyncOperations, is_retryable
from spmirror.sync.tally import ErrorKind

REMOTE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_descriptor(name="a.txt"):
    return RemoteFileDescriptor(f"/sites/T/Docs/{name}", name, REMOTE_TIME)


def writing_fetcher(content=b"remote content"):
    """A fetcher that writes ``content`` to the requested path."""

    def download_file(server_relative_path, output_path, progress_callback=None):
        Path(output_path).write_bytes(content)
        return output_path

    fetcher = Mock()
    fetcher.download_file.side_effect = download_file
    return fetcher


def temp_files(directory: Path):
    return [p for p in directory.iterdir() if p.name.endswith(TEMP_SUFFIX)]


class TestIsRetryable:
    def test_network_errors(self):
        assert is_retryable(SharePointNetworkError("reset")) is True

    def test_server_errors(self):
        assert is_retryable(SharePointAPIError("boom", 503)) is True

    def test_client_errors(self):
        assert is_retryable(SharePointDownloadError("gone", 404)) is False
        assert is_retryable(SharePointDownloadError("disk full")) is False


class TestTransfer:
    """Tests for SyncOperations.transfer."""

    def test_creates_file_and_parents(self, tmp_path):
        ops = SyncOperations(writing_fetcher(), retry_delay=0)
        target = tmp_path / "a" / "b" / "a.txt"

        outcome = ops.transfer(make_descriptor(), target)

        assert outcome.success is True
        assert target.read_bytes() == b"remote content"
        assert temp_files(target.parent) == []

    def test_temp_name_independent_of_leaf(self, tmp_path):
        fetcher = writing_fetcher()
        ops = SyncOperations(fetcher, retry_delay=0)
        name = "n" * 240 + ".txt"

        outcome = ops.transfer(make_descriptor(name), tmp_path / name)

        assert outcome.success is True
        temp_path = fetcher.download_file.call_args.args[1]
        assert name not in temp_path.name
        assert temp_path.name.endswith(TEMP_SUFFIX)
        assert temp_files(tmp_path) == []

    def test_replaces_existing_file(self, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("old")
        ops = SyncOperations(writing_fetcher(b"new"), retry_delay=0)

        assert ops.transfer(make_descriptor(), target).success is True
        assert target.read_bytes() == b"new"

    def test_directory_creation_failure(self, tmp_path):
        (tmp_path / "blocker").write_text("a file where a folder should be")
        fetcher = writing_fetcher()
        ops = SyncOperations(fetcher, retry_delay=0)

        outcome = ops.transfer(make_descriptor(), tmp_path / "blocker" / "a.txt")

        assert outcome.error_kind == ErrorKind.DIRECTORY_CREATION
        fetcher.download_file.assert_not_called()

    def test_download_failure(self, tmp_path):
        fetcher = Mock()
        fetcher.download_file.side_effect = SharePointDownloadError("forbidden", 403)
        ops = SyncOperations(fetcher, retry_delay=0)

        outcome = ops.transfer(make_descriptor(), tmp_path / "a.txt")

        assert outcome.error_kind == ErrorKind.DOWNLOAD
        assert "forbidden" in outcome.message
        assert fetcher.download_file.call_count == 1
        assert not (tmp_path / "a.txt").exists()

    def test_partial_download_leaves_old_file(self, tmp_path):
        """A failed transfer never truncates the existing local copy."""
        target = tmp_path / "a.txt"
        target.write_text("previous version")

        def download_file(server_relative_path, output_path, progress_callback=None):
            Path(output_path).write_bytes(b"partial")
            raise SharePointNetworkError("connection reset")

        fetcher = Mock()
        fetcher.download_file.side_effect = download_file
        ops = SyncOperations(fetcher, max_retries=0, retry_delay=0)

        outcome = ops.transfer(make_descriptor(), target)

        assert outcome.error_kind == ErrorKind.DOWNLOAD
        assert target.read_text() == "previous version"
        assert temp_files(tmp_path) == []

    def test_missing_after_download(self, tmp_path):
        fetcher = Mock()
        fetcher.download_file.return_value = tmp_path / "a.txt"
        ops = SyncOperations(fetcher, retry_delay=0)

        outcome = ops.transfer(make_descriptor(), tmp_path / "a.txt")

        assert outcome.error_kind == ErrorKind.MISSING_AFTER_DOWNLOAD

    @patch("spmirror.sync.operations.time.sleep")
    def test_transient_errors_retried(self, mock_sleep, tmp_path):
        calls = []

        def download_file(server_relative_path, output_path, progress_callback=None):
            calls.append(output_path)
            if len(calls) < 3:
                raise SharePointNetworkError("timeout")
            Path(output_path).write_bytes(b"ok")
            return output_path

        fetcher = Mock()
        fetcher.download_file.side_effect = download_file
        ops = SyncOperations(fetcher, max_retries=3, retry_delay=2.0)

        outcome = ops.transfer(make_descriptor(), tmp_path / "a.txt")

        assert outcome.success is True
        assert [c.args[0] for c in mock_sleep.call_args_list] == [2.0, 3.0]

    @patch("spmirror.sync.operations.time.sleep")
    def test_retries_exhausted(self, mock_sleep, tmp_path):
        fetcher = Mock()
        fetcher.download_file.side_effect = SharePointNetworkError("timeout")
        ops = SyncOperations(fetcher, max_retries=2, retry_delay=0)

        outcome = ops.transfer(make_descriptor(), tmp_path / "a.txt")

        assert outcome.error_kind == ErrorKind.DOWNLOAD
        assert fetcher.download_file.call_count == 3

    @patch("spmirror.sync.operations.time.sleep")
    def test_cancel_stops_retries(self, mock_sleep, tmp_path):
        cancel = threading.Event()
        cancel.set()
        fetcher = Mock()
        fetcher.download_file.side_effect = SharePointNetworkError("timeout")
        ops = SyncOperations(fetcher, max_retries=5, cancel_event=cancel)

        ops.transfer(make_descriptor(), tmp_path / "a.txt")

        assert fetcher.download_file.call_count == 1
        mock_sleep.assert_not_called()


class TestReconcileTimestamp:
    """Tests for SyncOperations.reconcile_timestamp."""

    @pytest.fixture
    def ops(self):
        return SyncOperations(Mock(), retry_delay=0)

    def test_sets_exact_mtime(self, ops, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("x")
        modified = datetime(2023, 7, 4, 1, 2, 3, 456789, tzinfo=timezone.utc)

        assert ops.reconcile_timestamp(path, modified) is None

        expected = 1688432523 * 1_000_000_000 + 456789 * 1000
        assert path.stat().st_mtime_ns == expected

    def test_failure_is_reported(self, ops, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("x")
        with patch("spmirror.sync.operations.os.utime", side_effect=OSError("ro fs")):
            error = ops.reconcile_timestamp(path, REMOTE_TIME)
        assert "ro fs" in error

    def test_missing_file_is_reported(self, ops, tmp_path):
        error = ops.reconcile_timestamp(tmp_path / "gone.txt", REMOTE_TIME)
        assert error is not None
        assert not os.path.exists(tmp_path / "gone.txt")
