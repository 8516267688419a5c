"""Tests for the rich progress display."""

from unittest.mock import Mock

from spmirror.cli_progress import SyncProgressDisplay, run_sync_with_progress
from spmirror.sync import SyncProgressTracker


class TestSyncProgressDisplay:
    """Tests for SyncProgressDisplay."""

    def test_events_ignored_outside_context(self):
        tracker = SyncProgressDisplay().create_tracker()
        tracker.listing_page(1, 10)
        tracker.listing_complete(10)

    def test_listing_then_files(self):
        with SyncProgressDisplay() as display:
            tracker = display.create_tracker()
            tracker.listing_page(1, 2)
            tracker.listing_complete(2)
            tracker.file_complete(1, 2, "a.txt", "create")
            tracker.file_complete(2, 2, "b.txt", "skipped")

            task = display._progress.tasks[-1]
            assert task.total == 2
            assert task.completed == 2
            assert "b.txt" in task.fields["current"]


class TestRunSyncWithProgress:
    """Tests for run_sync_with_progress."""

    def test_without_progress(self):
        engine = Mock()
        pair = Mock()

        run_sync_with_progress(engine, pair, show_progress=False, dry_run=True)

        engine.run.assert_called_once_with(pair, dry_run=True)

    def test_with_progress_passes_tracker(self):
        engine = Mock()
        pair = Mock()

        result = run_sync_with_progress(engine, pair, max_workers=2)

        assert result is engine.run.return_value
        kwargs = engine.run.call_args.kwargs
        assert isinstance(kwargs["progress_tracker"], SyncProgressTracker)
        assert kwargs["max_workers"] == 2
