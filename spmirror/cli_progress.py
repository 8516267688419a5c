"""Rich rendering of the events sent by a sync run's SyncProgressTracker."""

from typing import Optional

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .sync.progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker


class SyncProgressDisplay:
    """Live progress for a mirror run.

    Shows a spinner while the library listing is drained, then a bar over
    the listed files while they are processed.
    """

    def __init__(self) -> None:
        self._progress: Optional[Progress] = None
        self._listing_task: Optional[TaskID] = None
        self._files_task: Optional[TaskID] = None

    def create_tracker(self) -> SyncProgressTracker:
        """Create a SyncProgressTracker that updates this display."""
        return SyncProgressTracker(callback=self._handle_event)

    def _handle_event(self, info: SyncProgressInfo) -> None:
        if self._progress is None:
            return

        if info.event == SyncProgressEvent.LISTING_PAGE:
            if self._listing_task is not None:
                self._progress.update(
                    self._listing_task,
                    description=(
                        f"Listing library: {info.files_listed} file(s), "
                        f"{info.pages_listed} page(s)"
                    ),
                )

        elif info.event == SyncProgressEvent.LISTING_COMPLETE:
            if self._listing_task is not None:
                self._progress.update(
                    self._listing_task,
                    description=f"Listed {info.files_total} file(s)",
                    total=1,
                    completed=1,
                )
            self._files_task = self._progress.add_task(
                "Syncing files", total=info.files_total, current=""
            )

        elif info.event == SyncProgressEvent.FILE_COMPLETE:
            if self._files_task is not None:
                self._progress.update(
                    self._files_task,
                    completed=info.files_processed,
                    current=f"{info.current_file} ({info.outcome})",
                )

    def __enter__(self) -> "SyncProgressDisplay":
        """Start the live display with the listing spinner."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            TextColumn("[cyan]{task.fields[current]}"),
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._listing_task = self._progress.add_task(
            "Listing library...", total=None, current=""
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Stop the live display."""
        if self._progress is not None:
            if self._files_task is not None:
                self._progress.update(self._files_task, description="Sync finished")
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._listing_task = None
            self._files_task = None


def run_sync_with_progress(engine, pair, show_progress: bool = True, **kwargs):
    """Run ``engine.run`` with a Rich progress display.

    Args:
        engine: SyncEngine instance
        pair: SyncPair to sync
        show_progress: If False, run without a progress display
        **kwargs: Passed through to ``SyncEngine.run``

    Returns:
        RunResult of the sync
    """
    if not show_progress:
        return engine.run(pair, **kwargs)

    with SyncProgressDisplay() as display:
        return engine.run(pair, progress_tracker=display.create_tracker(), **kwargs)
