"""Core sync engine for mirroring a document library to a local directory."""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..api import SharePointClient
from ..items_manager import LibraryItemsManager
from ..models import LibraryInfo, RemoteFileDescriptor
from ..output import OutputFormatter
from ..utils import DEFAULT_PAGE_SIZE
from .comparator import FileComparator, SyncAction
from .operations import SyncOperations
from .pair import SyncPair
from .paths import PathTranslator
from .progress import SyncProgressTracker
from .report import RunReporter, Severity
from .scanner import read_local_target
from .tally import ErrorKind, ErrorRecord, RunTally

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Everything known about a finished run."""

    library: LibraryInfo
    tally: RunTally
    started_at: datetime
    finished_at: datetime
    severity: Severity
    summary: str
    error_report: Optional[Path] = None


class SyncEngine:
    """Core sync engine that orchestrates one-way library mirroring."""

    def __init__(
        self,
        client: SharePointClient,
        output: Optional[OutputFormatter] = None,
        operations: Optional[SyncOperations] = None,
    ):
        """Initialize sync engine.

        Args:
            client: SharePoint API client (listing and content fetch)
            output: Output formatter for displaying progress/status
            operations: Transfer operations (defaults to downloads via ``client``)
        """
        self.client = client
        self.output = output or OutputFormatter()
        self.operations = operations or SyncOperations(client)
        self.comparator = FileComparator()
        self._path_locks: dict[str, threading.Lock] = {}
        self._path_locks_guard = threading.Lock()

    def run(
        self,
        pair: SyncPair,
        dry_run: bool = False,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_workers: int = 1,
        report_path: Optional[Path] = None,
        cancel_event: Optional[threading.Event] = None,
        progress_tracker: Optional[SyncProgressTracker] = None,
    ) -> RunResult:
        """Mirror a library onto the pair's local directory.

        Args:
            pair: Library and local target to sync
            dry_run: If True, only decide and count, never transfer
            page_size: Items requested per listing page
            max_workers: Number of parallel transfers (1 = sequential)
            report_path: Where to write the error report if errors occur
            cancel_event: Once set, no further files are started
            progress_tracker: Receives listing and per-file progress events

        Returns:
            RunResult with the final tally and summary

        Raises:
            LibraryNotFoundError: If the library cannot be resolved
            ValueError: If the local target exists but is not a directory

        Examples:
            >>> engine = SyncEngine(client)
            >>> pair = SyncPair(Path("/data/docs"), "Documents")
            >>> result = engine.run(pair, dry_run=True)
            >>> print(f"Would create {result.tally.planned_creates} files")
        """
        if pair.local.exists() and not pair.local.is_dir():
            raise ValueError(f"Local path is not a directory: {pair.local}")

        # Fatal before any per-file work
        library = self.client.get_library(pair.library)
        remote_root = pair.remote_root or library.root_path
        translator = PathTranslator(remote_root=remote_root, local_root=pair.local)
        tracker = progress_tracker or SyncProgressTracker()
        stop_event = threading.Event()

        tally = RunTally()
        started_at = datetime.now().astimezone()
        logger.info(
            f"Starting sync of '{library.title}' ({remote_root}) to {pair.local}"
            + (" [dry run]" if dry_run else "")
        )

        try:
            files = self._list_files(pair, page_size, tracker)
            tally.set_total_files(len(files))
            if not self.output.quiet:
                self.output.info(f"Found {len(files)} remote file(s)")

            self._process_files(
                files,
                pair=pair,
                translator=translator,
                tally=tally,
                dry_run=dry_run,
                max_workers=max_workers,
                tracker=tracker,
                stop_event=stop_event,
                cancel_event=cancel_event,
            )
        except KeyboardInterrupt:
            stop_event.set()
            tally.cancelled = True
            logger.warning("Sync cancelled by user")
            self.output.warning("Sync cancelled by user")
        except Exception as e:
            stop_event.set()
            tally.record_fatal(e)
            logger.exception("Sync aborted by unexpected error")
            self.output.error(f"Sync aborted by unexpected error: {e}")
        finally:
            # Workers have finished; locks are only shared within one run
            with self._path_locks_guard:
                self._path_locks.clear()

        if cancel_event is not None and cancel_event.is_set():
            tally.cancelled = True

        finished_at = datetime.now().astimezone()
        return self._finish(
            library, pair, tally, started_at, finished_at, dry_run, report_path
        )

    def _list_files(
        self, pair: SyncPair, page_size: int, tracker: SyncProgressTracker
    ) -> list[RemoteFileDescriptor]:
        """Drain the full listing before any file is processed."""
        list_start = time.time()
        manager = LibraryItemsManager(self.client, pair.library)
        files = manager.get_all_files(
            page_size=page_size, progress_callback=tracker.listing_page
        )
        tracker.listing_complete(len(files))
        logger.debug(f"Listing took {time.time() - list_start:.2f}s")
        return files

    def _process_files(
        self,
        files: list[RemoteFileDescriptor],
        pair: SyncPair,
        translator: PathTranslator,
        tally: RunTally,
        dry_run: bool,
        max_workers: int,
        tracker: SyncProgressTracker,
        stop_event: threading.Event,
        cancel_event: Optional[threading.Event],
    ) -> None:
        def should_stop() -> bool:
            return stop_event.is_set() or (
                cancel_event is not None and cancel_event.is_set()
            )

        def process(descriptor: RemoteFileDescriptor) -> None:
            if should_stop():
                return
            self._process_file(descriptor, pair, translator, tally, dry_run, tracker)

        if max_workers <= 1 or len(files) <= 1:
            for descriptor in files:
                if should_stop():
                    break
                process(descriptor)
            return

        logger.debug(f"Processing {len(files)} files with {max_workers} workers")
        executor = ThreadPoolExecutor(max_workers=max_workers)
        try:
            futures = [executor.submit(process, descriptor) for descriptor in files]
            for future in as_completed(futures):
                future.result()
        except BaseException:
            stop_event.set()
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

    def _lock_for(self, path: Path) -> threading.Lock:
        key = os.path.normcase(str(path))
        with self._path_locks_guard:
            lock = self._path_locks.get(key)
            if lock is None:
                lock = self._path_locks[key] = threading.Lock()
            return lock

    def _process_file(
        self,
        descriptor: RemoteFileDescriptor,
        pair: SyncPair,
        translator: PathTranslator,
        tally: RunTally,
        dry_run: bool,
        tracker: SyncProgressTracker,
    ) -> None:
        """Decide, transfer and stamp one file, recording its outcome."""
        local_path = translator.translate(descriptor)
        try:
            display = local_path.relative_to(pair.local).as_posix()
        except ValueError:
            display = str(local_path)

        with self._lock_for(local_path):
            local = read_local_target(local_path)
            decision = self.comparator.decide(descriptor, local)
            logger.debug(f"{display}: {decision.action.value} ({decision.reason})")

            if decision.action is SyncAction.SKIP:
                tally.record_skip()
                outcome = "skipped"
                if pair.log_skips:
                    logger.info(f"Skipped (up to date): {display}")
                    self.output.info(f"  = {display}")
            elif dry_run:
                tally.record_planned(create=decision.action is SyncAction.CREATE)
                outcome = f"would {decision.action.value}"
                logger.info(f"Would {decision.action.value}: {display}")
                marker = "+" if decision.action is SyncAction.CREATE else "~"
                self.output.info(f"  {marker} {display}")
            else:
                outcome = self._transfer(
                    descriptor, local_path, display, decision.action, tally
                )

        tally.mark_processed()
        tracker.file_complete(tally.processed, tally.total_files, display, outcome)

    def _transfer(
        self,
        descriptor: RemoteFileDescriptor,
        local_path: Path,
        display: str,
        action: SyncAction,
        tally: RunTally,
    ) -> str:
        action_start = time.time()
        result = self.operations.transfer(descriptor, local_path)
        if result.error_kind is not None:
            self._record_failure(
                tally, result.error_kind, descriptor, local_path, result.message
            )
            return result.error_kind.value

        timestamp_error = self.operations.reconcile_timestamp(
            local_path, descriptor.modified_at
        )
        # A file with a wrong timestamp still counts as downloaded
        tally.record_download()
        if timestamp_error:
            self._record_failure(
                tally, ErrorKind.TIMESTAMP_SET, descriptor, local_path, timestamp_error
            )

        verb = "Created" if action is SyncAction.CREATE else "Updated"
        logger.info(f"{verb}: {display} ({time.time() - action_start:.2f}s)")
        return action.value

    def _record_failure(
        self,
        tally: RunTally,
        kind: ErrorKind,
        descriptor: RemoteFileDescriptor,
        local_path: Path,
        message: str,
    ) -> None:
        record = ErrorRecord(
            kind=kind,
            file_name=local_path.name,
            local_path=str(local_path),
            message=message,
            remote_path=descriptor.server_relative_path,
        )
        tally.record_error(record)
        logger.warning(f"{kind.label}: {descriptor.server_relative_path}: {message}")
        self.output.warning(f"{kind.label}: {record.file_name}: {message}")

    def _finish(
        self,
        library: LibraryInfo,
        pair: SyncPair,
        tally: RunTally,
        started_at: datetime,
        finished_at: datetime,
        dry_run: bool,
        report_path: Optional[Path],
    ) -> RunResult:
        reporter = RunReporter(library_title=library.title, target_path=pair.local)
        severity, _ = reporter.banner(tally)
        summary = reporter.summarize(tally, started_at, finished_at, dry_run=dry_run)
        for line in summary.splitlines():
            logger.info(line)

        error_report = None
        if report_path is not None and tally.total_errors > 0:
            try:
                error_report = reporter.write_error_report(tally, report_path)
            except OSError as e:
                logger.error(f"Failed to write error report to {report_path}: {e}")
                self.output.error(f"Failed to write error report: {e}")

        return RunResult(
            library=library,
            tally=tally,
            started_at=started_at,
            finished_at=finished_at,
            severity=severity,
            summary=summary,
            error_report=error_report,
        )
