"""Transfers and timestamp reconciliation for mirrored files."""

import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Protocol

from ..exceptions import (
    SharePointAPIError,
    SharePointNetworkError,
    SharePointRateLimitError,
)
from ..models import RemoteFileDescriptor
from ..utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, datetime_to_ns
from .tally import ErrorKind

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".spmirror-part"


class ContentFetcher(Protocol):
    """Writes the bytes of a remote file to a local path."""

    def download_file(
        self,
        server_relative_path: str,
        output_path: Path,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> Path: ...


@dataclass(frozen=True)
class TransferOutcome:
    """Result of transferring one file."""

    path: Path
    error_kind: Optional[ErrorKind] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.error_kind is None

    @classmethod
    def succeeded(cls, path: Path) -> "TransferOutcome":
        return cls(path=path)

    @classmethod
    def failed(cls, path: Path, kind: ErrorKind, message: str) -> "TransferOutcome":
        return cls(path=path, error_kind=kind, message=message)


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False


def is_retryable(error: Exception) -> bool:
    """Whether a download error is likely transient."""
    if isinstance(error, (SharePointNetworkError, SharePointRateLimitError)):
        return True
    if isinstance(error, SharePointAPIError) and error.status_code is not None:
        return error.status_code >= 500
    return False


class SyncOperations:
    """Download and timestamp operations used by the sync engine."""

    def __init__(
        self,
        fetcher: ContentFetcher,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize sync operations.

        Args:
            fetcher: Collaborator that writes remote bytes to disk
                (normally a SharePointClient)
            max_retries: Extra attempts for transient download errors
            retry_delay: Delay before the first retry in seconds
            cancel_event: When set, pending retries are abandoned
        """
        self.fetcher = fetcher
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.cancel_event = cancel_event

    def transfer(
        self,
        descriptor: RemoteFileDescriptor,
        local_path: Path,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> TransferOutcome:
        """Download a remote file to ``local_path``, replacing any existing file.

        The bytes are written to a temporary file in the target directory
        and renamed over ``local_path`` once complete, so an interrupted
        transfer never leaves a truncated file behind.

        Args:
            descriptor: Remote file to fetch
            local_path: Destination path
            progress_callback: Optional callback function(bytes_downloaded, total_bytes)

        Returns:
            TransferOutcome; failures are classified, never raised
        """
        parent = local_path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return TransferOutcome.failed(
                local_path,
                ErrorKind.DIRECTORY_CREATION,
                f"Cannot create directory {parent}: {e}",
            )

        # Fixed-length name; the leaf itself may already be near NAME_MAX
        temp_path = parent / f".{uuid.uuid4().hex}{TEMP_SUFFIX}"
        try:
            try:
                self._fetch_with_retry(descriptor, temp_path, progress_callback)
            except (SharePointAPIError, OSError) as e:
                return TransferOutcome.failed(local_path, ErrorKind.DOWNLOAD, str(e))

            if not _is_file(temp_path):
                return TransferOutcome.failed(
                    local_path,
                    ErrorKind.MISSING_AFTER_DOWNLOAD,
                    "Download reported success but no file was written",
                )

            try:
                os.replace(temp_path, local_path)
            except OSError as e:
                return TransferOutcome.failed(
                    local_path,
                    ErrorKind.DOWNLOAD,
                    f"Cannot move download into place: {e}",
                )
        finally:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove temporary file {temp_path}: {e}")

        return TransferOutcome.succeeded(local_path)

    def _fetch_with_retry(
        self,
        descriptor: RemoteFileDescriptor,
        output_path: Path,
        progress_callback: Optional[Callable[[int, int], None]],
    ) -> None:
        retry_delay = self.retry_delay

        for attempt in range(self.max_retries + 1):
            try:
                self.fetcher.download_file(
                    descriptor.server_relative_path,
                    output_path,
                    progress_callback=progress_callback,
                )
                return
            except SharePointAPIError as e:
                cancelled = self.cancel_event is not None and self.cancel_event.is_set()
                if attempt < self.max_retries and is_retryable(e) and not cancelled:
                    logger.debug(
                        f"Download of {descriptor.server_relative_path} failed "
                        f"(attempt {attempt + 1}/{self.max_retries + 1}), "
                        f"retrying in {retry_delay:.1f}s: {e}"
                    )
                    time.sleep(retry_delay)
                    retry_delay *= 1.5
                    continue
                raise

    def reconcile_timestamp(
        self, local_path: Path, modified_at: datetime
    ) -> Optional[str]:
        """Set the local file's modification time to the remote one.

        Args:
            local_path: Downloaded file
            modified_at: Remote modification time (timezone-aware)

        Returns:
            None on success, otherwise the error message
        """
        try:
            mtime_ns = datetime_to_ns(modified_at)
            atime_ns = local_path.stat().st_atime_ns
            os.utime(local_path, ns=(atime_ns, mtime_ns))
        except (OSError, NotImplementedError, OverflowError, ValueError) as e:
            return f"Cannot set modification time: {e}"
        return None
