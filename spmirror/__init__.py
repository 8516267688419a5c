"""spmirror - one-way mirroring of SharePoint document libraries."""

import logging

from .api import SharePointClient
from .exceptions import (
    LibraryNotFoundError,
    SharePointAPIError,
    SharePointAuthenticationError,
    SharePointConfigError,
    SharePointDownloadError,
    SharePointInvalidResponseError,
    SharePointNetworkError,
    SharePointNotFoundError,
    SharePointPermissionError,
    SharePointRateLimitError,
)
from .models import LibraryInfo, RemoteFileDescriptor

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "SharePointClient",
    "SharePointAPIError",
    "SharePointAuthenticationError",
    "SharePointConfigError",
    "SharePointDownloadError",
    "SharePointInvalidResponseError",
    "SharePointNetworkError",
    "SharePointNotFoundError",
    "SharePointPermissionError",
    "SharePointRateLimitError",
    "LibraryNotFoundError",
    "LibraryInfo",
    "RemoteFileDescriptor",
]
