"""Exceptions raised by the SharePoint client and the sync engine."""

from typing import Optional


class SharePointAPIError(Exception):
    """Base exception for SharePoint API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SharePointAuthenticationError(SharePointAPIError):
    """Authentication failed or the access token was rejected."""


class SharePointConfigError(SharePointAPIError):
    """Required configuration is missing or invalid."""


class SharePointPermissionError(SharePointAPIError):
    """Access to the requested resource is forbidden."""


class SharePointNotFoundError(SharePointAPIError):
    """The requested resource does not exist."""


class LibraryNotFoundError(SharePointNotFoundError):
    """The document library could not be resolved on the site."""


class SharePointRateLimitError(SharePointAPIError):
    """The server throttled the request (HTTP 429)."""


class SharePointNetworkError(SharePointAPIError):
    """Transport-level failure (connection, timeout, DNS)."""


class SharePointInvalidResponseError(SharePointAPIError):
    """The server returned a response that could not be interpreted."""


class SharePointDownloadError(SharePointAPIError):
    """Fetching file content failed."""
