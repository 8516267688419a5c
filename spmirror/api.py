"""API client for the SharePoint REST interface."""

from __future__ import annotations

import logging
import random
import threading
import time
from pathlib import Path
from typing import Any, Callable
from urllib.parse import quote

import httpx

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
from .models import ItemsPage, LibraryInfo
from .utils import format_size

logger = logging.getLogger(__name__)

ITEM_FIELDS = "FileRef,FileLeafRef,Modified,FSObjType"


def _odata_string(value: str) -> str:
    """Quote a value for use inside an OData string literal."""
    return value.replace("'", "''")


class SharePointClient:
    """Client for interacting with a SharePoint site's REST API."""

    def __init__(
        self,
        site_url: str,
        access_token: str | None = None,
        token_provider: Callable[[], str] | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize SharePoint API client.

        Args:
            site_url: Absolute site URL (e.g. https://contoso.sharepoint.com/sites/Team)
            access_token: Bearer token for the site
            token_provider: Callable returning a token; used when access_token
                is not given (e.g. ``SharePointAuth.get_token``)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests)
        """
        if not access_token and token_provider is None:
            raise SharePointConfigError(
                "No credentials configured. Provide an access token or token provider."
            )
        self.site_url = site_url.rstrip("/")
        self.access_token = access_token
        self.token_provider = token_provider
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None
        self._token_lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={
                    "Accept": "application/json;odata=nometadata",
                },
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def _current_token(self) -> str:
        """Return the access token, asking the token provider on first use."""
        with self._token_lock:
            if not self.access_token and self.token_provider is not None:
                self.access_token = self.token_provider()
            return str(self.access_token)

    def _refresh_token(self, rejected: str) -> bool:
        """Replace a token the server rejected with HTTP 401.

        Concurrent callers that saw the same rejected token share a single
        call to the token provider.

        Args:
            rejected: The token that was sent with the failed request

        Returns:
            True if a different token is now available and the request
            should be sent again
        """
        if self.token_provider is None:
            return False
        with self._token_lock:
            if self.access_token == rejected:
                logger.info("Access token rejected, requesting a new one")
                self.access_token = self.token_provider()
            return bool(self.access_token) and self.access_token != rejected

    @staticmethod
    def _auth_headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> SharePointClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _api_url(self, endpoint: str) -> str:
        return f"{self.site_url}/_api/{endpoint.lstrip('/')}"

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[SharePointAPIError, bool]:
        """Map an HTTP error to an exception and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            return (
                SharePointAuthenticationError(
                    "Access token rejected - sign in again", status_code
                ),
                False,
            )
        elif status_code == 403:
            return (
                SharePointPermissionError(
                    "Access forbidden - check your permissions", status_code
                ),
                False,
            )
        elif status_code == 404:
            return SharePointNotFoundError("Resource not found", status_code), False
        elif status_code == 429:
            error = SharePointRateLimitError(
                "Request throttled - please try again later", status_code
            )
            return error, attempt < self.max_retries

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    detail = error_data.get("odata.error") or error_data.get("error")
                    if isinstance(detail, dict):
                        message = detail.get("message")
                        if isinstance(message, dict):
                            message = message.get("value")
                        if message:
                            error_msg = f"{error_msg}: {message}"
        except ValueError:
            # Body is not JSON, keep the status-based message
            pass

        error = SharePointAPIError(error_msg, status_code)
        return error, 500 <= status_code < 600 and attempt < self.max_retries

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Make an API request, renewing the access token once on HTTP 401.

        Raises:
            SharePointAPIError: If the request fails after all retries
        """
        token = self._current_token()
        try:
            return self._send_with_retry(method, url, token, **kwargs)
        except SharePointAuthenticationError as e:
            if e.status_code != 401 or not self._refresh_token(token):
                raise
            return self._send_with_retry(method, url, self._current_token(), **kwargs)

    def _send_with_retry(self, method: str, url: str, token: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            url: Absolute URL
            token: Access token sent as the bearer credential
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            SharePointAPIError: If the request fails after all retries
        """
        last_exception: SharePointAPIError | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(
                    method, url, headers=self._auth_headers(token), **kwargs
                )
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "")
                if response.content and "application/json" not in content_type:
                    # Sign-in pages come back as HTML with status 200
                    if "text/html" in content_type:
                        raise SharePointAuthenticationError(
                            "Server returned HTML instead of JSON - check sign-in"
                        )
                    raise SharePointInvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                if response.content:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise SharePointInvalidResponseError(
                            "Invalid JSON response from server"
                        ) from e
                return {}

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    retry_after = e.response.headers.get("Retry-After")
                    if (
                        isinstance(error, SharePointRateLimitError)
                        and retry_after
                        and retry_after.isdigit()
                    ):
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        f"{method} {url} failed ({error}), retry in {delay:.1f}s"
                    )
                    time.sleep(delay)
                    continue
                raise error from e
            except httpx.RequestError as e:
                error = SharePointNetworkError(f"Network error: {e}")
                last_exception = error
                if attempt < self.max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"{method} {url} failed ({e}), retry in {delay:.1f}s")
                    time.sleep(delay)
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise SharePointAPIError("Request failed after all retry attempts")

    # =========================
    # Library Operations
    # =========================

    def get_library(self, title: str) -> LibraryInfo:
        """Resolve a document library by its title.

        Raises:
            LibraryNotFoundError: If the site has no list with that title
        """
        url = self._api_url(f"web/lists/getbytitle('{_odata_string(title)}')")
        params = {
            "$select": "Title,ItemCount,RootFolder/ServerRelativeUrl",
            "$expand": "RootFolder",
        }
        try:
            data = self._request("GET", url, params=params)
        except SharePointNotFoundError as e:
            raise LibraryNotFoundError(
                f"Library '{title}' not found on {self.site_url}", e.status_code
            ) from e
        return LibraryInfo.from_api_response(data)

    def get_list_items(
        self,
        title: str,
        page_size: int = 500,
        next_url: str | None = None,
    ) -> ItemsPage:
        """Fetch one page of library items.

        Args:
            title: Library title
            page_size: Items per page ($top)
            next_url: Continuation link returned with the previous page

        Returns:
            ItemsPage with the descriptors and the link to the next page
        """
        if next_url:
            return ItemsPage.from_api_response(self._request("GET", next_url))

        url = self._api_url(f"web/lists/getbytitle('{_odata_string(title)}')/items")
        params = {"$select": ITEM_FIELDS, "$top": page_size}
        return ItemsPage.from_api_response(self._request("GET", url, params=params))

    # =========================
    # Download Operations
    # =========================

    def download_file(
        self,
        server_relative_path: str,
        output_path: Path,
        progress_callback: Callable[[int, int], None] | None = None,
        timeout: int = 300,
    ) -> Path:
        """Download a file's content to ``output_path``, overwriting it.

        Args:
            server_relative_path: Server-relative path of the file
            output_path: Local path where the bytes are written
            progress_callback: Optional callback function(bytes_downloaded, total_bytes)
            timeout: Request timeout in seconds (default: 300)

        Returns:
            Path where the file was saved

        Raises:
            SharePointDownloadError: If the server refuses the download or
                the file cannot be written
            SharePointNetworkError: On transport failures
        """
        path_literal = quote(_odata_string(server_relative_path), safe="/")
        url = self._api_url(
            f"web/GetFileByServerRelativePath(decodedurl='{path_literal}')/$value"
        )

        token = self._current_token()
        try:
            return self._stream_to_file(
                url, output_path, token, progress_callback, timeout
            )
        except SharePointDownloadError as e:
            if e.status_code != 401 or not self._refresh_token(token):
                raise
            return self._stream_to_file(
                url, output_path, self._current_token(), progress_callback, timeout
            )

    def _stream_to_file(
        self,
        url: str,
        output_path: Path,
        token: str,
        progress_callback: Callable[[int, int], None] | None,
        timeout: int,
    ) -> Path:
        client = self._get_client()
        headers = self._auth_headers(token)

        try:
            with client.stream(
                "GET", url, headers=headers, timeout=timeout
            ) as response:
                response.raise_for_status()

                total_size = int(response.headers.get("Content-Length", 0))
                bytes_downloaded = 0

                with open(output_path, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=65536):
                        if chunk:
                            f.write(chunk)
                            bytes_downloaded += len(chunk)
                            if progress_callback:
                                progress_callback(bytes_downloaded, total_size)

                logger.debug(
                    f"Downloaded {format_size(bytes_downloaded)} to {output_path}"
                )
                return output_path

        except httpx.HTTPStatusError as e:
            raise SharePointDownloadError(
                f"Download failed: {e}", e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise SharePointNetworkError(f"Network error during download: {e}") from e
        except OSError as e:
            raise SharePointDownloadError(f"Failed to write file: {e}") from e
