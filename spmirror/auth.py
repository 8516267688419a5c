"""Azure AD sign-in for SharePoint using msal."""

import logging
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlsplit

import msal

from .exceptions import SharePointAuthenticationError, SharePointConfigError

logger = logging.getLogger(__name__)

AUTHORITY_HOST = "https://login.microsoftonline.com"


def resource_scopes(site_url: str) -> list[str]:
    """Scopes for delegated access to the SharePoint host of ``site_url``.

    Examples:
        >>> resource_scopes("https://contoso.sharepoint.com/sites/Team")
        ['https://contoso.sharepoint.com/.default']
    """
    parts = urlsplit(site_url)
    if not parts.scheme or not parts.netloc:
        raise SharePointConfigError(f"Invalid site URL: {site_url}")
    return [f"{parts.scheme}://{parts.netloc}/.default"]


class SharePointAuth:
    """Acquires access tokens for a SharePoint site.

    Tokens are served from a persisted msal cache when possible. Otherwise
    the user signs in through the browser (interactive) or with a device
    code printed through ``prompt``.
    """

    def __init__(
        self,
        site_url: str,
        client_id: str,
        tenant: str,
        interactive: bool = True,
        token_cache_path: Optional[Path] = None,
        prompt: Optional[Callable[[str], None]] = None,
    ):
        self.site_url = site_url
        self.client_id = client_id
        self.tenant = tenant
        self.interactive = interactive
        self.token_cache_path = token_cache_path
        self.prompt = prompt or (lambda message: logger.warning(message))
        self.scopes = resource_scopes(site_url)
        self._cache = msal.SerializableTokenCache()
        self._app: Optional[msal.PublicClientApplication] = None

    @property
    def authority(self) -> str:
        return f"{AUTHORITY_HOST}/{self.tenant}"

    def _load_cache(self) -> None:
        if self.token_cache_path and self.token_cache_path.exists():
            try:
                self._cache.deserialize(
                    self.token_cache_path.read_text(encoding="utf-8")
                )
            except ValueError as e:
                logger.warning(f"Ignoring unreadable token cache: {e}")

    def _save_cache(self) -> None:
        if self.token_cache_path is None or not self._cache.has_state_changed:
            return
        try:
            self.token_cache_path.parent.mkdir(parents=True, exist_ok=True)
            self.token_cache_path.write_text(self._cache.serialize(), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to save token cache: {e}")

    def _get_app(self) -> msal.PublicClientApplication:
        if self._app is None:
            self._load_cache()
            self._app = msal.PublicClientApplication(
                self.client_id,
                authority=self.authority,
                token_cache=self._cache,
            )
        return self._app

    def get_token(self) -> str:
        """Return a valid access token, signing in if needed.

        Raises:
            SharePointAuthenticationError: If no token could be acquired
        """
        app = self._get_app()
        result = None

        accounts = app.get_accounts()
        if accounts:
            logger.debug(f"Trying cached account {accounts[0].get('username')}")
            result = app.acquire_token_silent(self.scopes, account=accounts[0])

        if not result:
            if self.interactive:
                logger.info("Starting interactive sign-in")
                result = app.acquire_token_interactive(scopes=self.scopes)
            else:
                flow = app.initiate_device_flow(scopes=self.scopes)
                if "user_code" not in flow:
                    raise SharePointAuthenticationError(
                        "Failed to start device code flow: "
                        f"{flow.get('error_description', flow)}"
                    )
                self.prompt(flow["message"])
                result = app.acquire_token_by_device_flow(flow)

        if not result or "access_token" not in result:
            detail = (result or {}).get("error_description") or "no token returned"
            raise SharePointAuthenticationError(f"Authentication failed: {detail}")

        self._save_cache()
        return result["access_token"]
