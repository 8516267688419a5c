"""Tests for msal-based sign-in."""

from unittest.mock import Mock, patch

import pytest

from spmirror.auth import SharePointAuth, resource_scopes
from spmirror.exceptions import SharePointAuthenticationError, SharePointConfigError

SITE = "https://contoso.sharepoint.com/sites/Team"


class TestResourceScopes:
    def test_scope_uses_host(self):
        assert resource_scopes(SITE) == ["https://contoso.sharepoint.com/.default"]

    def test_invalid_url(self):
        with pytest.raises(SharePointConfigError):
            resource_scopes("contoso")


class TestSharePointAuth:
    """Tests for SharePointAuth.get_token."""

    @pytest.fixture
    def mock_app(self):
        with patch("spmirror.auth.msal.PublicClientApplication") as app_cls:
            app = app_cls.return_value
            app.get_accounts.return_value = []
            yield app

    def test_authority(self):
        auth = SharePointAuth(SITE, "client", "contoso.onmicrosoft.com")
        assert auth.authority == (
            "https://login.microsoftonline.com/contoso.onmicrosoft.com"
        )

    def test_cached_account_used_silently(self, mock_app):
        mock_app.get_accounts.return_value = [{"username": "user@contoso.com"}]
        mock_app.acquire_token_silent.return_value = {"access_token": "cached"}

        token = SharePointAuth(SITE, "client", "tenant").get_token()

        assert token == "cached"
        mock_app.acquire_token_interactive.assert_not_called()

    def test_interactive_sign_in(self, mock_app):
        mock_app.acquire_token_interactive.return_value = {"access_token": "fresh"}

        token = SharePointAuth(SITE, "client", "tenant").get_token()

        assert token == "fresh"
        mock_app.acquire_token_interactive.assert_called_once_with(
            scopes=["https://contoso.sharepoint.com/.default"]
        )

    def test_device_code_flow_prompts(self, mock_app):
        mock_app.initiate_device_flow.return_value = {
            "user_code": "ABC",
            "message": "Go to https://microsoft.com/devicelogin and enter ABC",
        }
        mock_app.acquire_token_by_device_flow.return_value = {"access_token": "dev"}
        prompt = Mock()

        token = SharePointAuth(
            SITE, "client", "tenant", interactive=False, prompt=prompt
        ).get_token()

        assert token == "dev"
        prompt.assert_called_once()
        assert "ABC" in prompt.call_args.args[0]

    def test_device_flow_start_failure(self, mock_app):
        mock_app.initiate_device_flow.return_value = {"error_description": "nope"}
        auth = SharePointAuth(SITE, "client", "tenant", interactive=False)
        with pytest.raises(SharePointAuthenticationError, match="nope"):
            auth.get_token()

    def test_failed_sign_in(self, mock_app):
        mock_app.acquire_token_interactive.return_value = {
            "error": "access_denied",
            "error_description": "User cancelled",
        }
        with pytest.raises(SharePointAuthenticationError, match="User cancelled"):
            SharePointAuth(SITE, "client", "tenant").get_token()

    def test_token_cache_saved(self, mock_app, tmp_path):
        mock_app.acquire_token_interactive.return_value = {"access_token": "fresh"}
        cache_path = tmp_path / "cache" / "token_cache.json"
        auth = SharePointAuth(SITE, "client", "tenant", token_cache_path=cache_path)

        with patch.object(auth, "_cache") as cache:
            cache.has_state_changed = True
            cache.serialize.return_value = "{}"
            auth.get_token()

        assert cache_path.read_text() == "{}"
