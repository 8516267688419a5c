"""Configuration management for spmirror.

Settings are resolved from explicit overrides (CLI options), then
environment variables, then the ``KEY=VALUE`` config file stored in
``~/.config/spmirror/config``.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .exceptions import SharePointConfigError
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)

ENV_PREFIX = "SPMIRROR_"

# setting name -> config/env key
SETTING_KEYS = {
    "site_url": "SITE_URL",
    "library_name": "LIBRARY",
    "target_path": "TARGET_PATH",
    "client_id": "CLIENT_ID",
    "tenant": "TENANT",
    "log_path": "LOG_PATH",
}

REQUIRED_SETTINGS = ("site_url", "library_name", "target_path", "client_id", "tenant")


@dataclass(frozen=True)
class SyncSettings:
    """Resolved settings for one sync run."""

    site_url: str
    """Absolute URL of the SharePoint site"""

    library_name: str
    """Title of the document library to mirror"""

    target_path: Path
    """Local directory that receives the mirrored tree"""

    client_id: str
    """Azure AD application (client) ID used to sign in"""

    tenant: str
    """Azure AD tenant (domain or GUID)"""

    log_path: Path
    """Transcript log file; the error report is written beside it"""

    interactive: bool = True
    """Browser sign-in when True, device code flow otherwise"""

    log_skips: bool = False
    """Log up-to-date files as they are skipped"""

    page_size: int = DEFAULT_PAGE_SIZE
    max_workers: int = 1
    max_retries: int = DEFAULT_MAX_RETRIES


class Config:
    """Reads and writes the spmirror configuration file."""

    def __init__(self, config_dir: Optional[Path] = None):
        self._config_dir = config_dir

    @property
    def config_dir(self) -> Path:
        """Directory holding the config file, logs and token cache."""
        if self._config_dir is not None:
            return self._config_dir
        env_dir = os.environ.get(f"{ENV_PREFIX}CONFIG_DIR")
        if env_dir:
            return Path(env_dir).expanduser()
        return Path.home() / ".config" / "spmirror"

    def get_config_path(self) -> Path:
        return self.config_dir / "config"

    def get_token_cache_path(self) -> Path:
        return self.config_dir / "token_cache.json"

    def default_log_path(self, now: Optional[datetime] = None) -> Path:
        """Timestamped transcript log path in the config directory."""
        now = now or datetime.now()
        return self.config_dir / "logs" / f"sync_{now:%Y%m%d_%H%M%S}.log"

    def read_file(self) -> dict[str, str]:
        """Parse the config file into a dictionary.

        Blank lines and ``#`` comments are ignored. A missing file yields
        an empty dictionary.
        """
        path = self.get_config_path()
        if not path.exists():
            return {}

        values: dict[str, str] = {}
        with open(path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    logger.warning(f"Ignoring malformed line {line_no} in {path}")
                    continue
                key, value = line.split("=", 1)
                values[key.strip()] = value.strip().strip('"').strip("'")
        return values

    def save(self, values: dict[str, Optional[str]]) -> Path:
        """Merge values into the config file and write it back.

        Args:
            values: Mapping of setting name (e.g. ``site_url``) to value;
                None values are left untouched

        Returns:
            Path of the written config file
        """
        current = self.read_file()
        for name, value in values.items():
            if value is None:
                continue
            current[f"{ENV_PREFIX}{SETTING_KEYS[name]}"] = value

        path = self.get_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write("# spmirror configuration\n")
            for key in sorted(current):
                f.write(f"{key}={current[key]}\n")
        logger.debug(f"Saved configuration to {path}")
        return path

    def get(
        self, name: str, file_values: Optional[dict[str, str]] = None
    ) -> Optional[str]:
        """Look up a setting in the environment, then the config file."""
        key = f"{ENV_PREFIX}{SETTING_KEYS[name]}"
        value = os.environ.get(key)
        if value:
            return value
        if file_values is None:
            file_values = self.read_file()
        return file_values.get(key) or None

    def is_configured(self) -> bool:
        return self.get_config_path().exists()

    def resolve(
        self, names: tuple[str, ...], required: tuple[str, ...], **overrides: Any
    ) -> dict[str, Optional[str]]:
        """Resolve settings by name, preferring non-empty overrides.

        Raises:
            SharePointConfigError: If any of ``required`` has no value
        """
        file_values = self.read_file()
        resolved: dict[str, Optional[str]] = {}
        for name in names:
            value = overrides.get(name)
            resolved[name] = str(value) if value else self.get(name, file_values)

        missing = [name for name in required if not resolved.get(name)]
        if missing:
            env_names = ", ".join(f"{ENV_PREFIX}{SETTING_KEYS[n]}" for n in missing)
            raise SharePointConfigError(
                f"Missing required settings: {', '.join(missing)} "
                f"(set via options, environment ({env_names}) or 'spmirror init')"
            )
        return resolved

    def build_settings(self, **overrides: Any) -> SyncSettings:
        """Resolve every setting and validate the required ones.

        Args:
            **overrides: Explicit values (None means "not given"); accepts
                every ``SyncSettings`` field

        Returns:
            Resolved SyncSettings

        Raises:
            SharePointConfigError: If required settings are missing or invalid
        """
        resolved = self.resolve(tuple(SETTING_KEYS), REQUIRED_SETTINGS, **overrides)

        site_url = str(resolved["site_url"]).rstrip("/")
        if not site_url.startswith(("https://", "http://")):
            raise SharePointConfigError(f"Site URL must be absolute: {site_url}")

        page_size = overrides.get("page_size")
        if page_size is None:
            page_size = DEFAULT_PAGE_SIZE
        if not 1 <= page_size <= 5000:
            raise SharePointConfigError("Page size must be between 1 and 5000")

        max_workers = overrides.get("max_workers")
        if max_workers is None:
            max_workers = 1
        if max_workers < 1:
            raise SharePointConfigError("Number of workers must be at least 1")

        max_retries = overrides.get("max_retries")
        if max_retries is None:
            max_retries = DEFAULT_MAX_RETRIES
        if max_retries < 0:
            raise SharePointConfigError("Retries cannot be negative")

        log_path = resolved["log_path"]
        return SyncSettings(
            site_url=site_url,
            library_name=str(resolved["library_name"]),
            target_path=Path(resolved["target_path"]).expanduser(),
            client_id=str(resolved["client_id"]),
            tenant=str(resolved["tenant"]),
            log_path=(
                Path(log_path).expanduser() if log_path else self.default_log_path()
            ),
            interactive=bool(overrides.get("interactive", True)),
            log_skips=bool(overrides.get("log_skips", False)),
            page_size=int(page_size),
            max_workers=int(max_workers),
            max_retries=int(max_retries),
        )


config = Config()
