"""Configuration helpers for the Deputy CLI."""

from __future__ import annotations

import os
import re
from pathlib import Path

from dotenv import load_dotenv as _load_env_file

APP_NAME = "deputy-cli"
KEYCHAIN_SERVICE = "deputy-cli"

DEFAULT_TIMEOUT_SECONDS = 30.0

CONFIG_DIR_ENV = "DEPUTY_CONFIG_DIR"
CREDENTIALS_DIR_ENV = "DEPUTY_CREDENTIALS_DIR"
ENV_FILE_ENV = "DEPUTY_ENV_FILE"

_API_VERSION_RE = re.compile(r"/api/v\d+")


def config_dir() -> Path:
    """Return the config directory, honouring DEPUTY_CONFIG_DIR."""
    override = os.environ.get(CONFIG_DIR_ENV, "").strip()
    if override:
        return Path(override)
    return Path.home() / ".config" / "deputy"


def credentials_dir() -> Path:
    """Return the directory used by the encrypted-file keyring."""
    override = os.environ.get(CREDENTIALS_DIR_ENV, "").strip()
    if override:
        return Path(override)
    return config_dir() / "credentials"


def sanitize_base_url(url: str) -> str:
    """Ensure the base URL never ends with a trailing slash."""

    return url.rstrip("/")


def normalize_base_url(base_url: str, version: str) -> str:
    """Point a user-supplied base URL at ``/api/<version>``.

    Accepts a bare host (``acme.au.deputy.com``), a URL with a scheme, or a URL
    already carrying an ``/api/vN`` segment, which is rewritten to ``version``.
    """
    url = sanitize_base_url(base_url.strip())
    if not url:
        return ""

    if not url.startswith(("http://", "https://")):
        url = "https://" + url

    if _API_VERSION_RE.search(url):
        return _API_VERSION_RE.sub(f"/api/{version}", url)

    return f"{url}/api/{version}"


_dotenv_loaded = False


def dotenv_paths() -> list[Path]:
    """Default .env locations, in load order: working directory, then ~/.openclaw."""
    return [Path.cwd() / ".env", Path.home() / ".openclaw" / ".env"]


def load_dotenv() -> None:
    """Load DEPUTY_* settings from a .env file, once per process.

    DEPUTY_ENV_FILE names the only file to load. Otherwise every default path
    is tried in order. Variables already in the environment are never
    overridden, so an earlier file wins over a later one.
    """
    global _dotenv_loaded
    if _dotenv_loaded:
        return
    _dotenv_loaded = True

    explicit = os.environ.get(ENV_FILE_ENV, "").strip()
    if explicit:
        _load_env_file(explicit, override=False)
        return

    for path in dotenv_paths():
        if path.is_file():
            _load_env_file(path, override=False)
