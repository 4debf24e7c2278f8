"""The persisted Deputy credential record."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..config import normalize_base_url
from ..exceptions import ConfigurationError, StorageError

DEFAULT_AUTH_SCHEME = "Bearer"

TOKEN_ENV = "DEPUTY_TOKEN"
INSTALL_ENV = "DEPUTY_INSTALL"
GEO_ENV = "DEPUTY_GEO"
BASE_URL_ENV = "DEPUTY_BASE_URL"
AUTH_SCHEME_ENV = "DEPUTY_AUTH_SCHEME"

# Omitted from the JSON blob when empty.
_OPTIONAL_FIELDS = ("install", "geo", "base_url_override", "auth_scheme")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Credentials:
    """API token plus the install/region it belongs to."""

    token: str = field(repr=False)
    install: str = ""
    geo: str = ""
    base_url_override: str = ""  # host or URL; normalised to /api/vN on use
    auth_scheme: str = ""  # "Bearer" when empty, "OAuth" for legacy tokens
    created_at: datetime = field(default_factory=_utcnow)

    def base_url(self) -> str:
        return self._base_url_for("v1")

    def base_url_v2(self) -> str:
        return self._base_url_for("v2")

    def _base_url_for(self, version: str) -> str:
        if self.base_url_override:
            return normalize_base_url(self.base_url_override, version)
        if not self.install:
            return ""
        # Some tenants live on install.deputy.com with no region subdomain.
        if self.geo:
            return f"https://{self.install}.{self.geo}.deputy.com/api/{version}"
        return f"https://{self.install}.deputy.com/api/{version}"

    def authorization_header_value(self) -> str:
        scheme = self.auth_scheme.strip() or DEFAULT_AUTH_SCHEME
        return f"{scheme} {self.token}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"token": self.token}
        for name in _OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value:
                data[name] = value
        data["created_at"] = self.created_at.isoformat()
        return data

    def marshal(self) -> bytes:
        """Encode the record as the JSON blob handed to a secret backend."""
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def unmarshal(cls, data: bytes | str) -> Credentials:
        """Decode a JSON blob produced by :meth:`marshal`.

        Raises:
            StorageError: If the blob is not a JSON object with a token.
        """
        try:
            raw = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StorageError(f"stored credentials are corrupt: {e}") from e
        if not isinstance(raw, dict) or not isinstance(raw.get("token"), str):
            raise StorageError("stored credentials are corrupt: missing token")

        created_at = _utcnow()
        if raw.get("created_at"):
            try:
                created_at = datetime.fromisoformat(raw["created_at"])
            except (TypeError, ValueError) as e:
                raise StorageError(f"stored credentials are corrupt: {e}") from e

        return cls(
            token=raw["token"],
            install=raw.get("install") or "",
            geo=raw.get("geo") or "",
            base_url_override=raw.get("base_url_override") or "",
            auth_scheme=raw.get("auth_scheme") or "",
            created_at=created_at,
        )

    @classmethod
    def from_env(cls) -> Credentials | None:
        """Build credentials from DEPUTY_* environment variables.

        Returns None when DEPUTY_TOKEN is unset, so callers fall through to
        the credential store.

        Raises:
            ConfigurationError: If a token is set without an install or base URL.
        """
        token = os.environ.get(TOKEN_ENV, "").strip()
        if not token:
            return None

        install = os.environ.get(INSTALL_ENV, "").strip()
        base_url = os.environ.get(BASE_URL_ENV, "").strip()
        if not install and not base_url:
            raise ConfigurationError(
                f"{TOKEN_ENV} is set, but neither {BASE_URL_ENV} nor {INSTALL_ENV} is set"
            )

        return cls(
            token=token,
            install=install.lower(),
            geo=os.environ.get(GEO_ENV, "").strip().lower(),
            base_url_override=base_url,
            auth_scheme=os.environ.get(AUTH_SCHEME_ENV, "").strip(),
        )
