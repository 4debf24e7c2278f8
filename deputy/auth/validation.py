"""Validation of user-entered install names, regions and tokens."""

from __future__ import annotations

import re

from ..exceptions import ValidationError
from .constants import (
    ERROR_GEO_INVALID,
    ERROR_INSTALL_EMPTY,
    ERROR_INSTALL_INVALID,
    ERROR_INSTALL_TOO_LONG,
    ERROR_TOKEN_EMPTY,
    ERROR_TOKEN_TOO_LONG,
    INSTALL_MAX_LENGTH,
    TOKEN_MAX_LENGTH,
    VALID_GEOS,
)

_INSTALL_RE = re.compile(r"[A-Za-z0-9_-]+")


def validate_install(name: str) -> None:
    if not name:
        raise ValidationError(ERROR_INSTALL_EMPTY)
    if len(name) > INSTALL_MAX_LENGTH:
        raise ValidationError(ERROR_INSTALL_TOO_LONG)
    if not _INSTALL_RE.fullmatch(name):
        raise ValidationError(ERROR_INSTALL_INVALID)


def validate_geo(geo: str) -> None:
    # Exact, case-sensitive match.
    if geo not in VALID_GEOS:
        raise ValidationError(ERROR_GEO_INVALID)


def validate_token(token: str) -> None:
    if not token:
        raise ValidationError(ERROR_TOKEN_EMPTY)
    if len(token) > TOKEN_MAX_LENGTH:
        raise ValidationError(ERROR_TOKEN_TOO_LONG)
