"""Typed return values for authentication operations."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SetupResult:
    """Result of a browser setup: where the stored credentials point.

    Never carries the token; that lives only in the credential store.
    """

    install: str
    geo: str
