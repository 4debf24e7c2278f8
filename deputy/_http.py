"""Shared HTTP request utilities for the Deputy API client."""

from __future__ import annotations

from typing import Any

import httpx

from .exceptions import APIError, AuthenticationError
from .secrets.credentials import Credentials


def build_headers(creds: Credentials) -> dict[str, str]:
    """Build request headers carrying the credential's authorization scheme."""
    return {
        "Authorization": creds.authorization_header_value(),
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def handle_response(response: httpx.Response) -> dict[str, Any]:
    """Process HTTP response, raising appropriate errors for failures.

    Error bodies are not echoed back; some Deputy error pages repeat the
    request headers.
    """
    if response.status_code == 401:
        raise AuthenticationError("Invalid or missing API token")

    if response.status_code == 403:
        raise AuthenticationError("API token lacks permission for this request")

    if response.status_code >= 400:
        raise APIError(
            message=f"Deputy API call failed with HTTP {response.status_code}",
            status_code=response.status_code,
            response=response,
        )

    if not response.content:
        return {}

    try:
        data = response.json()
    except ValueError:
        raise APIError(
            message="Deputy API returned an invalid response",
            status_code=response.status_code,
            response=response,
        ) from None
    if not isinstance(data, dict):
        raise APIError(
            message="Deputy API returned an invalid response",
            status_code=response.status_code,
            response=response,
        )
    return data
