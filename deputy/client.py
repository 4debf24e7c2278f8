"""Synchronous HTTP client for the Deputy API."""

from __future__ import annotations

from typing import Any

import httpx

from ._http import build_headers, handle_response
from .config import DEFAULT_TIMEOUT_SECONDS, sanitize_base_url
from .exceptions import APIError, AuthenticationError
from .secrets.credentials import Credentials


class DeputyClient:
    """Synchronous client for the Deputy API.

    Only the calls the CLI needs to confirm a credential set are exposed.

    Example:
        >>> from deputy import Credentials, DeputyClient
        >>> creds = Credentials(token="...", install="acme", geo="au")
        >>> with DeputyClient(creds) as client:
        ...     print(client.me()["Name"])
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the Deputy client.

        Args:
            credentials: Token plus install/region (or a base URL override).
            timeout: Request timeout in seconds (default: 30).
            transport: Optional httpx transport, for tests.

        Raises:
            AuthenticationError: If the credentials have no token or no base URL.
        """
        if not credentials.token:
            raise AuthenticationError("No API token provided.")

        base_url = credentials.base_url()
        if not base_url:
            raise AuthenticationError("No Deputy install or base URL configured.")

        self._credentials = credentials
        self._base_url = sanitize_base_url(base_url)
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def me(self) -> dict[str, Any]:
        """Return the user the token belongs to.

        Returns:
            Dictionary containing, among others:
                - Name, FirstName, LastName
                - PrimaryEmail
                - EmployeeId, UserId
        """
        response = self._client.get(
            f"{self._base_url}/me",
            headers=build_headers(self._credentials),
        )
        return handle_response(response)

    def close(self) -> None:
        """Release the underlying HTTP client resources."""
        self._client.close()

    def __enter__(self) -> DeputyClient:
        return self

    def __exit__(self, exc_type: type | None, exc: BaseException | None, traceback: Any) -> None:
        self.close()


def validate_credentials(install: str, geo: str, token: str) -> None:
    """Confirm a credential set by calling ``/me``.

    Raises:
        AuthenticationError: If the call fails for any reason.
    """
    if not install or not geo or not token:
        raise AuthenticationError("install name, region, and token are required")

    creds = Credentials(token=token, install=install, geo=geo)
    try:
        with DeputyClient(creds) as client:
            client.me()
    except (httpx.HTTPError, APIError, AuthenticationError) as e:
        raise AuthenticationError(f"authentication failed: {e}") from e
