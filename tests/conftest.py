"""Test configuration for deputy-cli tests."""

from __future__ import annotations

import threading

import httpx
import pytest

from deputy.auth.server import SetupServer
from deputy.exceptions import CredentialsNotFoundError
from deputy.secrets.credentials import Credentials

_OWN_TOKEN = object()


class MemoryStore:
    """In-memory credential store."""

    def __init__(self, creds: Credentials | None = None, fail_with: Exception | None = None):
        self.creds = creds
        self.fail_with = fail_with
        self.saved: list[Credentials] = []

    def get(self) -> Credentials:
        if self.creds is None:
            raise CredentialsNotFoundError()
        return self.creds

    def set(self, creds: Credentials) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.creds = creds
        self.saved.append(creds)

    def delete(self) -> None:
        if self.creds is None:
            raise CredentialsNotFoundError()
        self.creds = None


class RunningServer:
    """A SetupServer whose ``start()`` runs on a background thread."""

    def __init__(self, setup: SetupServer, **start_kwargs):
        self.setup = setup
        self.result = None
        self.error: BaseException | None = None
        self.ready = threading.Event()
        self.url: str | None = None
        self._thread = threading.Thread(target=self._run, kwargs=start_kwargs, daemon=True)

    def _run(self, **start_kwargs):
        def on_ready(url: str) -> None:
            self.url = url
            self.ready.set()

        try:
            self.result = self.setup.start(on_ready=on_ready, **start_kwargs)
        except BaseException as e:  # surfaced to the test through .error
            self.error = e
        finally:
            self.ready.set()

    def begin(self) -> RunningServer:
        self._thread.start()
        assert self.ready.wait(5), "setup server did not start"
        return self

    def join(self, timeout: float = 5) -> None:
        self._thread.join(timeout)
        assert not self._thread.is_alive(), "start() did not return"

    def post(self, path: str, payload=None, csrf=_OWN_TOKEN, **kwargs) -> httpx.Response:
        headers = {}
        if csrf is _OWN_TOKEN:
            csrf = self.setup.csrf_token
        if csrf is not None:
            headers["X-CSRF-Token"] = csrf
        return httpx.post(f"{self.url}{path}", json=payload, headers=headers, trust_env=False, **kwargs)

    def get(self, path: str) -> httpx.Response:
        return httpx.get(f"{self.url}{path}", trust_env=False)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def validator_calls():
    return []


@pytest.fixture
def setup_server(store, validator_calls):
    """SetupServer with no browser and a validator that accepts everything."""

    def validator(install, geo, token):
        validator_calls.append((install, geo, token))

    return SetupServer(store, validator=validator, open_browser=lambda url: True)


@pytest.fixture
def running_server(setup_server):
    server = RunningServer(setup_server).begin()
    yield server
    setup_server.shutdown()
    server.join()
