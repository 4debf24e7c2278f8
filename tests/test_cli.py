"""Tests for CLI entrypoint behavior."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import patch

import httpx
import pytest
from conftest import MemoryStore
from typer.testing import CliRunner

from deputy import __version__
from deputy.auth.types import SetupResult
from deputy.cli.commands.auth import mask_token
from deputy.cli.main import app
from deputy.client import DeputyClient
from deputy.exceptions import AuthenticationError, ConfigurationError, SetupCancelledError
from deputy.secrets.credentials import Credentials

runner = CliRunner()

STORED = Credentials(
    token="abcd1234efgh5678",
    install="acme",
    geo="au",
    created_at=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.setattr("deputy.config._dotenv_loaded", True)
    for name in ("DEPUTY_TOKEN", "DEPUTY_INSTALL", "DEPUTY_GEO", "DEPUTY_BASE_URL", "DEPUTY_AUTH_SCHEME"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def memory_store():
    store = MemoryStore()
    with patch("deputy.cli.commands.auth.open_store", return_value=store):
        yield store


class FakeSetupServer:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.timeout = "unset"

    def start(self, timeout=None, cancel=None, on_ready=None):
        self.timeout = timeout
        on_ready("http://127.0.0.1:54321")
        if self.error is not None:
            raise self.error
        return self.result


def test_root_version_option():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == f"deputy {__version__}"


def test_version_subcommand():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == f"deputy {__version__}"


def test_debug_flag_accepted():
    result = runner.invoke(app, ["--debug", "version"])
    assert result.exit_code == 0


# ---------------------------------------------------------------------------
# auth login
# ---------------------------------------------------------------------------

class TestLogin:
    def test_success(self, memory_store):
        fake = FakeSetupServer(result=SetupResult(install="acme", geo="au"))
        with patch("deputy.cli.commands.auth.create_setup_server", return_value=fake) as create:
            result = runner.invoke(app, ["auth", "login"])

        assert result.exit_code == 0
        create.assert_called_once_with(memory_store)
        assert "http://127.0.0.1:54321" in result.output
        assert "Authenticated successfully" in result.output
        assert "acme.au.deputy.com" in result.output
        assert fake.timeout is None

    def test_timeout_option(self, memory_store):
        fake = FakeSetupServer(result=SetupResult(install="acme", geo="au"))
        with patch("deputy.cli.commands.auth.create_setup_server", return_value=fake):
            runner.invoke(app, ["auth", "login", "--timeout", "30"])
        assert fake.timeout == 30

    def test_cancelled(self, memory_store):
        fake = FakeSetupServer(error=SetupCancelledError())
        with patch("deputy.cli.commands.auth.create_setup_server", return_value=fake):
            result = runner.invoke(app, ["auth", "login"])
        assert result.exit_code == 1
        assert "Login cancelled" in result.output

    def test_store_unavailable(self):
        with patch(
            "deputy.cli.commands.KeychainStore.open",
            side_effect=ConfigurationError("DEPUTY_KEYRING_PASSWORD is required"),
        ):
            result = runner.invoke(app, ["auth", "login"])
        assert result.exit_code == 1
        assert "failed to open keychain" in result.output


# ---------------------------------------------------------------------------
# auth add
# ---------------------------------------------------------------------------

class TestAdd:
    def test_saves_normalised_credentials(self, memory_store):
        result = runner.invoke(app, ["auth", "add", "-t", " tkn ", "-i", "ACME", "-g", "AU"])
        assert result.exit_code == 0
        assert memory_store.creds.token == "tkn"
        assert memory_store.creds.install == "acme"
        assert memory_store.creds.geo == "au"
        assert "Credentials saved for acme.au.deputy.com" in result.output

    def test_invalid_geo(self, memory_store):
        result = runner.invoke(app, ["auth", "add", "-t", "tkn", "-i", "acme", "-g", "us"])
        assert result.exit_code == 1
        assert "invalid region" in result.output
        assert memory_store.creds is None

    def test_invalid_install(self, memory_store):
        result = runner.invoke(app, ["auth", "add", "-t", "tkn", "-i", "acme corp", "-g", "au"])
        assert result.exit_code == 1
        assert "invalid characters" in result.output

    def test_empty_token(self, memory_store):
        result = runner.invoke(app, ["auth", "add", "-t", "  ", "-i", "acme", "-g", "au"])
        assert result.exit_code == 1
        assert memory_store.creds is None


# ---------------------------------------------------------------------------
# auth status
# ---------------------------------------------------------------------------

class TestStatus:
    def test_not_authenticated(self, memory_store):
        result = runner.invoke(app, ["auth", "status"])
        assert result.exit_code == 1
        assert "Not authenticated" in result.output

    def test_authenticated(self, memory_store):
        memory_store.creds = STORED
        result = runner.invoke(app, ["auth", "status"])
        assert result.exit_code == 0
        assert "acme" in result.output
        assert "AU" in result.output
        assert "abcd...5678" in result.output
        assert STORED.token not in result.output

    def test_json(self, memory_store):
        memory_store.creds = STORED
        result = runner.invoke(app, ["auth", "status", "--json"])
        assert result.exit_code == 0
        info = json.loads(result.stdout)
        assert info == {
            "install": "acme",
            "region": "AU",
            "base_url": "https://acme.au.deputy.com/api/v1",
            "token_masked": "abcd...5678",
            "added": "2024-05-01T09:00:00+00:00",
        }

    def test_environment_credentials(self, memory_store, monkeypatch):
        monkeypatch.setenv("DEPUTY_TOKEN", "env-token-123456")
        monkeypatch.setenv("DEPUTY_INSTALL", "globex")
        monkeypatch.setenv("DEPUTY_GEO", "uk")
        result = runner.invoke(app, ["auth", "status", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["install"] == "globex"


# ---------------------------------------------------------------------------
# auth logout
# ---------------------------------------------------------------------------

class TestLogout:
    def test_removes_credentials(self, memory_store):
        memory_store.creds = STORED
        result = runner.invoke(app, ["auth", "logout"])
        assert result.exit_code == 0
        assert "Credentials removed" in result.output
        assert memory_store.creds is None

    def test_nothing_to_remove(self, memory_store):
        result = runner.invoke(app, ["auth", "logout"])
        assert result.exit_code == 0
        assert "No credentials to remove" in result.output


# ---------------------------------------------------------------------------
# auth test
# ---------------------------------------------------------------------------

class TestAuthTest:
    def test_success(self, memory_store):
        memory_store.creds = STORED
        me = {"Name": "Ada Lovelace", "PrimaryEmail": "ada@example.com", "EmployeeId": 7}
        with patch.object(DeputyClient, "me", return_value=me):
            result = runner.invoke(app, ["auth", "test"])
        assert result.exit_code == 0
        assert "Ada Lovelace (ada@example.com)" in result.output
        assert "ID:   7" in result.output

    def test_not_authenticated(self, memory_store):
        result = runner.invoke(app, ["auth", "test"])
        assert result.exit_code == 1
        assert "not authenticated" in result.output

    def test_non_json_response(self, memory_store):
        memory_store.creds = STORED
        portal = httpx.Response(200, content=b"<html>captive portal</html>")
        with patch.object(httpx.Client, "get", return_value=portal):
            result = runner.invoke(app, ["auth", "test"])
        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "authentication failed" in result.output
        assert "invalid response" in result.output

    def test_rejected(self, memory_store):
        memory_store.creds = STORED
        with patch.object(DeputyClient, "me", side_effect=AuthenticationError("Invalid or missing API token")):
            result = runner.invoke(app, ["auth", "test"])
        assert result.exit_code == 1
        assert "authentication failed" in result.output


class TestMaskToken:
    def test_long_token(self):
        assert mask_token("abcd1234efgh5678") == "abcd...5678"

    @pytest.mark.parametrize("token", ["", "short", "12345678"])
    def test_short_token_fully_masked(self, token):
        assert mask_token(token) == "****"
