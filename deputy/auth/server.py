"""Local browser setup server for Deputy credentials.

Walks a human through entering install / region / API token in the browser,
validates them, saves them to the credential store and hands the install and
region back to the waiting CLI process:

    GET  /          entry form (embeds the CSRF token)
    POST /validate  test credentials without saving
    POST /submit    test and save credentials
    GET  /success   confirmation page, which POSTs /complete on load
    POST /complete  deliver the result to ``start()`` and shut down

Each request runs on its own thread. The only state shared between them is
the pending result (under a lock) and the single-slot result queue, which is
filled at most once by the guarded completion step.
"""

from __future__ import annotations

import hmac
import json
import logging
import queue
import secrets
import threading
import time
import webbrowser
from dataclasses import dataclass, field
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Mapping
from urllib.parse import urlparse

from ..client import validate_credentials
from ..exceptions import DeputyError, RateLimitError, SetupCancelledError, ValidationError
from ..secrets.credentials import Credentials
from ..secrets.store import Store
from .constants import (
    CALLBACK_HOST,
    CSRF_HEADER,
    CSRF_TOKEN_BYTES,
    ERROR_INVALID_BODY,
    ERROR_INVALID_CSRF,
    ERROR_METHOD_NOT_ALLOWED,
    RATE_LIMIT_CLEANUP_SECONDS,
    RATE_LIMIT_MAX_ATTEMPTS,
    RATE_LIMIT_WINDOW_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
    SECURITY_HEADERS,
    WAIT_POLL_SECONDS,
)
from .limiter import RateLimiter
from .templates import render_setup_page, render_success_page
from .types import SetupResult
from .validation import validate_geo, validate_install, validate_token

logger = logging.getLogger(__name__)

Validator = Callable[[str, str, str], None]
BrowserOpener = Callable[[str], bool]

MAX_BODY_BYTES = 64 * 1024

STATE_IDLE = "idle"
STATE_PENDING = "pending"
STATE_COMPLETING = "completing"
STATE_DONE = "done"


@dataclass
class Reply:
    """An HTTP response produced by :meth:`SetupServer.handle`."""

    status: int
    body: bytes
    content_type: str
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.body)


def _json_reply(status: int, payload: dict[str, Any]) -> Reply:
    return Reply(status, json.dumps(payload).encode(), "application/json")


def _text_reply(status: int, message: str) -> Reply:
    return Reply(status, f"{message}\n".encode(), "text/plain; charset=utf-8", {"X-Content-Type-Options": "nosniff"})


def _html_reply(page: str) -> Reply:
    return Reply(200, page.encode(), "text/html; charset=utf-8", dict(SECURITY_HEADERS))


@dataclass
class _Submission:
    install: str
    geo: str
    token: str = field(repr=False)


class SetupServer:
    """One-shot browser setup flow.

    Args:
        store: Where submitted credentials are saved.
        validator: ``validator(install, geo, token)`` raising on bad credentials;
            defaults to a live ``/me`` call.
        limiter: Attempt limiter for /validate and /submit.
        open_browser: ``open_browser(url) -> bool``; defaults to ``webbrowser.open``.
    """

    def __init__(
        self,
        store: Store,
        *,
        validator: Validator | None = None,
        limiter: RateLimiter | None = None,
        open_browser: BrowserOpener | None = None,
    ) -> None:
        self.csrf_token = secrets.token_hex(CSRF_TOKEN_BYTES)
        self.url: str | None = None
        self._store = store
        self._validator = validator or validate_credentials
        self._limiter = limiter or RateLimiter(RATE_LIMIT_MAX_ATTEMPTS, RATE_LIMIT_WINDOW_SECONDS)
        self._open_browser = open_browser or webbrowser.open

        self._result: queue.Queue[SetupResult] = queue.Queue(maxsize=1)
        self._shutdown = threading.Event()
        self._stop_cleanup = threading.Event()

        self._pending: SetupResult | None = None
        self._pending_lock = threading.Lock()

        self._complete_lock = threading.Lock()
        self._completed = False
        self._started = False

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def pending_result(self) -> SetupResult | None:
        with self._pending_lock:
            return self._pending

    @property
    def state(self) -> str:
        if self._shutdown.is_set():
            return STATE_DONE
        if self._completed:
            return STATE_COMPLETING
        if self.pending_result is not None:
            return STATE_PENDING
        return STATE_IDLE

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
        on_ready: Callable[[str], None] | None = None,
    ) -> SetupResult:
        """Serve the setup pages and block until the flow finishes.

        Args:
            timeout: Seconds to wait before giving up; None waits forever.
            cancel: Set by the caller to abandon the wait.
            on_ready: Called with the local URL once the server is listening.

        Returns:
            The install and region that were saved.

        Raises:
            SetupCancelledError: If the wait ends without a saved result.
            DeputyError: If the local server cannot be started.
        """
        if self._started:
            raise RuntimeError("SetupServer.start() can only be called once")
        self._started = True

        try:
            httpd = _SetupHTTPServer((CALLBACK_HOST, 0), self)
        except OSError as e:
            self._stop_cleanup.set()
            raise DeputyError(f"failed to start server: {e}") from e

        port = httpd.server_address[1]
        self.url = f"http://{CALLBACK_HOST}:{port}"

        server_thread = threading.Thread(target=httpd.serve_forever, name="setup-server", daemon=True)
        server_thread.start()
        self._limiter.start_cleanup(RATE_LIMIT_CLEANUP_SECONDS, self._stop_cleanup)
        threading.Thread(target=self._launch_browser, args=(self.url,), name="open-browser", daemon=True).start()

        logger.info("setup server listening on %s", self.url)
        if on_ready is not None:
            on_ready(self.url)

        try:
            return self._wait(timeout, cancel)
        finally:
            self._shutdown.set()
            self._stop_cleanup.set()
            httpd.shutdown()
            server_thread.join(timeout=2)
            httpd.server_close()

    def _wait(self, timeout: float | None, cancel: threading.Event | None) -> SetupResult:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            poll = WAIT_POLL_SECONDS
            if deadline is not None:
                poll = max(0.0, min(poll, deadline - time.monotonic()))
            try:
                return self._result.get(timeout=poll)
            except queue.Empty:
                pass

            if self._shutdown.is_set():
                # complete() fills the queue before firing shutdown.
                try:
                    return self._result.get_nowait()
                except queue.Empty:
                    return self._pending_or_cancelled()

            cancelled = cancel is not None and cancel.is_set()
            if cancelled or (deadline is not None and time.monotonic() >= deadline):
                return self._pending_or_cancelled()

    def _pending_or_cancelled(self) -> SetupResult:
        pending = self.pending_result
        if pending is not None:
            return pending
        raise SetupCancelledError()

    def _launch_browser(self, url: str) -> None:
        try:
            opened = self._open_browser(url)
        except Exception as e:
            logger.debug("browser launch raised: %s", e)
            opened = False
        if not opened:
            logger.warning("Could not open browser. Open this URL manually:\n  %s", url)

    def shutdown(self) -> None:
        """Stop waiting without a completion call; ``start()`` returns or raises."""
        self._shutdown.set()

    def complete(self) -> None:
        """Deliver the pending result (if any) and fire shutdown, exactly once."""
        with self._complete_lock:
            if self._completed:
                return
            self._completed = True
            pending = self.pending_result
            if pending is not None:
                self._result.put_nowait(pending)
            self._shutdown.set()

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def handle(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: bytes | None,
        client_ip: str,
    ) -> Reply:
        """Route one request. ``body`` is None when it was too large or unreadable."""
        route = urlparse(path).path
        if route == "/":
            return self._handle_setup(method)
        if route == "/validate":
            return self._handle_validate(method, headers, body, client_ip)
        if route == "/submit":
            return self._handle_submit(method, headers, body, client_ip)
        if route == "/success":
            return self._handle_success(method)
        if route == "/complete":
            return self._handle_complete(method, headers)
        return _text_reply(404, "404 page not found")

    def _csrf_ok(self, headers: Mapping[str, str]) -> bool:
        provided = headers.get(CSRF_HEADER) or ""
        return hmac.compare_digest(provided.encode(), self.csrf_token.encode())

    def _handle_setup(self, method: str) -> Reply:
        if method != "GET":
            return _text_reply(405, ERROR_METHOD_NOT_ALLOWED)
        return _html_reply(render_setup_page(self.csrf_token))

    def _handle_success(self, method: str) -> Reply:
        if method != "GET":
            return _text_reply(405, ERROR_METHOD_NOT_ALLOWED)
        pending = self.pending_result
        install = pending.install if pending else ""
        geo = pending.geo.upper() if pending else ""
        return _html_reply(render_success_page(install, geo, self.csrf_token))

    def _handle_validate(
        self, method: str, headers: Mapping[str, str], body: bytes | None, client_ip: str
    ) -> Reply:
        reply, _ = self._validate_request(method, headers, body, client_ip, "/validate")
        if reply is not None:
            return reply
        return _json_reply(200, {"success": True, "message": "Connection successful!"})

    def _handle_submit(
        self, method: str, headers: Mapping[str, str], body: bytes | None, client_ip: str
    ) -> Reply:
        reply, submission = self._validate_request(method, headers, body, client_ip, "/submit")
        if reply is not None:
            return reply
        assert submission is not None

        creds = Credentials(
            token=submission.token,
            install=submission.install,
            geo=submission.geo,
            created_at=datetime.now(timezone.utc),
        )
        try:
            self._store.set(creds)
        except (DeputyError, OSError) as e:
            logger.error("failed to save credentials: %s", e)
            return _json_reply(200, {"success": False, "error": f"Failed to save credentials: {e}"})

        with self._pending_lock:
            self._pending = SetupResult(install=submission.install, geo=submission.geo)

        logger.info("saved credentials for install %s (%s)", submission.install, submission.geo)
        return _json_reply(200, {"success": True, "install": submission.install, "geo": submission.geo})

    def _handle_complete(self, method: str, headers: Mapping[str, str]) -> Reply:
        if method != "POST":
            return _text_reply(405, ERROR_METHOD_NOT_ALLOWED)
        if not self._csrf_ok(headers):
            return _text_reply(403, ERROR_INVALID_CSRF)
        self.complete()
        return _json_reply(200, {"success": True})

    def _validate_request(
        self,
        method: str,
        headers: Mapping[str, str],
        body: bytes | None,
        client_ip: str,
        endpoint: str,
    ) -> tuple[Reply | None, _Submission | None]:
        """Shared checks for /validate and /submit.

        Returns ``(reply, None)`` when the request must be answered with
        ``reply``, or ``(None, submission)`` when every check passed.
        """
        if method != "POST":
            return _text_reply(405, ERROR_METHOD_NOT_ALLOWED), None

        if not self._csrf_ok(headers):
            return _text_reply(403, ERROR_INVALID_CSRF), None

        try:
            self._limiter.check(client_ip, endpoint)
        except RateLimitError as e:
            return _json_reply(429, {"success": False, "error": str(e)}), None

        submission = _parse_submission(body)
        if submission is None:
            return _json_reply(400, {"success": False, "error": ERROR_INVALID_BODY}), None

        try:
            validate_install(submission.install)
            validate_geo(submission.geo)
            validate_token(submission.token)
        except ValidationError as e:
            return _json_reply(200, {"success": False, "error": str(e)}), None

        try:
            self._validator(submission.install, submission.geo, submission.token)
        except Exception as e:
            logger.debug("credential check failed for install %s: %s", submission.install, e)
            return _json_reply(200, {"success": False, "error": str(e)}), None

        return None, submission


def _parse_submission(body: bytes | None) -> _Submission | None:
    if body is None:
        return None
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None

    values = {}
    for name in ("install", "geo", "token"):
        value = data.get(name)
        if value is None:
            value = ""
        if not isinstance(value, str):
            return None
        values[name] = value.strip()
    return _Submission(**values)


class _SetupHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], setup: SetupServer) -> None:
        self.setup = setup
        super().__init__(address, _SetupRequestHandler)


class _SetupRequestHandler(BaseHTTPRequestHandler):
    """Thin adapter from ``http.server`` to :meth:`SetupServer.handle`."""

    server: _SetupHTTPServer
    server_version = "deputy-setup"
    timeout = REQUEST_TIMEOUT_SECONDS

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s %s", self.address_string(), format % args)

    def _read_body(self) -> bytes | None:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            return None
        if length < 0 or length > MAX_BODY_BYTES:
            return None
        return self.rfile.read(length)

    def _dispatch(self) -> None:
        body = self._read_body() if self.command == "POST" else b""
        reply = self.server.setup.handle(self.command, self.path, self.headers, body, self.client_address[0])

        self.send_response(reply.status)
        self.send_header("Content-Type", reply.content_type)
        self.send_header("Content-Length", str(len(reply.body)))
        for name, value in reply.headers.items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(reply.body)

    do_GET = _dispatch
    do_POST = _dispatch
    do_PUT = _dispatch
    do_PATCH = _dispatch
    do_DELETE = _dispatch
