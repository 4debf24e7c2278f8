"""Constants for the browser-based credential setup."""

from __future__ import annotations

# Setup server binds an ephemeral port on loopback only.
CALLBACK_HOST = "127.0.0.1"
REQUEST_TIMEOUT_SECONDS = 30
WAIT_POLL_SECONDS = 0.1

CSRF_HEADER = "X-CSRF-Token"
CSRF_TOKEN_BYTES = 32

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self' 'unsafe-inline'; "
        "style-src 'self' 'unsafe-inline'; font-src https://fonts.gstatic.com; "
        "connect-src 'self' https://fonts.googleapis.com https://fonts.gstatic.com"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}

# Rate limiting for /validate and /submit
RATE_LIMIT_MAX_ATTEMPTS = 10
RATE_LIMIT_WINDOW_SECONDS = 15 * 60
RATE_LIMIT_CLEANUP_SECONDS = 5 * 60

# Field grammar
INSTALL_MAX_LENGTH = 64
TOKEN_MAX_LENGTH = 512
VALID_GEOS = ("au", "uk", "na")

# Error messages
ERROR_INSTALL_EMPTY = "install name cannot be empty"
ERROR_INSTALL_TOO_LONG = f"install name too long (max {INSTALL_MAX_LENGTH} characters)"
ERROR_INSTALL_INVALID = "install name contains invalid characters"
ERROR_GEO_INVALID = "invalid region: must be au, uk, or na"
ERROR_TOKEN_EMPTY = "API token cannot be empty"
ERROR_TOKEN_TOO_LONG = "API token too long"
ERROR_RATE_LIMITED = "too many attempts, please try again later"
ERROR_INVALID_BODY = "Invalid request body"
ERROR_INVALID_CSRF = "Invalid CSRF token"
ERROR_METHOD_NOT_ALLOWED = "Method not allowed"
