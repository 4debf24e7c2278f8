"""Browser-based credential setup for the Deputy CLI.

Lightweight imports (types, validation) are eager. The setup server pulls in
http.server, threading and webbrowser, so it is imported lazily.
"""

from .types import SetupResult
from .validation import validate_geo, validate_install, validate_token


def __getattr__(name: str):
    if name == "SetupServer":
        from .server import SetupServer

        return SetupServer
    if name == "RateLimiter":
        from .limiter import RateLimiter

        return RateLimiter
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "RateLimiter",
    "SetupResult",
    "SetupServer",
    "validate_geo",
    "validate_install",
    "validate_token",
]
