#!/usr/bin/env python3
"""Common error types shared across modules.

Provides shared lightweight exceptions to avoid circular imports.
"""

from typing import Optional


class PinClientError(Exception):
    """Base class for failures surfaced to callers of the client."""


class FetchError(PinClientError):
    """Raised when a GET fails at the transport level or returns a non-2xx status.

    Attributes:
        url: The requested URL.
        status: HTTP status code, when a response was received.
        detail: Short description of the failure.
    """

    def __init__(self, url: str, status: Optional[int] = None, detail: Optional[str] = None):
        self.url = url
        self.status = status
        self.detail = detail
        parts = [f"GET {url} failed"]
        if status is not None:
            parts.append(f"with HTTP {status}")
        if detail:
            parts.append(f"({detail})")
        super().__init__(" ".join(parts))


class CacheIOError(PinClientError):
    """Raised when an existing cache entry cannot be stat'ed, read or written."""

    def __init__(self, path: str, message: str = "Cache I/O failed"):
        self.path = path
        super().__init__(f"{message}: {path}")

__all__ = ["PinClientError", "FetchError", "CacheIOError"]
