"""Error types for upstream calls."""

from typing import Optional


class WxCacheError(Exception):
    """Base class for all wxcache errors."""


class RateLimitTimeout(WxCacheError):
    """A caller-imposed timeout expired while waiting for a rate limit token."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"No rate limit token available within {timeout:.2f}s")


class RemoteError(WxCacheError):
    """A JSON call failed: non-200/304 status, transport error or bad body.

    Attributes:
        status: HTTP status code, or None when no response was received
        url: Requested URL with the API key removed
    """

    def __init__(self, status: Optional[int], url: str, message: str = ""):
        self.status = status
        self.url = url
        detail = message or (f"HTTP {status}" if status is not None else "no response")
        super().__init__(f"{detail}: {url}")


class DecodeError(RemoteError):
    """The response body was not valid JSON."""


class CapabilityError(WxCacheError):
    """A capability or sitelist document is missing required structure."""
