"""Upstream DataPoint access: rate limiting, HTTP client and error types."""

from wxcache.upstream.client import (
    ApiClient,
    FetchFailure,
    FetchResult,
    FetchSuccess,
)
from wxcache.upstream.errors import (
    CapabilityError,
    DecodeError,
    RateLimitTimeout,
    RemoteError,
    WxCacheError,
)
from wxcache.upstream.ratelimit import RateLimiter

__all__ = [
    "ApiClient",
    "CapabilityError",
    "DecodeError",
    "FetchFailure",
    "FetchResult",
    "FetchSuccess",
    "RateLimitTimeout",
    "RateLimiter",
    "RemoteError",
    "WxCacheError",
]
