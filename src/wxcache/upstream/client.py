"""Rate-limited client for the DataPoint API.

Two call styles are offered:

- ``call_json`` for service functions returning JSON documents. Failures
  raise ``RemoteError`` because a missing capability document invalidates
  the whole reload.
- ``call_raw`` for binary payloads such as image tiles. Failures are
  returned as a ``FetchFailure`` value so that one missing tile does not
  abort a batch.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

import requests

from wxcache.config import DataPointConfig
from wxcache.upstream.errors import DecodeError, RemoteError
from wxcache.upstream.ratelimit import RateLimiter

logger = logging.getLogger(__name__)

SUCCESS_CODES = frozenset({200, 304})

_KEY_PARAM = re.compile(r"(\bkey=)[^&\s'\")]*")


def redact_key(text: str) -> str:
    """Mask the value of every key= query parameter in text."""
    return _KEY_PARAM.sub(r"\1***", text)


@dataclass(frozen=True)
class FetchSuccess:
    """Raw call that returned 200 or 304."""

    url: str
    status: int
    content: bytes

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class FetchFailure:
    """Raw call that failed; status is None when no response was received."""

    url: str
    status: Optional[int]
    reason: str

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        status = self.status if self.status is not None else "-"
        return f"{status}:{self.reason} {self.url}"


FetchResult = Union[FetchSuccess, FetchFailure]


class ApiClient:
    """HTTP client that funnels every call through one RateLimiter.

    Example:
        >>> client = ApiClient(DataPointConfig(api_key="..."))
        >>> cap = client.call_json("layer/wxfcs/all", "capabilities")
        >>> result = client.call_raw("http://.../Precipitation_Rate/png?RUN=...")
        >>> if result.ok:
        ...     data = result.content
    """

    def __init__(
        self,
        config: DataPointConfig,
        limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            config: Upstream and rate limit settings
            limiter: Shared limiter; built from config if not given
            session: requests session; a private one is created if not given
        """
        self.config = config
        self.limiter = limiter or RateLimiter(
            capacity=config.capacity,
            refill_tokens=config.refill_tokens,
            period=config.period_seconds,
            initial_tokens=config.initial_tokens,
        )
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def build_url(self, service: str, function: str) -> str:
        """Full URL of a service function, without query string."""
        return "/".join([self.config.base_url, service.strip("/"), "json", function])

    def with_key(self, url: str) -> str:
        """Append the API key to an arbitrary URL."""
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}key={self.config.api_key}"

    def call_json(
        self,
        service: str,
        function: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Call a service function and decode its JSON response.

        Args:
            service: Service path, e.g. "layer/wxfcs/all"
            function: Function within the service, e.g. "capabilities"
            params: Extra query parameters

        Returns:
            Decoded JSON document

        Raises:
            RemoteError: Status other than 200/304, or no response
            DecodeError: Body is not valid JSON
        """
        url = self.build_url(service, function)
        query = dict(params or {})
        query["key"] = self.config.api_key

        self.limiter.acquire()

        try:
            response = self.session.get(url, params=query, timeout=self.config.timeout)
        except requests.RequestException as e:
            raise RemoteError(None, url, f"Request failed ({redact_key(str(e))})") from e

        status = response.status_code
        logger.debug(f"ReturnCode {status}: {response.reason} {url}")

        if status not in SUCCESS_CODES:
            raise RemoteError(status, url, f"HTTP {status} {response.reason or ''}".strip())

        try:
            result = response.json()
        except ValueError as e:
            raise DecodeError(status, url, f"Invalid JSON ({e})") from e

        logger.debug(f"{service}:{function}:{result}")
        return result

    def call_raw(self, url: str) -> FetchResult:
        """Fetch a binary payload.

        Never raises for HTTP or transport failures; the caller branches on
        ``result.ok``.

        Args:
            url: Absolute URL without the API key

        Returns:
            FetchSuccess with the body, or FetchFailure with status and reason
        """
        self.limiter.acquire()

        try:
            response = self.session.get(self.with_key(url), timeout=self.config.timeout)
        except requests.RequestException as e:
            return FetchFailure(url=url, status=None, reason=redact_key(str(e)))

        status = response.status_code
        logger.debug(f"ReturnCode {status}: {response.reason} {url}")

        if status in SUCCESS_CODES:
            return FetchSuccess(url=url, status=status, content=response.content)
        return FetchFailure(url=url, status=status, reason=response.reason or "")
