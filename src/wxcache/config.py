"""Runtime configuration for wxcache.

All settings have defaults suitable for the public DataPoint service and can
be overridden through ``WXCACHE_*`` environment variables:

    WXCACHE_API_KEY=... python -m wxcache.cache.refresh
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from wxcache.utils.io import get_data_path

# Max 50 calls per minute under the DataPoint licence
DEFAULT_CAPACITY = 50
DEFAULT_PERIOD_SECONDS = 60.0
DEFAULT_TIMEOUT = 60.0

# Staleness windows: image layers change with each model run, regional
# text forecasts are issued twice a day
LAYER_INTERVAL_MINUTES = 60
REGIONAL_INTERVAL_MINUTES = 360

# How often the periodic trigger checks whether a reload is due
TRIGGER_SECONDS = 300


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass
class DataPointConfig:
    """Settings for the upstream API, the rate limiter and local storage.

    Attributes:
        api_key: DataPoint API key, appended to every upstream call
        scheme: URL scheme of the upstream host
        hostname: Upstream host name
        prefix: Path prefix in front of every service path
        capacity: Token bucket capacity
        initial_tokens: Tokens available at start-up (defaults to capacity)
        refill_tokens: Tokens added every period (defaults to capacity)
        period_seconds: Refill period in seconds
        timeout: Per-request timeout in seconds
        cache_dir: Root directory of the artifact cache
        db_path: DuckDB fetch log file, None to disable the fetch log
        max_workers: Parallel variant fetches per catalog reload
        layer_interval_minutes: Minimum time between image layer reloads
        regional_interval_minutes: Minimum time between regional forecast reloads
        trigger_seconds: Period of the background trigger
    """

    api_key: str = ""
    scheme: str = "http"
    hostname: str = "datapoint.metoffice.gov.uk"
    prefix: str = "/public/data/"
    capacity: int = DEFAULT_CAPACITY
    initial_tokens: Optional[int] = None
    refill_tokens: Optional[int] = None
    period_seconds: float = DEFAULT_PERIOD_SECONDS
    timeout: float = DEFAULT_TIMEOUT
    cache_dir: Path = field(default_factory=lambda: get_data_path("cache"))
    db_path: Optional[Path] = None
    max_workers: int = 1
    layer_interval_minutes: int = LAYER_INTERVAL_MINUTES
    regional_interval_minutes: int = REGIONAL_INTERVAL_MINUTES
    trigger_seconds: int = TRIGGER_SECONDS

    def __post_init__(self):
        if self.capacity <= 0:
            raise ValueError(f"capacity must be positive, got {self.capacity}")
        if self.period_seconds <= 0:
            raise ValueError(f"period_seconds must be positive, got {self.period_seconds}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        self.cache_dir = Path(self.cache_dir)
        if self.db_path is not None:
            self.db_path = Path(self.db_path)

    @property
    def base_url(self) -> str:
        """scheme://hostname/prefix with no trailing slash."""
        prefix = self.prefix.strip("/")
        if prefix:
            return f"{self.scheme}://{self.hostname}/{prefix}"
        return f"{self.scheme}://{self.hostname}"

    @classmethod
    def from_env(cls, **overrides) -> "DataPointConfig":
        """Build a config from WXCACHE_* environment variables.

        Keyword arguments take precedence over the environment.
        """
        values = {
            "api_key": os.getenv("WXCACHE_API_KEY", ""),
            "scheme": os.getenv("WXCACHE_SCHEME", "http"),
            "hostname": os.getenv("WXCACHE_HOSTNAME", "datapoint.metoffice.gov.uk"),
            "prefix": os.getenv("WXCACHE_PREFIX", "/public/data/"),
            "capacity": _env_int("WXCACHE_CAPACITY", DEFAULT_CAPACITY),
            "initial_tokens": _env_int("WXCACHE_INITIAL_TOKENS", None),
            "refill_tokens": _env_int("WXCACHE_REFILL_TOKENS", None),
            "period_seconds": _env_float("WXCACHE_PERIOD_SECONDS", DEFAULT_PERIOD_SECONDS),
            "timeout": _env_float("WXCACHE_TIMEOUT", DEFAULT_TIMEOUT),
            "max_workers": _env_int("WXCACHE_MAX_WORKERS", 1),
            "layer_interval_minutes": _env_int(
                "WXCACHE_LAYER_INTERVAL_MINUTES", LAYER_INTERVAL_MINUTES
            ),
            "regional_interval_minutes": _env_int(
                "WXCACHE_REGIONAL_INTERVAL_MINUTES", REGIONAL_INTERVAL_MINUTES
            ),
            "trigger_seconds": _env_int("WXCACHE_TRIGGER_SECONDS", TRIGGER_SECONDS),
        }
        cache_dir = os.getenv("WXCACHE_CACHE_DIR")
        if cache_dir:
            values["cache_dir"] = Path(cache_dir)
        db_path = os.getenv("WXCACHE_DB_PATH")
        if db_path:
            values["db_path"] = Path(db_path)

        values.update(overrides)
        return cls(**values)
