"""Caching layer for wxcache.

Provides the path-keyed artifact store, the reload scheduler, update
notifications and a DuckDB fetch log.

Background refresh can be run via:
    python -m wxcache.cache.refresh

Or scheduled via cron:
    # Every 5 minutes; reloads only run once the data is stale
    */5 * * * * python -m wxcache.cache.refresh
"""

from wxcache.cache.database import CacheDatabase
from wxcache.cache.models import (
    REGIONS,
    CatalogSnapshot,
    FetchLog,
    ForecastLayer,
    ForecastLocation,
    Region,
    lookup_region,
)
from wxcache.cache.notify import (
    ArtifactUpdated,
    CacheEvent,
    NotificationBus,
    ResourceUpdated,
)
from wxcache.cache.scheduler import PeriodicTrigger, RefreshResult, RefreshScheduler
from wxcache.cache.store import (
    ArtifactNotFound,
    CacheKey,
    CacheStore,
    LocalCacheStore,
    MemoryCacheStore,
    StorageError,
)

__all__ = [
    "REGIONS",
    "ArtifactNotFound",
    "ArtifactUpdated",
    "CacheDatabase",
    "CacheEvent",
    "CacheKey",
    "CacheStore",
    "CatalogSnapshot",
    "FetchLog",
    "ForecastLayer",
    "ForecastLocation",
    "LocalCacheStore",
    "MemoryCacheStore",
    "NotificationBus",
    "PeriodicTrigger",
    "RefreshResult",
    "RefreshScheduler",
    "Region",
    "ResourceUpdated",
    "StorageError",
    "lookup_region",
]
