"""Read-only HTTP API for the DataPoint cache.

This module provides:

- create_app: Factory function to create FastAPI application
- get_cache_service: Global CacheService used by the default app
- Response schemas for layers, regional forecasts and health checks

Note: FastAPI-dependent exports (create_app, get_cache_service) are
lazy-loaded to allow importing schemas without FastAPI installed.
"""

# Schemas can be imported directly (only depend on pydantic)
from wxcache.api.schemas import (
    ErrorResponse,
    HealthResponse,
    LayerDetail,
    LayerListResponse,
    LayerSummary,
    RegionalListResponse,
    RegionInfo,
)


# Lazy imports for FastAPI-dependent components
def __getattr__(name):
    """Lazy load FastAPI-dependent components."""
    if name in ("create_app", "get_cache_service"):
        from wxcache.api.app import create_app, get_cache_service
        if name == "create_app":
            return create_app
        elif name == "get_cache_service":
            return get_cache_service
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "create_app",
    "get_cache_service",
    "ErrorResponse",
    "HealthResponse",
    "LayerDetail",
    "LayerListResponse",
    "LayerSummary",
    "RegionInfo",
    "RegionalListResponse",
]
