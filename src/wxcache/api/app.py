"""FastAPI application serving the DataPoint cache.

Provides read-only REST endpoints for:
- Forecast image layers and their cached images
- Regional text forecasts by location id or name
- Health checks

Every response is answered from the catalogs' snapshots and the cache
store; requests never call upstream.

Example:
    >>> from wxcache.api import create_app
    >>> app = create_app()
    >>> # Run with: uvicorn wxcache.api.app:app
"""

import logging
import mimetypes
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from wxcache.api.schemas import (
    ErrorResponse,
    HealthResponse,
    LayerDetail,
    LayerListResponse,
    LayerSummary,
    RegionalListResponse,
    RegionInfo,
)
from wxcache.cache.models import LAYER_PREFIX
from wxcache.cache.refresh import CacheService
from wxcache.cache.store import ArtifactNotFound, CacheKey, StorageError
from wxcache.config import DataPointConfig

logger = logging.getLogger(__name__)

# API version
API_VERSION = "1.0.0"

# Route prefix mirroring the upstream service paths
API_PREFIX = "/api/modp"


# Global cache service
_cache_service: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    """Get or create the global cache service from the environment."""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService(DataPointConfig.from_env())
    return _cache_service


def image_path(layer_name: str, default_time: str, image: str) -> str:
    """API path of a cached layer image."""
    return f"{API_PREFIX}/layer/wxfcs/{layer_name}/{default_time}/{image}"


def create_app(
    service: Optional[CacheService] = None,
    start_triggers: bool = True,
) -> FastAPI:
    """Create FastAPI application.

    Args:
        service: CacheService to serve; the global one if not given
        start_triggers: Whether to start the background reload triggers on startup

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="DataPoint Cache API",
        description="Cached Met Office DataPoint forecast layers and regional forecasts",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def current_service() -> CacheService:
        return service or get_cache_service()

    @app.on_event("startup")
    async def startup_event():
        """Start the reload triggers."""
        if start_triggers:
            current_service().start_triggers()
            logger.info("Reload triggers started")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop the reload triggers."""
        if start_triggers:
            current_service().stop_triggers(timeout=5)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with custom response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=f"HTTP_{exc.status_code}",
                message=str(exc.detail),
            ).model_dump(),
        )

    @app.get("/", tags=["info"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "DataPoint Cache API",
            "version": API_VERSION,
            "docs": "/docs",
            "layers": f"{API_PREFIX}/layer/wxfcs.json",
            "regional": f"{API_PREFIX}/txt/wxfcs/regionalforecast.json",
        }

    @app.get("/health", response_model=HealthResponse, tags=["info"])
    async def health_check():
        """Health check endpoint."""
        svc = current_service()
        loaded = svc.layers.last_reload is not None or svc.regional.last_reload is not None
        return HealthResponse(
            status="healthy" if loaded else "degraded",
            layers_loaded=len(svc.layers.snapshot),
            regions_loaded=svc.regional.forecast_count,
            version=API_VERSION,
        )

    @app.get(
        f"{API_PREFIX}/layer/wxfcs.json",
        response_model=LayerListResponse,
        tags=["layers"],
    )
    async def list_layers():
        """List forecast image layers of the current snapshot."""
        catalog = current_service().layers
        layers = [
            LayerSummary(
                layer_name=layer.layer_name,
                display_name=layer.display_name,
                default_time=layer.default_time,
                timesteps=list(layer.timesteps),
            )
            for layer in catalog.snapshot.resources.values()
        ]
        return LayerListResponse(layers=layers, timestamp=catalog.last_reload)

    @app.get(
        f"{API_PREFIX}/layer/wxfcs/{{layer_name}}.json",
        response_model=LayerDetail,
        responses={404: {"model": ErrorResponse, "description": "Unknown layer"}},
        tags=["layers"],
    )
    async def get_layer(layer_name: str):
        """Layer detail with the path of every cached image."""
        catalog = current_service().layers
        layer = catalog.get_layer(layer_name)
        if layer is None:
            raise HTTPException(status_code=404, detail=f"Unknown layer: {layer_name}")

        images = {
            ts: image_path(layer.layer_name, layer.default_time, layer.image_name(ts))
            for ts in catalog.image_paths(layer_name, cached_only=True)
        }
        return LayerDetail(
            layer_name=layer.layer_name,
            display_name=layer.display_name,
            name=layer.name,
            image_format=layer.image_format,
            default_time=layer.default_time,
            timesteps=list(layer.timesteps),
            images=images,
        )

    @app.get(
        f"{API_PREFIX}/layer/wxfcs/{{layer_name}}/{{default_time}}/{{image}}",
        responses={404: {"model": ErrorResponse, "description": "Image not cached"}},
        tags=["layers"],
    )
    async def get_image(layer_name: str, default_time: str, image: str):
        """Cached image bytes."""
        try:
            key = CacheKey.of(*LAYER_PREFIX, layer_name, default_time, image)
        except ValueError:
            raise HTTPException(status_code=404, detail=f"Invalid image path: {image}")

        try:
            data = current_service().store.read(key)
        except ArtifactNotFound:
            raise HTTPException(status_code=404, detail=f"Image not cached: {key}")
        except StorageError as e:
            logger.error(f"Failed to read {key}: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to read image: {key}")

        media_type, _ = mimetypes.guess_type(image)
        return Response(content=data, media_type=media_type or "application/octet-stream")

    @app.get(
        f"{API_PREFIX}/txt/wxfcs/regionalforecast.json",
        response_model=RegionalListResponse,
        tags=["regional"],
    )
    async def list_regions():
        """List regional forecast areas."""
        catalog = current_service().regional
        regions = []
        for location_id in catalog.location_ids():
            location = catalog.get_location(location_id)
            regions.append(
                RegionInfo(
                    id=location.id,
                    name=location.name,
                    label=location.label,
                    cached=catalog.get_forecast(location.id) is not None,
                )
            )
        return RegionalListResponse(
            issued_at=catalog.issued_at,
            regions=regions,
            timestamp=catalog.last_reload,
        )

    @app.get(
        f"{API_PREFIX}/txt/wxfcs/regionalforecast/{{id_or_name}}.json",
        responses={404: {"model": ErrorResponse, "description": "Forecast not loaded"}},
        tags=["regional"],
    )
    async def get_regional_forecast(id_or_name: str):
        """Cached regional forecast document by location id or name."""
        forecast = current_service().regional.lookup(id_or_name)
        if forecast is None:
            raise HTTPException(
                status_code=404,
                detail=f"No forecast loaded for region: {id_or_name}",
            )
        return JSONResponse(content=forecast)

    return app


# Default app instance for uvicorn
app = create_app()
