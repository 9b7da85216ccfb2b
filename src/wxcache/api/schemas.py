"""Pydantic schemas for API responses.

Defines the JSON documents served by the cache API. Cached upstream
documents (regional forecasts) are passed through unchanged and have no
schema here.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LayerSummary(BaseModel):
    """Forecast image layer in the layer list.

    Attributes:
        layer_name: Upstream layer identifier
        display_name: Human readable name
        default_time: Model run time token
        timesteps: Forecast hours available for the run
    """

    layer_name: str = Field(..., description="Upstream layer identifier")
    display_name: str = Field(..., description="Human readable layer name")
    default_time: str = Field(..., description="Model run time")
    timesteps: list[int] = Field(default_factory=list, description="Available forecast hours")


class LayerListResponse(BaseModel):
    """All forecast image layers of the current snapshot."""

    layers: list[LayerSummary] = Field(default_factory=list)
    timestamp: Optional[datetime] = Field(
        default=None,
        description="Start of the last successful reload (UTC)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "layers": [
                        {
                            "layer_name": "Precipitation_Rate",
                            "display_name": "Rainfall",
                            "default_time": "2016-03-10T09:00:00",
                            "timesteps": [0, 3, 6],
                        }
                    ],
                    "timestamp": "2016-03-10T10:05:00",
                }
            ]
        }
    }


class LayerDetail(BaseModel):
    """One forecast image layer with the URL of each cached image.

    Attributes:
        images: Timestep -> API path of the image, only for cached images
    """

    layer_name: str
    display_name: str
    name: str = Field(..., description="Service name of the layer")
    image_format: str
    default_time: str
    timesteps: list[int] = Field(default_factory=list)
    images: dict[int, str] = Field(
        default_factory=dict,
        description="Timestep -> image path",
    )


class RegionInfo(BaseModel):
    """Regional forecast area.

    Attributes:
        id: Sitelist location id
        name: Short area code, e.g. 'sw'
        label: Human readable area name
    """

    id: int
    name: str
    label: str
    cached: bool = Field(default=False, description="Whether a forecast is loaded")


class RegionalListResponse(BaseModel):
    """Regional forecast areas and the current issue time."""

    issued_at: Optional[str] = Field(
        default=None,
        alias="issuedAt",
        description="Issue time of the loaded forecasts",
    )
    regions: list[RegionInfo] = Field(default_factory=list)
    timestamp: Optional[datetime] = Field(
        default=None,
        description="Start of the last successful reload (UTC)",
    )

    model_config = {"populate_by_name": True}


class HealthResponse(BaseModel):
    """Health check response.

    Attributes:
        status: Service status ('healthy' or 'degraded')
        layers_loaded: Number of layers in the current snapshot
        regions_loaded: Number of regional forecasts in memory
        version: API version
    """

    status: str = Field(
        default="healthy",
        description="Service status",
    )
    layers_loaded: int = Field(
        default=0,
        description="Layers in the current snapshot",
    )
    regions_loaded: int = Field(
        default=0,
        description="Regional forecasts loaded",
    )
    version: str = Field(
        default="1.0.0",
        description="API version",
    )


class ErrorResponse(BaseModel):
    """Error response schema.

    Attributes:
        error: Error type/code
        message: Human-readable error message
        detail: Additional error details
    """

    error: str = Field(
        ...,
        description="Error type",
    )
    message: str = Field(
        ...,
        description="Error message",
    )
    detail: Optional[str] = Field(
        default=None,
        description="Additional details",
    )
