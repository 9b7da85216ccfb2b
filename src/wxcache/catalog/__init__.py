"""Capability-driven catalogs of cacheable DataPoint resources.

- ForecastLayerCatalog: forecast image layers (layer/wxfcs/all)
- RegionalForecastCatalog: regional text forecasts (txt/wxfcs/regionalforecast)
"""

from wxcache.catalog.base import Catalog, as_list
from wxcache.catalog.layers import (
    ForecastLayerCatalog,
    parse_capabilities,
    parse_layer,
    parse_timestep,
)
from wxcache.catalog.regional import (
    RegionalForecastCatalog,
    parse_issued_at,
    parse_sitelist,
)

__all__ = [
    "Catalog",
    "ForecastLayerCatalog",
    "RegionalForecastCatalog",
    "as_list",
    "parse_capabilities",
    "parse_issued_at",
    "parse_layer",
    "parse_sitelist",
    "parse_timestep",
]
