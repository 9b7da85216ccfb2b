"""Data models for the catalogs and the cache layer."""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional, Protocol

from wxcache.cache.store import CacheKey

# Cache key prefixes; also the upstream service paths
LAYER_PREFIX = ("layer", "wxfcs")
REGIONAL_PREFIX = ("txt", "wxfcs", "regionalforecast")


class Resource(Protocol):
    """Anything a catalog can fetch: an identifier, a label and its variants."""

    @property
    def identifier(self) -> str: ...

    @property
    def label(self) -> str: ...

    @property
    def variants(self) -> tuple[str, ...]: ...


@dataclass(frozen=True)
class ForecastLayer:
    """Forecast image layer described by the layer capabilities document.

    Attributes:
        display_name: Human readable name, e.g. "Rainfall"
        name: Service name of the layer
        layer_name: Upstream layer identifier, e.g. "Precipitation_Rate"
        image_format: Image file extension, e.g. "png"
        default_time: Model run time token, e.g. "2016-03-10T09:00:00"
        timesteps: Forecast hours available for this run, in upstream order
    """

    display_name: str
    name: str
    layer_name: str
    image_format: str
    default_time: str
    timesteps: tuple[int, ...] = ()

    @property
    def identifier(self) -> str:
        return self.layer_name

    @property
    def label(self) -> str:
        return self.display_name

    @property
    def variants(self) -> tuple[str, ...]:
        return tuple(self.image_name(ts) for ts in self.timesteps)

    @property
    def default_datetime(self) -> Optional[datetime]:
        """default_time parsed as a datetime, None if it is not ISO formatted."""
        try:
            return datetime.fromisoformat(self.default_time)
        except ValueError:
            return None

    def image_name(self, timestep: int) -> str:
        return f"{timestep}.{self.image_format}"

    def url(self, base_url: str, timestep: int) -> str:
        """Upstream image URL for timestep.

        The API key placeholder is removed; the client appends the key.
        """
        url = (
            base_url.replace("{LayerName}", self.layer_name)
            .replace("{ImageFormat}", self.image_format)
            .replace("{DefaultTime}", self.default_time)
            .replace("{Timestep}", str(timestep))
        )
        url = url.replace("&key={key}", "")
        url = url.replace("?key={key}&", "?").replace("?key={key}", "")
        return url

    def cache_key(self, timestep: int) -> CacheKey:
        return CacheKey.of(*LAYER_PREFIX, self.layer_name, self.default_time, self.image_name(timestep))


@dataclass(frozen=True)
class ForecastLocation:
    """Regional text forecast area from the sitelist."""

    id: int
    name: str

    @property
    def identifier(self) -> str:
        return str(self.id)

    @property
    def label(self) -> str:
        region = lookup_region(self.name)
        return region.label if region else self.name

    @property
    def variants(self) -> tuple[str, ...]:
        return ("forecast",)

    def cache_key(self, issued_at: str) -> CacheKey:
        return CacheKey.of(*REGIONAL_PREFIX, issued_at, f"{self.name}.json")


@dataclass(frozen=True)
class CatalogSnapshot:
    """Immutable, fully built view of a catalog.

    Attributes:
        resources: Resource name -> resource, read-only
        reloaded_at: When the snapshot was built (UTC), None for the empty snapshot
        base_url: Image URL template (layer catalog only)
        issued_at: Forecast issue time token (regional catalog only)
    """

    resources: Mapping[str, Resource] = field(default_factory=dict)
    reloaded_at: Optional[datetime] = None
    base_url: Optional[str] = None
    issued_at: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "resources", MappingProxyType(dict(self.resources)))

    def __len__(self) -> int:
        return len(self.resources)

    def names(self) -> list[str]:
        return list(self.resources)


@dataclass(frozen=True)
class Region:
    """UK regional forecast area."""

    code: str
    label: str


# Regional forecast areas - canonical list
REGIONS: tuple[Region, ...] = (
    Region("os", "Orkney & Shetland"),
    Region("he", "Highland & Eilean Siar"),
    Region("gr", "Grampian"),
    Region("ta", "Tayside"),
    Region("st", "Strathclyde"),
    Region("dg", "Dumfries, Galloway, Lothian"),
    Region("ni", "Northern Ireland"),
    Region("yh", "Yorkshire & the Humber"),
    Region("ne", "Northeast England"),
    Region("em", "East Midlands"),
    Region("ee", "East of England"),
    Region("se", "London & Southeast England"),
    Region("nw", "Northwest England"),
    Region("wm", "West Midlands"),
    Region("sw", "Southwest England"),
    Region("wl", "Wales"),
    Region("uk", "UK"),
)

_REGIONS_BY_CODE = MappingProxyType({r.code: r for r in REGIONS})


def lookup_region(code: str) -> Optional[Region]:
    """Region for a sitelist location name such as 'sw', None if unknown."""
    return _REGIONS_BY_CODE.get(code)


@dataclass
class FetchLog:
    """Log entry for a catalog reload."""

    source: str  # 'layers', 'regional'
    timestamp: datetime
    status: str  # 'success', 'error'
    records_added: int
    duration_ms: int
    error_message: Optional[str] = None
