"""Regional text forecast catalog.

Regional forecasts are issued twice a day for a fixed set of UK areas. The
sitelist (location id <-> name) is fetched once per process. Each reload
reads the ``issuedAt`` time from the capabilities document and stores one
forecast document per area at::

    txt/wxfcs/regionalforecast/<issuedAt>/<name>.json

Documents already stored for the current issue are read back from the store
instead of being fetched again. Decoded forecasts are also kept in memory for
lookups by id or name.
"""

import logging
import threading
from datetime import timedelta
from types import MappingProxyType
from typing import Any, Mapping, Optional

from wxcache.cache.models import CatalogSnapshot, ForecastLocation
from wxcache.cache.scheduler import RefreshResult
from wxcache.cache.store import CacheKey, StorageError
from wxcache.catalog.base import Catalog, as_list
from wxcache.config import REGIONAL_INTERVAL_MINUTES
from wxcache.upstream.errors import CapabilityError, RemoteError
from wxcache.utils.io import utcnow

logger = logging.getLogger(__name__)


def parse_issued_at(cap: Any) -> str:
    """issuedAt token from the regional capabilities document.

    Raises:
        CapabilityError: RegionalFcst.issuedAt is missing
    """
    try:
        issued_at = cap["RegionalFcst"]["issuedAt"]
    except (KeyError, TypeError) as e:
        raise CapabilityError(f"Regional capabilities missing RegionalFcst/issuedAt: {e}") from e
    if not isinstance(issued_at, str) or not issued_at:
        raise CapabilityError(f"Invalid issuedAt: {issued_at!r}")
    try:
        CacheKey.of(issued_at)
    except ValueError as e:
        raise CapabilityError(f"Invalid issuedAt: {issued_at!r}") from e
    return issued_at


def parse_sitelist(doc: Any) -> list[ForecastLocation]:
    """Locations from the sitelist document, skipping malformed entries.

    Raises:
        CapabilityError: Locations is missing
    """
    try:
        entries = as_list(doc["Locations"].get("Location"))
    except (KeyError, TypeError, AttributeError) as e:
        raise CapabilityError(f"Sitelist missing Locations: {e}") from e

    locations = []
    for entry in entries:
        try:
            location = ForecastLocation(id=int(entry["@id"]), name=str(entry["@name"]))
            CacheKey.of(f"{location.name}.json")
            locations.append(location)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed location entry ({e}): {entry}")
    return locations


class RegionalForecastCatalog(Catalog):
    """Catalog of regional text forecasts.

    Example:
        >>> catalog = RegionalForecastCatalog(client, LocalCacheStore(cache_dir))
        >>> catalog.refresh()
        True
        >>> catalog.get_forecast_by_name("sw") == catalog.get_forecast(514)
        True
    """

    source = "regional"
    service = "txt/wxfcs/regionalforecast"
    default_interval = timedelta(minutes=REGIONAL_INTERVAL_MINUTES)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._locations_by_id: Optional[Mapping[int, ForecastLocation]] = None
        self._ids_by_name: Mapping[str, int] = MappingProxyType({})
        self._forecasts: Mapping[int, Any] = MappingProxyType({})
        self._pending: dict[int, Any] = {}
        self._pending_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    @property
    def issued_at(self) -> Optional[str]:
        return self.snapshot.issued_at

    @property
    def forecast_count(self) -> int:
        """Number of locations with a forecast in memory."""
        return len(self._forecasts)

    def location_names(self) -> list[str]:
        return list(self._ids_by_name)

    def location_ids(self) -> list[int]:
        return list(self._ids_by_name.values())

    def get_location(self, location_id: int) -> Optional[ForecastLocation]:
        locations = self._locations_by_id
        return locations.get(location_id) if locations else None

    def get_forecast(self, location_id: int) -> Optional[Any]:
        """Decoded forecast for a location id, None if not loaded."""
        return self._forecasts.get(location_id)

    def get_forecast_by_name(self, name: str) -> Optional[Any]:
        """Decoded forecast for a location name such as 'sw', None if not loaded."""
        location_id = self._ids_by_name.get(name)
        return None if location_id is None else self._forecasts.get(location_id)

    def lookup(self, id_or_name: str) -> Optional[Any]:
        """Forecast by numeric id or by name."""
        if id_or_name.isdigit():
            return self.get_forecast(int(id_or_name))
        return self.get_forecast_by_name(id_or_name)

    # -------------------------------------------------------------------------
    # Reload
    # -------------------------------------------------------------------------

    def load_locations(self) -> Mapping[int, ForecastLocation]:
        """Fetch the sitelist once; later calls return the cached mapping."""
        if self._locations_by_id is None:
            locations = parse_sitelist(self.client.call_json(self.service, "sitelist"))
            by_id = {loc.id: loc for loc in locations}
            self._ids_by_name = MappingProxyType({loc.name: loc.id for loc in locations})
            self._locations_by_id = MappingProxyType(by_id)
            logger.info(f"{self.source}: loaded {len(by_id)} locations")
        return self._locations_by_id

    def build_snapshot(self) -> CatalogSnapshot:
        issued_at = parse_issued_at(self.client.call_json(self.service, "capabilities"))
        locations = self.load_locations()
        return CatalogSnapshot(
            resources={loc.name: loc for loc in locations.values()},
            reloaded_at=utcnow(),
            issued_at=issued_at,
        )

    def resource_name(self, resource: ForecastLocation) -> str:
        return resource.name

    def variant_key(
        self, snapshot: CatalogSnapshot, resource: ForecastLocation, variant: Any = None
    ) -> Optional[CacheKey]:
        if snapshot.issued_at is None:
            return None
        return resource.cache_key(snapshot.issued_at)

    def _before_fetch(self, snapshot: CatalogSnapshot) -> None:
        # Locations that fail keep serving their previous forecast
        with self._pending_lock:
            self._pending = dict(self._forecasts)

    def _after_fetch(self, snapshot: CatalogSnapshot) -> None:
        with self._pending_lock:
            self._forecasts = MappingProxyType(self._pending)
            self._pending = {}

    def _stage(self, location: ForecastLocation, forecast: Any) -> None:
        with self._pending_lock:
            self._pending[location.id] = forecast

    def fetch_resource(
        self, snapshot: CatalogSnapshot, resource: ForecastLocation, force: bool = False
    ) -> RefreshResult:
        location = resource
        key = location.cache_key(snapshot.issued_at)

        if not force and self.store.exists(key):
            try:
                self._stage(location, self.store.read_json(key))
                logger.debug(f"{location.name}: read {key} from cache")
                return RefreshResult(total=1, success=0, failed=0, skipped=1, duration_ms=0)
            except StorageError as e:
                logger.warning(f"{location.name}: unreadable cache entry, refetching - {e}")

        try:
            forecast = self.client.call_json(self.service, str(location.id))
        except RemoteError as e:
            logger.error(f"Failed to get {snapshot.issued_at} {location.name}: {e}")
            return RefreshResult(total=1, success=0, failed=1, skipped=0, duration_ms=0)

        self._stage(location, forecast)

        try:
            self.store.write_json(key, forecast)
        except StorageError as e:
            logger.error(f"{location.name}: failed to persist {key} - {e}")
            return RefreshResult(total=1, success=0, failed=1, skipped=0, duration_ms=0)

        self._artifact_updated(location, key)
        self._resource_updated(location)
        return RefreshResult(total=1, success=1, failed=0, skipped=0, duration_ms=0)
