"""Forecast image layer catalog.

The layer capabilities document lists the available forecast layers
(rainfall, cloud, temperature, pressure) with their model run time and the
forecast timesteps published for that run. Each timestep is an image tile
fetched through ``ApiClient.call_raw`` and stored as::

    layer/wxfcs/<LayerName>/<DefaultTime>/<timestep>.<format>

Because the run time is part of the path, images already in the store are
current and are not fetched again.
"""

import logging
from datetime import timedelta
from typing import Any, Optional

from wxcache.cache.models import CatalogSnapshot, ForecastLayer
from wxcache.cache.scheduler import RefreshResult
from wxcache.cache.store import CacheKey, StorageError
from wxcache.catalog.base import Catalog, as_list
from wxcache.config import LAYER_INTERVAL_MINUTES
from wxcache.upstream.errors import CapabilityError
from wxcache.utils.io import utcnow

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def parse_layer(obj: dict) -> ForecastLayer:
    """Build a ForecastLayer from one entry of Layers.Layer.

    Non-numeric timesteps are dropped.

    Raises:
        KeyError, TypeError: The entry is missing required fields
        ValueError: LayerName, ImageFormat or defaultTime cannot be used as a
            cache path segment
    """
    service = obj["Service"]
    steps = service["Timesteps"]

    timesteps = tuple(int(v) for v in as_list(steps.get("Timestep")) if _is_number(v))

    layer = ForecastLayer(
        display_name=obj.get("@displayName", service["LayerName"]),
        name=service.get("@name", service["LayerName"]),
        layer_name=service["LayerName"],
        image_format=service["ImageFormat"],
        default_time=steps["@defaultTime"],
        timesteps=timesteps,
    )
    # Every image of the layer must be addressable in the store
    layer.cache_key(0)
    return layer


def parse_capabilities(cap: Any) -> tuple[str, list[ForecastLayer]]:
    """Extract the image URL template and the layers from a capabilities document.

    Malformed layer entries are skipped with a warning.

    Returns:
        Tuple of (base URL template, layers in document order)

    Raises:
        CapabilityError: Layers or BaseUrl is missing
    """
    try:
        layers_obj = cap["Layers"]
        base_url = layers_obj["BaseUrl"]
        if isinstance(base_url, dict):
            base_url = base_url["$"]
    except (KeyError, TypeError) as e:
        raise CapabilityError(f"Layer capabilities missing Layers/BaseUrl: {e}") from e

    if not isinstance(base_url, str):
        raise CapabilityError(f"Layer capabilities BaseUrl is not a string: {base_url!r}")

    layers = []
    for entry in as_list(layers_obj.get("Layer")):
        if not isinstance(entry, dict):
            continue
        try:
            layers.append(parse_layer(entry))
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            logger.warning(f"Skipping malformed layer entry ({e}): {entry}")

    return base_url, layers


def parse_timestep(layer: ForecastLayer, variant: Any) -> Optional[int]:
    """Timestep addressed by variant ('3', 3 or '3.png'), None if not published."""
    text = str(variant)
    suffix = f".{layer.image_format}"
    if text.endswith(suffix):
        text = text[: -len(suffix)]
    try:
        timestep = int(text)
    except ValueError:
        return None
    return timestep if timestep in layer.timesteps else None


class ForecastLayerCatalog(Catalog):
    """Catalog of forecast image layers.

    Example:
        >>> catalog = ForecastLayerCatalog(client, LocalCacheStore(cache_dir))
        >>> catalog.refresh()
        True
        >>> catalog.get_cached_artifact_path("Precipitation_Rate", 3)
        'layer/wxfcs/Precipitation_Rate/2016-03-10T09:00:00/3.png'
    """

    source = "layers"
    service = "layer/wxfcs/all"
    default_interval = timedelta(minutes=LAYER_INTERVAL_MINUTES)

    @property
    def base_url(self) -> Optional[str]:
        return self.snapshot.base_url

    def get_layer(self, layer_name: str) -> Optional[ForecastLayer]:
        return self.get_resource(layer_name)

    def build_snapshot(self) -> CatalogSnapshot:
        cap = self.client.call_json(self.service, "capabilities")
        base_url, layers = parse_capabilities(cap)
        return CatalogSnapshot(
            resources={layer.layer_name: layer for layer in layers},
            reloaded_at=utcnow(),
            base_url=base_url,
        )

    def variant_key(
        self, snapshot: CatalogSnapshot, resource: ForecastLayer, variant: Any
    ) -> Optional[CacheKey]:
        timestep = parse_timestep(resource, variant)
        if timestep is None:
            return None
        return resource.cache_key(timestep)

    def image_paths(self, layer_name: str, cached_only: bool = False) -> dict[int, str]:
        """Storage-relative image path per timestep of a layer.

        Args:
            layer_name: Upstream layer identifier
            cached_only: Only include images already in the store

        Returns:
            Timestep -> path in timestep order; empty for an unknown layer
        """
        layer = self.get_layer(layer_name)
        if layer is None:
            return {}
        paths = {}
        for ts in layer.timesteps:
            key = layer.cache_key(ts)
            if cached_only and not self.store.exists(key):
                continue
            paths[ts] = self.store.relative_path(key)
        return paths

    def fetch_resource(
        self, snapshot: CatalogSnapshot, resource: ForecastLayer, force: bool = False
    ) -> RefreshResult:
        layer = resource
        total = len(layer.timesteps)
        success = 0
        failed = 0
        skipped = 0

        for i, timestep in enumerate(layer.timesteps, 1):
            key = layer.cache_key(timestep)

            if not force and self.store.exists(key):
                logger.debug(f"[{i}/{total}] {layer.layer_name}: {key} already cached")
                skipped += 1
                continue

            url = layer.url(snapshot.base_url, timestep)
            result = self.client.call_raw(url)

            if not result.ok:
                logger.error(f"[{i}/{total}] {layer.layer_name}: fetch failed {result}")
                failed += 1
                continue

            try:
                self.store.write(key, result.content)
            except StorageError as e:
                logger.error(f"[{i}/{total}] {layer.layer_name}: failed to persist {key} - {e}")
                failed += 1
                continue

            self._artifact_updated(layer, key)
            success += 1

        self._resource_updated(layer)

        return RefreshResult(
            total=total, success=success, failed=failed, skipped=skipped, duration_ms=0
        )
