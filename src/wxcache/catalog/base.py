"""Shared catalog logic.

A catalog turns an upstream capability document into an immutable
CatalogSnapshot of resources, then fetches each resource's variants into the
CacheStore. Concrete catalogs supply the parsing and per-resource fetch.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Optional

import duckdb

from wxcache.cache.database import CacheDatabase
from wxcache.cache.models import CatalogSnapshot, Resource
from wxcache.cache.notify import ArtifactUpdated, NotificationBus, ResourceUpdated
from wxcache.cache.scheduler import RefreshResult, RefreshScheduler
from wxcache.cache.store import CacheKey, CacheStore
from wxcache.upstream.client import ApiClient

logger = logging.getLogger(__name__)


def as_list(value: Any) -> list:
    """Normalise a JSON value that may be a single item, a list or absent."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class Catalog(ABC):
    """Base class for capability-driven catalogs.

    Readers use ``snapshot`` (or the lookup helpers), which always returns
    the latest fully built snapshot without taking a lock. Reloads build a
    new snapshot and swap the reference.
    """

    #: Name used for notifications, logs and the fetch log
    source: str = ""
    #: Upstream service path
    service: str = ""
    #: Staleness window used when no scheduler is supplied
    default_interval: timedelta = timedelta(hours=1)

    def __init__(
        self,
        client: ApiClient,
        store: CacheStore,
        bus: Optional[NotificationBus] = None,
        scheduler: Optional[RefreshScheduler] = None,
        db: Optional[CacheDatabase] = None,
        max_workers: int = 1,
    ):
        """Initialize the catalog.

        Args:
            client: Rate-limited upstream client
            store: Artifact store
            bus: Bus receiving update events; a private one if not given
            scheduler: Debounce guard for refresh(); built from default_interval if not given
            db: Optional fetch log
            max_workers: Parallel resource fetches during a reload
        """
        self.client = client
        self.store = store
        self.bus = bus or NotificationBus()
        self.scheduler = scheduler or RefreshScheduler(self.default_interval, name=self.source)
        self.db = db
        self.max_workers = max_workers
        self._snapshot = CatalogSnapshot()
        self._reload_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> CatalogSnapshot:
        """Latest fully built snapshot (empty before the first reload)."""
        return self._snapshot

    @property
    def last_reload(self) -> Optional[datetime]:
        return self.scheduler.last_reload

    def list_resource_names(self) -> list[str]:
        return self._snapshot.names()

    def get_resource(self, name: str) -> Optional[Resource]:
        return self._snapshot.resources.get(name)

    def get_cached_artifact_path(self, resource_name: str, variant: Any) -> Optional[str]:
        """Storage-relative path of a fetched artifact.

        Returns:
            Path such as 'layer/wxfcs/<id>/<time>/<leaf>', or None if the
            resource is unknown or the artifact has not been fetched yet
        """
        snapshot = self._snapshot
        resource = snapshot.resources.get(resource_name)
        if resource is None:
            return None
        key = self.variant_key(snapshot, resource, variant)
        if key is None or not self.store.exists(key):
            return None
        return self.store.relative_path(key)

    # -------------------------------------------------------------------------
    # Write side
    # -------------------------------------------------------------------------

    @abstractmethod
    def build_snapshot(self) -> CatalogSnapshot:
        """Fetch the capability document and parse it into a snapshot.

        Raises:
            RemoteError: The capability document could not be fetched
            CapabilityError: The document is unusable
        """

    @abstractmethod
    def variant_key(
        self, snapshot: CatalogSnapshot, resource: Resource, variant: Any
    ) -> Optional[CacheKey]:
        """Cache key of a resource variant, None if the variant does not exist."""

    @abstractmethod
    def fetch_resource(
        self, snapshot: CatalogSnapshot, resource: Resource, force: bool = False
    ) -> RefreshResult:
        """Fetch all variants of one resource into the store.

        Failures of single variants are logged and counted, never raised.
        """

    def _before_fetch(self, snapshot: CatalogSnapshot) -> None:
        """Hook run after the snapshot swap, before resources are fetched."""

    def _after_fetch(self, snapshot: CatalogSnapshot) -> None:
        """Hook run once every resource has been fetched."""

    def reload(self, force: bool = False) -> RefreshResult:
        """Rebuild the snapshot and fetch every resource.

        Args:
            force: Refetch variants even when they are already cached

        Returns:
            RefreshResult counting variants

        Raises:
            RemoteError: Capability document failed; the previous snapshot is kept
            CapabilityError: Capability document unusable; the previous snapshot is kept
        """
        with self._reload_lock:
            start_time = time.time()

            try:
                snapshot = self.build_snapshot()
            except Exception as e:
                self._log_reload("error", 0, start_time, str(e))
                raise

            self._snapshot = snapshot
            resources = list(snapshot.resources.values())
            logger.info(f"{self.source}: snapshot with {len(resources)} resources")

            self._before_fetch(snapshot)
            results = self._fetch_all(snapshot, resources, force)
            self._after_fetch(snapshot)

            result = RefreshResult(
                total=sum(r.total for r in results),
                success=sum(r.success for r in results),
                failed=sum(r.failed for r in results),
                skipped=sum(r.skipped for r in results),
                duration_ms=int((time.time() - start_time) * 1000),
            )

            logger.info(f"{self.source}: {result}")
            self._log_reload("success", result.success, start_time)
            return result

    def refresh(self, force: bool = False) -> bool:
        """Reload through the scheduler's staleness guard.

        Args:
            force: Ignore the staleness window and refetch cached variants

        Returns:
            True if a reload ran and succeeded
        """
        if force:
            self.scheduler.reset()
        return self.scheduler.on_trigger(lambda: self.reload(force=force))

    def _fetch_all(
        self, snapshot: CatalogSnapshot, resources: list, force: bool
    ) -> list[RefreshResult]:
        def fetch_one(resource) -> RefreshResult:
            try:
                return self.fetch_resource(snapshot, resource, force)
            except Exception as e:
                count = len(resource.variants)
                logger.error(f"{self.source}: {resource.identifier} failed - {e}")
                return RefreshResult(total=count, success=0, failed=count, skipped=0, duration_ms=0)

        if self.max_workers > 1 and len(resources) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                return list(executor.map(fetch_one, resources))
        return [fetch_one(r) for r in resources]

    def resource_name(self, resource: Resource) -> str:
        """Snapshot key of resource."""
        return resource.identifier

    def _artifact_updated(self, resource: Resource, key: CacheKey) -> None:
        self.bus.publish(
            ArtifactUpdated(self.source, self.resource_name(resource), self.store.relative_path(key))
        )

    def _resource_updated(self, resource: Resource) -> None:
        self.bus.publish(ResourceUpdated(self.source, self.resource_name(resource)))

    def _log_reload(
        self,
        status: str,
        records_added: int,
        start_time: float,
        error_message: Optional[str] = None,
    ) -> None:
        if self.db is None:
            return
        duration_ms = int((time.time() - start_time) * 1000)
        try:
            self.db.log_fetch(
                source=self.source,
                status=status,
                records_added=records_added,
                duration_ms=duration_ms,
                error_message=error_message[:500] if error_message else None,  # Truncate long errors
            )
        except duckdb.Error as e:
            logger.warning(f"{self.source}: could not write fetch log - {e}")
