"""Background refresh of the DataPoint cache.

Reloads the forecast image layers and the regional text forecasts. Each
catalog only reloads when its data is stale (1 hour for layers, 6 hours for
regional forecasts), so this can be triggered far more often than the data
changes:

    # Every 5 minutes
    */5 * * * * python -m wxcache.cache.refresh

Usage:
    python -m wxcache.cache.refresh             # Refresh all (layers + regional)
    python -m wxcache.cache.refresh --layers    # Refresh image layers only
    python -m wxcache.cache.refresh --regional  # Refresh regional forecasts only
    python -m wxcache.cache.refresh --status    # Show cache status
"""

import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

from wxcache.cache.database import CacheDatabase, DEFAULT_DB_PATH
from wxcache.cache.notify import NotificationBus
from wxcache.cache.scheduler import PeriodicTrigger, RefreshResult, RefreshScheduler
from wxcache.cache.store import CacheStore, LocalCacheStore
from wxcache.catalog.base import Catalog
from wxcache.catalog.layers import ForecastLayerCatalog
from wxcache.catalog.regional import RegionalForecastCatalog
from wxcache.config import DataPointConfig
from wxcache.upstream.client import ApiClient

# Configure logging
logger = logging.getLogger(__name__)


class CacheService:
    """The catalogs of one process and everything they share.

    One ApiClient (and so one RateLimiter), one store and one notification
    bus are shared by both catalogs. Each catalog gets its own scheduler.

    Example:
        >>> service = CacheService(DataPointConfig.from_env())
        >>> service.refresh_all()
        {'layers': RefreshResult(...), 'regional': RefreshResult(...)}
        >>> service.close()
    """

    def __init__(
        self,
        config: DataPointConfig,
        client: Optional[ApiClient] = None,
        store: Optional[CacheStore] = None,
        bus: Optional[NotificationBus] = None,
        db: Optional[CacheDatabase] = None,
    ):
        """Wire up the catalogs.

        Args:
            config: Upstream, rate limit and storage settings
            client: Shared client; built from config if not given
            store: Artifact store; a LocalCacheStore at config.cache_dir if not given
            bus: Notification bus; a new one if not given
            db: Fetch log; opened at config.db_path if not given and configured
        """
        self.config = config
        self.client = client or ApiClient(config)
        self.store = store or LocalCacheStore(config.cache_dir)
        self.bus = bus or NotificationBus()
        if db is None and config.db_path is not None:
            db = CacheDatabase(config.db_path)
        self.db = db

        self.layers = ForecastLayerCatalog(
            self.client,
            self.store,
            bus=self.bus,
            scheduler=RefreshScheduler(
                timedelta(minutes=config.layer_interval_minutes), name="layers"
            ),
            db=self.db,
            max_workers=config.max_workers,
        )
        self.regional = RegionalForecastCatalog(
            self.client,
            self.store,
            bus=self.bus,
            scheduler=RefreshScheduler(
                timedelta(minutes=config.regional_interval_minutes), name="regional"
            ),
            db=self.db,
            max_workers=config.max_workers,
        )
        self._triggers: list[PeriodicTrigger] = []

    @property
    def catalogs(self) -> dict[str, Catalog]:
        return {self.layers.source: self.layers, self.regional.source: self.regional}

    def refresh(self, catalog: Catalog, force: bool = False) -> Optional[RefreshResult]:
        """Reload one catalog if it is stale (or always, with force).

        A failed capability fetch is logged by the scheduler and leaves the
        catalog due, so the next call retries it.

        Returns:
            RefreshResult of the reload, or None if the catalog was fresh or
            the reload failed
        """
        if force:
            catalog.scheduler.reset()

        results: list[RefreshResult] = []
        ran = catalog.scheduler.on_trigger(lambda: results.append(catalog.reload(force=force)))
        if results:
            return results[0]
        if not ran and not catalog.scheduler.is_due():
            logger.info(f"{catalog.source}: cache fresh (last reload {catalog.last_reload})")
        return None

    def refresh_all(self, force: bool = False) -> dict[str, Optional[RefreshResult]]:
        """Refresh both catalogs."""
        return {name: self.refresh(catalog, force=force) for name, catalog in self.catalogs.items()}

    def start_triggers(self, interval: Optional[float] = None) -> None:
        """Start one background trigger per catalog."""
        if self._triggers:
            return
        interval = interval or self.config.trigger_seconds
        for catalog in self.catalogs.values():
            trigger = PeriodicTrigger(catalog.scheduler, catalog.reload, interval)
            trigger.start()
            self._triggers.append(trigger)

    def stop_triggers(self, timeout: Optional[float] = None) -> None:
        for trigger in self._triggers:
            trigger.stop(timeout)
        self._triggers = []

    def close(self) -> None:
        """Stop triggers and release the HTTP session and database."""
        self.stop_triggers()
        self.client.close()
        if self.db is not None:
            self.db.close()


def refresh_layers(service: CacheService, force: bool = False) -> Optional[RefreshResult]:
    """Refresh forecast image layers.

    Args:
        service: CacheService owning the catalogs
        force: Reload and refetch every image even if the cache is fresh

    Returns:
        RefreshResult counting images, or None if the layers were fresh
    """
    logger.info("Starting image layer refresh...")
    return service.refresh(service.layers, force=force)


def refresh_regional(service: CacheService, force: bool = False) -> Optional[RefreshResult]:
    """Refresh regional text forecasts.

    Args:
        service: CacheService owning the catalogs
        force: Reload and refetch every forecast even if the cache is fresh

    Returns:
        RefreshResult counting locations, or None if the forecasts were fresh
    """
    logger.info("Starting regional forecast refresh...")
    return service.refresh(service.regional, force=force)


def refresh_all(
    config: Optional[DataPointConfig] = None,
    force: bool = False,
) -> tuple[Optional[RefreshResult], Optional[RefreshResult]]:
    """Refresh both image layers and regional forecasts.

    This is the main entry point for background refresh.

    Args:
        config: Settings; read from the environment if not given
        force: Reload even if the cache is fresh

    Returns:
        Tuple of (layers RefreshResult, regional RefreshResult); None for a
        catalog that was fresh
    """
    config = config or DataPointConfig.from_env()
    service = CacheService(config)

    try:
        logger.info("=" * 60)
        logger.info("Starting full cache refresh...")
        logger.info(f"Upstream: {config.base_url}")
        logger.info(f"Cache: {config.cache_dir}")
        logger.info("=" * 60)

        layers_result = refresh_layers(service, force=force)
        regional_result = refresh_regional(service, force=force)

        logger.info("=" * 60)
        logger.info("Cache refresh complete:")
        logger.info(f"  Layers:   {layers_result or 'fresh'}")
        logger.info(f"  Regional: {regional_result or 'fresh'}")
        logger.info("=" * 60)

        return layers_result, regional_result

    finally:
        service.close()


def get_cache_status(
    db_path: Optional[Path] = None,
    cache_dir: Optional[Path] = None,
) -> dict:
    """Get current cache status.

    Args:
        db_path: Path to DuckDB file. Uses default if not specified.
        cache_dir: Cache root to count artifacts in, skipped if not given

    Returns:
        Dict with fetch log statistics and recent reloads
    """
    db = CacheDatabase(db_path or DEFAULT_DB_PATH)

    try:
        stats = db.get_stats()
        recent = db.get_recent_fetches(limit=10)

        artifact_count = None
        if cache_dir is not None and Path(cache_dir).is_dir():
            artifact_count = sum(
                1 for p in Path(cache_dir).rglob("*")
                if p.is_file() and not p.name.startswith(".")
            )

        return {
            "db_path": stats["db_path"],
            "cache_dir": str(cache_dir) if cache_dir is not None else None,
            "artifact_count": artifact_count,
            "fetch_count": stats["fetch_count"],
            "error_count": stats["error_count"],
            "last_success": stats["last_success"],
            "recent": [
                {
                    "source": f.source,
                    "timestamp": f.timestamp,
                    "status": f.status,
                    "records_added": f.records_added,
                    "duration_ms": f.duration_ms,
                    "error_message": f.error_message,
                }
                for f in recent
            ],
        }

    finally:
        db.close()


def print_status(status: dict) -> None:
    """Print cache status in human-readable format."""
    print()
    print("=" * 60)
    print("DataPoint Cache Status")
    print("=" * 60)
    print(f"Database: {status['db_path']}")
    if status["cache_dir"]:
        print(f"Cache: {status['cache_dir']}")
    if status["artifact_count"] is not None:
        print(f"Cached artifacts: {status['artifact_count']}")
    print()
    print(f"Reloads logged: {status['fetch_count']} ({status['error_count']} errors)")

    for source in ("layers", "regional"):
        last = status["last_success"].get(source)
        print(f"Last {source} reload: {last if last else 'never'}")

    if status["recent"]:
        print()
        print("Recent reloads:")
        print("-" * 60)

        for entry in status["recent"]:
            line = (
                f"  {entry['timestamp']:%Y-%m-%d %H:%M:%S} {entry['source']:<10} "
                f"{entry['status']:<8} {entry['records_added']:>4} new ({entry['duration_ms']}ms)"
            )
            if entry["error_message"]:
                line += f" - {entry['error_message']}"
            print(line)

    print("=" * 60)


def main():
    """CLI entry point for background refresh."""
    parser = argparse.ArgumentParser(
        description="Refresh the DataPoint forecast cache",
        epilog="""
Examples:
  python -m wxcache.cache.refresh             # Refresh all
  python -m wxcache.cache.refresh --layers    # Image layers only
  python -m wxcache.cache.refresh --status    # Show status

Cron setup (check every 5 minutes, reloads only run when data is stale):
  */5 * * * * cd /path/to/wxcache && WXCACHE_API_KEY=... python -m wxcache.cache.refresh >> /var/log/wxcache-refresh.log 2>&1
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--layers",
        action="store_true",
        help="Refresh forecast image layers only",
    )
    parser.add_argument(
        "--regional",
        action="store_true",
        help="Refresh regional text forecasts only",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Force refresh even if cache is fresh",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show current cache status",
    )
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Cache root directory (default: WXCACHE_CACHE_DIR or data/cache)",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help=f"Database path (default: {DEFAULT_DB_PATH})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress output except errors",
    )

    args = parser.parse_args()

    # Configure logging
    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    overrides = {"db_path": args.db or DEFAULT_DB_PATH}
    if args.cache_dir is not None:
        overrides["cache_dir"] = args.cache_dir

    try:
        config = DataPointConfig.from_env(**overrides)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    # Handle status command
    if args.status:
        status = get_cache_status(config.db_path, config.cache_dir)
        print_status(status)
        return 0

    service = CacheService(config)

    try:
        if args.layers and not args.regional:
            catalogs = [service.layers]
        elif args.regional and not args.layers:
            catalogs = [service.regional]
        else:
            catalogs = [service.layers, service.regional]

        exit_code = 0
        for catalog in catalogs:
            result = service.refresh(catalog, force=args.force)
            if result is None and catalog.scheduler.is_due():
                # Reload was attempted and failed
                exit_code = 1
            elif result is not None and result.failed > 0:
                exit_code = 1

        return exit_code

    except Exception as e:
        logger.error(f"Refresh failed: {e}")
        return 1

    finally:
        service.close()


if __name__ == "__main__":
    sys.exit(main())
