"""Fan-out of "resource updated" events to downstream consumers."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEvent:
    """Base class for events published by the catalogs."""

    catalog: str


@dataclass(frozen=True)
class ResourceUpdated(CacheEvent):
    """All variants of a resource have been processed by a reload."""

    resource_name: str


@dataclass(frozen=True)
class ArtifactUpdated(CacheEvent):
    """An artifact has been durably written to the cache store.

    Attributes:
        resource_name: Resource the artifact belongs to
        path: Storage-relative path of the artifact
    """

    resource_name: str
    path: str


Handler = Callable[[CacheEvent], None]


class NotificationBus:
    """Synchronous publish/subscribe bus.

    Handlers subscribed to an event class also receive its subclasses, so
    subscribing to CacheEvent receives everything. A handler that raises is
    logged and skipped; it never affects the publisher or other handlers.

    Example:
        >>> bus = NotificationBus()
        >>> unsubscribe = bus.subscribe(ArtifactUpdated, lambda e: print(e.path))
        >>> bus.publish(ArtifactUpdated("layers", "Precipitation_Rate", "layer/wxfcs/..."))
        1
    """

    def __init__(self):
        self._handlers: list[tuple[type, Handler]] = []
        self._lock = threading.Lock()

    def subscribe(
        self, event_type: type, handler: Handler
    ) -> Callable[[], None]:
        """Register handler for events of event_type.

        Returns:
            Callable that removes the subscription
        """
        entry = (event_type, handler)
        with self._lock:
            self._handlers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._handlers:
                    self._handlers.remove(entry)

        return unsubscribe

    def publish(self, event: CacheEvent) -> int:
        """Deliver event to every matching handler.

        Returns:
            Number of handlers that were called
        """
        with self._lock:
            handlers = [h for t, h in self._handlers if isinstance(event, t)]

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Handler {handler!r} failed for {event}: {e}")

        return len(handlers)

    def subscriber_count(self, event_type: Optional[type] = None) -> int:
        """Number of subscriptions, optionally only those for event_type."""
        with self._lock:
            if event_type is None:
                return len(self._handlers)
            return sum(1 for t, _ in self._handlers if t is event_type)
