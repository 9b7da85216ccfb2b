"""Debounced reload scheduling.

An external trigger (cron, or the PeriodicTrigger thread used by the web
app) fires every few minutes, while upstream data only changes every few
hours. RefreshScheduler decouples the two: a reload runs only when the
previous successful one is older than the staleness window.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from wxcache.utils.io import utcnow

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Result of a catalog reload."""

    total: int
    success: int
    failed: int
    skipped: int
    duration_ms: int

    @property
    def success_rate(self) -> float:
        """Percentage of successful fetches."""
        if self.total == 0:
            return 0.0
        return (self.success / self.total) * 100

    def __str__(self) -> str:
        return (
            f"Refresh complete: {self.success}/{self.total} successful, "
            f"{self.failed} failed, {self.skipped} skipped "
            f"({self.duration_ms}ms)"
        )


class RefreshScheduler:
    """Minimum-interval guard around a reload callback.

    ``last_reload`` is only advanced when the reload succeeds, so a failed
    reload is retried on the very next trigger. Reloads are never
    re-entrant: a trigger arriving while a reload runs is skipped.

    Example:
        >>> scheduler = RefreshScheduler(timedelta(hours=1), name="layers")
        >>> scheduler.on_trigger(catalog.reload)
        True
        >>> scheduler.on_trigger(catalog.reload)  # within the hour
        False
    """

    def __init__(
        self,
        min_interval: Union[timedelta, float],
        name: str = "",
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the scheduler.

        Args:
            min_interval: Staleness window, a timedelta or seconds
            name: Label used in log messages
            clock: Time source returning naive UTC datetimes
        """
        if not isinstance(min_interval, timedelta):
            min_interval = timedelta(seconds=min_interval)
        self.min_interval = min_interval
        self.name = name or "reload"
        self._clock = clock
        self._last_reload: Optional[datetime] = None
        self._running = threading.Lock()

    @property
    def last_reload(self) -> Optional[datetime]:
        """Start time of the last successful reload, None if none yet."""
        return self._last_reload

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """Whether a trigger at ``now`` would run the reload."""
        if self._last_reload is None:
            return True
        now = now or self._clock()
        return (now - self._last_reload) > self.min_interval

    def reset(self) -> None:
        """Forget the last reload so the next trigger always runs."""
        self._last_reload = None

    def on_trigger(self, reload_fn: Callable[[], object]) -> bool:
        """Run reload_fn if the staleness window has passed.

        Exceptions from reload_fn are logged here and never propagate.

        Returns:
            True if the reload ran and succeeded
        """
        if not self._running.acquire(blocking=False):
            logger.debug(f"{self.name}: reload already in progress, trigger skipped")
            return False

        try:
            now = self._clock()
            if not self.is_due(now):
                logger.debug(
                    f"{self.name}: last reload at {self._last_reload}, "
                    f"next after {self._last_reload + self.min_interval}"
                )
                return False

            try:
                reload_fn()
            except Exception as e:
                logger.error(f"{self.name}: reload failed - {e}")
                return False

            self._last_reload = now
            return True

        finally:
            self._running.release()


class PeriodicTrigger:
    """Background thread firing a scheduler at a fixed cadence.

    The first trigger fires as soon as the thread starts, so a freshly
    started process loads its catalogs without waiting a full period.
    """

    def __init__(
        self,
        scheduler: RefreshScheduler,
        reload_fn: Callable[[], object],
        interval: float,
    ):
        self.scheduler = scheduler
        self.reload_fn = reload_fn
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"trigger-{self.scheduler.name}", daemon=True
        )
        self._thread.start()
        logger.info(f"Started {self.scheduler.name} trigger every {self.interval}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            self.scheduler.on_trigger(self.reload_fn)
            self._stop.wait(self.interval)
