"""Request-triggered eviction, rate limited so busy traffic does not rescan the cache on every request."""

import threading
import time
from typing import Callable, Optional

import cachetools

from danmaku_proxy.cache import CacheStore
from danmaku_proxy.exceptions import StorageError
from danmaku_proxy.logging_manager import get_logger
from danmaku_proxy.metrics_manager import MetricsManager
from danmaku_proxy.models import EvictionReport

_LAST_CHECK = "last_check"


class MaintenanceScheduler:
    """
    Runs the count-threshold check at most once per interval.

    The check counts entries and, when the count exceeds the store's soft
    threshold, runs an eviction sweep. A TTLCache holding a single marker
    records that a check happened recently; once the marker expires the next
    request performs a new check.
    """

    def __init__(self, store: CacheStore, interval: int = 60,
                 metrics_manager: Optional[MetricsManager] = None,
                 timer: Callable[[], float] = time.monotonic) -> None:
        """
        Initialize the MaintenanceScheduler.

        Args:
            store (CacheStore): Store to inspect and sweep
            interval (int): Minimum seconds between two checks; 0 checks on every call
            metrics_manager (Optional[MetricsManager]): Counter sink
            timer (Callable[[], float]): Monotonic time source for the rate limit
        """
        self.store = store
        self.interval = interval
        self.metrics_manager = metrics_manager or MetricsManager()
        self.logging_manager = get_logger(__name__)
        self._recent = cachetools.TTLCache(maxsize=1, ttl=max(interval, 0), timer=timer)
        self._lock = threading.Lock()

    def _claim(self) -> bool:
        """Reserve the current interval; False if another caller already did."""
        if self.interval <= 0:
            return True
        with self._lock:
            if _LAST_CHECK in self._recent:
                return False
            self._recent[_LAST_CHECK] = True
            return True

    def sweep(self) -> EvictionReport:
        """
        Run an eviction sweep now and record it.

        Raises:
            StorageError: If the cache cannot be listed
        """
        report = self.store.evict_expired()
        self.metrics_manager.increment("sweeps")
        self.metrics_manager.increment("entries_evicted", len(report.removed))
        if report.failed:
            self.metrics_manager.increment("eviction_errors", len(report.failed))
        return report

    def maybe_sweep(self) -> Optional[EvictionReport]:
        """
        Best-effort threshold check for the request path.

        Returns:
            Optional[EvictionReport]: The sweep's report, or None when the check
            was skipped, the store is under its threshold, or the check failed
        """
        if not self._claim():
            return None
        try:
            if not self.store.over_threshold():
                return None
            self.logging_manager.info(
                f"Cache holds more than {self.store.max_entries} entries, sweeping", ":broom:"
            )
            return self.sweep()
        except StorageError as e:
            self.logging_manager.error(f"Cache maintenance check failed: {e}")
            return None
