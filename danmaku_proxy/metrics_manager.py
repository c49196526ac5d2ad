"""Metrics manager module for the danmaku-proxy service."""

import threading
from typing import Dict
from colorama import Fore, Style, init
from emoji import emojize
from danmaku_proxy.logging_manager import get_logger

# Initialize colorama
init(autoreset=True)


class MetricsManager:
    """
    Collects in-process counters for the proxy and renders them.

    Request handlers run on a thread pool, so every mutation goes through a
    lock. Counters reset only when the process restarts or ``reset`` is called.
    """

    # Standard metrics tracked for every proxy instance
    STANDARD_METRICS = [
        "cache_hits",
        "cache_misses",
        "upstream_fetches",
        "upstream_errors",
        "bypass_redirects",
        "entries_written",
        "entries_evicted",
        "eviction_errors",
        "sweeps",
    ]

    def __init__(self, source_name: str = "proxy") -> None:
        """
        Initialize the MetricsManager.

        Args:
            source_name (str): Label used in the summary header
        """
        self.source_name = source_name
        self.metrics: Dict[str, int] = {metric: 0 for metric in self.STANDARD_METRICS}
        self.logger = get_logger(f"{__name__}.{source_name}")
        self._lock = threading.Lock()

    def increment(self, metric_name: str, value: int = 1) -> None:
        """
        Increment a metric by the specified value.

        Args:
            metric_name (str): Name of the metric to increment
            value (int): Value to increment by (default: 1)
        """
        with self._lock:
            if metric_name not in self.metrics:
                self.metrics[metric_name] = 0
                self.logger.warning(
                    f"Created new metric '{metric_name}' that wasn't in standard metrics",
                    ":warning:"
                )
            self.metrics[metric_name] += value

    def get(self, metric_name: str) -> int:
        """Get the current value of a metric (0 if never recorded)."""
        with self._lock:
            return self.metrics.get(metric_name, 0)

    def reset(self) -> None:
        """Reset all metrics to zero."""
        with self._lock:
            for metric in self.metrics:
                self.metrics[metric] = 0

    def hit_ratio(self) -> float:
        """
        Fraction of cache lookups answered without an upstream fetch.

        Returns:
            float: Ratio in [0, 1]; 0.0 when nothing has been looked up yet
        """
        with self._lock:
            lookups = self.metrics["cache_hits"] + self.metrics["cache_misses"]
            return self.metrics["cache_hits"] / lookups if lookups else 0.0

    def display_metrics(self) -> None:
        """Print collected metrics in a user-friendly format with colors and emojis."""
        snapshot = self.get_all_metrics()

        print(f"\n{Fore.CYAN}{Style.BRIGHT}" +
              emojize(f":rocket: Proxy Summary for {self.source_name} :rocket:", language='alias') +
              f"{Style.RESET_ALL}")

        print(f"{Fore.BLUE}{Style.BRIGHT}Cache Metrics:{Style.RESET_ALL}")
        print(emojize(f":white_check_mark: Cache Hits: {snapshot['cache_hits']}", language='alias'))
        print(emojize(f":x: Cache Misses: {snapshot['cache_misses']}", language='alias'))
        print(emojize(f":floppy_disk: Entries Written: {snapshot['entries_written']}", language='alias'))
        print(f"Hit Ratio: {self.hit_ratio():.1%}")

        print(f"\n{Fore.BLUE}{Style.BRIGHT}Upstream Metrics:{Style.RESET_ALL}")
        print(emojize(f":globe_with_meridians: Upstream Fetches: {snapshot['upstream_fetches']}", language='alias'))
        print(emojize(f":warning: Upstream Errors: {snapshot['upstream_errors']}", language='alias'))
        print(emojize(f":arrow_right: Bypass Redirects: {snapshot['bypass_redirects']}", language='alias'))

        print(f"\n{Fore.BLUE}{Style.BRIGHT}Maintenance Metrics:{Style.RESET_ALL}")
        print(emojize(f":broom: Sweeps: {snapshot['sweeps']}", language='alias'))
        print(emojize(f":wastebasket: Entries Evicted: {snapshot['entries_evicted']}", language='alias'))
        print(emojize(f":warning: Eviction Errors: {snapshot['eviction_errors']}", language='alias'))

        custom_metrics = [m for m in snapshot if m not in self.STANDARD_METRICS]
        if custom_metrics:
            print(f"\n{Fore.BLUE}{Style.BRIGHT}Custom Metrics:{Style.RESET_ALL}")
            for metric in custom_metrics:
                print(f"{metric}: {snapshot[metric]}")

    def get_all_metrics(self) -> Dict[str, int]:
        """
        Get all metrics as a dictionary.

        Returns:
            Dict[str, int]: Copy of all metrics
        """
        with self._lock:
            return self.metrics.copy()
