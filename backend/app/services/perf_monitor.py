"""Performance monitoring utilities for the order costing service."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict

logger = logging.getLogger("pharma-erp.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions.

    Usage::

        @timed
        def my_function():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "function timed",
                extra={
                    "function_name": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for costing metrics.

    Tracks:
    - Cost breakdowns computed (and their cumulative duration when known)
    - Profit-margin overrides saved
    - Profit-margin override save failures
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._breakdowns_computed: int = 0
        self._timed_breakdowns: int = 0
        self._total_breakdown_ms: float = 0.0
        self._margin_overrides_saved: int = 0
        self._margin_override_failures: int = 0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_breakdown(self, duration_ms: float = None) -> None:
        """Call once per compute_order_costs() result that is served."""
        with self._lock:
            self._breakdowns_computed += 1
            if duration_ms is not None:
                self._timed_breakdowns += 1
                self._total_breakdown_ms += duration_ms

    def record_margin_saved(self) -> None:
        with self._lock:
            self._margin_overrides_saved += 1

    def record_margin_failure(self) -> None:
        with self._lock:
            self._margin_override_failures += 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            breakdowns_computed        : int
            avg_breakdown_duration_ms  : float  (0 if none timed)
            margin_overrides_saved     : int
            margin_override_failures   : int
        """
        with self._lock:
            avg = (
                round(self._total_breakdown_ms / self._timed_breakdowns, 3)
                if self._timed_breakdowns > 0
                else 0.0
            )
            return {
                "breakdowns_computed": self._breakdowns_computed,
                "avg_breakdown_duration_ms": avg,
                "margin_overrides_saved": self._margin_overrides_saved,
                "margin_override_failures": self._margin_override_failures,
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._breakdowns_computed = 0
            self._timed_breakdowns = 0
            self._total_breakdown_ms = 0.0
            self._margin_overrides_saved = 0
            self._margin_override_failures = 0


# Module-level singleton, import this instance everywhere else.
tracker = PerformanceTracker()
