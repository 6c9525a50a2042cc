"""In-memory KPI tracking for lock activity."""

from __future__ import annotations

import time
from collections import deque
from statistics import median
from threading import Lock
from typing import Any

ERROR_WINDOW_SEC = 60.0

_DEFAULT_COUNTERS = (
    "acquired_total",
    "released_total",
    "timeouts_total",
    "wakeups_total",
    "watch_skips_total",
)


class KPIStore:
    """Thread-safe store for lightweight KPIs."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[str, int] = {}
        self._errors: deque[float] = deque()
        self._wait_ms: deque[float] = deque(maxlen=50)
        self._held = 0
        self._initialize_default_counters()

    def _initialize_default_counters(self) -> None:
        for key in _DEFAULT_COUNTERS:
            self._counters.setdefault(key, 0)

    def _prune(self, container: deque[float], now: float, window: float) -> None:
        while container and now - container[0] > window:
            container.popleft()

    def record_error(self, now: float | None = None) -> None:
        now_ts = now or time.time()
        with self._lock:
            self._errors.append(now_ts)
            self._prune(self._errors, now_ts, ERROR_WINDOW_SEC)

    def record_acquired(self, wait_ms: float) -> None:
        """Count a granted lock and keep its wait time sample."""

        with self._lock:
            self._counters["acquired_total"] += 1
            self._held += 1
            if wait_ms >= 0:
                self._wait_ms.append(float(wait_ms))

    def record_released(self) -> None:
        with self._lock:
            self._counters["released_total"] += 1
            self._held = max(0, self._held - 1)

    def _wait_median(self) -> float | None:
        if not self._wait_ms:
            return None
        return float(median(self._wait_ms))

    def snapshot(self) -> dict[str, Any]:
        now_ts = time.time()
        with self._lock:
            self._prune(self._errors, now_ts, ERROR_WINDOW_SEC)
            return {
                "held": self._held,
                "errors_1m": len(self._errors),
                "acquire_wait_ms_median": self._wait_median(),
                "counters": dict(self._counters),
            }

    def reset(self) -> None:
        """Reset stored data (test helper)."""

        with self._lock:
            self._errors.clear()
            self._wait_ms.clear()
            self._held = 0
            self._counters.clear()
            self._initialize_default_counters()

    def increment_counter(self, key: str, amount: int = 1) -> None:
        """Increment a named counter used for diagnostics."""

        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def get_counter(self, key: str) -> int:
        """Return a counter value (defaults to zero)."""

        with self._lock:
            return self._counters.get(key, 0)


METRICS = KPIStore()


def snapshot_kpis() -> dict[str, Any]:
    """Return a snapshot of current KPI values."""

    return METRICS.snapshot()
