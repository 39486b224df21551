from __future__ import annotations
from collections import deque
import threading
from time import time
from typing import Deque, Dict

ROLLING_WINDOW_SECONDS = 15 * 60

_COUNT_FIELDS = {
    "stream_disconnect": "stream_disconnects_15m",
    "stream_errored": "stream_errored_15m",
    "candle_gap": "candle_gaps_15m",
    "bad_message": "bad_messages_15m",
    "decision": "decisions_15m",
    "strategy_error": "strategy_errors_15m",
    "order_submit": "order_submits_15m",
    "order_reject": "order_rejects_15m",
    "leverage_reject": "leverage_rejects_15m",
}

class HealthWindow:
    """Thread-safe rolling event counters, pruned to the last ``duration_seconds``."""

    def __init__(self, duration_seconds: int = ROLLING_WINDOW_SECONDS):
        self._duration_seconds = duration_seconds
        self._buckets: Dict[str, Deque[float]] = {key: deque() for key in _COUNT_FIELDS}
        self._lock = threading.Lock()

    def inc(self, key: str, timestamp: float | None = None) -> None:
        if key not in self._buckets:
            return
        now = timestamp if timestamp is not None else time()
        with self._lock:
            bucket = self._buckets[key]
            bucket.append(now)
            self._prune_bucket(bucket, now)

    def count(self, key: str, now: float | None = None) -> int:
        if key not in self._buckets:
            return 0
        current = now if now is not None else time()
        with self._lock:
            bucket = self._buckets[key]
            self._prune_bucket(bucket, current)
            return len(bucket)

    def snapshot(self, now: float | None = None) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        current = now if now is not None else time()
        with self._lock:
            for key, bucket in self._buckets.items():
                self._prune_bucket(bucket, current)
                counts[_COUNT_FIELDS[key]] = len(bucket)
        return counts

    def _prune_bucket(self, bucket: Deque[float], current: float) -> None:
        cutoff = current - self._duration_seconds
        while bucket and bucket[0] < cutoff:
            bucket.popleft()


__all__ = ["HealthWindow", "ROLLING_WINDOW_SECONDS"]
