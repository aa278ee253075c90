"""
Token bucket rate limiting.

Each key (client IP) owns a bucket of `capacity` tokens that refills at
`refill_per_sec` tokens per second, never above capacity. A request costs
one token. Bucket state lives in a CounterStore so a single-instance
deployment can use the in-process store and a multi-instance one can plug
in a shared backend.

A bucket left alone for capacity / refill_per_sec seconds is full again,
which is the same as having no bucket, so idle keys are pruned.
"""

import math
import threading
import time
from typing import Optional, Tuple


class CounterStore:
    """Holds (tokens, last_refill_timestamp) per key."""

    def get(self, key: str) -> Optional[Tuple[float, float]]:
        raise NotImplementedError

    def set(self, key: str, tokens: float, updated_at: float) -> None:
        raise NotImplementedError

    def prune(self, updated_before: float) -> int:
        """Drop buckets last touched before the given time. Called under lock()."""
        raise NotImplementedError

    def lock(self, key: str):
        """Context manager serialising read-modify-write on key."""
        raise NotImplementedError


class InMemoryCounterStore(CounterStore):
    """Per-process buckets. Reset on restart and not shared across instances."""

    def __init__(self):
        self._buckets = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._buckets)

    def get(self, key):
        return self._buckets.get(key)

    def set(self, key, tokens, updated_at):
        self._buckets[key] = (tokens, updated_at)

    def prune(self, updated_before):
        stale = [k for k, (_, updated_at) in self._buckets.items() if updated_at < updated_before]
        for key in stale:
            del self._buckets[key]
        return len(stale)

    def lock(self, key):
        return self._lock


class TokenBucketLimiter:

    def __init__(self, capacity: int, refill_per_sec: float,
                 store: CounterStore = None, clock=time.monotonic,
                 prune_interval: float = 60.0):
        self.capacity = capacity
        self.refill_per_sec = refill_per_sec
        self.store = store or InMemoryCounterStore()
        self.clock = clock
        self.prune_interval = prune_interval
        self._last_prune = None

    @property
    def enabled(self) -> bool:
        return self.capacity > 0

    @property
    def full_after(self) -> Optional[float]:
        """Seconds after which an untouched bucket is back to capacity."""
        if self.refill_per_sec <= 0:
            return None
        return self.capacity / self.refill_per_sec

    def _maybe_prune(self, now: float) -> None:
        if self.full_after is None:
            return
        if self._last_prune is None:
            self._last_prune = now
            return
        if now - self._last_prune >= self.prune_interval:
            self.store.prune(now - self.full_after)
            self._last_prune = now

    def consume(self, key: str) -> Tuple[bool, int]:
        """
        Take one token from key's bucket.

        Returns:
            (allowed, retry_after_seconds); retry_after is 0 when allowed
        """
        if not self.enabled:
            return True, 0

        with self.store.lock(key):
            now = self.clock()
            self._maybe_prune(now)
            state = self.store.get(key)
            if state is None:
                tokens = float(self.capacity)
            else:
                tokens, updated_at = state
                elapsed = max(0.0, now - updated_at)
                tokens = min(float(self.capacity), tokens + elapsed * self.refill_per_sec)

            if tokens >= 1:
                self.store.set(key, tokens - 1, now)
                return True, 0

            self.store.set(key, tokens, now)
            if self.refill_per_sec <= 0:
                return False, 60
            return False, max(1, math.ceil((1 - tokens) / self.refill_per_sec))
