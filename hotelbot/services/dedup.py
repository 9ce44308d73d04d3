from __future__ import annotations

import time
from collections import OrderedDict
from threading import Lock
from typing import Callable


class MessageDeduplicator:
    """Bounded FIFO window of recently handled message ids.

    ``check_and_add`` is the only entry point used on the hot path: it
    answers "is this new?" and records the id under one lock, so two
    concurrent deliveries of the same id cannot both be admitted.
    """

    def __init__(
        self,
        *,
        capacity: int = 1000,
        max_age_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.max_age_seconds = max_age_seconds
        self._clock = clock
        self._seen: OrderedDict[tuple[str, str], float] = OrderedDict()
        self._lock = Lock()

    def check_and_add(self, message_id: str, *, tenant_id: str = "") -> bool:
        if not message_id:
            # Nothing to key on; let it through
            return True
        key = (tenant_id, message_id)
        with self._lock:
            now = self._clock()
            self._expire(now)
            if key in self._seen:
                return False
            self._seen[key] = now
            while len(self._seen) > self.capacity:
                self._seen.popitem(last=False)
            return True

    def seen(self, message_id: str, *, tenant_id: str = "") -> bool:
        with self._lock:
            self._expire(self._clock())
            return (tenant_id, message_id) in self._seen

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def _expire(self, now: float) -> None:
        if self.max_age_seconds <= 0:
            return
        cutoff = now - self.max_age_seconds
        while self._seen:
            seen_at = next(iter(self._seen.values()))
            if seen_at > cutoff:
                break
            self._seen.popitem(last=False)
