from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock

RECONNECT = "reconnect"
SEND = "send"


@dataclass
class BackoffDecision:
    delay_seconds: float
    consecutive_failures: int


class TenantBackoffService(ABC):
    @abstractmethod
    def before_attempt(self, *, tenant_id: str, operation: str) -> BackoffDecision:
        """Delay to apply before the next attempt."""

    @abstractmethod
    def register_success(self, *, tenant_id: str, operation: str) -> None:
        """Reset the consecutive failure count."""

    @abstractmethod
    def register_failure(self, *, tenant_id: str, operation: str) -> int:
        """Increment consecutive failures and return the new total."""

    @abstractmethod
    def forget_tenant(self, tenant_id: str) -> None:
        """Drop all counters for a tenant."""


class InMemoryTenantBackoffService(TenantBackoffService):
    def __init__(self, *, threshold: int = 1, max_backoff_seconds: float = 30.0, base_seconds: float = 1.0) -> None:
        self.threshold = threshold
        self.max_backoff_seconds = max_backoff_seconds
        self.base_seconds = base_seconds
        self._failures: dict[tuple[str, str], int] = {}
        self._lock = Lock()

    def before_attempt(self, *, tenant_id: str, operation: str) -> BackoffDecision:
        key = (tenant_id, operation)
        with self._lock:
            failures = self._failures.get(key, 0)
            if failures < self.threshold:
                return BackoffDecision(delay_seconds=0.0, consecutive_failures=failures)

            power = failures - self.threshold
            delay = min(self.base_seconds * (2 ** power), self.max_backoff_seconds)
            return BackoffDecision(delay_seconds=float(delay), consecutive_failures=failures)

    def register_success(self, *, tenant_id: str, operation: str) -> None:
        key = (tenant_id, operation)
        with self._lock:
            self._failures.pop(key, None)

    def register_failure(self, *, tenant_id: str, operation: str) -> int:
        key = (tenant_id, operation)
        with self._lock:
            failures = self._failures.get(key, 0) + 1
            self._failures[key] = failures
            return failures

    def failures(self, *, tenant_id: str, operation: str) -> int:
        with self._lock:
            return self._failures.get((tenant_id, operation), 0)

    def forget_tenant(self, tenant_id: str) -> None:
        with self._lock:
            for key in [key for key in self._failures if key[0] == tenant_id]:
                self._failures.pop(key, None)
