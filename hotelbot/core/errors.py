from __future__ import annotations


class ConciergeError(Exception):
    """Base class for every error the concierge raises on purpose."""


class ParseAmbiguous(ConciergeError):
    """Text could not be classified.

    The parser never raises this; it degrades to the ``unknown`` intent.
    It exists so callers that want a hard failure can signal one.
    """


class IncompleteOrder(ConciergeError):
    """Checkout attempted without a room number or with an empty cart."""

    def __init__(self, missing: str) -> None:
        super().__init__(f"order incomplete: missing {missing}")
        self.missing = missing


class TransportError(ConciergeError):
    pass


class TransportTransient(TransportError):
    """Network-ish failure; retrying with the same credentials may succeed."""


class TransportFatal(TransportError):
    """Needs operator action (re-pair, new token, replaced session)."""


class TransportUnavailable(TransportError):
    """No connected handle for the tenant."""


class PersistenceFailure(ConciergeError):
    """The order store did not accept a write within the retry budget."""


class NotificationFailure(ConciergeError):
    def __init__(self, target: str, cause: Exception | None = None) -> None:
        super().__init__(f"notification to {target} failed: {cause}")
        self.target = target
        self.cause = cause


class OrderNotFound(ConciergeError):
    pass


class InvalidStatusTransition(ConciergeError):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"cannot move order from {current} to {requested}")
        self.current = current
        self.requested = requested
