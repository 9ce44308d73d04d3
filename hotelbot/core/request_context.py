from __future__ import annotations

from contextvars import ContextVar


_TENANT_ID_CTX: ContextVar[str | None] = ContextVar("tenant_id", default=None)
_GUEST_ID_CTX: ContextVar[str | None] = ContextVar("guest_id", default=None)
_MESSAGE_ID_CTX: ContextVar[str | None] = ContextVar("message_id", default=None)


def set_message_context(
    *, tenant_id: str | None = None, guest_id: str | None = None, message_id: str | None = None
) -> None:
    if tenant_id is not None:
        _TENANT_ID_CTX.set(tenant_id)
    if guest_id is not None:
        _GUEST_ID_CTX.set(guest_id)
    if message_id is not None:
        _MESSAGE_ID_CTX.set(message_id)


def get_tenant_id() -> str | None:
    return _TENANT_ID_CTX.get()


def get_guest_id() -> str | None:
    return _GUEST_ID_CTX.get()


def get_message_id() -> str | None:
    return _MESSAGE_ID_CTX.get()


def clear_message_context() -> None:
    _TENANT_ID_CTX.set(None)
    _GUEST_ID_CTX.set(None)
    _MESSAGE_ID_CTX.set(None)
