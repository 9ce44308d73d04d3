from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Union

# Closure reasons reported by the transport
CONNECTION_LOST = "connectionLost"
CONNECTION_CLOSED = "connectionClosed"
TIMED_OUT = "timedOut"
RESTART_REQUIRED = "restartRequired"
UNAVAILABLE_SERVICE = "unavailableService"
LOGGED_OUT = "loggedOut"
BAD_SESSION = "badSession"
CONNECTION_REPLACED = "connectionReplaced"

# How the session manager reacts to a closure
REAUTHENTICATE = "reauthenticate"
RECONNECT = "reconnect"
FATAL = "fatal"

_REAUTH_REASONS = {LOGGED_OUT, BAD_SESSION}
_RECONNECT_REASONS = {CONNECTION_LOST, CONNECTION_CLOSED, TIMED_OUT, RESTART_REQUIRED, UNAVAILABLE_SERVICE}


def classify_disconnect(reason: str | None) -> str:
    if reason in _REAUTH_REASONS:
        return REAUTHENTICATE
    if reason in _RECONNECT_REASONS:
        return RECONNECT
    # connectionReplaced and anything we do not recognise
    return FATAL


@dataclass(frozen=True)
class PromptButton:
    id: str
    title: str


@dataclass(frozen=True)
class InteractivePrompt:
    body: str
    buttons: tuple[PromptButton, ...]
    header: str | None = None
    footer: str | None = None

    def as_text(self) -> str:
        lines = [self.body]
        for button in self.buttons:
            lines.append(f"• {button.title} (reply: {button.id})")
        return "\n".join(lines)


@dataclass(frozen=True)
class OutboundMessage:
    target: str
    text: str = ""
    prompt: InteractivePrompt | None = None

    @property
    def content(self) -> Union[str, InteractivePrompt]:
        return self.prompt if self.prompt is not None else self.text

    def as_text(self) -> str:
        return self.prompt.as_text() if self.prompt is not None else self.text


@dataclass(frozen=True)
class PairingChallenge:
    code: str


@dataclass(frozen=True)
class CredentialsUpdated:
    credentials: dict[str, Any]


@dataclass(frozen=True)
class ConnectionOpened:
    pass


@dataclass(frozen=True)
class ConnectionClosed:
    reason: str
    detail: str | None = None


@dataclass(frozen=True)
class MessageReceived:
    message_id: str
    sender: str
    text: str
    from_me: bool = False
    is_group: bool = False
    sender_name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


TransportEvent = Union[PairingChallenge, CredentialsUpdated, ConnectionOpened, ConnectionClosed, MessageReceived]
TransportListener = Callable[[TransportEvent], None]


class TransportHandle(Protocol):
    def subscribe(self, listener: TransportListener) -> Callable[[], None]:
        ...

    async def start(self) -> None:
        ...

    async def send(self, target: str, content: Union[str, InteractivePrompt]) -> str | None:
        ...

    async def close(self) -> None:
        ...


class Transport(Protocol):
    def connect(self, tenant_id: str, credentials: dict[str, Any] | None) -> TransportHandle:
        ...


SENSITIVE_KEYS = {"access_token", "verify_token", "webhook_secret", "authorization", "token", "noise_key", "signed_identity_key"}


def _mask_value(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"****{text[-4:]}"


def sanitize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            return {key: _sanitize_value(key, inner) for key, inner in value.items()}
        if isinstance(value, list):
            return [_sanitize(item) for item in value]
        return value

    def _sanitize_value(key: str, value: Any) -> Any:
        if key.lower() in SENSITIVE_KEYS:
            return _mask_value(value)
        return _sanitize(value)

    return _sanitize(payload)


def safe_json(payload: dict[str, Any]) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError):
        return "{}"
