from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Union

from hotelbot.core.errors import TransportTransient
from hotelbot.whatsapp.base import (
    ConnectionClosed,
    ConnectionOpened,
    CredentialsUpdated,
    InteractivePrompt,
    MessageReceived,
    PairingChallenge,
    TransportEvent,
    TransportListener,
)

logger = logging.getLogger(__name__)


class MockTransportHandle:
    """In-memory connection used by the simulator and the tests.

    ``start`` behaves like a real session: with credentials it opens
    straight away, without them it issues a pairing challenge and waits
    for ``complete_pairing``.
    """

    def __init__(
        self,
        tenant_id: str,
        credentials: dict[str, Any] | None,
        *,
        auto_open: bool = True,
        auto_pair: bool = False,
    ) -> None:
        self.tenant_id = tenant_id
        self.credentials = credentials
        self.auto_open = auto_open
        self.auto_pair = auto_pair
        self.sent: list[tuple[str, Union[str, InteractivePrompt]]] = []
        self.started = False
        self.closed = False
        self.fail_sends = 0
        self._listeners: list[TransportListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: TransportListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def start(self) -> None:
        self.started = True
        if not self.auto_open:
            return
        if self.credentials:
            self.emit(ConnectionOpened())
        else:
            self.emit(PairingChallenge(code=f"mock-pair:{self.tenant_id}:{uuid.uuid4().hex[:8]}"))
            if self.auto_pair:
                self.complete_pairing()

    def complete_pairing(self) -> None:
        self.credentials = {"session": uuid.uuid4().hex, "tenant_id": self.tenant_id}
        self.emit(CredentialsUpdated(credentials=self.credentials))
        self.emit(ConnectionOpened())

    async def send(self, target: str, content: Union[str, InteractivePrompt]) -> str | None:
        if self.closed:
            raise TransportTransient("handle closed")
        if self.fail_sends > 0:
            self.fail_sends -= 1
            raise TransportTransient("simulated send failure")
        self.sent.append((target, content))
        return f"mock-{uuid.uuid4().hex[:12]}"

    async def close(self) -> None:
        self.closed = True

    def emit(self, event: TransportEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def receive(self, sender: str, text: str, *, message_id: str | None = None, **kwargs: Any) -> None:
        self.emit(MessageReceived(message_id=message_id or uuid.uuid4().hex, sender=sender, text=text, **kwargs))

    def drop(self, reason: str) -> None:
        self.emit(ConnectionClosed(reason=reason))

    def texts_to(self, target: str) -> list[str]:
        out = []
        for sent_target, content in self.sent:
            if sent_target != target:
                continue
            out.append(content.as_text() if isinstance(content, InteractivePrompt) else content)
        return out


class MockTransport:
    def __init__(self, *, auto_open: bool = True, auto_pair: bool = False) -> None:
        self.auto_open = auto_open
        self.auto_pair = auto_pair
        self.handles: list[MockTransportHandle] = []

    def connect(self, tenant_id: str, credentials: dict[str, Any] | None) -> MockTransportHandle:
        handle = MockTransportHandle(tenant_id, credentials, auto_open=self.auto_open, auto_pair=self.auto_pair)
        self.handles.append(handle)
        logger.info("mock transport connect", extra={"tenant_id": tenant_id})
        return handle

    def latest(self, tenant_id: str) -> MockTransportHandle | None:
        for handle in reversed(self.handles):
            if handle.tenant_id == tenant_id:
                return handle
        return None
