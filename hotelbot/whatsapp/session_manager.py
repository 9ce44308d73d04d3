from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine, Protocol, Union

from hotelbot.core.config import MAX_RECONNECT_ATTEMPTS, SEND_CONNECT_WAIT_SECONDS, SEND_MAX_RETRIES
from hotelbot.core.errors import TransportTransient, TransportUnavailable
from hotelbot.core.request_context import set_message_context
from hotelbot.schemas.tenants import SessionStatus
from hotelbot.services.pairing_display import PairingDisplay, render_ascii_qr
from hotelbot.services.tenant_backoff import RECONNECT, SEND, InMemoryTenantBackoffService
from hotelbot.whatsapp.base import (
    CONNECTION_LOST,
    FATAL,
    REAUTHENTICATE,
    ConnectionClosed,
    ConnectionOpened,
    CredentialsUpdated,
    InteractivePrompt,
    MessageReceived,
    PairingChallenge,
    Transport,
    TransportEvent,
    TransportHandle,
    classify_disconnect,
)

logger = logging.getLogger(__name__)

DISCONNECTED = "disconnected"
CONNECTING = "connecting"
CONNECTED = "connected"
REAUTHENTICATING = "reauthenticating"
DESTROYING = "destroying"

MessageHandler = Callable[[str, MessageReceived], Awaitable[None]]
TeardownHook = Callable[[str], None]


class CredentialStore(Protocol):
    def load(self, tenant_id: str) -> dict[str, Any] | None:
        ...

    def save(self, tenant_id: str, credentials: dict[str, Any]) -> None:
        ...

    def clear(self, tenant_id: str) -> None:
        ...


@dataclass
class TenantSession:
    tenant_id: str
    status: str = DISCONNECTED
    handle: TransportHandle | None = None
    unsubscribe: Callable[[], None] | None = None
    generation: int = 0
    pairing_challenge: str | None = None
    awaiting_pairing: bool = False
    last_error: str | None = None
    fatal: bool = False
    reconnect_attempts: int = 0
    opened: asyncio.Event = field(default_factory=asyncio.Event)


class SessionLifecycleManager:
    """Owns the single live transport handle of every tenant.

    Lifecycle operations for one tenant are serialized by a per-tenant
    lock. Every handle is tagged with a generation number; events from a
    handle that has since been replaced are dropped. Listeners are always
    detached before a handle is closed, and a handle is always closed
    before its replacement is created.
    """

    def __init__(
        self,
        transport: Transport,
        credentials: CredentialStore,
        *,
        display: PairingDisplay | None = None,
        on_message: MessageHandler | None = None,
        on_teardown: TeardownHook | None = None,
        backoff: InMemoryTenantBackoffService | None = None,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        send_max_retries: int = SEND_MAX_RETRIES,
        send_connect_wait_seconds: float = SEND_CONNECT_WAIT_SECONDS,
    ) -> None:
        self.transport = transport
        self.credentials = credentials
        self.display = display or PairingDisplay()
        self.on_message = on_message
        self.on_teardown = on_teardown
        self.backoff = backoff or InMemoryTenantBackoffService()
        self.max_reconnect_attempts = max_reconnect_attempts
        self.send_max_retries = max(1, send_max_retries)
        self.send_connect_wait_seconds = send_connect_wait_seconds
        self._sessions: dict[str, TenantSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task] = set()
        self._reconnects: dict[str, asyncio.Task] = {}

    # -- public API --------------------------------------------------------

    async def activate(self, tenant_id: str) -> TenantSession:
        async with self._lock_for(tenant_id):
            session = self._sessions.setdefault(tenant_id, TenantSession(tenant_id=tenant_id))
            if session.status == CONNECTED and session.handle is not None:
                return session
            self._cancel_reconnect(tenant_id)
            session.fatal = False
            session.last_error = None
            session.reconnect_attempts = 0
            self.backoff.register_success(tenant_id=tenant_id, operation=RECONNECT)
            await self._open(session, use_credentials=True)
            return session

    async def deactivate(self, tenant_id: str, *, logout: bool = False) -> None:
        async with self._lock_for(tenant_id):
            self._cancel_reconnect(tenant_id)
            session = self._sessions.get(tenant_id)
            if session is not None:
                session.status = DESTROYING
                await self._teardown(session)
                session.status = DISCONNECTED
                session.pairing_challenge = None
                session.awaiting_pairing = False
                session.reconnect_attempts = 0
            if logout:
                await asyncio.to_thread(self.credentials.clear, tenant_id)
            self.display.clear_pairing_challenge(tenant_id)
            self.display.report_status(tenant_id, "logged out" if logout else DISCONNECTED)
            self.backoff.forget_tenant(tenant_id)
        logger.info("tenant session deactivated", extra={"tenant_id": tenant_id, "status": DISCONNECTED})
        if self.on_teardown is not None:
            self.on_teardown(tenant_id)

    async def send(self, tenant_id: str, target: str, content: Union[str, InteractivePrompt]) -> str | None:
        last_error: Exception | None = None
        for attempt in range(1, self.send_max_retries + 1):
            session = self._sessions.get(tenant_id)
            if session is not None and session.status == CONNECTING and not session.awaiting_pairing:
                await self._wait_until_open(session)
            if session is None or session.status != CONNECTED or session.handle is None:
                raise TransportUnavailable(f"tenant {tenant_id} has no connected session")

            decision = self.backoff.before_attempt(tenant_id=tenant_id, operation=SEND)
            if decision.delay_seconds > 0:
                logger.warning(
                    "send backoff activated",
                    extra={
                        "tenant_id": tenant_id,
                        "delay_seconds": decision.delay_seconds,
                        "consecutive_failures": decision.consecutive_failures,
                    },
                )
                await asyncio.sleep(decision.delay_seconds)

            try:
                message_id = await session.handle.send(target, content)
            except TransportTransient as exc:
                last_error = exc
                self.backoff.register_failure(tenant_id=tenant_id, operation=SEND)
                logger.warning("send attempt %s failed: %s", attempt, exc, extra={"tenant_id": tenant_id})
                continue
            self.backoff.register_success(tenant_id=tenant_id, operation=SEND)
            return message_id
        raise TransportTransient(f"send failed after {self.send_max_retries} attempts") from last_error

    def get(self, tenant_id: str) -> TenantSession | None:
        return self._sessions.get(tenant_id)

    def status(self, tenant_id: str) -> SessionStatus:
        session = self._sessions.get(tenant_id)
        if session is None:
            return SessionStatus(tenant_id=tenant_id, status=DISCONNECTED)
        challenge = session.pairing_challenge
        return SessionStatus(
            tenant_id=tenant_id,
            status=session.status,
            fatal=session.fatal,
            last_error=session.last_error,
            pairing_challenge=challenge,
            pairing_qr=render_ascii_qr(challenge) if challenge else None,
            reconnect_attempts=session.reconnect_attempts,
        )

    async def wait_idle(self) -> None:
        """Wait for dispatched messages and scheduled reconnects to settle."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        for tenant_id in list(self._sessions):
            async with self._lock_for(tenant_id):
                self._cancel_reconnect(tenant_id)
                session = self._sessions[tenant_id]
                session.status = DESTROYING
                await self._teardown(session)
                session.status = DISCONNECTED
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -- internals ---------------------------------------------------------

    def _lock_for(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        return lock

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_reconnect(self, tenant_id: str) -> None:
        task = self._reconnects.pop(tenant_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _wait_until_open(self, session: TenantSession) -> None:
        logger.info("send waiting for reconnect", extra={"tenant_id": session.tenant_id})
        try:
            await asyncio.wait_for(session.opened.wait(), timeout=self.send_connect_wait_seconds)
        except asyncio.TimeoutError:
            logger.warning("session still reconnecting, giving up on send", extra={"tenant_id": session.tenant_id})

    async def _teardown(self, session: TenantSession) -> None:
        handle = session.handle
        unsubscribe = session.unsubscribe
        session.opened.clear()
        session.handle = None
        session.unsubscribe = None
        session.generation += 1
        if unsubscribe is not None:
            unsubscribe()
        if handle is not None:
            try:
                await handle.close()
            except Exception:
                logger.exception("error closing transport handle", extra={"tenant_id": session.tenant_id})

    async def _open(self, session: TenantSession, *, use_credentials: bool) -> None:
        tenant_id = session.tenant_id
        await self._teardown(session)

        credentials = None
        if use_credentials:
            credentials = await asyncio.to_thread(self.credentials.load, tenant_id)

        session.generation += 1
        generation = session.generation
        handle = self.transport.connect(tenant_id, credentials)
        session.handle = handle
        session.unsubscribe = handle.subscribe(lambda event: self._on_event(tenant_id, generation, event))
        session.awaiting_pairing = not credentials
        if session.status != REAUTHENTICATING:
            session.status = CONNECTING
        logger.info(
            "opening transport handle generation=%s",
            generation,
            extra={"tenant_id": tenant_id, "status": session.status},
        )

        try:
            await handle.start()
        except Exception as exc:
            logger.exception("transport start failed", extra={"tenant_id": tenant_id})
            self._on_event(tenant_id, generation, ConnectionClosed(reason=CONNECTION_LOST, detail=str(exc)))

    def _on_event(self, tenant_id: str, generation: int, event: TransportEvent) -> None:
        session = self._sessions.get(tenant_id)
        if session is None or session.generation != generation:
            logger.debug("dropping event from stale handle", extra={"tenant_id": tenant_id})
            return

        if isinstance(event, MessageReceived):
            self._on_message(session, event)
        elif isinstance(event, PairingChallenge):
            if session.status == CONNECTED:
                return
            session.pairing_challenge = event.code
            self.display.show_pairing_challenge(tenant_id, event.code)
        elif isinstance(event, CredentialsUpdated):
            session.awaiting_pairing = False
            self._spawn(self._save_credentials(tenant_id, generation, event.credentials))
        elif isinstance(event, ConnectionOpened):
            session.status = CONNECTED
            session.fatal = False
            session.last_error = None
            session.reconnect_attempts = 0
            session.pairing_challenge = None
            self.display.clear_pairing_challenge(tenant_id)
            self.backoff.register_success(tenant_id=tenant_id, operation=RECONNECT)
            self.display.report_status(tenant_id, CONNECTED)
            session.opened.set()
        elif isinstance(event, ConnectionClosed):
            self._spawn(self._handle_closed(tenant_id, generation, event))

    def _on_message(self, session: TenantSession, event: MessageReceived) -> None:
        if event.from_me or event.is_group or not (event.text or "").strip():
            return
        if session.status != CONNECTED:
            logger.info("ignoring message while not connected", extra={"tenant_id": session.tenant_id})
            return
        if self.on_message is not None:
            self._spawn(self._dispatch(session.tenant_id, event))

    async def _dispatch(self, tenant_id: str, event: MessageReceived) -> None:
        set_message_context(tenant_id=tenant_id, guest_id=event.sender, message_id=event.message_id)
        try:
            await self.on_message(tenant_id, event)
        except Exception:
            logger.exception("message handler failed", extra={"tenant_id": tenant_id})

    async def _save_credentials(self, tenant_id: str, generation: int, credentials: dict[str, Any]) -> None:
        session = self._sessions.get(tenant_id)
        if session is None or session.generation != generation:
            return
        try:
            await asyncio.to_thread(self.credentials.save, tenant_id, credentials)
        except Exception:
            logger.exception("could not persist credentials", extra={"tenant_id": tenant_id})

    async def _handle_closed(self, tenant_id: str, generation: int, event: ConnectionClosed) -> None:
        async with self._lock_for(tenant_id):
            session = self._sessions.get(tenant_id)
            if session is None or session.generation != generation or session.status == DESTROYING:
                return

            action = classify_disconnect(event.reason)
            session.last_error = f"{event.reason}: {event.detail}" if event.detail else event.reason
            logger.warning(
                "connection closed action=%s",
                action,
                extra={"tenant_id": tenant_id, "reason": event.reason},
            )

            if action == REAUTHENTICATE and session.awaiting_pairing:
                # Already running without credentials; another attempt would loop
                await self._fail(session, "authentication keeps failing, operator action required")
            elif action == REAUTHENTICATE:
                await asyncio.to_thread(self.credentials.clear, tenant_id)
                session.status = REAUTHENTICATING
                self.display.report_status(
                    tenant_id, REAUTHENTICATING, fatal=True, detail="session logged out, scan the new QR code"
                )
                await self._open(session, use_credentials=False)
            elif action == FATAL:
                await self._fail(session, f"connection closed: {event.reason}")
            else:
                await self._schedule_reconnect(session)

    async def _schedule_reconnect(self, session: TenantSession) -> None:
        tenant_id = session.tenant_id
        failures = self.backoff.register_failure(tenant_id=tenant_id, operation=RECONNECT)
        if failures > self.max_reconnect_attempts:
            await self._fail(session, f"gave up after {self.max_reconnect_attempts} reconnect attempts")
            return

        decision = self.backoff.before_attempt(tenant_id=tenant_id, operation=RECONNECT)
        await self._teardown(session)
        session.status = CONNECTING
        session.reconnect_attempts = failures
        self.display.report_status(tenant_id, "reconnecting", detail=f"attempt {failures}")
        self._reconnects[tenant_id] = self._spawn(
            self._reconnect_later(tenant_id, session.generation, decision.delay_seconds)
        )

    async def _reconnect_later(self, tenant_id: str, generation: int, delay_seconds: float) -> None:
        if delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        async with self._lock_for(tenant_id):
            if self._reconnects.get(tenant_id) is asyncio.current_task():
                self._reconnects.pop(tenant_id, None)
            session = self._sessions.get(tenant_id)
            if session is None or session.generation != generation or session.status != CONNECTING:
                return
            await self._open(session, use_credentials=True)

    async def _fail(self, session: TenantSession, detail: str) -> None:
        await self._teardown(session)
        session.status = DISCONNECTED
        session.fatal = True
        session.awaiting_pairing = False
        session.last_error = detail
        self.display.report_status(session.tenant_id, DISCONNECTED, fatal=True, detail=detail)
