from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Protocol

from hotelbot.core.config import (
    CONVERSATION_IDLE_TTL_SECONDS,
    DEDUP_CAPACITY,
    DEDUP_MAX_AGE_SECONDS,
    RATING_PROMPT_DELAY_SECONDS,
)
from hotelbot.core.errors import NotificationFailure
from hotelbot.core.request_context import set_message_context
from hotelbot.fsm import replies, states
from hotelbot.fsm.engine import ConversationStateMachine
from hotelbot.schemas.tenants import TenantCreate, TenantProfile
from hotelbot.services.conversation_store import ConversationStore
from hotelbot.services.dedup import MessageDeduplicator
from hotelbot.services.intent_parser import parse
from hotelbot.services.menu_catalog import MenuCatalog
from hotelbot.services.orders import OrderPipeline, OrderStore
from hotelbot.services.rating_prompts import RatingPromptScheduler
from hotelbot.whatsapp.base import MessageReceived, OutboundMessage
from hotelbot.whatsapp.session_manager import SessionLifecycleManager

logger = logging.getLogger(__name__)


class MenuSource(Protocol):
    def current(self, tenant_id: str) -> MenuCatalog:
        ...


class TenantDirectory(Protocol):
    def get(self, tenant_id: str) -> TenantProfile | None:
        ...

    def list_active(self) -> list[TenantProfile]:
        ...

    def upsert(self, payload: TenantCreate) -> TenantProfile:
        ...


class TransportNotifier:
    """Notifier backed by the tenant's live session."""

    def __init__(self, sessions: SessionLifecycleManager) -> None:
        self.sessions = sessions

    async def notify(self, tenant_id: str, target: str, text: str) -> None:
        try:
            await self.sessions.send(tenant_id, target, text)
        except Exception as exc:
            raise NotificationFailure(target, exc) from exc


@dataclass
class HandledMessage:
    status: str
    state: str | None = None
    replies: list[OutboundMessage] = field(default_factory=list)


class ConciergeService:
    """Inbound message flow for every tenant.

    dedup -> guest lock -> parse -> transition -> replies, in that order.
    Replies of one transition are sent one after another while the guest
    lock is still held, so a guest never sees answers out of order.
    """

    def __init__(
        self,
        sessions: SessionLifecycleManager,
        *,
        tenants: TenantDirectory,
        menus: MenuSource,
        orders: OrderStore,
        conversations: ConversationStore | None = None,
        dedup: MessageDeduplicator | None = None,
        rating_delay_seconds: float = RATING_PROMPT_DELAY_SECONDS,
        pipeline: OrderPipeline | None = None,
        machine: ConversationStateMachine | None = None,
    ) -> None:
        self.sessions = sessions
        self.tenants = tenants
        self.menus = menus
        self.conversations = conversations or ConversationStore(idle_ttl_seconds=CONVERSATION_IDLE_TTL_SECONDS)
        self.dedup = dedup or MessageDeduplicator(capacity=DEDUP_CAPACITY, max_age_seconds=DEDUP_MAX_AGE_SECONDS)
        self.pipeline = pipeline or OrderPipeline(orders, TransportNotifier(sessions))
        self.machine = machine or ConversationStateMachine(self.pipeline)
        self.ratings = RatingPromptScheduler(self._send_rating_prompt, delay_seconds=rating_delay_seconds)

        sessions.on_message = self._on_transport_message
        sessions.on_teardown = self._on_tenant_teardown

    async def start(self) -> int:
        tenants = await asyncio.to_thread(self.tenants.list_active)
        logger.info("activating %s hotel sessions", len(tenants))
        for tenant in tenants:
            try:
                await self.sessions.activate(tenant.id)
            except Exception:
                logger.exception("could not activate tenant", extra={"tenant_id": tenant.id})
        return len(tenants)

    async def shutdown(self) -> None:
        await self.ratings.shutdown()
        await self.sessions.shutdown()

    async def register_tenant(self, payload: TenantCreate, *, activate: bool = True) -> TenantProfile:
        profile = await asyncio.to_thread(self.tenants.upsert, payload)
        logger.info("tenant registered", extra={"tenant_id": profile.id})
        if activate:
            await self.sessions.activate(profile.id)
        return profile

    async def activate_tenant(self, tenant_id: str) -> None:
        await self.sessions.activate(tenant_id)

    async def disconnect_tenant(self, tenant_id: str, *, logout: bool = False) -> None:
        await self.sessions.deactivate(tenant_id, logout=logout)

    async def simulate(self, tenant_id: str, sender: str, text: str) -> HandledMessage:
        """Run one guest message through the full flow without sending replies."""
        return await self.handle_inbound(
            tenant_id,
            message_id=f"sim-{uuid.uuid4().hex}",
            sender=sender,
            text=text,
            deliver=False,
        )

    def evict_idle_conversations(self) -> int:
        evicted = self.conversations.evict_idle()
        if evicted:
            logger.info("evicted %s idle conversations", evicted)
        return evicted

    async def handle_inbound(
        self,
        tenant_id: str,
        *,
        message_id: str,
        sender: str,
        text: str,
        deliver: bool = True,
    ) -> HandledMessage:
        set_message_context(tenant_id=tenant_id, guest_id=sender, message_id=message_id)
        if not self.dedup.check_and_add(message_id, tenant_id=tenant_id):
            logger.info("duplicate message ignored")
            return HandledMessage(status="duplicate")

        tenant = await asyncio.to_thread(self.tenants.get, tenant_id)
        if tenant is None:
            logger.warning("message for unknown tenant")
            return HandledMessage(status="unknown_tenant")

        async with self.conversations.session(tenant_id, sender) as conversation:
            try:
                catalog = await asyncio.to_thread(self.menus.current, tenant_id)
                parsed = parse(text, conversation, catalog)
                transition = await self.machine.handle(conversation, parsed, tenant=tenant, catalog=catalog)
            except Exception:
                logger.exception("could not handle guest message")
                outbound = [OutboundMessage(target=sender, text=replies.SOMETHING_WENT_WRONG)]
                if deliver:
                    await self._send_all(tenant_id, outbound)
                return HandledMessage(status="error", state=conversation.state, replies=outbound)

            if transition.cancel_rating:
                self.ratings.cancel(tenant_id, sender)
            if deliver:
                await self._send_all(tenant_id, transition.replies)
            if transition.rating_order_id is not None:
                self.ratings.schedule(tenant_id, sender, transition.rating_order_id)
            return HandledMessage(status="ok", state=conversation.state, replies=transition.replies)

    async def _on_transport_message(self, tenant_id: str, event: MessageReceived) -> None:
        await self.handle_inbound(tenant_id, message_id=event.message_id, sender=event.sender, text=event.text)

    def _on_tenant_teardown(self, tenant_id: str) -> None:
        self.ratings.cancel_tenant(tenant_id)
        self.conversations.drop_tenant(tenant_id)

    async def _send_all(self, tenant_id: str, outbound: list[OutboundMessage]) -> None:
        for message in outbound:
            try:
                await self.sessions.send(tenant_id, message.target, message.content)
            except Exception as exc:
                # State has already advanced; keep going with the rest
                logger.warning("reply to %s not delivered: %s", message.target, exc)

    async def _send_rating_prompt(self, tenant_id: str, guest_id: str, order_id: int) -> None:
        if self.conversations.get(tenant_id, guest_id) is None:
            return
        async with self.conversations.session(tenant_id, guest_id) as conversation:
            if conversation.state != states.AWAITING_RATING or conversation.rating_order_id != order_id:
                logger.info("stale rating prompt skipped", extra={"tenant_id": tenant_id, "order_id": order_id})
                return
            await self._send_all(tenant_id, [OutboundMessage(target=guest_id, prompt=replies.rating_prompt(order_id))])
