from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from hotelbot.core.config import AUTO_CONFIRM_ON_ROOM
from hotelbot.core.errors import IncompleteOrder, PersistenceFailure
from hotelbot.fsm import replies, states
from hotelbot.schemas.orders import Order
from hotelbot.schemas.tenants import TenantProfile
from hotelbot.services import intent_parser as ip
from hotelbot.services.conversation_store import GuestConversation
from hotelbot.services.intent_parser import ParseResult
from hotelbot.services.menu_catalog import MenuCatalog
from hotelbot.services.orders import OrderPipeline
from hotelbot.whatsapp.base import InteractivePrompt, OutboundMessage

logger = logging.getLogger(__name__)


@dataclass
class Transition:
    """Everything a single guest message produced.

    ``replies`` go out in order on the tenant's connection. The caller
    owns the rating timer: it schedules one for ``rating_order_id`` and
    cancels any pending one when ``cancel_rating`` is set.
    """

    replies: list[OutboundMessage] = field(default_factory=list)
    rating_order_id: int | None = None
    cancel_rating: bool = False
    order: Order | None = None


@dataclass
class _Turn:
    conversation: GuestConversation
    parsed: ParseResult
    tenant: TenantProfile
    catalog: MenuCatalog
    result: Transition

    def say(self, text: str) -> None:
        self.result.replies.append(OutboundMessage(target=self.conversation.guest_id, text=text))

    def prompt(self, prompt: InteractivePrompt) -> None:
        self.result.replies.append(OutboundMessage(target=self.conversation.guest_id, prompt=prompt))

    def tell_admin(self, text: str) -> None:
        self.result.replies.append(OutboundMessage(target=self.tenant.admin_address, text=text))


class ConversationStateMachine:
    """Deterministic per-guest dialogue: room capture, cart, confirmation, rating.

    ``handle`` must be called with the guest's conversation lock held. It
    mutates the conversation and returns the messages to send; the only
    side effect it triggers itself is the order pipeline on confirmation.
    """

    def __init__(self, pipeline: OrderPipeline, *, auto_confirm_on_room: bool = AUTO_CONFIRM_ON_ROOM) -> None:
        self.pipeline = pipeline
        self.auto_confirm_on_room = auto_confirm_on_room
        self._handlers: dict[str, Callable[[_Turn], Awaitable[None]]] = {
            states.INITIAL: self._on_initial,
            states.AWAITING_ROOM: self._on_awaiting_room,
            states.MAIN_MENU: self._on_browsing,
            states.ORDERING: self._on_browsing,
            states.AWAITING_CONFIRMATION: self._on_awaiting_confirmation,
            states.AWAITING_RATING: self._on_awaiting_rating,
        }

    async def handle(
        self,
        conversation: GuestConversation,
        parsed: ParseResult,
        *,
        tenant: TenantProfile,
        catalog: MenuCatalog,
    ) -> Transition:
        turn = _Turn(conversation=conversation, parsed=parsed, tenant=tenant, catalog=catalog, result=Transition())
        previous = conversation.state

        if parsed.has(ip.RESET):
            conversation.reset()
            turn.result.cancel_rating = True
            turn.say(replies.RESET)
        elif parsed.has(ip.HELP) and not parsed.items:
            self._help(turn)
        elif parsed.has(ip.STATUS) and not parsed.items:
            await self._status(turn)
        else:
            handler = self._handlers.get(conversation.state, self._on_initial)
            await handler(turn)

        if conversation.state != previous:
            logger.info(
                "conversation %s -> %s",
                previous,
                conversation.state,
                extra={"tenant_id": tenant.id, "guest_id": conversation.guest_id},
            )
        return turn.result

    # -- global commands ---------------------------------------------------

    def _help(self, turn: _Turn) -> None:
        topic = turn.parsed.topic
        text = replies.help_topic(topic, turn.tenant.reception_extension) if topic else None
        if text:
            turn.say(text)
        else:
            turn.prompt(replies.help_prompt())

    async def _status(self, turn: _Turn) -> None:
        order_id = turn.conversation.last_order_id
        if order_id is None:
            turn.say(replies.ORDER_NOT_FOUND)
            return
        try:
            order = await self.pipeline.get_order(turn.tenant.id, order_id)
        except PersistenceFailure:
            turn.say(replies.STATUS_UNAVAILABLE)
            return
        turn.say(replies.order_status(order) if order else replies.ORDER_NOT_FOUND)

    # -- states ------------------------------------------------------------

    def _needs_room(self, turn: _Turn) -> bool:
        return turn.tenant.require_room and not turn.conversation.room_number

    async def _on_initial(self, turn: _Turn) -> None:
        conversation = turn.conversation
        parsed = turn.parsed
        next_state = states.AWAITING_ROOM if self._needs_room(turn) else states.MAIN_MENU

        chit_chat = parsed.intent in (ip.GREETING, ip.THANKS, ip.UNKNOWN)
        if chit_chat and not parsed.items and not parsed.room_number:
            conversation.state = next_state
            if parsed.intent == ip.GREETING:
                turn.say(replies.welcome(turn.tenant.name))
            else:
                turn.say(replies.fallback(turn.tenant.name))
            if next_state == states.AWAITING_ROOM:
                turn.say(replies.ASK_ROOM)
            return

        conversation.state = next_state
        await self._handlers[next_state](turn)

    async def _on_awaiting_room(self, turn: _Turn) -> None:
        conversation = turn.conversation
        parsed = turn.parsed
        added = self._add_items(turn)

        if parsed.room_number:
            conversation.room_number = parsed.room_number
            if self.auto_confirm_on_room and conversation.cart:
                turn.say(f"✅ Room {parsed.room_number} noted.")
                self._checkout(turn)
                return
            if added:
                conversation.state = states.ORDERING
                turn.say(f"✅ Room {parsed.room_number} noted.")
                turn.say(replies.cart_update(added, conversation))
                if parsed.has(ip.CHECKOUT):
                    self._checkout(turn)
                return
            conversation.state = states.ORDERING if conversation.cart else states.MAIN_MENU
            turn.say(replies.room_noted(parsed.room_number, has_cart=bool(conversation.cart)))
            return

        if parsed.intent == ip.MENU:
            self._send_menu(turn)
            turn.say(replies.ASK_ROOM)
            return
        if added:
            turn.say(replies.cart_waiting_for_room(added))
            return
        if parsed.intent == ip.ORDER:
            turn.say(replies.ASK_ROOM_FOR_ORDER)
            return
        turn.say(replies.ASK_ROOM)

    async def _on_browsing(self, turn: _Turn) -> None:
        conversation = turn.conversation
        parsed = turn.parsed

        if parsed.intent == ip.PROVIDE_ROOM_ONLY and parsed.room_number:
            conversation.room_number = parsed.room_number
            if conversation.cart and self.auto_confirm_on_room:
                self._checkout(turn)
            else:
                turn.say(replies.room_noted(parsed.room_number, has_cart=bool(conversation.cart)))
            return

        if parsed.room_number:
            conversation.room_number = parsed.room_number

        browsing = conversation.state == states.MAIN_MENU
        added = self._add_items(turn)
        if added:
            conversation.state = states.ORDERING
            if browsing and conversation.room_number:
                # Ordering straight from the menu with a known room skips to the summary
                self._checkout(turn)
                return
            turn.say(replies.cart_update(added, conversation))
            if parsed.has(ip.CHECKOUT):
                self._checkout(turn)
            return

        if parsed.intent == ip.MENU:
            conversation.state = states.ORDERING
            self._send_menu(turn)
            return
        if parsed.has(ip.CHECKOUT):
            self._checkout(turn)
            return
        if parsed.intent == ip.ORDER:
            turn.say(replies.ASK_ITEMS)
        elif parsed.intent == ip.GREETING:
            turn.say(replies.welcome(turn.tenant.name))
        elif parsed.intent == ip.THANKS:
            turn.say(replies.YOU_ARE_WELCOME)
        else:
            turn.say(replies.fallback(turn.tenant.name))

    async def _on_awaiting_confirmation(self, turn: _Turn) -> None:
        conversation = turn.conversation
        parsed = turn.parsed

        if parsed.has(ip.AFFIRM):
            await self._place_order(turn)
            return
        if parsed.has(ip.NEGATE):
            conversation.clear_cart()
            conversation.state = states.MAIN_MENU
            turn.say(replies.ORDER_CANCELLED)
            return
        turn.say(replies.CONFIRMATION_REPROMPT)

    async def _on_awaiting_rating(self, turn: _Turn) -> None:
        conversation = turn.conversation
        rating = turn.parsed.number
        if rating is None or not 1 <= rating <= 5:
            turn.say(replies.RATING_REPROMPT)
            return

        order_id = conversation.rating_order_id
        conversation.rating_order_id = None
        conversation.state = states.MAIN_MENU
        turn.result.cancel_rating = True
        turn.say(replies.rating_thanks(rating))
        if order_id is None:
            return
        try:
            await self.pipeline.record_rating(turn.tenant, order_id, rating)
        except PersistenceFailure:
            logger.warning("could not store rating", extra={"tenant_id": turn.tenant.id, "order_id": order_id})
        turn.tell_admin(replies.rating_forward(conversation.guest_id, order_id, rating))

    # -- helpers -----------------------------------------------------------

    def _add_items(self, turn: _Turn) -> list[str]:
        added = []
        for parsed_item in turn.parsed.items:
            turn.conversation.add_item(parsed_item.item, parsed_item.quantity)
            added.append(f"{parsed_item.quantity} x {parsed_item.item.name}")
        return added

    def _send_menu(self, turn: _Turn) -> None:
        category_key = turn.parsed.category
        if category_key:
            category = turn.catalog.category(category_key)
            turn.say(replies.category_menu(category) if category else replies.UNKNOWN_CATEGORY)
            return
        turn.say(replies.full_menu(turn.tenant.name, turn.catalog))
        if turn.catalog.categories:
            turn.prompt(replies.category_picker(turn.catalog))

    def _checkout(self, turn: _Turn) -> None:
        conversation = turn.conversation
        if not conversation.cart:
            turn.say(replies.EMPTY_CART)
            return
        if not conversation.room_number:
            conversation.state = states.AWAITING_ROOM
            turn.say(replies.ASK_ROOM_FOR_ORDER)
            return
        conversation.state = states.AWAITING_CONFIRMATION
        turn.say(replies.order_summary(conversation))

    async def _place_order(self, turn: _Turn) -> None:
        conversation = turn.conversation
        try:
            placement = await self.pipeline.place(turn.tenant, conversation)
        except IncompleteOrder:
            conversation.state = states.AWAITING_ROOM if not conversation.room_number else states.MAIN_MENU
            turn.say(replies.INCOMPLETE_ORDER)
            return
        except PersistenceFailure:
            logger.error(
                "order could not be persisted",
                extra={"tenant_id": turn.tenant.id, "guest_id": conversation.guest_id},
            )
            conversation.state = states.MAIN_MENU
            turn.say(replies.PLACEMENT_FAILED)
            return

        order = placement.order
        conversation.clear_cart()
        conversation.last_order_id = order.id
        conversation.rating_order_id = order.id
        conversation.state = states.AWAITING_RATING
        turn.result.order = order
        turn.result.rating_order_id = order.id
        if not placement.guest_notified:
            turn.say(replies.guest_not_notified(order))
