from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable

from hotelbot.fsm import states
from hotelbot.services.menu_catalog import MenuItem

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    key: str
    name: str
    quantity: int
    unit_price: int

    @property
    def subtotal(self) -> int:
        return self.quantity * self.unit_price


@dataclass
class GuestConversation:
    tenant_id: str
    guest_id: str
    state: str = states.INITIAL
    room_number: str | None = None
    cart: list[CartLine] = field(default_factory=list)
    last_order_id: int | None = None
    rating_order_id: int | None = None
    last_activity: float = 0.0

    def add_item(self, item: MenuItem, quantity: int) -> None:
        for line in self.cart:
            if line.key == item.key:
                line.quantity += quantity
                return
        self.cart.append(CartLine(key=item.key, name=item.name, quantity=quantity, unit_price=item.price))

    @property
    def cart_total(self) -> int:
        return sum(line.subtotal for line in self.cart)

    def clear_cart(self) -> None:
        self.cart = []

    def reset(self) -> None:
        self.state = states.INITIAL
        self.room_number = None
        self.cart = []
        self.last_order_id = None
        self.rating_order_id = None


class ConversationStore:
    """Per-guest conversations, keyed by (tenant, guest).

    Conversations are created on first use and evicted once idle for
    ``idle_ttl_seconds``. ``session`` hands out a conversation with its
    lock held; all transitions go through it.
    """

    def __init__(self, *, idle_ttl_seconds: float = 86400.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._conversations: dict[tuple[str, str], GuestConversation] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def _lock_for(self, key: tuple[str, str]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def session(self, tenant_id: str, guest_id: str) -> AsyncIterator[GuestConversation]:
        key = (tenant_id, guest_id)
        lock = self._lock_for(key)
        async with lock:
            conversation = self._conversations.get(key)
            if conversation is None:
                conversation = GuestConversation(tenant_id=tenant_id, guest_id=guest_id)
                self._conversations[key] = conversation
            conversation.last_activity = self._clock()
            try:
                yield conversation
            finally:
                conversation.last_activity = self._clock()

    def get(self, tenant_id: str, guest_id: str) -> GuestConversation | None:
        return self._conversations.get((tenant_id, guest_id))

    def drop_tenant(self, tenant_id: str) -> int:
        keys = [key for key in self._conversations if key[0] == tenant_id]
        for key in keys:
            self._conversations.pop(key, None)
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                self._locks.pop(key, None)
        if keys:
            logger.info("dropped %s guest conversations", len(keys), extra={"tenant_id": tenant_id})
        return len(keys)

    def evict_idle(self, now: float | None = None) -> int:
        if self.idle_ttl_seconds <= 0:
            return 0
        now = self._clock() if now is None else now
        cutoff = now - self.idle_ttl_seconds
        evicted = 0
        for key, conversation in list(self._conversations.items()):
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                continue
            if conversation.last_activity <= cutoff:
                self._conversations.pop(key, None)
                self._locks.pop(key, None)
                evicted += 1
        return evicted

    def __len__(self) -> int:
        return len(self._conversations)
