from __future__ import annotations

import asyncio

from hotelbot.fsm import replies, states
from hotelbot.schemas.tenants import TenantCreate
from hotelbot.services.concierge import ConciergeService
from hotelbot.services.pairing_display import PairingDisplay
from hotelbot.services.tenant_backoff import InMemoryTenantBackoffService
from hotelbot.whatsapp.mock_provider import MockTransport
from hotelbot.whatsapp.session_manager import SessionLifecycleManager
from tests.fakes import FakeCredentialStore, FakeMenuSource, FakeOrderStore, FakeTenantDirectory
from tests.fixtures_data import GUEST, HOTEL, SCENARIO_MENU


class _BrokenMenuSource:
    def current(self, tenant_id):
        raise RuntimeError("menu sheet unreachable")


def _build(*, menus=None, rating_delay_seconds: float = 0.01):
    transport = MockTransport()
    sessions = SessionLifecycleManager(
        transport,
        FakeCredentialStore({HOTEL.id: {"session": "stored"}}),
        display=PairingDisplay(print_qr=False),
        backoff=InMemoryTenantBackoffService(base_seconds=0),
    )
    store = FakeOrderStore()
    concierge = ConciergeService(
        sessions,
        tenants=FakeTenantDirectory(HOTEL),
        menus=menus or FakeMenuSource(SCENARIO_MENU),
        orders=store,
        rating_delay_seconds=rating_delay_seconds,
    )
    return concierge, transport, store


async def _say(concierge: ConciergeService, transport: MockTransport, text: str, message_id: str | None = None):
    transport.latest(HOTEL.id).receive(GUEST, text, message_id=message_id)
    await concierge.sessions.wait_idle()


def test_full_conversation_over_the_transport() -> None:
    concierge, transport, store = _build()

    async def scenario():
        await concierge.start()
        for text in ("hi", "105", "2 pizzas and 1 coffee", "yes"):
            await _say(concierge, transport, text)
        await asyncio.sleep(0.05)
        await _say(concierge, transport, "rate_5")
        await concierge.shutdown()

    asyncio.run(scenario())

    handle = transport.handles[0]
    (order,) = store.orders.values()
    assert order.total == 1750
    assert order.rating == 5
    admin_texts = handle.texts_to(HOTEL.admin_address)
    assert admin_texts[0].startswith("📢 NEW ORDER")
    assert admin_texts[1] == f"📩 Guest {GUEST} rated Order #{order.id}: 5 ⭐"
    guest_texts = handle.texts_to(GUEST)
    assert any(f"Order #{order.id} placed successfully" in text for text in guest_texts)
    assert any("rate_5" in text for text in guest_texts)
    assert guest_texts[-1] == replies.rating_thanks(5)


def test_duplicate_delivery_is_handled_once() -> None:
    concierge, transport, _ = _build()

    async def scenario():
        await concierge.start()
        await _say(concierge, transport, "hi", message_id="wamid.1")
        await _say(concierge, transport, "hi", message_id="wamid.1")
        return concierge.conversations.get(HOTEL.id, GUEST)

    conversation = asyncio.run(scenario())

    guest_texts = transport.handles[0].texts_to(GUEST)
    assert len(guest_texts) == 2
    assert conversation.state == states.AWAITING_ROOM


def test_rating_prompt_is_skipped_when_guest_moved_on() -> None:
    concierge, transport, _ = _build(rating_delay_seconds=0.03)

    async def scenario():
        await concierge.start()
        for text in ("Room 105, 2 pizzas", "done", "yes", "reset"):
            await _say(concierge, transport, text)
        await asyncio.sleep(0.08)

    asyncio.run(scenario())

    assert not any("rate_5" in text for text in transport.handles[0].texts_to(GUEST))


def test_unknown_tenant_is_reported() -> None:
    concierge, _, _ = _build()

    handled = asyncio.run(concierge.simulate("000", GUEST, "hi"))

    assert handled.status == "unknown_tenant"


def test_simulate_returns_replies_without_sending() -> None:
    concierge, transport, _ = _build()

    async def scenario():
        await concierge.start()
        return await concierge.simulate(HOTEL.id, GUEST, "hi")

    handled = asyncio.run(scenario())

    assert handled.status == "ok"
    assert handled.state == states.AWAITING_ROOM
    assert handled.replies[-1].text == replies.ASK_ROOM
    assert transport.handles[0].sent == []


def test_handler_errors_become_an_apology() -> None:
    concierge, _, _ = _build(menus=_BrokenMenuSource())

    handled = asyncio.run(concierge.simulate(HOTEL.id, GUEST, "hi"))

    assert handled.status == "error"
    assert handled.replies[0].text == replies.SOMETHING_WENT_WRONG


def test_disconnect_drops_conversations_and_pending_ratings() -> None:
    concierge, transport, _ = _build(rating_delay_seconds=10)

    async def scenario():
        await concierge.start()
        for text in ("Room 105, 2 pizzas", "done", "yes"):
            await _say(concierge, transport, text)
        pending = concierge.ratings.pending_order(HOTEL.id, GUEST)
        await concierge.disconnect_tenant(HOTEL.id)
        return pending

    pending = asyncio.run(scenario())

    assert pending is not None
    assert concierge.ratings.pending_order(HOTEL.id, GUEST) is None
    assert concierge.conversations.get(HOTEL.id, GUEST) is None


def test_register_tenant_activates_session() -> None:
    concierge, transport, _ = _build()

    async def scenario():
        return await concierge.register_tenant(TenantCreate(id="919800000002", name="Hill Resort"))

    profile = asyncio.run(scenario())

    assert profile.name == "Hill Resort"
    assert concierge.tenants.get("919800000002") is not None
    assert transport.latest("919800000002") is not None
