from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from hotelbot.core.errors import TransportFatal, TransportTransient
from hotelbot.whatsapp.base import (
    BAD_SESSION,
    LOGGED_OUT,
    ConnectionClosed,
    ConnectionOpened,
    InteractivePrompt,
    MessageReceived,
    PromptButton,
    sanitize_payload,
)
from hotelbot.whatsapp.cloud_provider import (
    CloudTransport,
    CloudTransportHandle,
    _interactive_payload,
    parse_cloud_webhook,
)

CREDENTIALS = {"access_token": "EAAG-secret-token", "phone_number_id": "1100"}


def _webhook(*messages: dict, phone_number_id: str = "1100") -> dict:
    return {
        "entry": [
            {
                "changes": [
                    {
                        "value": {
                            "metadata": {"phone_number_id": phone_number_id},
                            "contacts": [{"profile": {"name": "Asha"}}],
                            "messages": list(messages),
                        }
                    }
                ]
            }
        ]
    }


def _handle(handler, credentials=CREDENTIALS) -> CloudTransportHandle:
    return CloudTransportHandle(
        "hotel-a",
        credentials,
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def test_parse_text_and_interactive_replies() -> None:
    payload = _webhook(
        {"id": "wamid.1", "from": "919811112222", "type": "text", "text": {"body": " 2 pizzas "}},
        {
            "id": "wamid.2",
            "from": "919811112222",
            "type": "interactive",
            "interactive": {"type": "button_reply", "button_reply": {"id": "rate_5", "title": "5 ⭐"}},
        },
        {
            "id": "wamid.3",
            "from": "919811112222",
            "type": "interactive",
            "interactive": {"type": "list_reply", "list_reply": {"id": "menu_lunch", "title": "Lunch"}},
        },
        {"from": "919811112222", "type": "text", "text": {"body": "no id"}},
    )

    messages = parse_cloud_webhook(payload)

    assert [message["text"] for message in messages] == ["2 pizzas", "rate_5", "menu_lunch"]
    assert messages[0]["contact_name"] == "Asha"
    assert messages[0]["phone_number_id"] == "1100"


def test_parse_ignores_status_only_payloads() -> None:
    payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}]}]}

    assert parse_cloud_webhook(payload) == []


def test_small_prompts_become_buttons_and_large_ones_lists() -> None:
    rating = InteractivePrompt(
        body="How was it?",
        buttons=(PromptButton("rate_5", "5 ⭐"), PromptButton("rate_4", "4 ⭐"), PromptButton("rate_3", "3 ⭐")),
        footer="Tap to rate",
    )
    menu = InteractivePrompt(
        body="Pick a menu",
        buttons=tuple(PromptButton(f"menu_{key}", key.title()) for key in ("breakfast", "lunch", "dinner", "drinks")),
        header="Our menus",
    )

    buttons = _interactive_payload(rating)
    listing = _interactive_payload(menu)

    assert buttons["type"] == "button"
    assert [b["reply"]["id"] for b in buttons["action"]["buttons"]] == ["rate_5", "rate_4", "rate_3"]
    assert buttons["footer"] == {"text": "Tap to rate"}
    assert listing["type"] == "list"
    assert len(listing["action"]["sections"][0]["rows"]) == 4
    assert listing["header"] == {"type": "text", "text": "Our menus"}
    assert "footer" not in listing


def test_send_posts_text_and_returns_message_id() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.out"}]})

    message_id = asyncio.run(_handle(handler).send("919811112222@c.us", "hello"))

    assert message_id == "wamid.out"
    body = json.loads(requests[0].content)
    assert body["to"] == "919811112222"
    assert body["text"]["body"] == "hello"
    assert requests[0].url.path.endswith("/1100/messages")
    assert requests[0].headers["Authorization"] == "Bearer EAAG-secret-token"


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_throttling_and_server_errors_are_transient(status_code: int) -> None:
    handle = _handle(lambda request: httpx.Response(status_code, json={}))

    with pytest.raises(TransportTransient):
        asyncio.run(handle.send("919811112222@c.us", "hello"))


def test_network_errors_are_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(TransportTransient):
        asyncio.run(_handle(handler).send("919811112222@c.us", "hello"))


def test_rejected_token_is_fatal_and_reported_as_logout() -> None:
    handle = _handle(lambda request: httpx.Response(401, json={"error": {"message": "expired"}}))
    events = []
    handle.subscribe(events.append)

    with pytest.raises(TransportFatal):
        asyncio.run(handle.send("919811112222@c.us", "hello"))

    assert events == [ConnectionClosed(reason=LOGGED_OUT, detail="token rejected on send")]


def test_bad_request_is_fatal_without_logout() -> None:
    handle = _handle(lambda request: httpx.Response(400, json={"error": {"message": "bad"}}))
    events = []
    handle.subscribe(events.append)

    with pytest.raises(TransportFatal):
        asyncio.run(handle.send("919811112222@c.us", "hello"))

    assert events == []


def test_start_without_credentials_reports_bad_session() -> None:
    handle = _handle(lambda request: httpx.Response(200, json={}), credentials=None)
    events = []
    handle.subscribe(events.append)

    asyncio.run(handle.start())

    assert len(events) == 1
    assert events[0].reason == BAD_SESSION


def test_start_opens_when_phone_number_resolves() -> None:
    handle = _handle(lambda request: httpx.Response(200, json={"id": "1100"}))
    events = []
    handle.subscribe(events.append)

    asyncio.run(handle.start())

    assert events == [ConnectionOpened()]


def test_deliver_routes_messages_for_the_tenant_number_only() -> None:
    transport = CloudTransport(client_factory=lambda: httpx.AsyncClient())
    handle = transport.connect("hotel-a", CREDENTIALS)
    received = []
    handle.subscribe(received.append)

    ours = transport.deliver(
        "hotel-a", _webhook({"id": "wamid.1", "from": "919811112222", "type": "text", "text": {"body": "hi"}})
    )
    other_number = transport.deliver(
        "hotel-a",
        _webhook({"id": "wamid.2", "from": "919811112222", "type": "text", "text": {"body": "hi"}}, phone_number_id="9"),
    )
    unknown_tenant = transport.deliver("hotel-z", _webhook())

    assert (ours, other_number, unknown_tenant) == (1, 0, 0)
    assert isinstance(received[0], MessageReceived)
    assert received[0].sender == "919811112222"
    assert received[0].sender_name == "Asha"


def test_sanitize_masks_tokens() -> None:
    sanitized = sanitize_payload({"access_token": "EAAG-secret-token", "to": "919811112222"})

    assert sanitized["access_token"] != "EAAG-secret-token"
    assert sanitized["to"] == "919811112222"
