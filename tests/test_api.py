from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from hotelbot import deps, main
from hotelbot.routers import webhook
from hotelbot.whatsapp.mock_provider import MockTransport

TENANT = {"id": "919800000001", "name": "Sea View Hotel", "admin_target": "919800000099@c.us"}
GUEST = "919811112222@c.us"

REQUIRED_ROUTES = {
    "/",
    "/health",
    "/simulator/message",
    "/api/whatsapp/{tenant_id}/webhook",
    "/api/admin/tenants",
    "/api/admin/tenants/{tenant_id}/session",
    "/api/admin/tenants/{tenant_id}/session/connect",
    "/api/admin/tenants/{tenant_id}/session/disconnect",
    "/api/admin/tenants/{tenant_id}/session/logout",
    "/api/admin/tenants/{tenant_id}/orders",
    "/api/admin/tenants/{tenant_id}/orders/{order_id}/status",
    "/api/admin/tenants/{tenant_id}/menu",
}


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport(auto_pair=True)


@pytest.fixture
def client(transport):
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    app = main.create_app(engine=engine, transport=transport)
    with TestClient(app) as test_client:
        yield test_client
    engine.dispose()


def _simulate(client: TestClient, text: str) -> dict:
    response = client.post("/simulator/message", json={"tenant_id": TENANT["id"], "sender": GUEST, "text": text})
    assert response.status_code == 200
    return response.json()


def test_api_startup_and_router_registration(client: TestClient) -> None:
    response = client.get("/")
    health = client.get("/health")

    assert response.json() == {"status": "ok"}
    assert health.json() == {"status": "healthy"}
    paths = {route.path for route in client.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)


def test_simulator_rejects_unknown_tenant(client: TestClient) -> None:
    response = client.post("/simulator/message", json={"tenant_id": "nope", "sender": GUEST, "text": "hi"})

    assert response.status_code == 404


def test_register_tenant_and_order_through_simulator(client: TestClient, transport: MockTransport) -> None:
    created = client.post("/api/admin/tenants", json=TENANT)
    assert created.status_code == 201

    session = client.get(f"/api/admin/tenants/{TENANT['id']}/session").json()
    assert session["status"] == "connected"

    greeting = _simulate(client, "hi")
    assert greeting["state"] == "awaiting_room"
    assert "Welcome to Sea View Hotel" in greeting["replies"][0]["text"]

    _simulate(client, "Room 105, 2 pizzas")
    summary = _simulate(client, "done")
    assert summary["state"] == "awaiting_confirmation"
    assert "₹1600" in summary["replies"][0]["text"]

    placed = _simulate(client, "yes")
    assert placed["state"] == "awaiting_rating"

    orders = client.get(f"/api/admin/tenants/{TENANT['id']}/orders").json()
    assert len(orders) == 1
    assert orders[0]["total"] == 1600
    assert orders[0]["room_number"] == "105"
    assert transport.latest(TENANT["id"]).texts_to(TENANT["admin_target"])[0].startswith("📢 NEW ORDER")


def test_order_status_updates_are_validated(client: TestClient) -> None:
    client.post("/api/admin/tenants", json=TENANT)
    for text in ("Room 105, 2 pizzas", "done", "yes"):
        _simulate(client, text)
    order_id = client.get(f"/api/admin/tenants/{TENANT['id']}/orders").json()[0]["id"]
    url = f"/api/admin/tenants/{TENANT['id']}/orders/{order_id}/status"

    confirmed = client.patch(url, json={"status": "Confirmed"})
    backwards = client.patch(url, json={"status": "Pending"})
    missing = client.patch(f"/api/admin/tenants/{TENANT['id']}/orders/1/status", json={"status": "Done"})
    invalid = client.patch(url, json={"status": "Eaten"})

    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "Confirmed"
    assert backwards.status_code == 409
    assert missing.status_code == 404
    assert invalid.status_code == 422


def test_menu_can_be_replaced(client: TestClient) -> None:
    client.post("/api/admin/tenants", json=TENANT)
    url = f"/api/admin/tenants/{TENANT['id']}/menu"

    default = client.get(url).json()
    assert "roomService" in default["categories"]

    bad = client.put(url, json={"categories": {"lunch": {"hours": "", "items": ["Pizza"]}}})
    assert bad.status_code == 400

    good = client.put(
        url,
        json={"categories": {"drinks": {"hours": "24/7", "items": ["Filter Coffee - ₹150"]}}},
    )
    assert good.status_code == 200
    assert good.json()["categories"]["drinks"]["items"] == ["Filter Coffee - ₹150"]

    reply = _simulate(client, "Room 105, 2 coffees")
    assert reply["state"] == "ordering"


def test_logout_disconnects_session(client: TestClient) -> None:
    client.post("/api/admin/tenants", json=TENANT)

    response = client.post(f"/api/admin/tenants/{TENANT['id']}/session/logout")

    assert response.status_code == 200
    assert response.json()["status"] == "disconnected"


def test_admin_routes_require_token_when_configured(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(deps, "ADMIN_API_TOKEN", "s3cret")

    denied = client.post("/api/admin/tenants", json=TENANT)
    allowed = client.post("/api/admin/tenants", json=TENANT, headers={"X-Admin-Token": "s3cret"})

    assert denied.status_code == 401
    assert allowed.status_code == 201


def test_admin_routes_404_for_unknown_tenant(client: TestClient) -> None:
    response = client.get("/api/admin/tenants/unknown/session")

    assert response.status_code == 404


def test_webhook_verification(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(webhook, "WHATSAPP_VERIFY_TOKEN", "verify-me")
    url = f"/api/whatsapp/{TENANT['id']}/webhook"

    ok = client.get(url, params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "42"})
    denied = client.get(url, params={"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "42"})

    assert ok.status_code == 200
    assert ok.text == "42"
    assert denied.status_code == 403


def test_webhook_post_is_ignored_without_cloud_transport(client: TestClient) -> None:
    response = client.post(f"/api/whatsapp/{TENANT['id']}/webhook", json={"entry": []})

    assert response.json() == {"status": "ignored", "received": 0}
