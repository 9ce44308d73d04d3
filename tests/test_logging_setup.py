from __future__ import annotations

import json
import logging

from hotelbot.core.logging_setup import JsonFormatter
from hotelbot.core.request_context import clear_message_context, set_message_context
from hotelbot.services.pairing_display import PairingDisplay, render_ascii_qr


def _record(message: str, *args, **extra) -> logging.LogRecord:
    record = logging.LogRecord("hotelbot.test", logging.INFO, __file__, 1, message, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_includes_message_context_and_masks_secrets() -> None:
    set_message_context(tenant_id="hotel-a", guest_id="guest@c.us", message_id="wamid.9")
    try:
        line = JsonFormatter().format(_record("calling graph with token=%s", "EAAG-secret", status="connected"))
    finally:
        clear_message_context()

    payload = json.loads(line)
    assert payload["tenant_id"] == "hotel-a"
    assert payload["guest_id"] == "guest@c.us"
    assert payload["message_id"] == "wamid.9"
    assert payload["status"] == "connected"
    assert "EAAG-secret" not in payload["message"]
    assert payload["message"] == "calling graph with token=***"


def test_explicit_extra_wins_over_context() -> None:
    set_message_context(tenant_id="hotel-a")
    try:
        payload = json.loads(JsonFormatter().format(_record("hello", tenant_id="hotel-b")))
    finally:
        clear_message_context()

    assert payload["tenant_id"] == "hotel-b"
    assert "order_id" not in payload


def test_pairing_display_tracks_challenge_and_status() -> None:
    display = PairingDisplay(print_qr=False)

    display.show_pairing_challenge("hotel-a", "pair-code")
    display.report_status("hotel-a", "reauthenticating", fatal=True, detail="logged out")

    assert display.pairing_challenge("hotel-a") == "pair-code"
    assert display.operator_status("hotel-a").fatal is True

    display.clear_pairing_challenge("hotel-a")
    display.report_status("hotel-a", "connected")
    assert display.pairing_challenge("hotel-a") is None
    assert display.operator_status("hotel-a").fatal is False


def test_ascii_qr_is_rendered() -> None:
    art = render_ascii_qr("pair-code")

    assert len(art.splitlines()) > 10
