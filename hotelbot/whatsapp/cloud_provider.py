from __future__ import annotations

import json
import logging
from typing import Any, Callable, Union

import httpx

from hotelbot.core.config import META_API_VERSION
from hotelbot.core.errors import TransportFatal, TransportTransient
from hotelbot.whatsapp.base import (
    BAD_SESSION,
    CONNECTION_LOST,
    LOGGED_OUT,
    ConnectionClosed,
    ConnectionOpened,
    InteractivePrompt,
    MessageReceived,
    TransportEvent,
    TransportListener,
    safe_json,
    sanitize_payload,
)

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.facebook.com"


def parse_cloud_webhook(payload: dict[str, Any]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    for entry in payload.get("entry", []) or []:
        for change in entry.get("changes", []) or []:
            value = change.get("value") or {}
            metadata = value.get("metadata") or {}
            phone_number_id = metadata.get("phone_number_id")

            contacts = value.get("contacts") or []
            contact_name = None
            if contacts:
                contact_name = ((contacts[0].get("profile") or {}).get("name")) or None

            for msg in value.get("messages", []) or []:
                msg_type = msg.get("type") or "text"
                text = ""
                if msg_type == "text":
                    text = ((msg.get("text") or {}).get("body")) or ""
                elif msg_type == "interactive":
                    interactive = msg.get("interactive") or {}
                    # Button and list replies carry our own ids (rate_5, menu_lunch, ...)
                    reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
                    text = reply.get("id") or reply.get("title") or ""
                elif msg_type == "button":
                    text = ((msg.get("button") or {}).get("payload")) or ""
                message_id = msg.get("id")
                from_number = msg.get("from")
                if not message_id or not from_number:
                    continue
                messages.append(
                    {
                        "message_id": message_id,
                        "from_number": from_number,
                        "text": text.strip(),
                        "message_type": msg_type,
                        "phone_number_id": phone_number_id,
                        "contact_name": contact_name,
                    }
                )
    return messages


def _interactive_payload(prompt: InteractivePrompt) -> dict[str, Any]:
    if len(prompt.buttons) <= 3:
        body: dict[str, Any] = {
            "type": "button",
            "body": {"text": prompt.body},
            "action": {
                "buttons": [
                    {"type": "reply", "reply": {"id": button.id, "title": button.title[:20]}}
                    for button in prompt.buttons
                ]
            },
        }
    else:
        body = {
            "type": "list",
            "body": {"text": prompt.body},
            "action": {
                "button": (prompt.footer or "Choose")[:20],
                "sections": [
                    {
                        "title": (prompt.header or "Options")[:24],
                        "rows": [{"id": button.id, "title": button.title[:24]} for button in prompt.buttons],
                    }
                ],
            },
        }
    if prompt.header:
        body["header"] = {"type": "text", "text": prompt.header[:60]}
    if prompt.footer and body["type"] == "button":
        body["footer"] = {"text": prompt.footer[:60]}
    return body


class CloudTransportHandle:
    def __init__(
        self,
        tenant_id: str,
        credentials: dict[str, Any] | None,
        *,
        client_factory: Callable[[], httpx.AsyncClient],
    ) -> None:
        self.tenant_id = tenant_id
        self.credentials = credentials or {}
        self._client_factory = client_factory
        self._listeners: list[TransportListener] = []
        self.closed = False

    @property
    def phone_number_id(self) -> str:
        return str(self.credentials.get("phone_number_id") or "")

    @property
    def access_token(self) -> str:
        return str(self.credentials.get("access_token") or "")

    def subscribe(self, listener: TransportListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: TransportEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    async def start(self) -> None:
        if not self.access_token or not self.phone_number_id:
            self.emit(ConnectionClosed(reason=BAD_SESSION, detail="WhatsApp Cloud credentials incomplete"))
            return

        url = f"{GRAPH_URL}/{META_API_VERSION}/{self.phone_number_id}"
        try:
            async with self._client_factory() as client:
                response = await client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            self.emit(ConnectionClosed(reason=CONNECTION_LOST, detail=str(exc)))
            return

        if response.status_code in (401, 403):
            self.emit(ConnectionClosed(reason=LOGGED_OUT, detail=f"token rejected ({response.status_code})"))
        elif 200 <= response.status_code < 300:
            self.emit(ConnectionOpened())
        else:
            self.emit(ConnectionClosed(reason=CONNECTION_LOST, detail=f"status {response.status_code}"))

    async def send(self, target: str, content: Union[str, InteractivePrompt]) -> str | None:
        if self.closed:
            raise TransportTransient("handle closed")
        to_phone = target.split("@", 1)[0]
        payload: dict[str, Any] = {"messaging_product": "whatsapp", "to": to_phone}
        if isinstance(content, InteractivePrompt):
            payload["type"] = "interactive"
            payload["interactive"] = _interactive_payload(content)
        else:
            payload["type"] = "text"
            payload["text"] = {"preview_url": False, "body": content}

        url = f"{GRAPH_URL}/{META_API_VERSION}/{self.phone_number_id}/messages"
        try:
            async with self._client_factory() as client:
                response = await client.post(url, headers=self._headers(), json=payload)
        except httpx.HTTPError as exc:
            raise TransportTransient(str(exc)) from exc

        if 200 <= response.status_code < 300:
            try:
                data = response.json()
                return (data.get("messages") or [{}])[0].get("id")
            except json.JSONDecodeError:
                return None

        logger.warning(
            "WhatsApp Cloud send failed status=%s payload=%s",
            response.status_code,
            safe_json(sanitize_payload(payload)),
            extra={"tenant_id": self.tenant_id},
        )
        if response.status_code in (401, 403):
            self.emit(ConnectionClosed(reason=LOGGED_OUT, detail="token rejected on send"))
            raise TransportFatal(f"WhatsApp Cloud rejected the token ({response.status_code})")
        if response.status_code == 429 or response.status_code >= 500:
            raise TransportTransient(f"WhatsApp Cloud error {response.status_code}")
        raise TransportFatal(f"WhatsApp Cloud error {response.status_code}: {response.text}")

    async def close(self) -> None:
        self.closed = True
        self._listeners.clear()

    def deliver(self, payload: dict[str, Any]) -> int:
        delivered = 0
        for message in parse_cloud_webhook(payload):
            if message["phone_number_id"] and self.phone_number_id and message["phone_number_id"] != self.phone_number_id:
                continue
            self.emit(
                MessageReceived(
                    message_id=message["message_id"],
                    sender=message["from_number"],
                    text=message["text"],
                    sender_name=message["contact_name"],
                    raw=message,
                )
            )
            delivered += 1
        return delivered

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}


class CloudTransport:
    """Meta WhatsApp Cloud API.

    Outbound goes over HTTPS; inbound arrives through the webhook router,
    which hands payloads to ``deliver`` for the tenant's live handle.
    """

    def __init__(self, *, client_factory: Callable[[], httpx.AsyncClient] | None = None) -> None:
        self._client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=20.0))
        self._handles: dict[str, CloudTransportHandle] = {}

    def connect(self, tenant_id: str, credentials: dict[str, Any] | None) -> CloudTransportHandle:
        handle = CloudTransportHandle(tenant_id, credentials, client_factory=self._client_factory)
        self._handles[tenant_id] = handle
        return handle

    def deliver(self, tenant_id: str, payload: dict[str, Any]) -> int:
        handle = self._handles.get(tenant_id)
        if handle is None or handle.closed:
            logger.warning("webhook for tenant without live handle", extra={"tenant_id": tenant_id})
            return 0
        return handle.deliver(payload)
