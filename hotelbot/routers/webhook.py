import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from hotelbot.core.config import WHATSAPP_VERIFY_TOKEN
from hotelbot.deps import get_concierge
from hotelbot.services.concierge import ConciergeService
from hotelbot.whatsapp.cloud_provider import CloudTransport

router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp-webhook"])
logger = logging.getLogger(__name__)


@router.get("/{tenant_id}/webhook")
async def verify_webhook(tenant_id: str, request: Request):
    qp = request.query_params
    mode = qp.get("hub.mode")
    token = qp.get("hub.verify_token")
    challenge = qp.get("hub.challenge")

    if mode == "subscribe" and WHATSAPP_VERIFY_TOKEN and token == WHATSAPP_VERIFY_TOKEN:
        logger.info("webhook verified", extra={"tenant_id": tenant_id})
        return PlainTextResponse(challenge or "")

    raise HTTPException(status_code=403, detail="Invalid verify token")


@router.post("/{tenant_id}/webhook")
async def receive_webhook(tenant_id: str, request: Request, concierge: ConciergeService = Depends(get_concierge)):
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    transport = concierge.sessions.transport
    if not isinstance(transport, CloudTransport):
        logger.warning("webhook received but cloud transport is not enabled", extra={"tenant_id": tenant_id})
        return {"status": "ignored", "received": 0}

    received = transport.deliver(tenant_id, payload)
    return {"status": "ok", "received": received}
