from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from hotelbot.deps import get_concierge
from hotelbot.services.concierge import ConciergeService

router = APIRouter(prefix="/simulator", tags=["simulator"])


class SimulatorMessage(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    sender: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)


@router.post("/message")
async def simulate_message(payload: SimulatorMessage, concierge: ConciergeService = Depends(get_concierge)):
    handled = await concierge.simulate(payload.tenant_id, payload.sender, payload.text)
    if handled.status == "unknown_tenant":
        raise HTTPException(status_code=404, detail="Unknown tenant")

    return {
        "status": handled.status,
        "state": handled.state,
        "replies": [{"to": message.target, "text": message.as_text()} for message in handled.replies],
    }
