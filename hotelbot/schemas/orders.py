from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

OrderStatus = Literal["Pending", "Confirmed", "Done", "Rejected"]

ORDER_STATUSES: tuple[str, ...] = ("Pending", "Confirmed", "Done", "Rejected")

# Allowed forward moves; Done and Rejected are terminal.
STATUS_TRANSITIONS: dict[str, set[str]] = {
    "Pending": {"Confirmed", "Done", "Rejected"},
    "Confirmed": {"Done", "Rejected"},
    "Done": set(),
    "Rejected": set(),
}


class OrderLine(BaseModel):
    name: str
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)
    subtotal: int = Field(ge=0)


class Order(BaseModel):
    id: int
    tenant_id: str
    guest_id: str
    room_number: str
    lines: list[OrderLine]
    total: int
    status: OrderStatus = "Pending"
    rating: int | None = None
    created_at: datetime

    def items_text(self) -> str:
        return ", ".join(f"{line.quantity}x {line.name}" for line in self.lines)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
