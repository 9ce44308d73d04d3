from pydantic import BaseModel


class TenantProfile(BaseModel):
    id: str
    name: str = "Hotel"
    admin_target: str | None = None
    reception_extension: str = "22"
    require_room: bool = True
    is_active: bool = True

    @property
    def admin_address(self) -> str:
        # Hotels without an explicit target get notified on their own number
        return self.admin_target or f"{self.id}@c.us"


class TenantCreate(BaseModel):
    id: str
    name: str
    admin_target: str | None = None
    reception_extension: str = "22"
    require_room: bool = True


class SessionStatus(BaseModel):
    tenant_id: str
    status: str
    fatal: bool = False
    last_error: str | None = None
    pairing_challenge: str | None = None
    pairing_qr: str | None = None
    reconnect_attempts: int = 0
