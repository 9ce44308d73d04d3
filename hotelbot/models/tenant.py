from sqlalchemy import Boolean, Column, DateTime, String, func

from hotelbot.core.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    # Phone-like key of the hotel's WhatsApp account, e.g. "919876543210"
    id = Column(String(32), primary_key=True)
    name = Column(String, nullable=False, default="Hotel")
    admin_target = Column(String(64), nullable=True)
    reception_extension = Column(String(16), nullable=False, default="22")
    require_room = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
