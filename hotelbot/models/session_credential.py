from sqlalchemy import Column, DateTime, String, Text, func

from hotelbot.core.database import Base


class SessionCredential(Base):
    __tablename__ = "session_credentials"

    tenant_id = Column(String(32), primary_key=True)
    # Opaque blob handed back by the transport, stored as JSON text
    payload_json = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
