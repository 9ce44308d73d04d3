from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Text, func

from hotelbot.core.database import Base


class OrderRecord(Base):
    __tablename__ = "orders"
    __table_args__ = (Index("ix_orders_tenant_created", "tenant_id", "created_at"),)

    # Millisecond timestamp assigned by the pipeline, shown to guests as "#id"
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    tenant_id = Column(String(32), index=True, nullable=False)
    guest_id = Column(String(64), index=True, nullable=False)
    room_number = Column(String(8), nullable=False)

    items_json = Column(Text, default="[]", nullable=False)
    total = Column(Integer, default=0, nullable=False)

    status = Column(String(16), default="Pending", nullable=False)  # Pending / Confirmed / Done / Rejected
    rating = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
