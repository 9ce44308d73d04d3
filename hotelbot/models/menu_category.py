from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint, func

from hotelbot.core.database import Base


class MenuCategory(Base):
    __tablename__ = "menu_categories"
    __table_args__ = (UniqueConstraint("tenant_id", "key", name="uq_menu_categories_tenant_key"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(32), index=True, nullable=False)
    key = Column(String(64), nullable=False)  # e.g. "breakfast", "roomService"
    hours = Column(String(64), default="", nullable=False)  # free text, e.g. "7:00 AM - 10:30 AM"
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
