# merchies/data/models/event.py
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship

from merchies.data.database import Base
from merchies.data.models.base import new_id, now_utc

event_products = Table(
    "event_products",
    Base.metadata,
    Column("event_id", String(64), ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", String(64), ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)


class EventModel(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_event_window"),
        CheckConstraint("geofence_radius > 0", name="ck_event_radius"),
    )

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    venue_name = Column(String, nullable=False)
    address = Column(String, nullable=False, default="")
    description = Column(Text, nullable=True)
    event_type = Column(String(32), nullable=True)
    image_url = Column(String, nullable=True)

    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    geofence_radius = Column(Float, nullable=False)  # metres

    active = Column(Boolean, nullable=False, default=True)
    # soft delete only, orders keep pointing at archived events
    archived = Column(Boolean, nullable=False, default=False, index=True)

    merchant_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc)

    products = relationship(
        "ProductModel",
        secondary=event_products,
        back_populates="events",
    )

    @property
    def product_ids(self) -> list[str]:
        return [p.id for p in self.products]

    def has_merchant(self, merchant_id: str) -> bool:
        return merchant_id in (self.merchant_ids or [])
