# merchies/data/models/product.py
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from merchies.data.database import Base
from merchies.data.models.base import new_id, now_utc
from merchies.data.models.event import event_products


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True, default=new_id)
    band_id = Column(String(64), nullable=False, index=True)
    title = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    sizes = Column(JSON, nullable=False, default=list)  # ordered labels
    image_url = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc)

    inventory = relationship(
        "ProductInventoryModel",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductInventoryModel.id",
    )
    events = relationship(
        "EventModel",
        secondary=event_products,
        back_populates="products",
    )

    @property
    def event_ids(self) -> list[str]:
        return [e.id for e in self.events]


class ProductInventoryModel(Base):
    """One counter per (product, size). Only InventoryLedger writes `available`."""

    __tablename__ = "product_inventory"
    __table_args__ = (
        UniqueConstraint("product_id", "size", name="u_product_size"),
        CheckConstraint("available >= 0", name="ck_available_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    product_id = Column(String(64), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    size = Column(String(32), nullable=False)
    available = Column(Integer, nullable=False, default=0)

    product = relationship("ProductModel", back_populates="inventory")
