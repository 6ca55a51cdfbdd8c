# merchies/data/models/order.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from merchies.data.database import Base
from merchies.data.models.base import new_id, now_utc
from merchies.domain.states import OrderStatus, PaymentStatus


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)  # fan
    band_id = Column(String(64), nullable=False, index=True)  # merchant
    event_id = Column(String(64), nullable=True, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(32), nullable=False, default=OrderStatus.PENDING_PAYMENT.value)
    payment_status = Column(String(32), nullable=False, default=PaymentStatus.PENDING.value)

    qr_code = Column(String(96), nullable=False, unique=True)
    transaction_id = Column(String(128), nullable=True)

    # bumped by every status transition (optimistic locking)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
    )

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)


class OrderItemModel(Base):
    """Snapshot of a cart line at checkout. Never updated afterwards."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(String(64), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    product_id = Column(String(64), nullable=False)
    size = Column(String(32), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    title = Column(String, nullable=False)

    order = relationship("OrderModel", back_populates="items")

    @property
    def line_total(self):
        return self.unit_price * self.quantity
