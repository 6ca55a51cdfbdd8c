# merchies/data/models/payment.py
from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String

from merchies.data.database import Base
from merchies.data.models.base import new_id, now_utc
from merchies.domain.states import PaymentAttemptStatus


class PaymentAttemptModel(Base):
    __tablename__ = "payment_attempts"

    # also the idempotency key sent to the gateway
    id = Column(String(64), primary_key=True, default=new_id)
    order_id = Column(String(64), ForeignKey("orders.id"), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    status = Column(String(16), nullable=False, default=PaymentAttemptStatus.PENDING.value)

    gateway_reference = Column(String(128), nullable=True)
    client_secret = Column(String(256), nullable=True)
    transaction_id = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
