# merchies/data/models/reservation.py
from sqlalchemy import Column, DateTime, Integer, String

from merchies.data.database import Base
from merchies.data.models.base import new_id, now_utc
from merchies.domain.states import ReservationStatus


class ReservationModel(Base):
    __tablename__ = "reservations"

    id = Column(String(64), primary_key=True, default=new_id)
    # set when the hold is taken for a checkout; the order row is written later
    order_id = Column(String(64), nullable=True, index=True)
    product_id = Column(String(64), nullable=False, index=True)
    size = Column(String(32), nullable=False)
    quantity = Column(Integer, nullable=False)

    status = Column(String(16), nullable=False, default=ReservationStatus.HELD.value)  # HELD, COMMITTED, RELEASED
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)
