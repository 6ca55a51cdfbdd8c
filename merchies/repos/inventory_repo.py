# merchies/repos/inventory_repo.py
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from merchies.data.models.base import now_utc
from merchies.data.models.product import ProductInventoryModel
from merchies.data.models.reservation import ReservationModel
from merchies.domain.states import ReservationStatus


class InventoryRepo:
    def __init__(self, db: Session):
        self.db = db

    # ---- counters ----------------------------------------------------------

    def decrement_if_available(self, product_id: str, size: str, quantity: int) -> int:
        # single read-modify-write, the WHERE clause is the stock check
        stmt = (
            update(ProductInventoryModel)
            .where(
                ProductInventoryModel.product_id == product_id,
                ProductInventoryModel.size == size,
                ProductInventoryModel.available >= quantity,
            )
            .values(available=ProductInventoryModel.available - quantity)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def increment(self, product_id: str, size: str, quantity: int) -> int:
        stmt = (
            update(ProductInventoryModel)
            .where(
                ProductInventoryModel.product_id == product_id,
                ProductInventoryModel.size == size,
            )
            .values(available=ProductInventoryModel.available + quantity)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def get_available(self, product_id: str, size: str) -> int | None:
        return self.db.execute(
            select(ProductInventoryModel.available).where(
                ProductInventoryModel.product_id == product_id,
                ProductInventoryModel.size == size,
            )
        ).scalar_one_or_none()

    def counters_for(self, product_id: str) -> dict[str, int]:
        rows = self.db.execute(
            select(ProductInventoryModel.size, ProductInventoryModel.available)
            .where(ProductInventoryModel.product_id == product_id)
            .order_by(ProductInventoryModel.id)
        ).all()
        return {size: available for size, available in rows}

    def add_counter(self, product_id: str, size: str, available: int) -> ProductInventoryModel:
        row = ProductInventoryModel(product_id=product_id, size=size, available=available)
        self.db.add(row)
        self.db.flush()
        return row

    # ---- reservations ------------------------------------------------------

    def add_reservation(self, reservation: ReservationModel) -> ReservationModel:
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def get_reservation(self, reservation_id: str) -> ReservationModel | None:
        return self.db.get(ReservationModel, reservation_id, populate_existing=True)

    def reservations_for_order(self, order_id: str) -> list[ReservationModel]:
        return list(
            self.db.execute(
                select(ReservationModel)
                .where(ReservationModel.order_id == order_id)
                .order_by(ReservationModel.created_at)
            ).scalars()
        )

    def move_reservation(
        self,
        reservation_id: str,
        from_statuses: Iterable[ReservationStatus],
        to_status: ReservationStatus,
    ) -> int:
        stmt = (
            update(ReservationModel)
            .where(
                ReservationModel.id == reservation_id,
                ReservationModel.status.in_([s.value for s in from_statuses]),
            )
            .values(status=to_status.value, updated_at=now_utc())
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount
