# merchies/repos/order_repo.py
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from merchies.data.models.base import now_utc
from merchies.data.models.order import OrderModel
from merchies.domain.states import OrderStatus, PaymentStatus


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: str, fresh: bool = False) -> OrderModel | None:
        # fresh=True bypasses the identity map after a conditional UPDATE
        options = {"populate_existing": True} if fresh else {}
        return self.db.get(OrderModel, order_id, **options)

    def get_by_qr_code(self, qr_code: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.qr_code == qr_code)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_for_user(self, user_id: str) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc())
            ).scalars()
        )

    def list_for_band(self, band_id: str, statuses: Iterable[OrderStatus] | None = None) -> list[OrderModel]:
        stmt = (
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.band_id == band_id)
        )
        if statuses:
            stmt = stmt.where(OrderModel.status.in_([s.value for s in statuses]))
        return list(self.db.execute(stmt.order_by(OrderModel.created_at.desc())).scalars())

    def transition(
        self,
        order_id: str,
        from_statuses: Iterable[OrderStatus],
        to_status: OrderStatus,
        **values,
    ) -> int:
        """
        Optimistic status transition:
        UPDATE orders SET status = :to, version = version + 1
        WHERE id = :id AND status IN (:from)
        Returns rowcount, 0 means somebody else moved the order first.
        """
        stmt = (
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.status.in_([s.value for s in from_statuses]),
            )
            .values(
                status=to_status.value,
                version=OrderModel.version + 1,
                updated_at=now_utc(),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def update_payment_status(
        self,
        order_id: str,
        payment_status: PaymentStatus,
        expected_status: OrderStatus = OrderStatus.PENDING_PAYMENT,
        from_payment_statuses: Iterable[PaymentStatus] | None = None,
    ) -> int:
        conditions = [OrderModel.id == order_id, OrderModel.status == expected_status.value]
        if from_payment_statuses is not None:
            conditions.append(OrderModel.payment_status.in_([p.value for p in from_payment_statuses]))

        stmt = (
            update(OrderModel)
            .where(*conditions)
            .values(payment_status=payment_status.value, updated_at=now_utc())
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
