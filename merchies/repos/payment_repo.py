# merchies/repos/payment_repo.py
from datetime import datetime
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from merchies.data.models.payment import PaymentAttemptModel
from merchies.domain.states import PaymentAttemptStatus


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_attempt(self, attempt: PaymentAttemptModel) -> PaymentAttemptModel:
        self.db.add(attempt)
        self.db.flush()
        return attempt

    def get_attempt(self, attempt_id: str) -> PaymentAttemptModel | None:
        return self.db.get(PaymentAttemptModel, attempt_id, populate_existing=True)

    def live_attempt_for_order(self, order_id: str, now: datetime) -> PaymentAttemptModel | None:
        return self.db.execute(
            select(PaymentAttemptModel)
            .where(
                PaymentAttemptModel.order_id == order_id,
                PaymentAttemptModel.status == PaymentAttemptStatus.PENDING.value,
                PaymentAttemptModel.expires_at > now,
            )
            .order_by(PaymentAttemptModel.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def attempts_for_order(self, order_id: str) -> list[PaymentAttemptModel]:
        return list(
            self.db.execute(
                select(PaymentAttemptModel)
                .where(PaymentAttemptModel.order_id == order_id)
                .order_by(PaymentAttemptModel.created_at)
            ).scalars()
        )

    def stale_attempts(self, now: datetime) -> list[PaymentAttemptModel]:
        return list(
            self.db.execute(
                select(PaymentAttemptModel).where(
                    PaymentAttemptModel.status == PaymentAttemptStatus.PENDING.value,
                    PaymentAttemptModel.expires_at <= now,
                )
            ).scalars()
        )

    def resolve(
        self,
        attempt_id: str,
        from_statuses: Iterable[PaymentAttemptStatus],
        to_status: PaymentAttemptStatus,
        **values,
    ) -> int:
        stmt = (
            update(PaymentAttemptModel)
            .where(
                PaymentAttemptModel.id == attempt_id,
                PaymentAttemptModel.status.in_([s.value for s in from_statuses]),
            )
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
