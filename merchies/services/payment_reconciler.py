# merchies/services/payment_reconciler.py
from datetime import datetime, timedelta
from decimal import Decimal

from redis.exceptions import RedisError
from requests import RequestException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from merchies.data.models.base import new_id
from merchies.data.models.payment import PaymentAttemptModel
from merchies.domain.errors import InvalidTransition, PaymentAttemptNotFound, PaymentInProgress
from merchies.domain.states import (
    CallbackResult,
    OrderStatus,
    PaymentAttemptStatus,
    PaymentOutcome,
)
from merchies.repos.payment_repo import PaymentRepo
from merchies.services.lock_service import LockService
from merchies.services.order_service import OrderService
from merchies.services.payment_gateway import PaymentGatewayClient
from merchies.utils.clock import utcnow
from merchies.utils.logging import get_logger
from merchies.utils.settings import PAYMENT_CURRENCY, PAYMENT_TIMEOUT_SECONDS

logger = get_logger(__name__)

CENT = Decimal("0.01")
OPEN_ATTEMPT = [PaymentAttemptStatus.PENDING, PaymentAttemptStatus.TIMED_OUT]


class PaymentReconciler:
    """
    Bridges orders and the asynchronous payment gateway.

    begin_payment registers one intent per order at a time (Redis in-flight
    lock, TTL = payment window). Gateway callbacks are idempotent: the
    attempt row is resolved with a conditional update, and the order moves
    only through OrderService's guarded transitions.
    """

    def __init__(
        self,
        db: Session,
        lock_service: LockService,
        gateway: PaymentGatewayClient,
        order_service: OrderService | None = None,
        currency: str = PAYMENT_CURRENCY,
        timeout_seconds: int = PAYMENT_TIMEOUT_SECONDS,
    ):
        self.db = db
        self.repo = PaymentRepo(db)
        self.lock_service = lock_service
        self.gateway = gateway
        self.order_service = order_service or OrderService(db)
        self.currency = currency
        self.timeout_seconds = timeout_seconds

    # =====================================================
    # QUERY
    # =====================================================
    def get_attempt(self, attempt_id: str) -> PaymentAttemptModel:
        attempt = self.repo.get_attempt(attempt_id)
        if attempt is None:
            raise PaymentAttemptNotFound(f"Payment attempt {attempt_id} does not exist")
        return attempt

    def attempts_for_order(self, order_id: str) -> list[PaymentAttemptModel]:
        return self.repo.attempts_for_order(order_id)

    # =====================================================
    # BEGIN
    # =====================================================
    def begin_payment(self, order_id: str, amount, now: datetime | None = None) -> PaymentAttemptModel:
        now = now or utcnow()
        order = self.order_service.get_order(order_id)

        if order.order_status is not OrderStatus.PENDING_PAYMENT:
            raise InvalidTransition(order_id, order.status, OrderStatus.PENDING_PICKUP.value)

        requested = Decimal(str(amount)).quantize(CENT)
        expected = Decimal(str(order.amount)).quantize(CENT)
        if requested != expected:
            raise ValueError(f"Payment amount {requested} does not match order amount {expected}")

        attempt_id = new_id()
        if not self._acquire(order_id, attempt_id):
            existing = self._attempt_holding_lock(order_id)
            if existing is not None:
                logger.info("Payment already in flight, reusing attempt", order_id=order_id, attempt_id=existing.id)
                return existing
            if not self._acquire(order_id, attempt_id):
                raise PaymentInProgress(order_id, self.lock_service.current_holder(order_id))

        try:
            attempt = self.repo.add_attempt(
                PaymentAttemptModel(
                    id=attempt_id,
                    order_id=order_id,
                    amount=expected,
                    currency=self.currency,
                    status=PaymentAttemptStatus.PENDING.value,
                    created_at=now,
                    expires_at=now + timedelta(seconds=self.timeout_seconds),
                )
            )
            self.repo.commit()
        except SQLAlchemyError:
            logger.error("Failed to record payment attempt", order_id=order_id, attempt_id=attempt_id)
            self.repo.rollback()
            self._release(order_id, attempt_id)
            raise

        try:
            intent = self.gateway.create_payment_intent(
                amount_minor=int((expected * 100).to_integral_value()),
                currency=self.currency,
                order_id=order_id,
                idempotency_key=attempt_id,
            )
        except RequestException:
            logger.error("Gateway rejected payment intent", order_id=order_id, attempt_id=attempt_id)
            self.repo.resolve(
                attempt_id,
                from_statuses=[PaymentAttemptStatus.PENDING],
                to_status=PaymentAttemptStatus.FAILED,
                resolved_at=utcnow(),
            )
            self.repo.commit()
            self._release(order_id, attempt_id)
            raise

        attempt.gateway_reference = intent["id"]
        attempt.client_secret = intent.get("client_secret")
        if not self.order_service.mark_payment_processing(order_id):
            # the order moved on while the intent was being registered
            logger.warning("Order left pending_payment during begin_payment", order_id=order_id)
        self.repo.commit()

        logger.info(
            "Payment attempt started",
            order_id=order_id,
            attempt_id=attempt_id,
            amount=str(expected),
            gateway_reference=intent["id"],
        )
        return attempt

    # =====================================================
    # CALLBACK
    # =====================================================
    def on_gateway_callback(
        self,
        attempt_id: str,
        outcome: PaymentOutcome | str,
        transaction_id: str | None = None,
    ) -> CallbackResult:
        outcome = PaymentOutcome(outcome)
        attempt = self.repo.get_attempt(attempt_id)
        if attempt is None:
            logger.warning("Callback for unknown payment attempt", attempt_id=attempt_id, outcome=outcome.value)
            return CallbackResult.UNKNOWN_ATTEMPT

        order_id = attempt.order_id
        if not self._settle(attempt_id, outcome, transaction_id):
            self.repo.rollback()
            return self._already_settled(attempt_id, outcome)

        if outcome is PaymentOutcome.SUCCEEDED:
            result = self.order_service.confirm_payment(order_id, transaction_id)
        elif self._superseded(order_id, attempt_id):
            # a newer attempt is live, a stale failure must not cancel the order
            self.repo.commit()
            logger.info("Stale attempt resolved, newer attempt still live", order_id=order_id, attempt_id=attempt_id)
            return CallbackResult.APPLIED
        else:
            result = self.order_service.fail_payment(order_id, outcome.payment_status)

        if result.applied:
            self._release(order_id, attempt_id)
            logger.info("Payment callback applied", order_id=order_id, attempt_id=attempt_id, outcome=outcome.value)
            return CallbackResult.APPLIED

        # the order transition rolled back the attempt update, record it again
        self._settle(attempt_id, outcome, transaction_id)
        self.repo.commit()
        self._release(order_id, attempt_id)

        if outcome is PaymentOutcome.SUCCEEDED and result.current is not OrderStatus.CANCELLED:
            logger.info("Order already paid", order_id=order_id, attempt_id=attempt_id)
            return CallbackResult.DUPLICATE
        if outcome is not PaymentOutcome.SUCCEEDED and result.current is OrderStatus.CANCELLED:
            return CallbackResult.DUPLICATE

        logger.warning(
            "Payment outcome contradicts order state",
            order_id=order_id,
            attempt_id=attempt_id,
            outcome=outcome.value,
            order_status=result.current.value,
            transaction_id=transaction_id,
        )
        return CallbackResult.ANOMALY

    # =====================================================
    # TIMEOUT
    # =====================================================
    def expire_stale_attempts(self, now: datetime | None = None) -> int:
        """Attempts past their window time out; their orders go back to waiting for payment."""
        now = now or utcnow()
        expired = 0

        for attempt in self.repo.stale_attempts(now):
            moved = self.repo.resolve(
                attempt.id,
                from_statuses=[PaymentAttemptStatus.PENDING],
                to_status=PaymentAttemptStatus.TIMED_OUT,
                resolved_at=now,
            )
            if not moved:
                continue
            self.order_service.reset_payment_status(attempt.order_id)
            self.repo.commit()
            self._release(attempt.order_id, attempt.id)
            expired += 1
            logger.info("Payment attempt timed out", order_id=attempt.order_id, attempt_id=attempt.id)

        return expired

    # =====================================================
    # HELPERS
    # =====================================================
    def _settle(self, attempt_id: str, outcome: PaymentOutcome, transaction_id: str | None) -> int:
        return self.repo.resolve(
            attempt_id,
            from_statuses=OPEN_ATTEMPT,
            to_status=outcome.attempt_status,
            transaction_id=transaction_id,
            resolved_at=utcnow(),
        )

    def _already_settled(self, attempt_id: str, outcome: PaymentOutcome) -> CallbackResult:
        attempt = self.repo.get_attempt(attempt_id)
        if attempt.status == outcome.attempt_status.value:
            logger.info("Duplicate payment callback", attempt_id=attempt_id, outcome=outcome.value)
            return CallbackResult.DUPLICATE

        logger.warning(
            "Conflicting payment callback",
            attempt_id=attempt_id,
            recorded=attempt.status,
            outcome=outcome.value,
        )
        return CallbackResult.ANOMALY

    def _superseded(self, order_id: str, attempt_id: str) -> bool:
        live = self.repo.live_attempt_for_order(order_id, utcnow())
        return live is not None and live.id != attempt_id

    def _attempt_holding_lock(self, order_id: str) -> PaymentAttemptModel | None:
        holder = self.lock_service.current_holder(order_id)
        if holder is None:
            return None

        attempt = self.repo.get_attempt(holder)
        if attempt is None:
            # holder has not committed its attempt yet
            raise PaymentInProgress(order_id, holder)
        if attempt.status == PaymentAttemptStatus.PENDING.value:
            return attempt

        # left behind by a resolved attempt
        self._release(order_id, holder)
        return None

    def _acquire(self, order_id: str, attempt_id: str) -> bool:
        return self.lock_service.acquire_payment_lock(order_id, attempt_id, ttl=self.timeout_seconds)

    def _release(self, order_id: str, attempt_id: str) -> None:
        try:
            self.lock_service.release_payment_lock(order_id, attempt_id)
        except RedisError as e:
            # the TTL clears it eventually
            logger.warning("Failed to release payment lock", order_id=order_id, attempt_id=attempt_id, error=str(e))
