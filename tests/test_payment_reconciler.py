from datetime import timedelta
from decimal import Decimal

import pytest
import requests
from sqlalchemy.exc import OperationalError

from merchies.domain.cart import CheckoutLine
from merchies.domain.errors import InvalidTransition, PaymentInProgress
from merchies.domain.states import (
    CallbackResult,
    OrderStatus,
    PaymentAttemptStatus,
    PaymentOutcome,
    PaymentStatus,
)
from merchies.services.inventory_ledger import InventoryLedger
from merchies.services.order_service import OrderService
from merchies.services.payment_reconciler import PaymentReconciler
from merchies.utils.clock import utcnow


@pytest.fixture
def product(make_product):
    return make_product(inventory={"M": 5}, price="20.00")


@pytest.fixture
def orders(db):
    return OrderService(db)


@pytest.fixture
def order(orders, product):
    return orders.checkout("fan-1", [CheckoutLine(product.id, "M", 2)])


@pytest.fixture
def reconciler(db, lock_service, gateway, orders):
    return PaymentReconciler(db, lock_service=lock_service, gateway=gateway, order_service=orders)


def test_begin_payment_registers_intent(reconciler, order, orders, gateway, lock_service):
    attempt = reconciler.begin_payment(order.id, Decimal("40.00"))

    assert attempt.status == PaymentAttemptStatus.PENDING.value
    assert attempt.client_secret == "secret_1"
    assert gateway.calls == [
        {"amount_minor": 4000, "currency": "usd", "order_id": order.id, "idempotency_key": attempt.id}
    ]
    assert lock_service.current_holder(order.id) == attempt.id
    assert orders.get_order(order.id).payment_status == PaymentStatus.PROCESSING.value


def test_begin_payment_while_in_flight_reuses_attempt(reconciler, order, gateway):
    first = reconciler.begin_payment(order.id, "40.00")
    second = reconciler.begin_payment(order.id, "40.00")

    assert second.id == first.id
    assert len(gateway.calls) == 1


def test_begin_payment_rejects_wrong_amount(reconciler, order, gateway):
    with pytest.raises(ValueError):
        reconciler.begin_payment(order.id, Decimal("39.99"))
    assert gateway.calls == []


def test_begin_payment_requires_pending_payment(reconciler, order, orders):
    orders.confirm_payment(order.id, "txn_0")

    with pytest.raises(InvalidTransition):
        reconciler.begin_payment(order.id, "40.00")


def test_begin_payment_blocked_by_uncommitted_holder(reconciler, order, lock_service):
    lock_service.holders[order.id] = "attempt-being-created"

    with pytest.raises(PaymentInProgress):
        reconciler.begin_payment(order.id, "40.00")


def test_gateway_failure_fails_attempt_and_frees_lock(reconciler, order, gateway, lock_service):
    gateway.fail = True

    with pytest.raises(requests.RequestException):
        reconciler.begin_payment(order.id, "40.00")

    attempt = reconciler.get_attempt(gateway.calls[0]["idempotency_key"])
    assert attempt.status == PaymentAttemptStatus.FAILED.value
    assert lock_service.current_holder(order.id) is None


def test_database_failure_frees_lock_for_retry(reconciler, order, gateway, lock_service, monkeypatch):
    def broken(attempt):
        raise OperationalError("INSERT INTO payment_attempts", {}, Exception("database is locked"))

    monkeypatch.setattr(reconciler.repo, "add_attempt", broken)

    with pytest.raises(OperationalError):
        reconciler.begin_payment(order.id, "40.00")
    assert lock_service.current_holder(order.id) is None
    assert gateway.calls == []

    monkeypatch.undo()
    retry = reconciler.begin_payment(order.id, "40.00")
    assert lock_service.current_holder(order.id) == retry.id


def test_success_callback_applies_once(reconciler, order, orders, lock_service):
    attempt = reconciler.begin_payment(order.id, "40.00")

    assert reconciler.on_gateway_callback(attempt.id, PaymentOutcome.SUCCEEDED, "txn_1") is CallbackResult.APPLIED
    assert reconciler.on_gateway_callback(attempt.id, "succeeded", "txn_1") is CallbackResult.DUPLICATE

    paid = orders.get_order(order.id)
    assert paid.status == OrderStatus.PENDING_PICKUP.value
    assert paid.payment_status == PaymentStatus.SUCCEEDED.value
    assert paid.qr_code == f"QR_{order.id}"
    assert paid.version == 2
    assert lock_service.current_holder(order.id) is None


def test_failure_after_success_is_an_anomaly(reconciler, order, orders):
    attempt = reconciler.begin_payment(order.id, "40.00")
    reconciler.on_gateway_callback(attempt.id, PaymentOutcome.SUCCEEDED, "txn_1")

    result = reconciler.on_gateway_callback(attempt.id, PaymentOutcome.FAILED)

    assert result is CallbackResult.ANOMALY
    assert orders.get_order(order.id).status == OrderStatus.PENDING_PICKUP.value


def test_failure_callback_cancels_and_restores_stock(db, reconciler, order, orders, product):
    attempt = reconciler.begin_payment(order.id, "40.00")

    assert reconciler.on_gateway_callback(attempt.id, PaymentOutcome.FAILED) is CallbackResult.APPLIED

    cancelled = orders.get_order(order.id)
    assert cancelled.status == OrderStatus.CANCELLED.value
    assert cancelled.payment_status == PaymentStatus.FAILED.value
    assert InventoryLedger(db).available(product.id, "M") == 5


def test_fan_cancelled_payment(reconciler, order, orders):
    attempt = reconciler.begin_payment(order.id, "40.00")

    reconciler.on_gateway_callback(attempt.id, PaymentOutcome.CANCELLED)

    assert orders.get_order(order.id).payment_status == PaymentStatus.CANCELLED.value


def test_late_success_does_not_resurrect_cancelled_order(reconciler, order, orders):
    attempt = reconciler.begin_payment(order.id, "40.00")
    orders.cancel(order.id, reason="merchant closed the stand")

    result = reconciler.on_gateway_callback(attempt.id, PaymentOutcome.SUCCEEDED, "txn_late")

    assert result is CallbackResult.ANOMALY
    assert orders.get_order(order.id).status == OrderStatus.CANCELLED.value
    assert reconciler.get_attempt(attempt.id).status == PaymentAttemptStatus.SUCCEEDED.value


def test_unknown_attempt(reconciler):
    assert reconciler.on_gateway_callback("nope", PaymentOutcome.SUCCEEDED) is CallbackResult.UNKNOWN_ATTEMPT


def test_timeout_keeps_order_waiting_and_allows_retry(reconciler, order, orders, gateway, lock_service):
    now = utcnow()
    stale = reconciler.begin_payment(order.id, "40.00", now=now)

    assert reconciler.expire_stale_attempts(now + timedelta(minutes=16)) == 1

    assert reconciler.get_attempt(stale.id).status == PaymentAttemptStatus.TIMED_OUT.value
    waiting = orders.get_order(order.id)
    assert waiting.status == OrderStatus.PENDING_PAYMENT.value
    assert waiting.payment_status == PaymentStatus.PENDING.value
    assert lock_service.current_holder(order.id) is None

    retry = reconciler.begin_payment(order.id, "40.00")
    assert retry.id != stale.id
    assert len(gateway.calls) == 2


def test_expire_ignores_attempts_within_window(reconciler, order):
    now = utcnow()
    reconciler.begin_payment(order.id, "40.00", now=now)

    assert reconciler.expire_stale_attempts(now + timedelta(minutes=5)) == 0


def test_late_callback_for_timed_out_attempt_is_honoured(reconciler, order, orders):
    now = utcnow()
    attempt = reconciler.begin_payment(order.id, "40.00", now=now)
    reconciler.expire_stale_attempts(now + timedelta(minutes=16))

    result = reconciler.on_gateway_callback(attempt.id, PaymentOutcome.SUCCEEDED, "txn_slow")

    assert result is CallbackResult.APPLIED
    assert orders.get_order(order.id).status == OrderStatus.PENDING_PICKUP.value
