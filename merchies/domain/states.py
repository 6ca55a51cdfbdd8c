# merchies/domain/states.py
from enum import Enum


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PENDING_PICKUP = "pending_pickup"
    PICKED_UP = "picked_up"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReservationStatus(str, Enum):
    HELD = "held"
    COMMITTED = "committed"
    RELEASED = "released"


class PaymentAttemptStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


class PaymentOutcome(str, Enum):
    """What the gateway reports in its callback."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def attempt_status(self) -> PaymentAttemptStatus:
        return PaymentAttemptStatus(self.value)

    @property
    def payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.value)


class CallbackResult(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    ANOMALY = "anomaly"
    UNKNOWN_ATTEMPT = "unknown_attempt"


class UserRole(str, Enum):
    FAN = "fan"
    MERCHANT = "merchant"


# Allowed order transitions. Terminal states have no outgoing edges.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_PAYMENT: frozenset({OrderStatus.PENDING_PICKUP, OrderStatus.CANCELLED}),
    OrderStatus.PENDING_PICKUP: frozenset({OrderStatus.PICKED_UP, OrderStatus.CANCELLED}),
    OrderStatus.PICKED_UP: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]
