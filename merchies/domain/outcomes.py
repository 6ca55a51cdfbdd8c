# merchies/domain/outcomes.py
"""
Typed results for the expected, recoverable outcomes of the core operations.
Callers branch on these with isinstance; none of them is an error.
"""
from dataclasses import dataclass, field

from merchies.domain.states import OrderStatus


@dataclass(frozen=True)
class ReservationHandle:
    reservation_id: str
    product_id: str
    size: str
    quantity: int


@dataclass(frozen=True)
class InsufficientStock:
    product_id: str
    size: str
    requested: int
    available: int


@dataclass(frozen=True)
class CheckoutRejected:
    shortages: tuple[InsufficientStock, ...] = field(default_factory=tuple)
    reason: str = "insufficient_stock"


@dataclass(frozen=True)
class TransitionResult:
    applied: bool
    current: OrderStatus


@dataclass(frozen=True)
class PickupNotFound:
    code: str


@dataclass(frozen=True)
class PickupAlreadyUsed:
    code: str
    order_id: str


@dataclass(frozen=True)
class PickupNotReady:
    code: str
    order_id: str
