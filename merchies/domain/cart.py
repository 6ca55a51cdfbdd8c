# merchies/domain/cart.py
"""
Client-side cart.

Staging area for (product, size, quantity) lines before checkout. Inventory
checks here are advisory only, for fast feedback; the authoritative check is
the reservation taken at checkout. Owned by a single fan session, so there is
no locking.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable

from merchies.domain.catalog import ProductSnapshot
from merchies.domain.outcomes import InsufficientStock

Availability = Callable[[str, str], int]


@dataclass
class CartLine:
    product: ProductSnapshot
    size: str
    quantity: int
    # set when checkout found less stock than this line asks for
    shortage: InsufficientStock | None = None

    @property
    def unit_price(self) -> Decimal:
        return self.product.price

    @property
    def line_total(self) -> Decimal:
        return self.product.price * self.quantity

    @property
    def flagged(self) -> bool:
        return self.shortage is not None


@dataclass(frozen=True)
class CheckoutLine:
    product_id: str
    size: str
    quantity: int


class CartAggregator:
    def __init__(self, availability: Availability | None = None):
        # default: whatever stock the product snapshot was loaded with
        self._availability = availability
        self._lines: list[CartLine] = []
        self._listeners: list[Callable[["CartAggregator"], None]] = []

    # =====================================================
    # QUERY
    # =====================================================
    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    @property
    def total(self) -> Decimal:
        return sum((line.line_total for line in self._lines), Decimal("0.00"))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def checkout_lines(self) -> list[CheckoutLine]:
        return [CheckoutLine(line.product.id, line.size, line.quantity) for line in self._lines]

    def available_for(self, product: ProductSnapshot, size: str) -> int:
        if self._availability is not None:
            return self._availability(product.id, size)
        return product.available(size)

    def in_cart(self, product_id: str, size: str) -> int:
        return sum(
            line.quantity
            for line in self._lines
            if line.product.id == product_id and line.size == size
        )

    # =====================================================
    # COMMANDS
    # =====================================================
    def add(self, product: ProductSnapshot, size: str, quantity: int = 1) -> CartLine | InsufficientStock:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")
        if size not in product.sizes:
            raise ValueError(f"Size {size} is not offered for product {product.id}")

        available = self.available_for(product, size)
        already = self.in_cart(product.id, size)
        if available - already < quantity:
            return InsufficientStock(
                product_id=product.id,
                size=size,
                requested=already + quantity,
                available=available,
            )

        for line in self._lines:
            if line.product.id == product.id and line.size == size:
                line.quantity += quantity
                line.shortage = None
                self._changed()
                return line

        line = CartLine(product=product, size=size, quantity=quantity)
        self._lines.append(line)
        self._changed()
        return line

    def remove_at(self, index: int) -> None:
        if not 0 <= index < len(self._lines):
            raise IndexError(f"No cart line at index {index}")
        del self._lines[index]
        self._changed()

    def set_quantity(self, index: int, quantity: int) -> CartLine | InsufficientStock | None:
        """Quantity <= 0 removes the line (returns None)."""
        if not 0 <= index < len(self._lines):
            raise IndexError(f"No cart line at index {index}")

        if quantity <= 0:
            self.remove_at(index)
            return None

        line = self._lines[index]
        available = self.available_for(line.product, line.size)
        if quantity > available:
            return InsufficientStock(
                product_id=line.product.id,
                size=line.size,
                requested=quantity,
                available=available,
            )

        line.quantity = quantity
        line.shortage = None
        self._changed()
        return line

    def clear(self) -> None:
        self._lines.clear()
        self._changed()

    def flag_shortages(self, shortages: Iterable[InsufficientStock]) -> list[CartLine]:
        """Mark lines a rejected checkout could not reserve. Lines are kept."""
        flagged = []
        by_key = {(s.product_id, s.size): s for s in shortages}
        for line in self._lines:
            shortage = by_key.get((line.product.id, line.size))
            if shortage is not None:
                line.shortage = shortage
                flagged.append(line)
        if flagged:
            self._changed()
        return flagged

    def subscribe(self, listener: Callable[["CartAggregator"], None]) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(self)
