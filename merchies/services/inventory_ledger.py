# merchies/services/inventory_ledger.py
from sqlalchemy.orm import Session

from merchies.data.models.reservation import ReservationModel
from merchies.domain.errors import ReservationStateError
from merchies.domain.outcomes import InsufficientStock, ReservationHandle
from merchies.domain.states import ReservationStatus
from merchies.repos.inventory_repo import InventoryRepo
from merchies.utils.logging import get_logger

logger = get_logger(__name__)


class InventoryLedger:
    """
    Per-product, per-size available counters with soft holds.

    - reserve: atomic conditional decrement, returns a handle or
      InsufficientStock (a normal outcome, not an exception)
    - commit: hold becomes permanent, counters untouched
    - release: stock goes back exactly once, safe to repeat

    Works inside the caller's session; the caller commits or rolls back.
    """

    def __init__(self, db: Session):
        self.repo = InventoryRepo(db)

    # =====================================================
    # QUERY
    # =====================================================
    def available(self, product_id: str, size: str) -> int:
        return self.repo.get_available(product_id, size) or 0

    def snapshot(self, product_id: str) -> dict[str, int]:
        return self.repo.counters_for(product_id)

    def reservations_for(self, order_id: str) -> list[ReservationHandle]:
        return [self._handle(r) for r in self.repo.reservations_for_order(order_id)]

    # =====================================================
    # COMMANDS
    # =====================================================
    def initialize(self, product_id: str, inventory: dict[str, int]) -> None:
        """Create the counters of a new product."""
        for size, available in inventory.items():
            if available < 0:
                raise ValueError(f"Inventory for size {size} cannot be negative")
            self.repo.add_counter(product_id, size, available)

    def restock(self, product_id: str, size: str, quantity: int) -> int:
        if quantity <= 0:
            raise ValueError("Restock quantity must be greater than 0")

        if not self.repo.increment(product_id, size, quantity):
            self.repo.add_counter(product_id, size, quantity)

        logger.info("Stock added", product_id=product_id, size=size, quantity=quantity)
        return self.available(product_id, size)

    def reserve(
        self,
        product_id: str,
        size: str,
        quantity: int,
        order_id: str | None = None,
    ) -> ReservationHandle | InsufficientStock:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        rowcount = self.repo.decrement_if_available(product_id, size, quantity)

        if rowcount == 0:
            available = self.available(product_id, size)
            logger.info(
                "Insufficient stock",
                product_id=product_id,
                size=size,
                requested=quantity,
                available=available,
            )
            return InsufficientStock(
                product_id=product_id,
                size=size,
                requested=quantity,
                available=available,
            )

        reservation = self.repo.add_reservation(
            ReservationModel(
                order_id=order_id,
                product_id=product_id,
                size=size,
                quantity=quantity,
                status=ReservationStatus.HELD.value,
            )
        )

        logger.info(
            "Stock reserved",
            reservation_id=reservation.id,
            product_id=product_id,
            size=size,
            quantity=quantity,
        )
        return self._handle(reservation)

    def commit(self, handle: ReservationHandle) -> None:
        moved = self.repo.move_reservation(
            handle.reservation_id,
            from_statuses=[ReservationStatus.HELD],
            to_status=ReservationStatus.COMMITTED,
        )
        if moved:
            return

        reservation = self.repo.get_reservation(handle.reservation_id)
        if reservation is None:
            raise ReservationStateError(f"Reservation {handle.reservation_id} does not exist")
        if reservation.status == ReservationStatus.COMMITTED.value:
            return
        raise ReservationStateError(
            f"Reservation {handle.reservation_id} is {reservation.status} and cannot be committed"
        )

    def release(self, handle: ReservationHandle) -> bool:
        """Returns False when the reservation was already released."""
        moved = self.repo.move_reservation(
            handle.reservation_id,
            from_statuses=[ReservationStatus.HELD, ReservationStatus.COMMITTED],
            to_status=ReservationStatus.RELEASED,
        )
        if not moved:
            return False

        self.repo.increment(handle.product_id, handle.size, handle.quantity)
        logger.info(
            "Stock released",
            reservation_id=handle.reservation_id,
            product_id=handle.product_id,
            size=handle.size,
            quantity=handle.quantity,
        )
        return True

    def release_all(self, handles) -> int:
        return sum(1 for h in handles if self.release(h))

    @staticmethod
    def _handle(reservation: ReservationModel) -> ReservationHandle:
        return ReservationHandle(
            reservation_id=reservation.id,
            product_id=reservation.product_id,
            size=reservation.size,
            quantity=reservation.quantity,
        )
