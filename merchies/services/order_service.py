# merchies/services/order_service.py
from decimal import Decimal
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from merchies.data.models.base import new_id
from merchies.data.models.order import OrderItemModel, OrderModel
from merchies.domain.cart import CheckoutLine
from merchies.domain.errors import InvalidTransition, OrderNotFound
from merchies.domain.outcomes import CheckoutRejected, InsufficientStock, TransitionResult
from merchies.domain.pickup_codes import pickup_code, temporary_code
from merchies.domain.states import OrderStatus, PaymentStatus, can_transition
from merchies.repos.event_repo import EventRepo
from merchies.repos.order_repo import OrderRepo
from merchies.repos.product_repo import ProductRepo
from merchies.services.inventory_ledger import InventoryLedger
from merchies.services.notification_service import NotificationService
from merchies.utils.clock import as_utc, utcnow
from merchies.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")


class OrderService:
    """
    Lifecycle of a single order:

        (checkout)       -> pending_payment   reserve every line, all or nothing
        pending_payment  -> pending_pickup    payment succeeded, commit holds, final QR code
        pending_payment  -> cancelled         payment failed, release holds
        pending_pickup   -> picked_up         code verified, terminal
        pending_*        -> cancelled         merchant/admin cancel, release holds

    Every transition is a conditional UPDATE on the expected "from" status,
    so a payment callback and a cancel racing each other cannot both win.
    """

    def __init__(
        self,
        db: Session,
        ledger: InventoryLedger | None = None,
        notification_service: NotificationService | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.products = ProductRepo(db)
        self.events = EventRepo(db)
        self.ledger = ledger or InventoryLedger(db)
        self.notification_service = notification_service or NotificationService()

    # =====================================================
    # QUERY
    # =====================================================
    def get_order(self, order_id: str) -> OrderModel:
        order = self.repo.get_order(order_id, fresh=True)
        if not order:
            raise OrderNotFound(f"Order {order_id} does not exist")
        return order

    def get_order_for_user(self, order_id: str, user_id: str) -> OrderModel:
        order = self.get_order(order_id)
        if order.user_id != user_id:
            raise PermissionError("No access to this order")
        return order

    def list_orders_for_fan(self, user_id: str) -> list[OrderModel]:
        return self.repo.list_for_user(user_id)

    def list_orders_for_band(self, band_id: str, statuses: Iterable[OrderStatus] | None = None) -> list[OrderModel]:
        return self.repo.list_for_band(band_id, statuses)

    def current_status(self, order_id: str) -> OrderStatus:
        return self.get_order(order_id).order_status

    # =====================================================
    # COMMANDS
    # =====================================================
    def checkout(
        self,
        fan_id: str,
        lines: Iterable[CheckoutLine],
        event_id: str | None = None,
    ) -> OrderModel | CheckoutRejected:
        """
        Use case: turn cart lines into an order.

        Either every line is reserved or none is. Shortages come back as
        CheckoutRejected so the cart can flag the lines; bad input raises.
        """
        lines = self._merge_lines(lines)
        if not lines:
            raise ValueError("Cannot check out an empty cart")

        products = self.products.get_many(line.product_id for line in lines)
        band_id = self._validate_lines(lines, products, event_id)

        if event_id is not None:
            event = self.events.get_event(event_id)
            if event is None:
                raise LookupError(f"Event {event_id} does not exist")
            storefront_open = (
                event.active
                and not event.archived
                and as_utc(event.start_date) <= utcnow() <= as_utc(event.end_date)
            )
            if not storefront_open:
                logger.info("Checkout against closed storefront", event_id=event_id, fan_id=fan_id)
                self.repo.rollback()
                return CheckoutRejected(reason="event_closed")

        order_id = new_id()
        handles = []
        shortages: list[InsufficientStock] = []

        for line in lines:
            result = self.ledger.reserve(line.product_id, line.size, line.quantity, order_id=order_id)
            if isinstance(result, InsufficientStock):
                shortages.append(result)
            else:
                handles.append(result)

        if shortages:
            # give back what this checkout took, then drop the transaction
            self.ledger.release_all(handles)
            self.repo.rollback()
            logger.warning(
                "Checkout rejected, insufficient stock",
                fan_id=fan_id,
                shortages=[(s.product_id, s.size, s.requested, s.available) for s in shortages],
            )
            return CheckoutRejected(shortages=tuple(shortages))

        items = []
        for position, line in enumerate(lines):
            product = products[line.product_id]
            items.append(
                OrderItemModel(
                    position=position,
                    product_id=product.id,
                    size=line.size,
                    quantity=line.quantity,
                    unit_price=Decimal(str(product.price)).quantize(CENT),
                    title=product.title,
                )
            )
        amount = sum((i.unit_price * i.quantity for i in items), Decimal("0.00")).quantize(CENT)

        order = OrderModel(
            id=order_id,
            user_id=fan_id,
            band_id=band_id,
            event_id=event_id,
            amount=amount,
            status=OrderStatus.PENDING_PAYMENT.value,
            payment_status=PaymentStatus.PENDING.value,
            qr_code=temporary_code(),
            items=items,
        )

        try:
            self.repo.add_order(order)
            self.repo.commit()
        except SQLAlchemyError:
            # rollback returns the holds together with the half-written order
            logger.exception("Persisting order failed, reservations rolled back", order_id=order_id)
            self.repo.rollback()
            raise

        logger.info(
            "Order created",
            order_id=order.id,
            fan_id=fan_id,
            band_id=band_id,
            amount=str(amount),
            lines=len(items),
        )
        return order

    def confirm_payment(self, order_id: str, transaction_id: str | None) -> TransitionResult:
        """pending_payment -> pending_pickup. The order gets its final pickup code."""
        rowcount = self.repo.transition(
            order_id,
            from_statuses=[OrderStatus.PENDING_PAYMENT],
            to_status=OrderStatus.PENDING_PICKUP,
            payment_status=PaymentStatus.SUCCEEDED.value,
            transaction_id=transaction_id,
            qr_code=pickup_code(order_id),
        )
        if rowcount == 0:
            self.repo.rollback()
            return TransitionResult(applied=False, current=self.current_status(order_id))

        try:
            for handle in self.ledger.reservations_for(order_id):
                self.ledger.commit(handle)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        order = self.get_order(order_id)
        logger.info("Order paid, ready for pickup", order_id=order_id, transaction_id=transaction_id)
        self.notification_service.order_ready_for_pickup(order.user_id, order.id, order.qr_code)
        return TransitionResult(applied=True, current=OrderStatus.PENDING_PICKUP)

    def fail_payment(
        self,
        order_id: str,
        payment_status: PaymentStatus = PaymentStatus.FAILED,
    ) -> TransitionResult:
        """pending_payment -> cancelled after a declined or cancelled payment."""
        rowcount = self.repo.transition(
            order_id,
            from_statuses=[OrderStatus.PENDING_PAYMENT],
            to_status=OrderStatus.CANCELLED,
            payment_status=payment_status.value,
        )
        if rowcount == 0:
            self.repo.rollback()
            return TransitionResult(applied=False, current=self.current_status(order_id))

        released = self._release_reservations(order_id)
        self.repo.commit()

        order = self.get_order(order_id)
        logger.info(
            "Order cancelled after payment failure",
            order_id=order_id,
            payment_status=payment_status.value,
            released=released,
        )
        self.notification_service.order_cancelled(order.user_id, order.id)
        return TransitionResult(applied=True, current=OrderStatus.CANCELLED)

    def cancel(self, order_id: str, reason: str = "") -> OrderModel:
        """
        Merchant/administrative cancel from any non-terminal status. Held and
        committed-but-not-picked-up stock goes back to the counters.
        """
        for _ in range(3):
            order = self.get_order(order_id)
            current = order.order_status

            if not can_transition(current, OrderStatus.CANCELLED):
                raise InvalidTransition(order_id, current.value, OrderStatus.CANCELLED.value)

            payment_status = order.payment_status
            if payment_status in (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value):
                payment_status = PaymentStatus.CANCELLED.value

            rowcount = self.repo.transition(
                order_id,
                from_statuses=[current],
                to_status=OrderStatus.CANCELLED,
                payment_status=payment_status,
            )
            if rowcount:
                break
            # status moved under us (e.g. payment landed), look again
            self.repo.rollback()
        else:
            raise RuntimeError(f"Concurrency conflict while cancelling order {order_id}")

        released = self._release_reservations(order_id)
        self.repo.commit()

        logger.info("Order cancelled", order_id=order_id, reason=reason, released=released)
        order = self.get_order(order_id)
        self.notification_service.order_cancelled(order.user_id, order.id)
        return order

    def complete_pickup(self, order_id: str) -> TransitionResult:
        """pending_pickup -> picked_up. No inventory effect, stock was committed at payment."""
        rowcount = self.repo.transition(
            order_id,
            from_statuses=[OrderStatus.PENDING_PICKUP],
            to_status=OrderStatus.PICKED_UP,
        )
        if rowcount == 0:
            self.repo.rollback()
            return TransitionResult(applied=False, current=self.current_status(order_id))

        self.repo.commit()
        logger.info("Order picked up", order_id=order_id)
        return TransitionResult(applied=True, current=OrderStatus.PICKED_UP)

    def mark_payment_processing(self, order_id: str) -> bool:
        rowcount = self.repo.update_payment_status(
            order_id,
            PaymentStatus.PROCESSING,
            from_payment_statuses=[PaymentStatus.PENDING, PaymentStatus.PROCESSING],
        )
        return bool(rowcount)

    def reset_payment_status(self, order_id: str) -> bool:
        """After a timed-out attempt the fan may pay again against the same order."""
        rowcount = self.repo.update_payment_status(
            order_id,
            PaymentStatus.PENDING,
            from_payment_statuses=[PaymentStatus.PROCESSING],
        )
        return bool(rowcount)

    # =====================================================
    # HELPERS
    # =====================================================
    def _release_reservations(self, order_id: str) -> int:
        return self.ledger.release_all(self.ledger.reservations_for(order_id))

    @staticmethod
    def _merge_lines(lines: Iterable[CheckoutLine]) -> list[CheckoutLine]:
        merged: dict[tuple[str, str], int] = {}
        for line in lines:
            if line.quantity <= 0:
                raise ValueError("Quantity must be greater than 0")
            key = (line.product_id, line.size)
            merged[key] = merged.get(key, 0) + line.quantity
        return [CheckoutLine(product_id=p, size=s, quantity=q) for (p, s), q in merged.items()]

    @staticmethod
    def _validate_lines(lines: list[CheckoutLine], products: dict, event_id: str | None) -> str:
        band_ids = set()
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                raise LookupError(f"Product {line.product_id} does not exist")
            if not product.active:
                raise ValueError(f"Product {product.id} is not available")
            if line.size not in (product.sizes or []):
                raise ValueError(f"Size {line.size} is not offered for product {product.id}")
            if event_id is not None and event_id not in product.event_ids:
                raise ValueError(f"Product {product.id} is not sold at event {event_id}")
            band_ids.add(product.band_id)

        if len(band_ids) != 1:
            raise ValueError("An order can only contain products of one merchant")
        return band_ids.pop()
