# merchies/services/pickup_verifier.py
from sqlalchemy.orm import Session

from merchies.data.models.order import OrderModel
from merchies.domain.outcomes import PickupAlreadyUsed, PickupNotFound, PickupNotReady
from merchies.domain.pickup_codes import TEMPORARY_PREFIX
from merchies.domain.states import OrderStatus
from merchies.repos.order_repo import OrderRepo
from merchies.services.notification_service import NotificationService
from merchies.services.order_service import OrderService
from merchies.utils.logging import get_logger

logger = get_logger(__name__)

PickupResult = OrderModel | PickupNotFound | PickupAlreadyUsed | PickupNotReady


class PickupVerifier:
    """
    Merchant scans a pickup code at the stand. pending_pickup -> picked_up
    happens at most once; of two simultaneous scans one wins and the other
    sees PickupAlreadyUsed.
    """

    def __init__(
        self,
        db: Session,
        order_service: OrderService | None = None,
        notification_service: NotificationService | None = None,
    ):
        self.repo = OrderRepo(db)
        self.order_service = order_service or OrderService(db)
        self.notification_service = notification_service or NotificationService()

    def verify(self, code: str, merchant_id: str | None = None) -> PickupResult:
        code = (code or "").strip()
        order = self.repo.get_by_qr_code(code) if code else None

        if order is None or (merchant_id is not None and order.band_id != merchant_id):
            logger.info("Pickup code not found", code=code, merchant_id=merchant_id)
            return PickupNotFound(code=code)

        status = order.order_status
        if code.startswith(TEMPORARY_PREFIX) and status is not OrderStatus.PENDING_PAYMENT:
            logger.warning("Temporary pickup code used after payment", order_id=order.id)
            return PickupNotFound(code=code)
        if status is OrderStatus.PENDING_PAYMENT:
            return PickupNotReady(code=code, order_id=order.id)
        if status is OrderStatus.CANCELLED:
            return PickupNotFound(code=code)
        if status is OrderStatus.PICKED_UP:
            return PickupAlreadyUsed(code=code, order_id=order.id)

        result = self.order_service.complete_pickup(order.id)
        if not result.applied:
            if result.current is OrderStatus.PICKED_UP:
                logger.info("Pickup raced by another scan", order_id=order.id)
                return PickupAlreadyUsed(code=code, order_id=order.id)
            return PickupNotFound(code=code)

        order = self.order_service.get_order(order.id)
        logger.info("Pickup verified", order_id=order.id, merchant_id=merchant_id)
        self.notification_service.order_picked_up(order.user_id, order.id)
        return order
