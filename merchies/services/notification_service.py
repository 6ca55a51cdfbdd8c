# merchies/services/notification_service.py
from merchies.celery_worker import celery_app
from merchies.utils.logging import get_logger

logger = get_logger(__name__)

READY_FOR_PICKUP = "ready_for_pickup"
PICKED_UP = "picked_up"
CANCELLED = "cancelled"


class NotificationService:
    """
    Push delivery belongs to an external provider. We only enqueue the
    message; the Celery task is where a provider client would be called.
    """

    @staticmethod
    def order_ready_for_pickup(user_id: str, order_id: str, qr_code: str):
        send_order_notification_task.delay(user_id, order_id, READY_FOR_PICKUP, qr_code)

    @staticmethod
    def order_picked_up(user_id: str, order_id: str):
        send_order_notification_task.delay(user_id, order_id, PICKED_UP, None)

    @staticmethod
    def order_cancelled(user_id: str, order_id: str):
        send_order_notification_task.delay(user_id, order_id, CANCELLED, None)


@celery_app.task(name="merchies.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: str, order_id: str, kind: str, qr_code: str | None = None):
    logger.info("[NOTIFICATION] order update", user_id=user_id, order_id=order_id, kind=kind)
    return {"user_id": user_id, "order_id": order_id, "kind": kind, "status": "sent"}
