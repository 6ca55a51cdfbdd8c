# merchies/tasks/payments.py
from merchies.celery_worker import celery_app
from merchies.data.database import SessionLocal
from merchies.services.lock_service import LockService
from merchies.services.payment_gateway import PaymentGatewayClient
from merchies.services.payment_reconciler import PaymentReconciler
from merchies.utils.logging import add_context, clear_context, get_logger

logger = get_logger(__name__)
lock_service = LockService()


@celery_app.task(name="merchies.tasks.payments.expire_payment_attempts_task")
def expire_payment_attempts_task():
    add_context(sweep="payment_timeout")
    logger.info("Payment timeout sweep started")

    db = SessionLocal()
    try:
        reconciler = PaymentReconciler(db, lock_service=lock_service, gateway=PaymentGatewayClient())
        expired = reconciler.expire_stale_attempts()
        logger.info("Payment timeout sweep finished", expired=expired)
        return expired
    finally:
        db.close()
        clear_context()
