# merchies/celery_worker.py
from celery import Celery

from merchies.utils.settings import (
    ARCHIVE_SWEEP_SECONDS,
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    PAYMENT_SWEEP_SECONDS,
)

celery_app = Celery(
    "merchies",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks have to be imported explicitly so the worker registers them
celery_app.conf.imports = (
    "merchies.tasks.archive",
    "merchies.tasks.payments",
    "merchies.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "archive-expired-events": {
        "task": "merchies.tasks.archive.archive_expired_events_task",
        "schedule": ARCHIVE_SWEEP_SECONDS,
    },
    "expire-payment-attempts": {
        "task": "merchies.tasks.payments.expire_payment_attempts_task",
        "schedule": PAYMENT_SWEEP_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
