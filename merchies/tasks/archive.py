# merchies/tasks/archive.py
from merchies.celery_worker import celery_app
from merchies.data.database import SessionLocal
from merchies.services.event_service import EventService
from merchies.utils.logging import add_context, clear_context, get_logger

logger = get_logger(__name__)


@celery_app.task(name="merchies.tasks.archive.archive_expired_events_task")
def archive_expired_events_task():
    add_context(sweep="archive")
    logger.info("Archive sweep started")

    db = SessionLocal()
    try:
        archived = EventService(db).archive_expired()
        logger.info("Archive sweep finished", archived=archived)
        return archived
    finally:
        db.close()
        clear_context()
