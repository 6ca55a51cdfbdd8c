# merchies/main.py
import uvicorn

import merchies.data.models  # noqa: F401  registers every table on Base.metadata
from merchies.api import create_app
from merchies.data.database import Base, engine
from merchies.utils.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)


def init_db() -> None:
    logger.info("Initializing database", tables=sorted(Base.metadata.tables))
    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("Failed to create tables")
        raise
    logger.info("Database tables ready")


init_db()
app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
