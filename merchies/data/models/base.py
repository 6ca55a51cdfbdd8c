# merchies/data/models/base.py
import uuid
from datetime import datetime, timezone


def new_id() -> str:
    """Generated document identifier, same shape for every collection."""
    return uuid.uuid4().hex


def now_utc() -> datetime:
    return datetime.now(timezone.utc)
