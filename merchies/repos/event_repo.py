# merchies/repos/event_repo.py
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from merchies.data.models.event import EventModel


class EventRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_event(self, event: EventModel) -> EventModel:
        self.db.add(event)
        self.db.flush()
        return event

    def get_event(self, event_id: str) -> EventModel | None:
        return self.db.get(EventModel, event_id)

    def list_for_merchant(self, merchant_id: str, include_archived: bool = False) -> list[EventModel]:
        stmt = select(EventModel).order_by(EventModel.start_date)
        if not include_archived:
            stmt = stmt.where(EventModel.archived.is_(False))
        # merchant_ids is a JSON list, filtered in python to stay portable
        return [e for e in self.db.execute(stmt).scalars() if e.has_merchant(merchant_id)]

    def list_open_candidates(self, now: datetime) -> list[EventModel]:
        return list(
            self.db.execute(
                select(EventModel)
                .options(selectinload(EventModel.products))
                .where(
                    EventModel.archived.is_(False),
                    EventModel.active.is_(True),
                    EventModel.start_date <= now,
                    EventModel.end_date >= now,
                )
            ).scalars()
        )

    def archive_ended_before(self, now: datetime) -> list[str]:
        ids = list(
            self.db.execute(
                select(EventModel.id).where(
                    EventModel.archived.is_(False),
                    EventModel.end_date < now,
                )
            ).scalars()
        )
        if ids:
            self.db.execute(
                update(EventModel)
                .where(EventModel.id.in_(ids), EventModel.archived.is_(False))
                .values(archived=True)
                .execution_options(synchronize_session="fetch")
            )
        return ids

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
