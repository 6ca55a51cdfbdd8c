# merchies/data/models/band.py
from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text

from merchies.data.database import Base
from merchies.data.models.base import new_id, now_utc


class BandModel(Base):
    __tablename__ = "bands"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    logo_url = Column(String, nullable=True)
    owner_user_id = Column(String(64), nullable=False, index=True)
    member_user_ids = Column(JSON, nullable=False, default=list)
    genre = Column(String, nullable=True)
    website = Column(String, nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc)

    @property
    def all_member_ids(self) -> list[str]:
        return [self.owner_user_id] + list(self.member_user_ids or [])

    def is_member(self, user_id: str) -> bool:
        return user_id in self.all_member_ids
