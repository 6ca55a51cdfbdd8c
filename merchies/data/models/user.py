# merchies/data/models/user.py
from sqlalchemy import Column, DateTime, String

from merchies.data.database import Base
from merchies.data.models.base import new_id, now_utc
from merchies.domain.states import UserRole


class UserModel(Base):
    __tablename__ = "users"

    # identity comes from the auth provider, we only keep the profile
    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True, index=True)
    role = Column(String(16), nullable=False, default=UserRole.FAN.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_utc)
