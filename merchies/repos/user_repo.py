# merchies/repos/user_repo.py
from sqlalchemy.orm import Session

from merchies.data.models.band import BandModel
from merchies.data.models.user import UserModel


class UserRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str) -> UserModel | None:
        return self.db.get(UserModel, user_id)

    def create_user(self, user: UserModel) -> UserModel:
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def get_band(self, band_id: str) -> BandModel | None:
        return self.db.get(BandModel, band_id)

    def create_band(self, band: BandModel) -> BandModel:
        self.db.add(band)
        self.db.commit()
        self.db.refresh(band)
        return band
