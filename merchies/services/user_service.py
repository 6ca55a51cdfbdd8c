# merchies/services/user_service.py
from sqlalchemy.orm import Session

from merchies.data.models.band import BandModel
from merchies.data.models.user import UserModel
from merchies.domain.schemas import BandCreate, BandRead, UserCreate, UserRead
from merchies.repos.user_repo import UserRepo


class UserService:
    def __init__(self, db: Session):
        self.repo = UserRepo(db)

    def create_user(self, payload: UserCreate) -> UserRead:
        existing = self.repo.get_user(payload.id)
        if existing:
            return UserRead.model_validate(existing)

        user = UserModel(id=payload.id, name=payload.name, email=payload.email, role=payload.role.value)
        return UserRead.model_validate(self.repo.create_user(user))

    def get_user(self, user_id: str) -> UserRead:
        user = self.repo.get_user(user_id)
        if not user:
            raise LookupError("User not found")
        return UserRead.model_validate(user)


class BandService:
    def __init__(self, db: Session):
        self.repo = UserRepo(db)

    def create_band(self, payload: BandCreate) -> BandRead:
        if not self.repo.get_user(payload.owner_user_id):
            raise LookupError(f"User {payload.owner_user_id} does not exist")

        band = BandModel(
            name=payload.name,
            owner_user_id=payload.owner_user_id,
            member_user_ids=[m for m in payload.member_user_ids if m != payload.owner_user_id],
            description=payload.description,
            logo_url=payload.logo_url,
            genre=payload.genre,
            website=payload.website,
        )
        return BandRead.model_validate(self.repo.create_band(band))

    def get_band(self, band_id: str) -> BandRead:
        return BandRead.model_validate(self._band(band_id))

    def is_member(self, band_id: str, user_id: str) -> bool:
        return self._band(band_id).is_member(user_id)

    def require_member(self, band_id: str, user_id: str) -> None:
        if not self.is_member(band_id, user_id):
            raise PermissionError(f"User {user_id} is not a member of band {band_id}")

    def _band(self, band_id: str) -> BandModel:
        band = self.repo.get_band(band_id)
        if not band:
            raise LookupError("Band not found")
        return band
