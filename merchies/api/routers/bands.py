# merchies/api/routers/bands.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from merchies.api.deps import get_db
from merchies.domain.schemas import BandCreate, BandRead
from merchies.services.user_service import BandService

router = APIRouter(prefix="/bands", tags=["bands"])


@router.post("", response_model=BandRead, status_code=201)
def create_band(payload: BandCreate, db: Session = Depends(get_db)):
    service = BandService(db)
    try:
        return service.create_band(payload)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{band_id}", response_model=BandRead)
def get_band(band_id: str, db: Session = Depends(get_db)):
    service = BandService(db)
    try:
        return service.get_band(band_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
