# merchies/api/routers/events.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from merchies.api.deps import get_db
from merchies.domain.schemas import EventCreate, EventRead, EventUpdate, ProductRead
from merchies.services.event_service import EventService
from merchies.utils.settings import NEARBY_SEARCH_KM

router = APIRouter(prefix="/events", tags=["events"])


def get_service(db: Session):
    return EventService(db)


@router.post("", response_model=EventRead, status_code=201)
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.create_event(payload)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("", response_model=List[EventRead])
def list_events(
    merchant_id: str = Query(...),
    include_archived: bool = Query(False),
    db: Session = Depends(get_db),
):
    return get_service(db).list_for_merchant(merchant_id, include_archived)


# declared before /{event_id} so "nearby" is not taken for an id
@router.get("/nearby", response_model=List[EventRead])
def nearby_events(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(NEARBY_SEARCH_KM, gt=0),
    db: Session = Depends(get_db),
):
    return get_service(db).nearby(latitude, longitude, radius_km)


@router.get("/{event_id}", response_model=EventRead)
def get_event(event_id: str, db: Session = Depends(get_db)):
    try:
        return get_service(db).get_event(event_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/{event_id}", response_model=EventRead)
def update_event(
    event_id: str,
    payload: EventUpdate,
    merchant_id: str = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.update_event(event_id, payload, merchant_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{event_id}/catalog", response_model=List[ProductRead])
def event_catalog(event_id: str, db: Session = Depends(get_db)):
    try:
        products = get_service(db).open_catalog(event_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [ProductRead.from_snapshot(p) for p in products]


@router.post("/{event_id}/archive", response_model=EventRead)
def archive_event(event_id: str, merchant_id: str = Query(...), db: Session = Depends(get_db)):
    try:
        return get_service(db).archive(event_id, merchant_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{event_id}/products/{product_id}", response_model=EventRead)
def link_product(
    event_id: str,
    product_id: str,
    merchant_id: str = Query(...),
    db: Session = Depends(get_db),
):
    try:
        return get_service(db).link_product(event_id, product_id, merchant_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{event_id}/products/{product_id}", response_model=EventRead)
def unlink_product(
    event_id: str,
    product_id: str,
    merchant_id: str = Query(...),
    db: Session = Depends(get_db),
):
    try:
        return get_service(db).unlink_product(event_id, product_id, merchant_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
