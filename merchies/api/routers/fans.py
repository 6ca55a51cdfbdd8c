# merchies/api/routers/fans.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from merchies.api.deps import get_db, get_registry
from merchies.domain.geofence import LocationSample
from merchies.domain.schemas import (
    FanVisibilityOut,
    LocationBatchIn,
    LocationFailureIn,
    ProductRead,
    StorefrontOut,
)
from merchies.services.activation_service import ActivationService, FanSessionRegistry
from merchies.services.event_service import EventService
from merchies.utils.clock import as_utc

router = APIRouter(prefix="/fans", tags=["fans"])


def get_service(
    db: Session = Depends(get_db),
    registry: FanSessionRegistry = Depends(get_registry),
) -> ActivationService:
    return ActivationService(EventService(db), registry)


def _visibility(fan_id: str, storefronts, degraded: bool) -> FanVisibilityOut:
    return FanVisibilityOut(
        fan_id=fan_id,
        degraded=degraded,
        storefronts=[
            StorefrontOut(
                event_id=s.event.id,
                name=s.event.name,
                products=[ProductRead.from_snapshot(p) for p in s.products],
            )
            for s in storefronts
        ],
    )


@router.post("/{fan_id}/locations", response_model=FanVisibilityOut)
def post_locations(fan_id: str, payload: LocationBatchIn, svc: ActivationService = Depends(get_service)):
    samples = [LocationSample(s.latitude, s.longitude, as_utc(s.timestamp)) for s in payload.samples]
    storefronts, degraded = svc.ingest(fan_id, samples)
    return _visibility(fan_id, storefronts, degraded)


@router.post("/{fan_id}/location-failure", response_model=FanVisibilityOut)
def post_location_failure(fan_id: str, payload: LocationFailureIn, svc: ActivationService = Depends(get_service)):
    storefronts, degraded = svc.report_failure(fan_id, payload.reason)
    return _visibility(fan_id, storefronts, degraded)


@router.get("/{fan_id}/storefronts", response_model=FanVisibilityOut)
def get_storefronts(fan_id: str, svc: ActivationService = Depends(get_service)):
    storefronts, degraded = svc.visible(fan_id)
    return _visibility(fan_id, storefronts, degraded)
