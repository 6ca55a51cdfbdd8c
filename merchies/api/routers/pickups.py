# merchies/api/routers/pickups.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from merchies.api.deps import get_db
from merchies.domain.outcomes import PickupAlreadyUsed, PickupNotFound, PickupNotReady
from merchies.domain.schemas import OrderOut, PickupVerifyIn
from merchies.services.pickup_verifier import PickupVerifier

router = APIRouter(prefix="/pickups", tags=["pickups"])


@router.post("/verify", response_model=OrderOut)
def verify_pickup(payload: PickupVerifyIn, db: Session = Depends(get_db)):
    result = PickupVerifier(db).verify(payload.code, payload.merchant_id)

    if isinstance(result, PickupNotFound):
        raise HTTPException(status_code=404, detail="Pickup code not found")
    if isinstance(result, PickupAlreadyUsed):
        raise HTTPException(status_code=409, detail=f"Order {result.order_id} was already picked up")
    if isinstance(result, PickupNotReady):
        raise HTTPException(status_code=425, detail=f"Order {result.order_id} is not paid yet")
    return result
