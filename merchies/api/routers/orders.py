# merchies/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from merchies.api.deps import get_db
from merchies.domain.cart import CheckoutLine
from merchies.domain.errors import InvalidTransition
from merchies.domain.outcomes import CheckoutRejected
from merchies.domain.schemas import (
    CancelIn,
    CheckoutIn,
    CheckoutRejectedOut,
    OrderOut,
    ShortageOut,
)
from merchies.domain.states import OrderStatus
from merchies.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.post(
    "/checkout",
    response_model=OrderOut,
    status_code=201,
    responses={409: {"model": CheckoutRejectedOut}},
)
def checkout(payload: CheckoutIn, db: Session = Depends(get_db)):
    """
    All lines are reserved or none is. A shortage answers 409 with the
    lines that could not be reserved, so the cart can flag them.
    """
    svc = get_service(db)
    lines = [CheckoutLine(line.product_id, line.size, line.quantity) for line in payload.lines]
    try:
        result = svc.checkout(payload.user_id, lines, event_id=payload.event_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if isinstance(result, CheckoutRejected):
        body = CheckoutRejectedOut(
            reason=result.reason,
            shortages=[ShortageOut.model_validate(s) for s in result.shortages],
        )
        return JSONResponse(status_code=409, content=body.model_dump(mode="json"))
    return result


@router.get("", response_model=List[OrderOut])
def list_orders(
    user_id: str | None = Query(None),
    band_id: str | None = Query(None),
    status: List[OrderStatus] | None = Query(None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    if user_id:
        return svc.list_orders_for_fan(user_id)
    if band_id:
        return svc.list_orders_for_band(band_id, status or None)
    raise HTTPException(status_code=400, detail="user_id or band_id is required")


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.get_order_for_user(order_id, user_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: str, payload: CancelIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.cancel(order_id, payload.reason)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
