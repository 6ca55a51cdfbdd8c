# merchies/api/routers/payments.py
from fastapi import APIRouter, Depends, HTTPException
from redis.exceptions import RedisError
from requests import RequestException
from sqlalchemy.orm import Session

from merchies.api.deps import get_db, get_gateway, get_lock_service
from merchies.domain.errors import InvalidTransition, PaymentInProgress
from merchies.domain.schemas import (
    PaymentAttemptOut,
    PaymentBeginIn,
    PaymentCallbackIn,
    PaymentCallbackOut,
)
from merchies.services.lock_service import LockService
from merchies.services.payment_gateway import PaymentGatewayClient
from merchies.services.payment_reconciler import PaymentReconciler

router = APIRouter(prefix="/payments", tags=["payments"])


def get_service(
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
    gateway: PaymentGatewayClient = Depends(get_gateway),
) -> PaymentReconciler:
    return PaymentReconciler(db, lock_service=lock_service, gateway=gateway)


@router.post("", response_model=PaymentAttemptOut, status_code=201)
def begin_payment(payload: PaymentBeginIn, svc: PaymentReconciler = Depends(get_service)):
    """Repeating the call while an attempt is in flight returns that same attempt."""
    try:
        return svc.begin_payment(payload.order_id, payload.amount)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidTransition, PaymentInProgress) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (RedisError, RequestException) as e:
        raise HTTPException(status_code=503, detail=f"Payment backend unavailable: {e}")


@router.post("/callback", response_model=PaymentCallbackOut)
def gateway_callback(payload: PaymentCallbackIn, svc: PaymentReconciler = Depends(get_service)):
    """
    Gateway webhook. Always 200 once parsed, the result tells the gateway
    whether the delivery changed anything; redeliveries are answered with
    `duplicate`.
    """
    result = svc.on_gateway_callback(payload.attempt_id, payload.outcome, payload.transaction_id)
    return PaymentCallbackOut(result=result)
