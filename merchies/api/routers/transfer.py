# merchies/api/routers/transfer.py
from typing import Any, List

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from merchies.api.deps import get_db
from merchies.data.documents import encode, order_document
from merchies.domain.schemas import ImportReportOut
from merchies.services.import_service import ImportService
from merchies.services.order_service import OrderService

router = APIRouter(tags=["transfer"])


@router.get("/exports/orders")
def export_orders(band_id: str = Query(...), db: Session = Depends(get_db)) -> List[dict]:
    orders = OrderService(db).list_orders_for_band(band_id)
    return [encode(order_document(o)) for o in orders]


@router.post("/imports/{collection}", response_model=ImportReportOut)
def import_collection(
    collection: str,
    records: List[Any] = Body(...),
    db: Session = Depends(get_db),
):
    try:
        report = ImportService(db).import_collection(collection, records)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ImportReportOut(collection=report.collection, imported=report.imported, skipped=report.skipped)
