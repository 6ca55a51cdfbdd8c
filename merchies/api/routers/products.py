# merchies/api/routers/products.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from merchies.api.deps import get_db
from merchies.domain.schemas import ProductCreate, ProductRead, ProductUpdate, RestockIn
from merchies.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["products"])


@router.post("", response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    svc = ProductService(db)
    try:
        return svc.read(svc.create_product(payload))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=List[ProductRead])
def list_products(band_id: str = Query(...), db: Session = Depends(get_db)):
    svc = ProductService(db)
    return [svc.read(p) for p in svc.list_for_band(band_id)]


@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: str, db: Session = Depends(get_db)):
    svc = ProductService(db)
    try:
        return svc.read(svc.get_product(product_id))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/{product_id}", response_model=ProductRead)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    merchant_id: str = Query(...),
    db: Session = Depends(get_db),
):
    svc = ProductService(db)
    try:
        return svc.read(svc.update_product(product_id, payload, merchant_id))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{product_id}/restock", response_model=ProductRead)
def restock_product(product_id: str, payload: RestockIn, db: Session = Depends(get_db)):
    svc = ProductService(db)
    try:
        svc.restock(product_id, payload.size, payload.quantity)
        return svc.read(svc.get_product(product_id))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
