# merchies/repos/product_repo.py
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from merchies.data.models.event import EventModel
from merchies.data.models.product import ProductModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_product(self, product: ProductModel) -> ProductModel:
        self.db.add(product)
        self.db.flush()
        return product

    def get_product(self, product_id: str, fresh: bool = False) -> ProductModel | None:
        options = {"populate_existing": True} if fresh else {}
        return self.db.get(ProductModel, product_id, **options)

    def get_many(self, product_ids: Iterable[str]) -> dict[str, ProductModel]:
        ids = set(product_ids)
        if not ids:
            return {}
        rows = self.db.execute(
            select(ProductModel)
            .options(selectinload(ProductModel.events))
            .where(ProductModel.id.in_(ids))
        ).scalars()
        return {p.id: p for p in rows}

    def list_for_band(self, band_id: str) -> list[ProductModel]:
        return list(
            self.db.execute(
                select(ProductModel)
                .options(selectinload(ProductModel.inventory))
                .where(ProductModel.band_id == band_id)
                .order_by(ProductModel.created_at)
            ).scalars()
        )

    def list_active_for_event(self, event_id: str) -> list[ProductModel]:
        return list(
            self.db.execute(
                select(ProductModel)
                .options(selectinload(ProductModel.inventory))
                .join(ProductModel.events)
                .where(EventModel.id == event_id, ProductModel.active.is_(True))
                .order_by(ProductModel.created_at)
                # inventory must be read fresh, it changes under every checkout
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
