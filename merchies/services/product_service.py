# merchies/services/product_service.py
from decimal import Decimal

from sqlalchemy.orm import Session

from merchies.data.models.product import ProductModel
from merchies.domain.catalog import ProductSnapshot
from merchies.domain.schemas import ProductCreate, ProductRead, ProductUpdate
from merchies.repos.event_repo import EventRepo
from merchies.repos.product_repo import ProductRepo
from merchies.services.inventory_ledger import InventoryLedger
from merchies.utils.logging import get_logger

logger = get_logger(__name__)


class ProductService:
    """
    Merchant side of the catalog. Stock counters are owned by the
    InventoryLedger; this service never writes `available` itself.
    """

    def __init__(self, db: Session, ledger: InventoryLedger | None = None):
        self.repo = ProductRepo(db)
        self.events = EventRepo(db)
        self.ledger = ledger or InventoryLedger(db)

    # query
    def get_product(self, product_id: str) -> ProductModel:
        product = self.repo.get_product(product_id, fresh=True)
        if not product:
            raise LookupError(f"Product {product_id} does not exist")
        return product

    def list_for_band(self, band_id: str) -> list[ProductModel]:
        return self.repo.list_for_band(band_id)

    def list_for_event(self, event_id: str) -> list[ProductModel]:
        return self.repo.list_active_for_event(event_id)

    def snapshot(self, product: ProductModel) -> ProductSnapshot:
        # counters read straight from the table, the ORM copy may be stale
        return ProductSnapshot(
            id=product.id,
            band_id=product.band_id,
            title=product.title,
            price=Decimal(str(product.price)),
            sizes=tuple(product.sizes or ()),
            inventory=self.ledger.snapshot(product.id),
            image_url=product.image_url,
            active=product.active,
        )

    def read(self, product: ProductModel) -> ProductRead:
        return ProductRead.from_snapshot(self.snapshot(product))

    # commands
    def create_product(self, payload: ProductCreate) -> ProductModel:
        product = ProductModel(
            band_id=payload.band_id,
            title=payload.title,
            price=payload.price,
            sizes=list(payload.sizes),
            image_url=payload.image_url,
            active=True,
        )

        try:
            self.repo.add_product(product)
            self.ledger.initialize(product.id, {s: payload.inventory.get(s, 0) for s in payload.sizes})
            for event_id in payload.event_ids:
                event = self.events.get_event(event_id)
                if event is None:
                    raise LookupError(f"Event {event_id} does not exist")
                if not event.has_merchant(payload.band_id):
                    raise PermissionError(f"Band {payload.band_id} does not sell at event {event_id}")
                product.events.append(event)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info("Product created", product_id=product.id, band_id=product.band_id, sizes=product.sizes)
        return product

    def update_product(self, product_id: str, payload: ProductUpdate, merchant_id: str | None = None) -> ProductModel:
        """Existing orders keep their own price snapshot."""
        product = self.get_product(product_id)
        if merchant_id is not None and product.band_id != merchant_id:
            raise PermissionError("Product belongs to another merchant")

        changes = payload.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(product, field, value)
        self.repo.commit()

        logger.info("Product updated", product_id=product_id, fields=sorted(changes))
        return product

    def restock(self, product_id: str, size: str, quantity: int) -> int:
        product = self.get_product(product_id)
        if size not in (product.sizes or []):
            raise ValueError(f"Size {size} is not offered for product {product_id}")

        try:
            available = self.ledger.restock(product_id, size, quantity)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        return available
