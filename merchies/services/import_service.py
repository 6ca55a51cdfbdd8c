# merchies/services/import_service.py
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from merchies.data.documents import (
    COLLECTIONS,
    BandDocument,
    EventDocument,
    OrderDocument,
    ProductDocument,
    UserDocument,
    decode_many,
)
from merchies.data.models.band import BandModel
from merchies.data.models.event import EventModel
from merchies.data.models.order import OrderItemModel, OrderModel
from merchies.data.models.product import ProductModel
from merchies.data.models.user import UserModel
from merchies.domain.pickup_codes import TEMPORARY_PREFIX, pickup_code
from merchies.domain.states import OrderStatus
from merchies.services.inventory_ledger import InventoryLedger
from merchies.utils.clock import as_utc
from merchies.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ImportReport:
    collection: str
    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


class ImportService:
    """
    Loads exported collections (including records written by older clients).
    Each record is persisted in its own savepoint: one bad record never
    takes the batch down with it.
    """

    def __init__(self, db: Session, ledger: InventoryLedger | None = None):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)

    def import_collection(self, collection: str, records: Iterable[dict]) -> ImportReport:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection {collection}")

        records = list(records)
        documents, failures = decode_many(collection, records)
        report = ImportReport(collection=collection, skipped=len(failures), errors=[str(f) for f in failures])

        persist = getattr(self, f"_persist_{collection}")
        for document in documents:
            if self._exists(collection, document.id):
                logger.info("Record already present, skipped", collection=collection, document_id=document.id)
                report.skipped += 1
                continue

            savepoint = self.db.begin_nested()
            try:
                persist(document)
                savepoint.commit()
                report.imported += 1
            except (IntegrityError, LookupError, ValueError) as e:
                savepoint.rollback()
                logger.warning("Record rejected by database", collection=collection, document_id=document.id, error=str(e))
                report.skipped += 1
                report.errors.append(f"{collection}/{document.id}: {e}")

        self.db.commit()
        logger.info("Import finished", collection=collection, imported=report.imported, skipped=report.skipped)
        return report

    def _exists(self, collection: str, document_id: str) -> bool:
        model = {
            "events": EventModel,
            "products": ProductModel,
            "orders": OrderModel,
            "users": UserModel,
            "bands": BandModel,
        }[collection]
        return self.db.get(model, document_id) is not None

    # ===== per collection =====

    def _persist_users(self, doc: UserDocument) -> None:
        self.db.add(UserModel(id=doc.id, name=doc.name, email=doc.email, role=doc.role.value))
        self.db.flush()

    def _persist_bands(self, doc: BandDocument) -> None:
        band = BandModel(
            id=doc.id,
            name=doc.name,
            owner_user_id=doc.owner_user_id,
            member_user_ids=doc.member_user_ids,
            description=doc.description,
            logo_url=doc.logo_url,
            genre=doc.genre,
            website=doc.website,
            is_verified=doc.is_verified,
        )
        if doc.created_at is not None:
            band.created_at = as_utc(doc.created_at)
        self.db.add(band)
        self.db.flush()

    def _persist_events(self, doc: EventDocument) -> None:
        event = EventModel(
            id=doc.id,
            name=doc.name,
            venue_name=doc.venue_name,
            address=doc.address,
            description=doc.description,
            event_type=doc.event_type,
            image_url=doc.image_url,
            start_date=as_utc(doc.start_date),
            end_date=as_utc(doc.end_date),
            latitude=doc.latitude,
            longitude=doc.longitude,
            geofence_radius=doc.geofence_radius,
            active=doc.active,
            archived=doc.archived,
            merchant_ids=doc.merchant_ids,
        )
        # links to products imported later are made from the product side
        for product_id in doc.product_ids:
            product = self.db.get(ProductModel, product_id)
            if product is not None:
                event.products.append(product)
        self.db.add(event)
        self.db.flush()

    def _persist_products(self, doc: ProductDocument) -> None:
        product = ProductModel(
            id=doc.id,
            band_id=doc.band_id,
            title=doc.title,
            price=doc.price,
            sizes=doc.sizes,
            image_url=doc.image_url,
            active=doc.active,
        )
        for event_id in doc.event_ids:
            event = self.db.get(EventModel, event_id)
            if event is not None:
                product.events.append(event)
        self.db.add(product)
        self.db.flush()
        self.ledger.initialize(product.id, {s: doc.inventory.get(s, 0) for s in doc.sizes})

    def _persist_orders(self, doc: OrderDocument) -> None:
        # no reservations: stock of historical orders was settled long ago
        qr_code = doc.qr_code
        if doc.status is not OrderStatus.PENDING_PAYMENT and qr_code.startswith(TEMPORARY_PREFIX):
            logger.info("Replacing temporary pickup code", document_id=doc.id, status=doc.status.value)
            qr_code = pickup_code(doc.id)
        order = OrderModel(
            id=doc.id,
            user_id=doc.user_id,
            band_id=doc.band_id,
            event_id=doc.event_id,
            amount=doc.amount,
            status=doc.status.value,
            payment_status=doc.payment_status.value,
            qr_code=qr_code,
            transaction_id=doc.transaction_id,
            created_at=as_utc(doc.created_at),
            items=[
                OrderItemModel(
                    position=position,
                    product_id=item.product_id,
                    size=item.size,
                    quantity=item.quantity,
                    unit_price=Decimal(str(item.unit_price)),
                    title=item.title,
                )
                for position, item in enumerate(doc.items)
            ],
        )
        self.db.add(order)
        self.db.flush()
