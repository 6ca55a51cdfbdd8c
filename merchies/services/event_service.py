# merchies/services/event_service.py
from datetime import datetime

from sqlalchemy.orm import Session

from merchies.data.models.event import EventModel
from merchies.domain.activation import StorefrontEvent
from merchies.domain.catalog import ProductSnapshot
from merchies.domain.geofence import haversine_meters
from merchies.domain.schemas import EventCreate, EventUpdate
from merchies.repos.event_repo import EventRepo
from merchies.repos.product_repo import ProductRepo
from merchies.services.product_service import ProductService
from merchies.utils.clock import as_utc, utcnow
from merchies.utils.logging import get_logger
from merchies.utils.settings import NEARBY_SEARCH_KM

logger = get_logger(__name__)


class EventService:
    """
    Pop-up events and their storefront catalogs.

    Events are never deleted, only archived; orders keep pointing at them.
    """

    def __init__(self, db: Session, product_service: ProductService | None = None):
        self.repo = EventRepo(db)
        self.products = ProductRepo(db)
        self.product_service = product_service or ProductService(db)

    # =====================================================
    # QUERY
    # =====================================================
    def get_event(self, event_id: str) -> EventModel:
        event = self.repo.get_event(event_id)
        if not event:
            raise LookupError(f"Event {event_id} does not exist")
        return event

    def list_for_merchant(self, merchant_id: str, include_archived: bool = False) -> list[EventModel]:
        return self.repo.list_for_merchant(merchant_id, include_archived)

    def nearby(
        self,
        latitude: float,
        longitude: float,
        radius_km: float = NEARBY_SEARCH_KM,
        now: datetime | None = None,
    ) -> list[EventModel]:
        """Open, unarchived events whose centre is within radius_km, closest first."""
        now = now or utcnow()
        limit = radius_km * 1000
        found = []
        for event in self.repo.list_open_candidates(now):
            distance = haversine_meters(latitude, longitude, event.latitude, event.longitude)
            if distance <= limit:
                found.append((distance, event))
        found.sort(key=lambda pair: pair[0])
        return [event for _, event in found]

    def open_catalog(self, event_id: str, now: datetime | None = None) -> list[ProductSnapshot]:
        event = self.get_event(event_id)
        if not StorefrontEvent.from_model(event).is_open(now or utcnow()):
            return []
        return [self.product_service.snapshot(p) for p in self.product_service.list_for_event(event_id)]

    # =====================================================
    # COMMANDS
    # =====================================================
    def create_event(self, payload: EventCreate) -> EventModel:
        event = EventModel(
            name=payload.name,
            venue_name=payload.venue_name,
            address=payload.address,
            description=payload.description,
            event_type=payload.event_type,
            image_url=payload.image_url,
            start_date=as_utc(payload.start_date),
            end_date=as_utc(payload.end_date),
            latitude=payload.latitude,
            longitude=payload.longitude,
            geofence_radius=payload.geofence_radius,
            merchant_ids=list(dict.fromkeys(payload.merchant_ids)),
            active=True,
            archived=False,
        )

        try:
            self.repo.add_event(event)
            for product_id in payload.product_ids:
                self._link(event, product_id)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info("Event created", event_id=event.id, merchants=event.merchant_ids)
        return event

    def update_event(self, event_id: str, payload: EventUpdate, merchant_id: str | None = None) -> EventModel:
        event = self._owned(event_id, merchant_id)
        changes = payload.model_dump(exclude_unset=True)

        for field in ("start_date", "end_date"):
            if changes.get(field) is not None:
                changes[field] = as_utc(changes[field])

        start = changes.get("start_date") or as_utc(event.start_date)
        end = changes.get("end_date") or as_utc(event.end_date)
        if end <= start:
            raise ValueError("end_date must be after start_date")

        for field, value in changes.items():
            if value is not None:
                setattr(event, field, value)
        self.repo.commit()

        logger.info("Event updated", event_id=event_id, fields=sorted(changes))
        return event

    def link_product(self, event_id: str, product_id: str, merchant_id: str | None = None) -> EventModel:
        event = self._owned(event_id, merchant_id)
        try:
            self._link(event, product_id)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        return event

    def unlink_product(self, event_id: str, product_id: str, merchant_id: str | None = None) -> EventModel:
        event = self._owned(event_id, merchant_id)
        event.products = [p for p in event.products if p.id != product_id]
        self.repo.commit()
        logger.info("Product unlinked from event", event_id=event_id, product_id=product_id)
        return event

    def archive(self, event_id: str, merchant_id: str | None = None) -> EventModel:
        event = self._owned(event_id, merchant_id)
        if not event.archived:
            event.archived = True
            self.repo.commit()
            logger.info("Event archived", event_id=event_id)
        return event

    def archive_expired(self, now: datetime | None = None) -> int:
        """Sweep: archive every event whose end date has passed."""
        now = now or utcnow()
        ids = self.repo.archive_ended_before(now)
        self.repo.commit()
        if ids:
            logger.info("Archived ended events", count=len(ids), event_ids=ids)
        return len(ids)

    # =====================================================
    # HELPERS
    # =====================================================
    def _owned(self, event_id: str, merchant_id: str | None) -> EventModel:
        event = self.get_event(event_id)
        if merchant_id is not None and not event.has_merchant(merchant_id):
            raise PermissionError(f"Merchant {merchant_id} does not run event {event_id}")
        return event

    def _link(self, event: EventModel, product_id: str) -> None:
        product = self.products.get_product(product_id)
        if product is None:
            raise LookupError(f"Product {product_id} does not exist")
        if not event.has_merchant(product.band_id):
            raise PermissionError(f"Product {product_id} belongs to a band not selling at this event")
        if product_id not in event.product_ids:
            event.products.append(product)
            logger.info("Product linked to event", event_id=event.id, product_id=product_id)
