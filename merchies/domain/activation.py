# merchies/domain/activation.py
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from merchies.domain.geofence import (
    GeofenceEvent,
    GeofenceMonitor,
    GeofenceRegion,
    GeofenceTransition,
)
from merchies.utils.clock import as_utc, utcnow
from merchies.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StorefrontEvent:
    """The parts of an Event that decide whether its storefront can be reached."""

    id: str
    latitude: float
    longitude: float
    radius_meters: float
    start_date: datetime
    end_date: datetime
    active: bool = True
    archived: bool = False
    name: str = ""

    @classmethod
    def from_model(cls, event) -> "StorefrontEvent":
        return cls(
            id=event.id,
            name=event.name,
            latitude=event.latitude,
            longitude=event.longitude,
            radius_meters=event.geofence_radius,
            start_date=as_utc(event.start_date),
            end_date=as_utc(event.end_date),
            active=event.active,
            archived=event.archived,
        )

    def region(self) -> GeofenceRegion:
        return GeofenceRegion(
            identifier=self.id,
            latitude=self.latitude,
            longitude=self.longitude,
            radius_meters=self.radius_meters,
        )

    def is_open(self, now: datetime) -> bool:
        now = as_utc(now)
        return (
            self.active
            and not self.archived
            and as_utc(self.start_date) <= now <= as_utc(self.end_date)
        )


CatalogLoader = Callable[[str], list[Any]]


class EventActivation:
    """
    Decides which storefronts a fan can see.

    A storefront is visible iff the monitor reports the fan inside the event's
    fence, the event is active and not archived, and now lies within
    [start_date, end_date]. The catalog of a storefront that stops being
    visible is emptied, never just hidden.
    """

    def __init__(
        self,
        monitor: GeofenceMonitor,
        catalog_loader: CatalogLoader,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.monitor = monitor
        self.catalog_loader = catalog_loader
        self.clock = clock
        self.degraded = False

        self._events: dict[str, StorefrontEvent] = {}
        self._catalogs: dict[str, list[Any]] = {}
        self._listeners: list[Callable[[str, bool], None]] = []

        monitor.subscribe(self._on_geofence_event)

    def watch(self, event: StorefrontEvent) -> None:
        self._events[event.id] = event
        self.monitor.track(event.region())
        self._reconcile(event.id, self.clock())

    def unwatch(self, event_id: str) -> None:
        self._events.pop(event_id, None)
        self.monitor.untrack(event_id)
        self._clear(event_id)

    def watched(self) -> list[StorefrontEvent]:
        return list(self._events.values())

    def subscribe(self, listener: Callable[[str, bool], None]) -> None:
        """listener(event_id, visible) is called whenever visibility flips."""
        self._listeners.append(listener)

    # ---- queries ----------------------------------------------------------

    def is_visible(self, event_id: str, now: datetime | None = None) -> bool:
        event = self._events.get(event_id)
        if event is None:
            return False
        now = now or self.clock()
        return self.monitor.is_inside(event_id) and event.is_open(now)

    def visible_events(self, now: datetime | None = None) -> list[StorefrontEvent]:
        now = now or self.clock()
        return [e for e in self._events.values() if self.is_visible(e.id, now)]

    def catalog(self, event_id: str) -> list[Any]:
        return list(self._catalogs.get(event_id, []))

    # ---- state changes ----------------------------------------------------

    def refresh(self, now: datetime | None = None) -> None:
        """Re-evaluate every watched event, e.g. when a sales window closes."""
        now = now or self.clock()
        for event_id in list(self._events):
            self._reconcile(event_id, now)

    def _on_geofence_event(self, ev: GeofenceEvent) -> None:
        if ev.region_id not in self._events:
            return
        if ev.transition is GeofenceTransition.EXIT:
            self._clear(ev.region_id)
            return
        self._reconcile(ev.region_id, self.clock())

    def _reconcile(self, event_id: str, now: datetime) -> None:
        visible = self.is_visible(event_id, now)
        loaded = event_id in self._catalogs

        if visible and not loaded:
            self._load(event_id)
        elif not visible and loaded:
            self._clear(event_id)

    def _load(self, event_id: str) -> None:
        try:
            products = list(self.catalog_loader(event_id))
        except Exception as e:
            logger.error("Catalog load failed, storefront presumed unreachable", event_id=event_id, error=str(e))
            self.degraded = True
            self._catalogs.pop(event_id, None)
            return

        self.degraded = False
        self._catalogs[event_id] = products
        logger.info("Storefront visible", event_id=event_id, products=len(products))
        self._notify(event_id, True)

    def _clear(self, event_id: str) -> None:
        catalog = self._catalogs.pop(event_id, None)
        if catalog is None:
            return
        catalog.clear()
        logger.info("Storefront hidden, catalog cleared", event_id=event_id)
        self._notify(event_id, False)

    def _notify(self, event_id: str, visible: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(event_id, visible)
            except Exception:
                logger.exception("Storefront listener failed", event_id=event_id, visible=visible)
