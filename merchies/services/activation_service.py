# merchies/services/activation_service.py
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable

from merchies.domain.activation import EventActivation, StorefrontEvent
from merchies.domain.catalog import ProductSnapshot
from merchies.domain.geofence import GeofenceMonitor, LocationSample
from merchies.services.event_service import EventService
from merchies.utils.clock import utcnow
from merchies.utils.logging import get_logger
from merchies.utils.settings import FAN_SESSION_IDLE_SECONDS, GEOFENCE_CONFIRMATIONS, NEARBY_SEARCH_KM

logger = get_logger(__name__)


@dataclass
class FanSession:
    fan_id: str
    monitor: GeofenceMonitor
    activation: EventActivation
    last_seen: datetime = field(default_factory=utcnow)
    # one fan's samples are processed in order, never interleaved
    lock: threading.Lock = field(default_factory=threading.Lock)


@dataclass(frozen=True)
class Storefront:
    event: StorefrontEvent
    products: list[ProductSnapshot]


class FanSessionRegistry:
    """
    One monitor + activation per fan, kept in process memory. Sessions not
    touched for `idle_seconds` are evicted the next time any fan is seen.
    """

    def __init__(
        self,
        confirmations: int = GEOFENCE_CONFIRMATIONS,
        idle_seconds: float = FAN_SESSION_IDLE_SECONDS,
    ):
        self.confirmations = confirmations
        self.idle_seconds = idle_seconds
        self._sessions: dict[str, FanSession] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        fan_id: str,
        catalog_loader: Callable[[str], list],
        now: datetime | None = None,
    ) -> FanSession:
        now = now or utcnow()
        with self._lock:
            self._evict_idle(now)
            session = self._sessions.get(fan_id)
            if session is None:
                monitor = GeofenceMonitor(confirmations=self.confirmations)
                session = FanSession(
                    fan_id=fan_id,
                    monitor=monitor,
                    activation=EventActivation(monitor, catalog_loader),
                )
                self._sessions[fan_id] = session
            else:
                # loader is bound to the request's db session
                session.activation.catalog_loader = catalog_loader
            session.last_seen = now
            return session

    def get(
        self,
        fan_id: str,
        catalog_loader: Callable[[str], list],
        now: datetime | None = None,
    ) -> FanSession | None:
        """Existing session only, rebound to the caller's loader."""
        now = now or utcnow()
        with self._lock:
            self._evict_idle(now)
            session = self._sessions.get(fan_id)
            if session is not None:
                session.activation.catalog_loader = catalog_loader
                session.last_seen = now
            return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _evict_idle(self, now: datetime) -> None:
        cutoff = now - timedelta(seconds=self.idle_seconds)
        idle = [fan_id for fan_id, s in self._sessions.items() if s.last_seen < cutoff]
        for fan_id in idle:
            del self._sessions[fan_id]
        if idle:
            logger.info("Evicted idle fan sessions", count=len(idle))


class ActivationService:
    """
    Server side of storefront visibility: the app posts location batches,
    we answer with the storefronts the fan may currently shop in.
    """

    def __init__(
        self,
        event_service: EventService,
        registry: FanSessionRegistry,
        search_km: float = NEARBY_SEARCH_KM,
    ):
        self.event_service = event_service
        self.registry = registry
        self.search_km = search_km

    def ingest(self, fan_id: str, samples: Iterable[LocationSample]) -> tuple[list[Storefront], bool]:
        samples = sorted(samples, key=lambda s: s.timestamp)
        session = self.registry.get_or_create(fan_id, self._load_catalog)

        with session.lock:
            if samples:
                latest = samples[-1]
                self._watch_nearby(session, latest.latitude, latest.longitude)
            session.monitor.process_many(samples)
            session.activation.refresh(utcnow())
            return self._storefronts(session), self._degraded(session)

    def report_failure(self, fan_id: str, reason: str) -> tuple[list[Storefront], bool]:
        session = self.registry.get_or_create(fan_id, self._load_catalog)
        with session.lock:
            session.monitor.report_failure(reason)
            session.activation.refresh(utcnow())
            return self._storefronts(session), self._degraded(session)

    def visible(self, fan_id: str) -> tuple[list[Storefront], bool]:
        session = self.registry.get(fan_id, self._load_catalog)
        if session is None:
            return [], False
        with session.lock:
            session.activation.refresh(utcnow())
            return self._storefronts(session), self._degraded(session)

    # helpers
    def _watch_nearby(self, session: FanSession, latitude: float, longitude: float) -> None:
        nearby = {
            e.id: StorefrontEvent.from_model(e)
            for e in self.event_service.nearby(latitude, longitude, self.search_km)
        }
        for watched in session.activation.watched():
            if watched.id not in nearby:
                session.activation.unwatch(watched.id)
        for storefront in nearby.values():
            session.activation.watch(storefront)

    def _load_catalog(self, event_id: str) -> list[ProductSnapshot]:
        return self.event_service.open_catalog(event_id)

    @staticmethod
    def _storefronts(session: FanSession) -> list[Storefront]:
        return [
            Storefront(event=e, products=session.activation.catalog(e.id))
            for e in session.activation.visible_events()
        ]

    @staticmethod
    def _degraded(session: FanSession) -> bool:
        return session.monitor.degraded or session.activation.degraded
