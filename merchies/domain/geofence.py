# merchies/domain/geofence.py
"""
Geofence monitoring.

Turns a stream of location samples into enter/exit transitions against a set
of circular regions. Pure logic: no I/O, no clocks, the caller owns the
sample stream. One monitor is meant to serve one device (one fan session).
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable

from merchies.utils.logging import get_logger

logger = get_logger(__name__)

EARTH_RADIUS_METERS = 6_371_008.8


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(a)))


@dataclass(frozen=True)
class LocationSample:
    latitude: float
    longitude: float
    timestamp: datetime


@dataclass(frozen=True)
class GeofenceRegion:
    identifier: str
    latitude: float
    longitude: float
    radius_meters: float

    def __post_init__(self):
        if self.radius_meters <= 0:
            raise ValueError("Geofence radius must be greater than 0")

    def distance_to(self, latitude: float, longitude: float) -> float:
        return haversine_meters(self.latitude, self.longitude, latitude, longitude)

    def contains(self, latitude: float, longitude: float) -> bool:
        return self.distance_to(latitude, longitude) <= self.radius_meters


class GeofenceTransition(str, Enum):
    ENTER = "enter"
    EXIT = "exit"


@dataclass(frozen=True)
class GeofenceEvent:
    region_id: str
    transition: GeofenceTransition
    sample: LocationSample | None = None


@dataclass
class _RegionState:
    region: GeofenceRegion
    inside: bool = False
    # consecutive samples disagreeing with `inside`
    streak: int = 0


Listener = Callable[[GeofenceEvent], None]


class GeofenceMonitor:
    """
    Keeps an inside/outside flag per region.

    - ENTER fires on the first qualifying sample inside after being outside
      (every region starts outside), EXIT on the first qualifying sample
      outside after being inside.
    - `confirmations` is the number of consecutive samples the new condition
      must hold before the transition fires (1 = no debounce).
    - Samples must arrive in strictly increasing timestamp order; anything
      older than or equal to the last accepted sample is dropped.
    - `min_interval` throttles samples that arrive too close together.
    """

    def __init__(
        self,
        regions: Iterable[GeofenceRegion] = (),
        confirmations: int = 1,
        min_interval: timedelta = timedelta(0),
    ):
        if confirmations < 1:
            raise ValueError("confirmations must be at least 1")

        self.confirmations = confirmations
        self.min_interval = min_interval
        self.degraded = False
        self.last_sample: LocationSample | None = None

        self._regions: dict[str, _RegionState] = {}
        self._listeners: list[Listener] = []

        for region in regions:
            self.track(region)

    # ---- regions ----------------------------------------------------------

    def track(self, region: GeofenceRegion) -> None:
        existing = self._regions.get(region.identifier)
        if existing and existing.region == region:
            return
        # a moved fence keeps its flag until the next sample decides
        inside = existing.inside if existing else False
        self._regions[region.identifier] = _RegionState(region=region, inside=inside)

    def untrack(self, region_id: str) -> None:
        self._regions.pop(region_id, None)

    def regions(self) -> list[GeofenceRegion]:
        return [state.region for state in self._regions.values()]

    def is_inside(self, region_id: str) -> bool:
        state = self._regions.get(region_id)
        return bool(state and state.inside and not self.degraded)

    def inside_regions(self) -> list[str]:
        return [rid for rid, state in self._regions.items() if state.inside]

    # ---- listeners --------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, events: list[GeofenceEvent]) -> None:
        for ev in events:
            for listener in list(self._listeners):
                try:
                    listener(ev)
                except Exception:
                    logger.exception(
                        "Geofence listener failed",
                        region_id=ev.region_id,
                        transition=ev.transition.value,
                    )

    # ---- samples ----------------------------------------------------------

    def process(self, sample: LocationSample) -> list[GeofenceEvent]:
        if self.last_sample is not None:
            if sample.timestamp <= self.last_sample.timestamp:
                logger.debug(
                    "Dropping out-of-order location sample",
                    timestamp=sample.timestamp.isoformat(),
                    last=self.last_sample.timestamp.isoformat(),
                )
                return []
            if sample.timestamp - self.last_sample.timestamp < self.min_interval:
                return []

        self.last_sample = sample
        self.degraded = False

        events: list[GeofenceEvent] = []
        for rid, state in self._regions.items():
            now_inside = state.region.contains(sample.latitude, sample.longitude)

            if now_inside == state.inside:
                state.streak = 0
                continue

            state.streak += 1
            if state.streak < self.confirmations:
                continue

            state.inside = now_inside
            state.streak = 0
            transition = GeofenceTransition.ENTER if now_inside else GeofenceTransition.EXIT
            events.append(GeofenceEvent(region_id=rid, transition=transition, sample=sample))

        self._emit(events)
        return events

    def process_many(self, samples: Iterable[LocationSample]) -> list[GeofenceEvent]:
        events: list[GeofenceEvent] = []
        for sample in sorted(samples, key=lambda s: s.timestamp):
            events.extend(self.process(sample))
        return events

    def report_failure(self, reason: str) -> list[GeofenceEvent]:
        """
        Location provider failed. Every region is presumed unreachable: inside
        regions get an EXIT and the monitor stays degraded until the next
        accepted sample.
        """
        logger.warning("Location provider failure, geofence degraded", reason=reason)
        self.degraded = True

        events: list[GeofenceEvent] = []
        for rid, state in self._regions.items():
            state.streak = 0
            if state.inside:
                state.inside = False
                events.append(GeofenceEvent(region_id=rid, transition=GeofenceTransition.EXIT))

        self._emit(events)
        return events
