from datetime import datetime, timedelta, timezone

import pytest

from merchies.domain.geofence import (
    GeofenceMonitor,
    GeofenceRegion,
    GeofenceTransition,
    LocationSample,
    haversine_meters,
)

LAT, LON = 52.2297, 21.0122
METERS_PER_DEGREE = 111_195.08
T0 = datetime(2026, 6, 1, 18, 0, tzinfo=timezone.utc)


def at(meters_north: float, seconds: int) -> LocationSample:
    return LocationSample(LAT + meters_north / METERS_PER_DEGREE, LON, T0 + timedelta(seconds=seconds))


@pytest.fixture
def region():
    return GeofenceRegion(identifier="event-1", latitude=LAT, longitude=LON, radius_meters=100)


def test_haversine_along_meridian():
    assert haversine_meters(LAT, LON, LAT + 150 / METERS_PER_DEGREE, LON) == pytest.approx(150, abs=0.01)
    assert haversine_meters(LAT, LON, LAT, LON) == 0


def test_region_rejects_non_positive_radius():
    with pytest.raises(ValueError):
        GeofenceRegion(identifier="x", latitude=LAT, longitude=LON, radius_meters=0)


def test_enter_then_exit(region):
    monitor = GeofenceMonitor([region])
    seen = []
    monitor.subscribe(seen.append)

    assert monitor.process(at(50, 0))[0].transition is GeofenceTransition.ENTER
    assert monitor.is_inside("event-1")

    # still inside, nothing new
    assert monitor.process(at(60, 10)) == []

    events = monitor.process(at(150, 20))
    assert [e.transition for e in events] == [GeofenceTransition.EXIT]
    assert not monitor.is_inside("event-1")
    assert [e.transition for e in seen] == [GeofenceTransition.ENTER, GeofenceTransition.EXIT]


def test_regions_start_outside(region):
    monitor = GeofenceMonitor([region])
    assert monitor.inside_regions() == []
    assert monitor.process(at(500, 0)) == []


def test_out_of_order_samples_are_dropped(region):
    monitor = GeofenceMonitor([region])
    monitor.process(at(50, 10))

    assert monitor.process(at(500, 5)) == []
    assert monitor.process(at(500, 10)) == []
    assert monitor.is_inside("event-1")


def test_confirmations_debounce(region):
    monitor = GeofenceMonitor([region], confirmations=2)

    assert monitor.process(at(50, 0)) == []
    assert monitor.process(at(50, 1))[0].transition is GeofenceTransition.ENTER

    # a single stray sample outside does not exit
    assert monitor.process(at(300, 2)) == []
    assert monitor.process(at(50, 3)) == []
    assert monitor.is_inside("event-1")


def test_min_interval_throttles(region):
    monitor = GeofenceMonitor([region], min_interval=timedelta(seconds=30))
    monitor.process(at(50, 0))

    assert monitor.process(at(500, 10)) == []
    assert monitor.is_inside("event-1")
    assert monitor.process(at(500, 31))[0].transition is GeofenceTransition.EXIT


def test_provider_failure_exits_and_degrades(region):
    monitor = GeofenceMonitor([region])
    monitor.process(at(50, 0))

    events = monitor.report_failure("gps lost")
    assert [e.transition for e in events] == [GeofenceTransition.EXIT]
    assert monitor.degraded
    assert not monitor.is_inside("event-1")

    # next good sample recovers
    assert monitor.process(at(50, 5))[0].transition is GeofenceTransition.ENTER
    assert not monitor.degraded


def test_failing_listener_does_not_stop_others(region):
    monitor = GeofenceMonitor([region])
    seen = []

    def broken(_):
        raise RuntimeError("listener bug")

    monitor.subscribe(broken)
    monitor.subscribe(seen.append)
    monitor.process(at(50, 0))

    assert len(seen) == 1


def test_unsubscribe(region):
    monitor = GeofenceMonitor([region])
    seen = []
    unsubscribe = monitor.subscribe(seen.append)
    unsubscribe()

    monitor.process(at(50, 0))
    assert seen == []


def test_process_many_sorts_by_time(region):
    monitor = GeofenceMonitor([region])
    events = monitor.process_many([at(150, 20), at(50, 10)])

    assert [e.transition for e in events] == [GeofenceTransition.ENTER, GeofenceTransition.EXIT]


def test_untrack_forgets_region(region):
    monitor = GeofenceMonitor([region])
    monitor.process(at(50, 0))
    monitor.untrack("event-1")

    assert monitor.regions() == []
    assert not monitor.is_inside("event-1")
