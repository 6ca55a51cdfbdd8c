import os

# must be set before any merchies module reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENVIRONMENT", "test")

import itertools
import threading
from datetime import timedelta
from decimal import Decimal

import pytest
import requests

import merchies.data.models  # noqa: F401
from merchies.celery_worker import celery_app
from merchies.data.database import Base, build_engine, build_sessionmaker
from merchies.data.models import BandModel, UserModel
from merchies.domain.schemas import EventCreate, ProductCreate
from merchies.services.event_service import EventService
from merchies.services.product_service import ProductService
from merchies.utils.clock import utcnow

EVENT_LAT = 52.2297
EVENT_LON = 21.0122


class FakeLockService:
    """In-memory stand-in for the Redis payment lock."""

    def __init__(self):
        self.holders: dict[str, str] = {}
        self._lock = threading.Lock()

    def acquire_payment_lock(self, order_id, attempt_id, ttl):
        with self._lock:
            if order_id in self.holders:
                return False
            self.holders[order_id] = attempt_id
            return True

    def release_payment_lock(self, order_id, attempt_id):
        with self._lock:
            if self.holders.get(order_id) == attempt_id:
                del self.holders[order_id]
                return True
            return False

    def current_holder(self, order_id):
        with self._lock:
            return self.holders.get(order_id)


class FakeGateway:
    def __init__(self):
        self.calls: list[dict] = []
        self.fail = False
        self._ids = itertools.count(1)

    def create_payment_intent(self, amount_minor, currency, order_id, idempotency_key):
        self.calls.append(
            {
                "amount_minor": amount_minor,
                "currency": currency,
                "order_id": order_id,
                "idempotency_key": idempotency_key,
            }
        )
        if self.fail:
            raise requests.ConnectionError("gateway unreachable")
        n = next(self._ids)
        return {"id": f"pi_{n}", "client_secret": f"secret_{n}"}


@pytest.fixture(autouse=True)
def eager_celery():
    celery_app.conf.task_always_eager = True
    yield
    celery_app.conf.task_always_eager = False


@pytest.fixture
def engine(tmp_path):
    # file backed, so every thread gets its own real connection
    engine = build_engine(f"sqlite:///{tmp_path / 'merchies.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def lock_service():
    return FakeLockService()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def band(db):
    db.add(UserModel(id="merchant-1", name="Merchant", role="merchant"))
    db.add(UserModel(id="fan-1", name="Fan", role="fan"))
    band = BandModel(id="band-1", name="The Reservations", owner_user_id="merchant-1")
    db.add(band)
    db.commit()
    return band


@pytest.fixture
def other_band(db, band):
    other = BandModel(id="band-2", name="Second Act", owner_user_id="merchant-1")
    db.add(other)
    db.commit()
    return other


@pytest.fixture
def make_event(db, band):
    def _make(merchant_ids=None, start_offset=timedelta(hours=-1), end_offset=timedelta(hours=3), **overrides):
        now = utcnow()
        data = dict(
            name="Gig",
            venue_name="Hall",
            start_date=now + start_offset,
            end_date=now + end_offset,
            latitude=EVENT_LAT,
            longitude=EVENT_LON,
            geofence_radius=100,
            merchant_ids=merchant_ids or [band.id],
        )
        data.update(overrides)
        return EventService(db).create_event(EventCreate(**data))

    return _make


@pytest.fixture
def open_event(make_event):
    return make_event()


@pytest.fixture
def make_product(db, band, open_event):
    def _make(inventory=None, price="20.00", title="Tour Tee", band_id=None, event_ids=None):
        inventory = {"M": 5} if inventory is None else inventory
        payload = ProductCreate(
            band_id=band_id or band.id,
            title=title,
            price=Decimal(price),
            sizes=list(inventory),
            inventory=inventory,
            event_ids=[open_event.id] if event_ids is None else event_ids,
        )
        return ProductService(db).create_product(payload)

    return _make
