from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from merchies.api import create_app
from merchies.api.deps import get_db
from merchies.utils.clock import utcnow

LAT, LON = 52.2297, 21.0122


@pytest.fixture
def client(session_factory, lock_service, gateway):
    app = create_app(lock_service=lock_service, gateway=gateway)

    def override():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override
    with TestClient(app) as c:
        yield c


@pytest.fixture
def stand(client):
    """A merchant with one open event and a tee with a single unit left."""
    client.post("/users", json={"id": "merchant-9", "name": "Merchant", "role": "merchant"})
    client.post("/users", json={"id": "fan-9", "name": "Fan"})

    band = client.post("/bands", json={"name": "The Holds", "owner_user_id": "merchant-9"}).json()

    now = utcnow()
    event = client.post(
        "/events",
        json={
            "name": "Pop-up",
            "venue_name": "Hall",
            "start_date": (now - timedelta(hours=1)).isoformat(),
            "end_date": (now + timedelta(hours=3)).isoformat(),
            "latitude": LAT,
            "longitude": LON,
            "geofence_radius": 100,
            "merchant_ids": [band["id"]],
        },
    )
    assert event.status_code == 201

    product = client.post(
        "/products",
        json={
            "band_id": band["id"],
            "title": "Tour Tee",
            "price": "20.00",
            "sizes": ["M"],
            "inventory": {"M": 1},
            "event_ids": [event.json()["id"]],
        },
    )
    assert product.status_code == 201

    return {"band": band, "event": event.json(), "product": product.json()}


def checkout(client, stand):
    return client.post(
        "/orders/checkout",
        json={
            "user_id": "fan-9",
            "event_id": stand["event"]["id"],
            "lines": [{"product_id": stand["product"]["id"], "size": "M", "quantity": 1}],
        },
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_purchase_to_pickup(client, stand, gateway):
    band_id = stand["band"]["id"]

    catalog = client.get(f"/events/{stand['event']['id']}/catalog").json()
    assert [p["id"] for p in catalog] == [stand["product"]["id"]]

    resp = checkout(client, stand)
    assert resp.status_code == 201
    order = resp.json()
    assert order["status"] == "pending_payment"
    assert order["qr_code"].startswith("TEMP_QR_")

    sold_out = checkout(client, stand)
    assert sold_out.status_code == 409
    assert sold_out.json()["shortages"][0]["available"] == 0

    not_paid = client.post("/pickups/verify", json={"code": order["qr_code"], "merchant_id": band_id})
    assert not_paid.status_code == 425

    attempt = client.post("/payments", json={"order_id": order["id"], "amount": "20.00"})
    assert attempt.status_code == 201
    attempt_id = attempt.json()["id"]
    assert gateway.calls[0]["amount_minor"] == 2000

    callback = {"attempt_id": attempt_id, "outcome": "succeeded", "transaction_id": "txn_42"}
    assert client.post("/payments/callback", json=callback).json() == {"result": "applied"}
    assert client.post("/payments/callback", json=callback).json() == {"result": "duplicate"}

    paid = client.get(f"/orders/{order['id']}", params={"user_id": "fan-9"}).json()
    assert paid["status"] == "pending_pickup"
    assert paid["qr_code"] == f"QR_{order['id']}"

    first = client.post("/pickups/verify", json={"code": paid["qr_code"], "merchant_id": band_id})
    assert first.status_code == 200
    assert first.json()["status"] == "picked_up"

    second = client.post("/pickups/verify", json={"code": paid["qr_code"], "merchant_id": band_id})
    assert second.status_code == 409


def test_payment_errors(client, stand):
    order = checkout(client, stand).json()

    assert client.post("/payments", json={"order_id": order["id"], "amount": "1.00"}).status_code == 400
    assert client.post("/payments", json={"order_id": "missing", "amount": "1.00"}).status_code == 404

    unknown = client.post("/payments/callback", json={"attempt_id": "missing", "outcome": "failed"})
    assert unknown.status_code == 200
    assert unknown.json() == {"result": "unknown_attempt"}


def test_gateway_down_is_503(client, stand, gateway):
    order = checkout(client, stand).json()
    gateway.fail = True

    resp = client.post("/payments", json={"order_id": order["id"], "amount": "20.00"})

    assert resp.status_code == 503


def test_cancel_order(client, stand):
    order = checkout(client, stand).json()

    cancelled = client.post(f"/orders/{order['id']}/cancel", json={"reason": "changed mind"})
    assert cancelled.json()["status"] == "cancelled"
    assert client.post(f"/orders/{order['id']}/cancel", json={}).status_code == 409

    # the unit is back on sale
    assert checkout(client, stand).status_code == 201


def test_orders_listing_requires_owner(client, stand):
    checkout(client, stand)

    assert client.get("/orders").status_code == 400
    listed = client.get("/orders", params={"band_id": stand["band"]["id"], "status": "pending_payment"}).json()
    assert len(listed) == 1


def test_fan_location_opens_storefront(client, stand):
    now = utcnow()
    inside = {"samples": [{"latitude": LAT, "longitude": LON, "timestamp": now.isoformat()}]}

    body = client.post("/fans/fan-9/locations", json=inside).json()

    assert body["degraded"] is False
    assert [s["event_id"] for s in body["storefronts"]] == [stand["event"]["id"]]
    assert body["storefronts"][0]["products"][0]["inventory"] == {"M": 1}

    lost = client.post("/fans/fan-9/location-failure", json={"reason": "gps off"}).json()
    assert lost["degraded"] is True
    assert lost["storefronts"] == []


def test_export_and_import(client, stand):
    checkout(client, stand)

    exported = client.get("/exports/orders", params={"band_id": stand["band"]["id"]}).json()
    assert len(exported) == 1
    assert exported[0]["payment_status"] == "pending"

    report = client.post("/imports/users", json=[{"id": "legacy-fan", "name": "Old"}, {"id": "no-name"}]).json()
    assert report == {"collection": "users", "imported": 1, "skipped": 1}

    assert client.post("/imports/tickets", json=[]).status_code == 404
