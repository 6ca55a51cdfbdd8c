from decimal import Decimal

import pytest

from merchies.domain.outcomes import PickupNotFound
from merchies.services.import_service import ImportService
from merchies.services.inventory_ledger import InventoryLedger
from merchies.services.order_service import OrderService
from merchies.services.pickup_verifier import PickupVerifier

EVENT = {
    "id": "legacy-event",
    "name": "Old Gig",
    "venue_name": "Club",
    "start_date": "2023-09-01T19:00:00Z",
    "end_date": "2023-09-01T23:00:00Z",
    "latitude": 52.2,
    "longitude": 21.0,
    "geofence_radius": 150,
    "merchant_ids": ["band-1"],
}


@pytest.fixture
def importer(db, band):
    return ImportService(db)


def test_import_products_initializes_counters(db, importer):
    importer.import_collection("events", [EVENT])

    report = importer.import_collection(
        "products",
        [
            {"id": "legacy-tee", "band_id": "band-1", "title": "Tee", "price": 20, "inventory": {"M": 4}, "event_ids": ["legacy-event"]},
            {"id": "broken", "band_id": "band-1", "price": 20},
        ],
    )

    assert (report.imported, report.skipped) == (1, 1)
    assert InventoryLedger(db).available("legacy-tee", "M") == 4


def test_import_orders_with_legacy_fields(db, importer):
    report = importer.import_collection(
        "orders",
        [
            {
                "id": "legacy-order",
                "user_id": "fan-1",
                "band_id": "band-1",
                "items": [{"product_id": "legacy-tee", "size": "M", "qty": 2, "product_price": 20}],
                "amount": 40,
                "status": "pending_pickup",
                "qr_code": "QR_legacy-order",
                "transaction_id": "txn_9",
                "created_at": "2023-09-01T20:00:00Z",
            }
        ],
    )

    assert report.imported == 1
    order = OrderService(db).get_order("legacy-order")
    assert order.payment_status == "succeeded"
    assert order.items[0].quantity == 2
    assert Decimal(str(order.amount)) == Decimal("40")


def test_existing_records_are_skipped(importer):
    first = importer.import_collection("users", [{"id": "new-fan", "name": "New"}])
    again = importer.import_collection("users", [{"id": "new-fan", "name": "New"}, {"id": "fan-1", "name": "Fan"}])

    assert first.imported == 1
    assert (again.imported, again.skipped) == (0, 2)


def test_unknown_collection(importer):
    with pytest.raises(ValueError):
        importer.import_collection("tickets", [])


def legacy_order(**overrides):
    data = {
        "id": "legacy-order",
        "user_id": "fan-1",
        "band_id": "band-1",
        "items": [{"product_id": "legacy-tee", "size": "M", "quantity": 2, "unit_price": 20}],
        "amount": 40,
        "status": "pending_pickup",
        "qr_code": "TEMP_QR_abc",
        "created_at": "2023-09-01T20:00:00Z",
    }
    data.update(overrides)
    return data


@pytest.mark.parametrize("status", ["pending_pickup", "picked_up"])
def test_import_replaces_temporary_code_of_paid_order(db, importer, status):
    importer.import_collection("orders", [legacy_order(status=status)])

    order = OrderService(db).get_order("legacy-order")
    assert order.qr_code == "QR_legacy-order"
    assert isinstance(PickupVerifier(db).verify("TEMP_QR_abc"), PickupNotFound)


def test_import_keeps_temporary_code_of_unpaid_order(db, importer):
    importer.import_collection("orders", [legacy_order(status="pending_payment")])

    assert OrderService(db).get_order("legacy-order").qr_code == "TEMP_QR_abc"


def test_import_skips_order_with_wrong_amount(importer):
    report = importer.import_collection("orders", [legacy_order(amount=999), legacy_order(id="fine-order")])

    assert (report.imported, report.skipped) == (1, 1)
    assert "does not match items total" in report.errors[0]
