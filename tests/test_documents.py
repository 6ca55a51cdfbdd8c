from decimal import Decimal

import pytest

from merchies.data.documents import (
    EventDocument,
    OrderDocument,
    ProductDocument,
    decode,
    decode_many,
    encode,
    order_document,
)
from merchies.domain.cart import CheckoutLine
from merchies.domain.errors import DocumentDecodeError
from merchies.services.order_service import OrderService


def legacy_order(**overrides):
    data = {
        "id": "order-1",
        "user_id": "fan-1",
        "band_id": "band-1",
        "items": [{"product_id": "tee", "size": "M", "quantity": 1, "unit_price": 25.0, "title": "Tee"}],
        "amount": 25.0,
        "status": "pending_pickup",
        "qr_code": "QR_order-1",
        "created_at": "2024-05-01T18:00:00Z",
    }
    data.update(overrides)
    return data


@pytest.mark.parametrize(
    "status, transaction_id, expected",
    [
        ("pending_payment", None, "pending"),
        ("pending_payment", "txn_1", "succeeded"),
        ("cancelled", None, "cancelled"),
        ("pending_pickup", None, "succeeded"),
        ("picked_up", None, "succeeded"),
    ],
)
def test_missing_payment_status_is_inferred(status, transaction_id, expected):
    doc = decode("orders", legacy_order(status=status, transaction_id=transaction_id))
    assert doc.payment_status.value == expected


def test_explicit_payment_status_is_kept():
    doc = decode("orders", legacy_order(payment_status="failed", status="cancelled"))
    assert doc.payment_status.value == "failed"


def test_legacy_item_keys():
    raw = legacy_order(items=[{"product_id": "tee", "size": "M", "qty": 2, "product_price": 12.5, "product_title": "Tee"}])

    item = decode("orders", raw).items[0]

    assert item.quantity == 2
    assert item.unit_price == Decimal("12.5")
    assert item.title == "Tee"


def test_order_amount_must_match_items():
    with pytest.raises(DocumentDecodeError) as exc:
        decode("orders", legacy_order(amount=999))

    assert exc.value.document_id == "order-1"


def test_event_defaults():
    doc = decode(
        "events",
        {
            "id": "event-1",
            "name": "Gig",
            "venue_name": "Hall",
            "start_date": "2024-05-01T18:00:00Z",
            "end_date": "2024-05-01T23:00:00Z",
            "latitude": 52.2,
            "longitude": 21.0,
            "geofence_radius": 100,
            "archived": None,
        },
    )

    assert isinstance(doc, EventDocument)
    assert doc.merchant_ids == []
    assert doc.product_ids == []
    assert doc.archived is False


def test_product_defaults_and_inventory_sizes():
    raw = {"id": "tee", "band_id": "band-1", "title": "Tee", "price": 25, "sizes": ["S"], "inventory": {"S": 1, "XL": 2}}

    doc = decode("products", raw)

    assert isinstance(doc, ProductDocument)
    assert doc.active is True
    assert doc.event_ids == []
    assert doc.sizes == ["S", "XL"]
    # the caller's record is left as it was
    assert raw["sizes"] == ["S"]


def test_decode_errors():
    with pytest.raises(DocumentDecodeError) as exc:
        decode("orders", legacy_order(items=[]))
    assert exc.value.document_id == "order-1"
    assert "items" in exc.value.reason

    with pytest.raises(DocumentDecodeError):
        decode("users", ["not", "a", "record"])
    with pytest.raises(ValueError):
        decode("tickets", {"id": "x"})


def test_decode_many_skips_bad_records():
    documents, failures = decode_many(
        "users",
        [{"id": "fan-1", "name": "Fan"}, {"id": "fan-2"}, {"id": "merchant-1", "name": "M", "role": "merchant"}],
    )

    assert [d.id for d in documents] == ["fan-1", "merchant-1"]
    assert [f.document_id for f in failures] == ["fan-2"]


def test_encode_uses_plain_json_types():
    doc = OrderDocument.model_validate(legacy_order())

    encoded = encode(doc)

    assert encoded["amount"] == 25.0
    assert encoded["payment_status"] == "succeeded"
    assert encoded["items"][0]["unit_price"] == 25.0
    assert encoded["created_at"].startswith("2024-05-01T18:00:00")


def test_order_document_from_model(db, make_product):
    product = make_product(price="19.99")
    order = OrderService(db).checkout("fan-1", [CheckoutLine(product.id, "M", 2)])

    encoded = encode(order_document(order))

    assert encoded["id"] == order.id
    assert encoded["amount"] == pytest.approx(39.98)
    assert encoded["status"] == "pending_payment"
    assert encoded["items"][0]["quantity"] == 2
    assert encoded["qr_code"].startswith("TEMP_QR_")
