# merchies/data/documents.py
"""
Wire documents for the `events`, `products`, `orders`, `users` and `bands`
collections (snake_case keys, one JSON object per record).

Older clients wrote records without some fields; those gaps are filled in by
`mode="before"` validators here and nowhere else, so the rest of the code only
ever sees complete documents.
"""
import copy
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, model_validator

from merchies.domain.errors import DocumentDecodeError
from merchies.domain.states import OrderStatus, PaymentStatus, UserRole
from merchies.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")


def _default_lists(data: Any, *keys: str) -> Any:
    if isinstance(data, dict):
        for key in keys:
            if data.get(key) is None:
                data[key] = []
    return data


def legacy_payment_status(status: str | None, transaction_id: str | None) -> str:
    """Payment status for records written before the field existed."""
    if transaction_id:
        return PaymentStatus.SUCCEEDED.value
    if status == OrderStatus.PENDING_PAYMENT.value:
        return PaymentStatus.PENDING.value
    if status == OrderStatus.CANCELLED.value:
        return PaymentStatus.CANCELLED.value
    return PaymentStatus.SUCCEEDED.value


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)


class EventDocument(_Document):
    name: str
    venue_name: str
    address: str = ""
    start_date: datetime
    end_date: datetime
    latitude: float
    longitude: float
    geofence_radius: float = Field(..., gt=0)
    active: bool = True
    archived: bool = False
    merchant_ids: List[str]
    product_ids: List[str]
    image_url: str | None = None
    description: str | None = None
    event_type: str | None = None

    @model_validator(mode="before")
    @classmethod
    def fill_legacy(cls, data):
        data = _default_lists(data, "merchant_ids", "product_ids")
        if isinstance(data, dict) and data.get("archived") is None:
            data["archived"] = False
        return data

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class ProductDocument(_Document):
    band_id: str
    title: str
    price: Decimal = Field(..., ge=0)
    sizes: List[str]
    inventory: dict[str, int] = Field(default_factory=dict)
    image_url: str | None = None
    active: bool = True
    event_ids: List[str]

    @model_validator(mode="before")
    @classmethod
    def fill_legacy(cls, data):
        data = _default_lists(data, "sizes", "event_ids")
        if not isinstance(data, dict):
            return data
        if data.get("active") is None:
            data["active"] = True
        if data.get("inventory") is None:
            data["inventory"] = {}
        if not isinstance(data["sizes"], list) or not isinstance(data["inventory"], dict):
            return data
        # sizes that only ever appeared in the inventory map
        sizes = list(data["sizes"])
        for size in data["inventory"]:
            if size not in sizes:
                sizes.append(size)
        data["sizes"] = sizes
        return data

    @model_validator(mode="after")
    def check_inventory(self):
        if any(v < 0 for v in self.inventory.values()):
            raise ValueError("inventory cannot be negative")
        return self

    @field_serializer("price")
    def _price(self, value: Decimal) -> float:
        return float(value)


class OrderItemDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_id: str
    size: str
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Decimal("0.00")
    title: str = ""

    @model_validator(mode="before")
    @classmethod
    def legacy_keys(cls, data):
        if not isinstance(data, dict):
            return data
        renames = {"qty": "quantity", "product_price": "unit_price", "product_title": "title"}
        for old, new in renames.items():
            if data.get(new) is None and data.get(old) is not None:
                data[new] = data[old]
        if data.get("unit_price") is None:
            data["unit_price"] = Decimal("0.00")
        if data.get("title") is None:
            data["title"] = ""
        return data

    @field_serializer("unit_price")
    def _unit_price(self, value: Decimal) -> float:
        return float(value)


class OrderDocument(_Document):
    user_id: str
    band_id: str
    event_id: str | None = None
    items: List[OrderItemDocument] = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    status: OrderStatus
    payment_status: PaymentStatus
    qr_code: str = Field(..., min_length=1)
    transaction_id: str | None = None
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def fill_legacy(cls, data):
        if isinstance(data, dict) and data.get("payment_status") is None:
            data["payment_status"] = legacy_payment_status(data.get("status"), data.get("transaction_id"))
        return data

    @model_validator(mode="after")
    def check_amount(self):
        total = sum((item.unit_price * item.quantity for item in self.items), Decimal("0"))
        if self.amount.quantize(CENT) != total.quantize(CENT):
            raise ValueError(f"amount {self.amount} does not match items total {total}")
        return self

    @field_serializer("amount")
    def _amount(self, value: Decimal) -> float:
        return float(value)


class UserDocument(_Document):
    name: str
    email: str | None = None
    role: UserRole = UserRole.FAN


class BandDocument(_Document):
    name: str
    owner_user_id: str
    member_user_ids: List[str]
    description: str | None = None
    logo_url: str | None = None
    genre: str | None = None
    website: str | None = None
    is_verified: bool = False
    created_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def fill_legacy(cls, data):
        data = _default_lists(data, "member_user_ids")
        if isinstance(data, dict) and data.get("is_verified") is None:
            data["is_verified"] = False
        return data


COLLECTIONS: dict[str, type[_Document]] = {
    "events": EventDocument,
    "products": ProductDocument,
    "orders": OrderDocument,
    "users": UserDocument,
    "bands": BandDocument,
}


# ===== decode / encode =====

def decode(collection: str, raw: dict) -> _Document:
    model = COLLECTIONS.get(collection)
    if model is None:
        raise ValueError(f"Unknown collection {collection}")

    if not isinstance(raw, dict):
        raise DocumentDecodeError(collection, None, "record is not an object")
    document_id = raw.get("id")

    try:
        # validators fill gaps in place, keep the caller's dict untouched
        return model.model_validate(copy.deepcopy(raw))
    except ValidationError as e:
        reason = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<record>'}: {err['msg']}" for err in e.errors()
        )
        raise DocumentDecodeError(collection, document_id, reason) from e


def decode_many(collection: str, raws: Iterable[dict]) -> tuple[list[_Document], list[DocumentDecodeError]]:
    """Decode a batch; undecodable records are logged and left out."""
    documents, failures = [], []
    for raw in raws:
        try:
            documents.append(decode(collection, raw))
        except DocumentDecodeError as e:
            logger.warning(
                "Skipping undecodable record",
                collection=e.collection,
                document_id=e.document_id,
                reason=e.reason,
            )
            failures.append(e)
    return documents, failures


def encode(document: BaseModel) -> dict:
    return document.model_dump(mode="json")


def order_document(order) -> OrderDocument:
    return OrderDocument(
        id=order.id,
        user_id=order.user_id,
        band_id=order.band_id,
        event_id=order.event_id,
        items=[
            OrderItemDocument(
                product_id=i.product_id,
                size=i.size,
                quantity=i.quantity,
                unit_price=Decimal(str(i.unit_price)),
                title=i.title,
            )
            for i in order.items
        ],
        amount=Decimal(str(order.amount)),
        status=OrderStatus(order.status),
        payment_status=PaymentStatus(order.payment_status),
        qr_code=order.qr_code,
        transaction_id=order.transaction_id,
        created_at=order.created_at,
    )
