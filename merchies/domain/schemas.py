# merchies/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator

from merchies.domain.states import CallbackResult, PaymentOutcome, UserRole


# ===== users & bands =====

class UserCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=64, description="ID from the auth provider")
    name: str = Field(..., min_length=1, max_length=100)
    email: str | None = None
    role: UserRole = UserRole.FAN


class UserRead(BaseModel):
    id: str
    name: str
    email: str | None = None
    role: str

    model_config = ConfigDict(from_attributes=True)


class BandCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    owner_user_id: str = Field(..., min_length=1)
    member_user_ids: List[str] = Field(default_factory=list)
    description: str | None = None
    logo_url: str | None = None
    genre: str | None = None
    website: str | None = None


class BandRead(BaseModel):
    id: str
    name: str
    owner_user_id: str
    member_user_ids: List[str]
    description: str | None = None
    logo_url: str | None = None
    genre: str | None = None
    website: str | None = None
    is_verified: bool

    model_config = ConfigDict(from_attributes=True)


# ===== events =====

class EventCreate(BaseModel):
    name: str = Field(..., min_length=1)
    venue_name: str = Field(..., min_length=1)
    address: str = ""
    description: str | None = None
    event_type: str | None = None
    image_url: str | None = None
    start_date: datetime
    end_date: datetime
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    geofence_radius: float = Field(..., gt=0, description="Metres")
    merchant_ids: List[str] = Field(..., min_length=1)
    product_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class EventUpdate(BaseModel):
    name: str | None = None
    venue_name: str | None = None
    address: str | None = None
    description: str | None = None
    image_url: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    geofence_radius: float | None = Field(None, gt=0)
    active: bool | None = None


class EventRead(BaseModel):
    id: str
    name: str
    venue_name: str
    address: str
    description: str | None = None
    event_type: str | None = None
    image_url: str | None = None
    start_date: datetime
    end_date: datetime
    latitude: float
    longitude: float
    geofence_radius: float
    active: bool
    archived: bool
    merchant_ids: List[str]
    product_ids: List[str]

    model_config = ConfigDict(from_attributes=True)


# ===== products =====

class ProductCreate(BaseModel):
    band_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    sizes: List[str] = Field(..., min_length=1)
    inventory: dict[str, int] = Field(default_factory=dict)
    image_url: str | None = None
    event_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_inventory(self):
        unknown = [s for s in self.inventory if s not in self.sizes]
        if unknown:
            raise ValueError(f"Inventory for unknown sizes: {', '.join(unknown)}")
        if any(v < 0 for v in self.inventory.values()):
            raise ValueError("Inventory cannot be negative")
        return self


class ProductUpdate(BaseModel):
    title: str | None = None
    price: Decimal | None = Field(None, ge=0, decimal_places=2)
    image_url: str | None = None
    active: bool | None = None


class RestockIn(BaseModel):
    size: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)


class ProductRead(BaseModel):
    id: str
    band_id: str
    title: str
    price: Decimal
    sizes: List[str]
    inventory: dict[str, int]
    image_url: str | None = None
    active: bool

    @classmethod
    def from_snapshot(cls, snap) -> "ProductRead":
        return cls(
            id=snap.id,
            band_id=snap.band_id,
            title=snap.title,
            price=snap.price,
            sizes=list(snap.sizes),
            inventory=dict(snap.inventory),
            image_url=snap.image_url,
            active=snap.active,
        )


# ===== orders =====

class CheckoutLineIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    size: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)


class CheckoutIn(BaseModel):
    user_id: str = Field(..., min_length=1)
    event_id: str | None = None
    lines: List[CheckoutLineIn] = Field(..., min_length=1)


class OrderItemOut(BaseModel):
    product_id: str
    size: str
    quantity: int
    unit_price: Decimal
    title: str

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: str
    user_id: str
    band_id: str
    event_id: str | None = None
    amount: Decimal
    status: str
    payment_status: str
    qr_code: str
    transaction_id: str | None = None
    created_at: datetime
    items: List[OrderItemOut]

    model_config = ConfigDict(from_attributes=True)


class ShortageOut(BaseModel):
    product_id: str
    size: str
    requested: int
    available: int

    model_config = ConfigDict(from_attributes=True)


class CheckoutRejectedOut(BaseModel):
    reason: str
    shortages: List[ShortageOut]


class CancelIn(BaseModel):
    reason: str = ""


# ===== payments =====

class PaymentBeginIn(BaseModel):
    order_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)


class PaymentAttemptOut(BaseModel):
    id: str
    order_id: str
    amount: Decimal
    currency: str
    status: str
    client_secret: str | None = None
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentCallbackIn(BaseModel):
    attempt_id: str
    outcome: PaymentOutcome
    transaction_id: str | None = None


class PaymentCallbackOut(BaseModel):
    result: CallbackResult


# ===== pickups =====

class PickupVerifyIn(BaseModel):
    code: str = Field(..., min_length=1)
    merchant_id: str | None = None


# ===== fan location =====

class LocationSampleIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    timestamp: datetime


class LocationBatchIn(BaseModel):
    samples: List[LocationSampleIn] = Field(..., min_length=1)


class LocationFailureIn(BaseModel):
    reason: str = "provider_unavailable"


class StorefrontOut(BaseModel):
    event_id: str
    name: str
    products: List[ProductRead]


class FanVisibilityOut(BaseModel):
    fan_id: str
    degraded: bool
    storefronts: List[StorefrontOut]


# ===== import =====

class ImportReportOut(BaseModel):
    collection: str
    imported: int
    skipped: int
