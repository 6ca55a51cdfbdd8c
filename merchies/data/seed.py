# merchies/data/seed.py
from datetime import timedelta
from decimal import Decimal

from merchies.data.database import SessionLocal
from merchies.data.models import BandModel, EventModel, UserModel
from merchies.domain.schemas import ProductCreate
from merchies.domain.states import UserRole
from merchies.services.product_service import ProductService
from merchies.utils.clock import utcnow


def seed():
    """Demo data: one band with a pop-up stand open for the next six hours."""
    db = SessionLocal()
    try:
        # only seed an empty database
        if db.query(EventModel).first():
            return

        now = utcnow()
        owner = UserModel(id="demo-merchant", name="Demo Merchant", role=UserRole.MERCHANT.value)
        fan = UserModel(id="demo-fan", name="Demo Fan", role=UserRole.FAN.value)
        band = BandModel(id="demo-band", name="The Demo Tapes", owner_user_id=owner.id)
        event = EventModel(
            id="demo-event",
            name="Demo Tapes Live",
            venue_name="Warehouse 9",
            address="9 Dock Street",
            start_date=now - timedelta(hours=1),
            end_date=now + timedelta(hours=6),
            latitude=52.2297,
            longitude=21.0122,
            geofence_radius=150,
            merchant_ids=[band.id],
        )
        db.add_all([owner, fan, band, event])
        db.commit()

        products = ProductService(db)
        products.create_product(
            ProductCreate(
                band_id=band.id,
                title="Tour T-Shirt",
                price=Decimal("25.00"),
                sizes=["S", "M", "L", "XL"],
                inventory={"S": 10, "M": 20, "L": 20, "XL": 5},
                event_ids=[event.id],
            )
        )
        products.create_product(
            ProductCreate(
                band_id=band.id,
                title="Vinyl LP",
                price=Decimal("30.00"),
                sizes=["ONE SIZE"],
                inventory={"ONE SIZE": 50},
                event_ids=[event.id],
            )
        )
    finally:
        db.close()


if __name__ == "__main__":
    seed()
