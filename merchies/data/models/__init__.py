# import all models so SQLAlchemy registers them in Base.metadata

from merchies.data.models.user import UserModel
from merchies.data.models.band import BandModel
from merchies.data.models.event import EventModel, event_products
from merchies.data.models.product import ProductModel, ProductInventoryModel
from merchies.data.models.reservation import ReservationModel
from merchies.data.models.order import OrderModel, OrderItemModel
from merchies.data.models.payment import PaymentAttemptModel

__all__ = [
    "UserModel",
    "BandModel",
    "EventModel",
    "event_products",
    "ProductModel",
    "ProductInventoryModel",
    "ReservationModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentAttemptModel",
]
