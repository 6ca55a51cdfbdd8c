# merchies/api/__init__.py
from fastapi import FastAPI

from merchies.api.routers import (
    bands,
    events,
    fans,
    health,
    orders,
    payments,
    pickups,
    products,
    transfer,
    users,
)
from merchies.services.activation_service import FanSessionRegistry
from merchies.services.lock_service import LockService
from merchies.services.payment_gateway import PaymentGatewayClient


def create_app(
    lock_service: LockService | None = None,
    gateway: PaymentGatewayClient | None = None,
    fan_registry: FanSessionRegistry | None = None,
) -> FastAPI:
    app = FastAPI(title="Merchies", version="1.0.0")

    app.state.lock_service = lock_service or LockService()
    app.state.gateway = gateway or PaymentGatewayClient()
    app.state.fan_registry = fan_registry or FanSessionRegistry()

    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(bands.router)
    app.include_router(events.router)
    app.include_router(products.router)
    app.include_router(orders.router)
    app.include_router(payments.router)
    app.include_router(pickups.router)
    app.include_router(fans.router)
    app.include_router(transfer.router)

    return app
