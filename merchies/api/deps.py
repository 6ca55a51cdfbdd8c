# merchies/api/deps.py
from fastapi import Request

from merchies.data.database import get_db
from merchies.services.activation_service import FanSessionRegistry
from merchies.services.lock_service import LockService
from merchies.services.payment_gateway import PaymentGatewayClient

__all__ = ["get_db", "get_lock_service", "get_gateway", "get_registry"]

# process-wide collaborators live on app.state, set up in create_app


def get_lock_service(request: Request) -> LockService:
    return request.app.state.lock_service


def get_gateway(request: Request) -> PaymentGatewayClient:
    return request.app.state.gateway


def get_registry(request: Request) -> FanSessionRegistry:
    return request.app.state.fan_registry
