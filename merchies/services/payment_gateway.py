# merchies/services/payment_gateway.py
import requests

from merchies.utils.logging import get_logger
from merchies.utils.retry import gateway_retry
from merchies.utils.settings import PAYMENT_GATEWAY_URL

logger = get_logger(__name__)


class PaymentGatewayClient:
    """Registers payment intents with the external gateway. Outcomes arrive later by callback."""

    def __init__(self, base_url: str | None = None, timeout: int = 5, session: requests.Session | None = None):
        self.base_url = (base_url or PAYMENT_GATEWAY_URL).rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    @gateway_retry()
    def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        order_id: str,
        idempotency_key: str,
    ) -> dict:
        url = f"{self.base_url}/payment_intents"
        logger.info("Gateway POST", url=url, order_id=order_id, idempotency_key=idempotency_key)

        resp = self.http.post(
            url,
            json={"amount": amount_minor, "currency": currency, "order_id": order_id},
            headers={"Idempotency-Key": idempotency_key},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        body = resp.json()
        return {"id": body["id"], "client_secret": body.get("client_secret")}
