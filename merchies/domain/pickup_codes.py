# merchies/domain/pickup_codes.py
import uuid

FINAL_PREFIX = "QR_"
TEMPORARY_PREFIX = "TEMP_QR_"


def pickup_code(order_id: str) -> str:
    return f"{FINAL_PREFIX}{order_id}"


def temporary_code() -> str:
    """Placeholder used until payment confirms the order."""
    return f"{TEMPORARY_PREFIX}{uuid.uuid4().hex}"
