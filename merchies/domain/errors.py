# merchies/domain/errors.py


class OrderNotFound(LookupError):
    pass


class PaymentAttemptNotFound(LookupError):
    pass


class InvalidTransition(ValueError):
    def __init__(self, order_id: str, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order {order_id} cannot move from {current} to {target}")


class ReservationStateError(ValueError):
    pass


class DocumentDecodeError(ValueError):
    """A persisted record could not be decoded even after legacy defaulting."""

    def __init__(self, collection: str, document_id: str | None, reason: str):
        self.collection = collection
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"{collection}/{document_id or '?'}: {reason}")


class PaymentInProgress(RuntimeError):
    """Another payment attempt holds the order's in-flight lock."""

    def __init__(self, order_id: str, holder: str | None = None):
        self.order_id = order_id
        self.holder = holder
        super().__init__(f"Payment for order {order_id} is already in progress")
