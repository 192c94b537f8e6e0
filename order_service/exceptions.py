# order_service/exceptions.py

"""
Error taxonomy for the Order Service.

Each error carries the HTTP status it maps to; the API layer renders any
OrderServiceError as ``{"error": <message>}`` with that status.
"""


class OrderServiceError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message}


class InvalidRequest(OrderServiceError):
    """Malformed input; raised before any store access."""

    status_code = 400


class Unauthenticated(OrderServiceError):
    status_code = 401


class Forbidden(OrderServiceError):
    """The access policy denied the operation."""

    status_code = 403


class ProductNotFound(OrderServiceError):
    status_code = 404

    def __init__(self, product_id):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class OrderNotFound(OrderServiceError):
    status_code = 404

    def __init__(self, order_id):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class ProductInUse(OrderServiceError):
    status_code = 409


class InsufficientStock(OrderServiceError):
    """Requested quantity exceeds available stock. Terminal, never retried."""

    status_code = 400

    def __init__(self, product_id, product_name, available, requested):
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}"
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested

    def to_dict(self):
        return {
            "error": self.message,
            "product_id": str(self.product_id),
            "available": self.available,
            "requested": self.requested,
        }


class OrderCommitFailed(OrderServiceError):
    """The atomic write could not complete; nothing was persisted."""

    status_code = 500
