"""Errors raised by the order/table lifecycle services.

Each error carries the HTTP status the routes translate it to, so the
service layer stays free of FastAPI imports.
"""


class OrderServiceError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrderServiceError):
    status_code = 422


class EmptyOrder(ValidationError):
    def __init__(self, message: str = "Cannot create an empty order, add products first"):
        super().__init__(message)


class InvalidQuantity(ValidationError):
    pass


class InvalidTransition(OrderServiceError):
    status_code = 409

    def __init__(self, current, requested, message: str = None):
        self.current = current
        self.requested = requested
        super().__init__(message or f"Invalid status transition from {_value(current)} to {_value(requested)}")


class OrderClosed(InvalidTransition):
    def __init__(self, order_id: int, current):
        self.order_id = order_id
        super().__init__(current, None, f"Order {order_id} is {_value(current)} and can no longer be modified")


class AuthorizationDenied(OrderServiceError):
    status_code = 403


class NotFound(OrderServiceError):
    status_code = 404


class TableUnavailable(OrderServiceError):
    status_code = 409


class TableInUse(OrderServiceError):
    status_code = 409


class PersistenceError(OrderServiceError):
    status_code = 503


def _value(status):
    return getattr(status, "value", status)
