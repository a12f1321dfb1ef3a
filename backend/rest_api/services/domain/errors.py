"""
Order lifecycle failures.

Services raise these plain exceptions; the API boundary turns each one into
``{"error": kind, "detail": message}`` with the matching HTTP status.
Every failure leaves the database untouched and publishes nothing.
"""


class OrderLifecycleError(Exception):
    """Base class. ``kind`` is the stable error identifier sent to clients."""

    kind = "OrderLifecycleError"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class OrderValidationError(OrderLifecycleError):
    """Malformed or empty input, rejected before any transaction starts."""

    kind = "ValidationError"
    status_code = 422


class CatalogReferenceError(OrderLifecycleError):
    """Unknown or unavailable menu item, modifier or table."""

    kind = "ReferenceError"
    status_code = 422

    def __init__(self, message: str, reference: str | None = None):
        self.reference = reference
        super().__init__(message)


class InvalidTransitionError(OrderLifecycleError):
    """Target status is not reachable from the current one. Nothing changed."""

    kind = "InvalidTransitionError"
    status_code = 409

    def __init__(self, current_status: str, target_status: str, message: str | None = None):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            message or f"invalid transition from {current_status} to {target_status}"
        )


class OrderConflictError(OrderLifecycleError):
    """Unique-constraint collision that survived the bounded internal retries."""

    kind = "ConflictError"
    status_code = 409


class OrderPersistenceError(OrderLifecycleError):
    """Transaction or commit failure; fully rolled back, safe to retry."""

    kind = "PersistenceError"
    status_code = 500


class OrderNotFoundError(OrderLifecycleError):
    kind = "NotFound"
    status_code = 404

    def __init__(self, order_ref: int | str):
        self.order_ref = order_ref
        super().__init__(f"order {order_ref} not found")


class StockItemNotFoundError(OrderLifecycleError):
    kind = "NotFound"
    status_code = 404

    def __init__(self, stock_item_id: int):
        self.stock_item_id = stock_item_id
        super().__init__(f"stock item {stock_item_id} not found")
