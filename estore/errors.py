"""Domain exceptions for the order and payment core."""


class ShopError(Exception):
    """Base exception for all estore domain errors."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class OrderValidationError(ShopError):
    """Raised when a request body is malformed or misses required fields."""

    status_code = 400


class ReferenceNotFound(ShopError):
    """Raised when a product, address, user, order or ledger entry is absent."""

    status_code = 404


class StateConflict(ShopError):
    """Raised when a status or cancel transition is not allowed."""

    status_code = 400


class AuthenticationFailure(ShopError):
    """Raised when an identity token or webhook signature cannot be verified."""

    status_code = 401


class AmountMismatch(ShopError):
    """Raised when the gateway reports an amount different from the ledger."""

    status_code = 409

    def __init__(self, transaction_id: str, expected: int, received: int):
        self.transaction_id = transaction_id
        self.expected = expected
        self.received = received
        super().__init__(
            f"Amount mismatch for transaction {transaction_id}: "
            f"expected {expected}, received {received}"
        )


class TransientStoreFailure(ShopError):
    """Raised when the database fails; callers may retry."""

    status_code = 500


class GatewayUnavailable(ShopError):
    """Raised when the checkout session could not be created."""

    status_code = 502
