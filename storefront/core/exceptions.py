"""Domain errors raised by the catalog and cart services.

Each error carries the HTTP status and a short machine code so the API layer
can render it without knowing which service raised it.
"""


class StoreError(Exception):
    status_code: int = 400
    code: str = "store_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(StoreError):
    status_code = 404
    code = "not_found"


class UnavailableError(StoreError):
    status_code = 409
    code = "unavailable"


class InsufficientStockError(StoreError):
    status_code = 409
    code = "insufficient_stock"


class UnauthorizedError(StoreError):
    status_code = 403
    code = "unauthorized"


class ValidationError(StoreError):
    status_code = 422
    code = "validation_error"


class ConflictError(StoreError):
    status_code = 409
    code = "conflict"
