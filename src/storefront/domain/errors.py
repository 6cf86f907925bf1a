from __future__ import annotations


class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    def __init__(self, product_code: str, requested: int, available: int):
        super().__init__(
            f"Not enough stock for {product_code}. Requested: {requested}, available: {available}"
        )
        self.product_code = product_code
        self.requested = requested
        self.available = available


class NumberingConflictError(AppError):
    pass


class PersistenceError(AppError):
    pass


class AuthorizationError(AppError):
    pass
