from .models import (
    Actor,
    InventoryMovement,
    MovementType,
    PaymentMethod,
    Product,
    Role,
    Sale,
    SaleItem,
    SaleItemRequest,
    Supplier,
)
from .errors import (
    AuthorizationError,
    InsufficientStockError,
    NotFoundError,
    NumberingConflictError,
    PersistenceError,
    ValidationError,
)

__all__ = [
    "Actor",
    "InventoryMovement",
    "MovementType",
    "PaymentMethod",
    "Product",
    "Role",
    "Sale",
    "SaleItem",
    "SaleItemRequest",
    "Supplier",
    "AuthorizationError",
    "InsufficientStockError",
    "NotFoundError",
    "NumberingConflictError",
    "PersistenceError",
    "ValidationError",
]
