from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from storefront.domain.errors import ValidationError

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Parse a monetary amount and quantize it to cents."""
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class MovementType(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"
    ADJUSTMENT = "adjustment"


class PaymentMethod(str, Enum):
    CASH = "efectivo"
    CARD = "tarjeta"
    TRANSFER = "transferencia"
    CHEQUE = "cheque"


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role = Role.EMPLOYEE
    email: str = ""
    full_name: Optional[str] = None


@dataclass(frozen=True)
class Supplier:
    id: int
    name: str
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Product:
    id: int
    code: str
    type: str
    brand: str
    model: str
    stock: int
    min_stock: int
    unit_price: Decimal
    year_range: Optional[str] = None
    supplier_id: Optional[int] = None
    warehouse_location: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.brand} {self.model}".strip()


@dataclass(frozen=True)
class SaleItemRequest:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class SaleItem:
    id: int
    sale_id: int
    product_id: Optional[int]
    product_code: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total: Decimal


@dataclass(frozen=True)
class Sale:
    id: int
    sale_number: str
    customer_name: str
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    payment_method: PaymentMethod
    created_at: datetime
    notes: Optional[str] = None
    customer_id: Optional[int] = None
    created_by: Optional[int] = None
    items: tuple[SaleItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class InventoryMovement:
    id: int
    product_id: int
    movement_type: MovementType
    quantity: int
    reason: str
    created_at: datetime
    reference_id: Optional[int] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None


@dataclass(frozen=True)
class SalesSummary:
    count: int
    total_sales: Decimal
    total_discount: Decimal
    average_sale: Decimal


@dataclass(frozen=True)
class ProductSales:
    code: str
    name: str
    quantity_sold: int
    revenue: Decimal


@dataclass(frozen=True)
class InventorySummary:
    total_products: int
    total_stock: int
    inventory_value: Decimal
    low_stock_count: int


def to_quantity(value) -> int:
    """Parse a whole, finite unit count (sign is checked by the caller)."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid quantity: {value!r}")
    if isinstance(value, int):
        return value
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid quantity: {value!r}") from exc
    if not amount.is_finite() or amount != amount.to_integral_value():
        raise ValidationError(f"Quantity must be a whole number: {value!r}")
    return int(amount)
