from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable

from storefront.domain.models import (
    InventoryMovement,
    MovementType,
    PaymentMethod,
    Product,
    Sale,
    SaleItem,
)


PRODUCT_COLUMNS = """
    id, code, type, brand, model, stock, min_stock, unit_price,
    year_range, supplier_id, warehouse_location, description, image_url
"""


SALE_COLUMNS = """
    id, sale_number, customer_name, subtotal, discount, total, payment_method,
    created_at, notes, customer_id, created_by
"""


MOVEMENT_COLUMNS = """
    id, product_id, movement_type, quantity, reason, created_at,
    reference_id, notes, created_by
"""


def now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


def day_range_iso(date_from: date, date_to: date) -> tuple[str, str]:
    """Half-open timestamp bounds covering every day of [date_from, date_to]."""
    return f"{date_from.isoformat()} 00:00:00", f"{(date_to + timedelta(days=1)).isoformat()} 00:00:00"


def product_from_row(r) -> Product:
    return Product(
        id=int(r[0]),
        code=str(r[1]),
        type=str(r[2]),
        brand=str(r[3]),
        model=str(r[4]),
        stock=int(r[5]),
        min_stock=int(r[6]),
        unit_price=Decimal(r[7]),
        year_range=r[8],
        supplier_id=(int(r[9]) if r[9] is not None else None),
        warehouse_location=r[10],
        description=r[11],
        image_url=r[12],
    )


def movement_from_row(r) -> InventoryMovement:
    return InventoryMovement(
        id=int(r[0]),
        product_id=int(r[1]),
        movement_type=MovementType(r[2]),
        quantity=int(r[3]),
        reason=str(r[4]),
        created_at=datetime.fromisoformat(r[5]),
        reference_id=(int(r[6]) if r[6] is not None else None),
        notes=r[7],
        created_by=(int(r[8]) if r[8] is not None else None),
    )


def item_from_row(r) -> SaleItem:
    return SaleItem(
        id=int(r[0]),
        sale_id=int(r[1]),
        product_id=(int(r[2]) if r[2] is not None else None),
        product_code=str(r[3]),
        product_name=str(r[4]),
        quantity=int(r[5]),
        unit_price=Decimal(r[6]),
        total=Decimal(r[7]),
    )


def sale_from_row(r, items: Iterable[SaleItem]) -> Sale:
    return Sale(
        id=int(r[0]),
        sale_number=str(r[1]),
        customer_name=str(r[2]),
        subtotal=Decimal(r[3]),
        discount=Decimal(r[4]),
        total=Decimal(r[5]),
        payment_method=PaymentMethod(r[6]),
        created_at=datetime.fromisoformat(r[7]),
        notes=r[8],
        customer_id=(int(r[9]) if r[9] is not None else None),
        created_by=(int(r[10]) if r[10] is not None else None),
        items=tuple(items),
    )

