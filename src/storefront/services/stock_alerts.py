from __future__ import annotations

from typing import Iterable, Optional

from storefront.domain.models import Product


def is_low_stock(product: Product) -> bool:
    return product.stock <= product.min_stock


def low_stock(products: Iterable[Product], limit: Optional[int] = None) -> list[Product]:
    """Products at or below their minimum, most urgent (lowest stock) first.

    Pure: works on any snapshot, however stale. Ties are ordered by code so
    repeated calls return the same list.
    """
    flagged = sorted((p for p in products if is_low_stock(p)), key=lambda p: (p.stock, p.code))
    if limit is not None:
        if limit < 0:
            raise ValueError("limit must be >= 0")
        return flagged[:limit]
    return flagged


def low_stock_count(products: Iterable[Product]) -> int:
    return sum(1 for p in products if is_low_stock(p))
