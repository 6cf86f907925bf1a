from __future__ import annotations

from datetime import datetime
from typing import Optional

from storefront.config import Settings
from storefront.repositories.unit_of_work import UnitOfWork


class SaleNumberGenerator:
    """Human-facing sale numbers: ``{prefix}-{YYYYMMDD}-{counter:06d}``.

    The counter row is incremented inside the caller's write transaction, so
    concurrent sales are serialized by the database lock and never share a
    value. Numbers grow with creation order; a retry after a collision skips
    a value, so they are not guaranteed to be contiguous.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()

    def next(self, uow: UnitOfWork, created_at: Optional[datetime] = None) -> str:
        when = created_at or datetime.now()
        seq = uow.next_sale_sequence()
        return f"{self.settings.sale_number_prefix}-{when:%Y%m%d}-{seq:06d}"


def generate_sale_number(
    uow: UnitOfWork,
    created_at: Optional[datetime] = None,
    settings: Settings | None = None,
) -> str:
    return SaleNumberGenerator(settings).next(uow, created_at)
