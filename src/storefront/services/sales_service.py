from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional

from storefront.config import Settings
from storefront.domain.errors import (
    InsufficientStockError,
    NotFoundError,
    NumberingConflictError,
    ValidationError,
)
from storefront.domain.models import (
    Actor,
    MovementType,
    PaymentMethod,
    Product,
    Sale,
    SaleItem,
    SaleItemRequest,
    to_money,
    to_quantity,
)
from storefront.repositories.rows import day_range_iso
from storefront.repositories.unit_of_work import UnitOfWork
from storefront.services.inventory_service import InventoryLedger
from storefront.services.numbering_service import SaleNumberGenerator
from storefront.services.permissions import require_action

log = logging.getLogger("storefront.sales")


def _to_request(item: SaleItemRequest | Mapping) -> SaleItemRequest:
    if isinstance(item, SaleItemRequest):
        product_id, quantity = item.product_id, item.quantity
    else:
        try:
            product_id, quantity = item["product_id"], item["quantity"]
        except (KeyError, TypeError) as exc:
            raise ValidationError("Each item needs product_id and quantity.") from exc
    qty = to_quantity(quantity)
    if qty <= 0:
        raise ValidationError("Quantity must be >= 1.")
    try:
        return SaleItemRequest(product_id=int(product_id), quantity=qty)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid product id: {product_id!r}") from exc


class SalesService:
    def __init__(
        self,
        repo,
        ledger: InventoryLedger | None = None,
        numbering: SaleNumberGenerator | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repo = repo
        self.settings = settings or Settings()
        self.ledger = ledger or InventoryLedger()
        self.numbering = numbering or SaleNumberGenerator(self.settings)
        self.clock = clock

    def create_sale(
        self,
        customer_name: str,
        payment_method: PaymentMethod | str,
        items: Iterable[SaleItemRequest | Mapping],
        discount=Decimal("0"),
        notes: Optional[str] = None,
        actor: Optional[Actor] = None,
        customer_id: Optional[int] = None,
    ) -> Sale:
        """Record a sale and consume its stock as one transaction.

        Prices come from the product rows read under the write lock; nothing
        the caller holds (prices, stock counts, totals) is trusted. Either the
        sale, its items, the exit movements and the stock decrements are all
        committed, or none of them is.
        """
        require_action(actor, "create_sale")

        customer = (customer_name or "").strip()
        if not customer:
            raise ValidationError("Customer name is required.")
        try:
            method = PaymentMethod(payment_method)
        except ValueError as exc:
            raise ValidationError(f"Unknown payment method: {payment_method!r}") from exc

        requests = [_to_request(it) for it in items]
        if not requests:
            raise ValidationError("Cart is empty.")

        discount = to_money(discount)
        if discount < 0:
            raise ValidationError("Discount must be >= 0.")

        header = {
            "customer_id": customer_id,
            "customer_name": customer,
            "payment_method": method.value,
            "notes": (notes or "").strip() or None,
            "created_by": actor.id if actor else None,
        }

        try:
            with self.repo.unit_of_work() as uow:
                sale = self._create_sale_locked(uow, header, requests, discount, actor)
        except (ValidationError, NotFoundError, InsufficientStockError, NumberingConflictError) as exc:
            log.warning("sale_rejected customer=%s error=%s detail=%s", customer, type(exc).__name__, exc)
            raise

        log.info(
            "sale_created sale_number=%s sale_id=%s items=%s total=%s actor=%s",
            sale.sale_number,
            sale.id,
            len(sale.items),
            sale.total,
            sale.created_by,
            extra={"sale_number": sale.sale_number, "sale_total": str(sale.total)},
        )
        return sale

    def _create_sale_locked(
        self,
        uow: UnitOfWork,
        header: dict,
        requests: list[SaleItemRequest],
        discount: Decimal,
        actor: Optional[Actor],
    ) -> Sale:
        # one line per product; repeated entries are merged before the stock check
        qty_by_product: dict[int, int] = {}
        for req in requests:
            qty_by_product[req.product_id] = qty_by_product.get(req.product_id, 0) + req.quantity

        lines: list[tuple[Product, int, Decimal]] = []
        for product_id, qty in qty_by_product.items():
            product = uow.get_product(product_id)
            if product is None:
                raise NotFoundError(f"Product not found: {product_id}")
            if qty > product.stock:
                raise InsufficientStockError(product.code, qty, product.stock)
            lines.append((product, qty, to_money(product.unit_price * qty)))

        subtotal = sum((line_total for _, _, line_total in lines), Decimal("0.00"))
        if discount > subtotal:
            raise ValidationError(f"Discount {discount} exceeds subtotal {subtotal}.")
        total = subtotal - discount

        created_at = self.clock().replace(microsecond=0)
        header = dict(header, subtotal=subtotal, discount=discount, total=total)
        sale_number, sale_id = self._insert_header(uow, header, created_at)

        items: list[SaleItem] = []
        for product, qty, line_total in lines:
            self.ledger.apply(
                uow,
                product.id,
                MovementType.EXIT,
                -qty,
                f"Sale {sale_number}",
                reference_id=sale_id,
                actor=actor,
            )
            row = {
                "product_id": product.id,
                "product_code": product.code,
                "product_name": product.display_name,
                "quantity": qty,
                "unit_price": product.unit_price,
                "total": line_total,
            }
            item_id = uow.insert_sale_item(sale_id, row)
            items.append(SaleItem(id=item_id, sale_id=sale_id, **row))

        return Sale(
            id=sale_id,
            sale_number=sale_number,
            customer_name=header["customer_name"],
            subtotal=subtotal,
            discount=discount,
            total=total,
            payment_method=PaymentMethod(header["payment_method"]),
            created_at=created_at,
            notes=header["notes"],
            customer_id=header["customer_id"],
            created_by=header["created_by"],
            items=tuple(items),
        )

    def _insert_header(self, uow: UnitOfWork, header: dict, created_at: datetime) -> tuple[str, int]:
        """Assign a sale number and insert the header; only this step is retried."""
        attempts = self.settings.sale_number_attempts
        created_iso = created_at.isoformat(sep=" ")
        last_exc: NumberingConflictError | None = None
        for attempt in range(1, attempts + 1):
            sale_number = self.numbering.next(uow, created_at)
            try:
                return sale_number, uow.insert_sale(sale_number, header, created_iso)
            except NumberingConflictError as exc:
                last_exc = exc
                log.warning("sale_number_conflict sale_number=%s attempt=%s/%s", sale_number, attempt, attempts)
        raise NumberingConflictError(
            f"Could not assign a unique sale number after {attempts} attempts."
        ) from last_exc

    def get_sale(self, sale_id: int) -> Sale:
        sale = self.repo.get_sale(int(sale_id))
        if not sale:
            raise NotFoundError("Sale not found.")
        return sale

    def get_sale_by_number(self, sale_number: str) -> Sale:
        sale = self.repo.get_sale_by_number((sale_number or "").strip())
        if not sale:
            raise NotFoundError("Sale not found.")
        return sale

    def list_sales_between(self, date_from: date, date_to: date) -> list[Sale]:
        """Sales created on any day of the closed range [date_from, date_to]."""
        if date_to < date_from:
            raise ValidationError("date_to must not be before date_from.")
        start_iso, end_iso = day_range_iso(date_from, date_to)
        return self.repo.list_sales_between(start_iso, end_iso)

    def recent_sales(self, limit: int = 5) -> list[Sale]:
        return self.repo.recent_sales(limit)
