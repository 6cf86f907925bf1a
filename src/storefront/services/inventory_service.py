from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from storefront.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from storefront.domain.models import Actor, InventoryMovement, MovementType, Product, to_money, to_quantity
from storefront.repositories.rows import day_range_iso
from storefront.repositories.unit_of_work import UnitOfWork
from storefront.services.permissions import require_action
from storefront.services.stock_alerts import low_stock

log = logging.getLogger("storefront.inventory")


class InventoryLedger:
    """Append-only movement log and the only path that changes product stock.

    ``apply`` runs inside the caller's unit of work: the stock update and the
    movement row commit or roll back together with whatever else the caller
    wrote. Movements are never edited; a correction is a new movement.
    """

    def apply(
        self,
        uow: UnitOfWork,
        product_id: int,
        movement_type: MovementType | str,
        quantity: int,
        reason: str,
        reference_id: Optional[int] = None,
        actor: Optional[Actor] = None,
        notes: Optional[str] = None,
    ) -> InventoryMovement:
        try:
            movement_type = MovementType(movement_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown movement type: {movement_type!r}") from exc

        qty = to_quantity(quantity)
        if movement_type is MovementType.ENTRY and qty <= 0:
            raise ValidationError("Entry quantity must be > 0.")
        if movement_type is MovementType.EXIT and qty >= 0:
            raise ValidationError("Exit quantity must be < 0.")
        if qty == 0:
            raise ValidationError("Adjustment quantity must not be 0.")

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Movement reason is required.")

        product = uow.get_product(int(product_id))
        if product is None:
            raise NotFoundError(f"Product not found: {product_id}")
        if product.stock + qty < 0:
            raise InsufficientStockError(product.code, -qty, product.stock)

        created_by = actor.id if actor else None
        movement_id, stock_after, created_at = uow.write_movement(
            product.id, movement_type, qty, reason, reference_id, notes, created_by
        )
        log.info(
            "movement_recorded product=%s type=%s qty=%s stock_after=%s ref=%s actor=%s",
            product.code,
            movement_type.value,
            qty,
            stock_after,
            reference_id,
            created_by,
        )
        return InventoryMovement(
            id=movement_id,
            product_id=product.id,
            movement_type=movement_type,
            quantity=qty,
            reason=reason,
            created_at=datetime.fromisoformat(created_at),
            reference_id=reference_id,
            notes=notes,
            created_by=created_by,
        )


class InventoryService:
    def __init__(self, repo, ledger: InventoryLedger | None = None):
        self.repo = repo
        self.ledger = ledger or InventoryLedger()

    def list_products(self) -> list[Product]:
        return self.repo.list_products()

    def get_product(self, product_id: int) -> Product:
        p = self.repo.get_product_by_id(int(product_id))
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def get_product_by_code(self, code: str) -> Product:
        p = self.repo.get_product_by_code((code or "").strip())
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def add_product(
        self,
        code: str,
        type: str,
        brand: str,
        model: str,
        unit_price,
        stock: int = 0,
        min_stock: int = 0,
        year_range: Optional[str] = None,
        supplier_id: Optional[int] = None,
        warehouse_location: Optional[str] = None,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> int:
        require_action(actor, "create_product")

        code = (code or "").strip()
        type = (type or "").strip()
        brand = (brand or "").strip()
        model = (model or "").strip()
        if not code or not type or not brand or not model:
            raise ValidationError("Code, type, brand and model are required.")

        stock = to_quantity(stock)
        min_stock = to_quantity(min_stock)
        if stock < 0 or min_stock < 0:
            raise ValidationError("Stock values must be >= 0.")
        price = to_money(unit_price)
        if price < 0:
            raise ValidationError("Unit price must be >= 0.")

        fields = {
            "code": code,
            "type": type,
            "brand": brand,
            "model": model,
            "year_range": year_range,
            "min_stock": min_stock,
            "unit_price": price,
            "supplier_id": supplier_id,
            "warehouse_location": warehouse_location,
            "description": description,
            "image_url": image_url,
        }
        with self.repo.unit_of_work() as uow:
            product_id = uow.insert_product(fields)
            if stock > 0:
                self.ledger.apply(uow, product_id, MovementType.ENTRY, stock, "Initial stock", actor=actor)
        log.info("product_created code=%s stock=%s actor=%s", code, stock, actor.id if actor else None)
        return product_id

    def update_product_details(self, product_id: int, **fields) -> None:
        if "stock" in fields:
            raise ValidationError("Stock can only change through inventory movements.")
        if "min_stock" in fields:
            fields["min_stock"] = to_quantity(fields["min_stock"])
            if fields["min_stock"] < 0:
                raise ValidationError("Min stock must be >= 0.")
        if "unit_price" in fields:
            fields["unit_price"] = to_money(fields["unit_price"])
            if fields["unit_price"] < 0:
                raise ValidationError("Unit price must be >= 0.")

        updated = self.repo.update_product_details(int(product_id), fields)
        if not updated:
            raise NotFoundError("Product not found.")

    def delete_product(self, product_id: int, actor: Optional[Actor] = None) -> None:
        require_action(actor, "delete_product")
        product = self.get_product(product_id)
        if not self.repo.delete_product(product.id):
            raise NotFoundError("Product not found.")
        log.info(
            "product_deleted code=%s stock=%s actor=%s", product.code, product.stock, actor.id if actor else None
        )

    def record_entry(
        self,
        product_id: int,
        quantity: int,
        reason: str = "Restock",
        actor: Optional[Actor] = None,
        notes: Optional[str] = None,
    ) -> InventoryMovement:
        require_action(actor, "record_entry")
        with self.repo.unit_of_work() as uow:
            return self.ledger.apply(uow, product_id, MovementType.ENTRY, quantity, reason, actor=actor, notes=notes)

    def adjust_stock(
        self,
        product_id: int,
        quantity: int,
        reason: str,
        actor: Optional[Actor] = None,
        notes: Optional[str] = None,
    ) -> InventoryMovement:
        require_action(actor, "adjust_stock")
        with self.repo.unit_of_work() as uow:
            return self.ledger.apply(
                uow, product_id, MovementType.ADJUSTMENT, quantity, reason, actor=actor, notes=notes
            )

    def set_stock_level(
        self,
        product_id: int,
        target: int,
        reason: str,
        actor: Optional[Actor] = None,
        notes: Optional[str] = None,
    ) -> Optional[InventoryMovement]:
        """Book the difference to ``target`` as an adjustment; None when already there."""
        require_action(actor, "adjust_stock")
        target = to_quantity(target)
        if target < 0:
            raise ValidationError("Stock values must be >= 0.")
        with self.repo.unit_of_work() as uow:
            product = uow.get_product(int(product_id))
            if product is None:
                raise NotFoundError("Product not found.")
            delta = target - product.stock
            if delta == 0:
                return None
            return self.ledger.apply(
                uow, product.id, MovementType.ADJUSTMENT, delta, reason, actor=actor, notes=notes
            )

    def movement_history(
        self,
        product_id: Optional[int] = None,
        day: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[InventoryMovement]:
        start_iso = end_iso = None
        if day is not None:
            start_iso, end_iso = day_range_iso(day, day)
        return self.repo.list_movements(product_id=product_id, start_iso=start_iso, end_iso=end_iso, limit=limit)

    def reconcile(self) -> list[tuple[str, int, int]]:
        """(code, stock, ledger_sum) for every product whose stock drifted from its movements."""
        mismatches = self.repo.ledger_mismatches()
        for code, stock, ledger_sum in mismatches:
            log.error("stock_ledger_mismatch product=%s stock=%s ledger=%s", code, stock, ledger_sum)
        return mismatches

    def low_stock(self, limit: Optional[int] = None) -> list[Product]:
        return low_stock(self.repo.list_products(), limit)
