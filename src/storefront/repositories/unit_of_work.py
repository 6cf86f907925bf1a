from __future__ import annotations

import sqlite3
from decimal import Decimal
from typing import Callable, Optional, Protocol

from storefront.domain.errors import NumberingConflictError, PersistenceError, ValidationError
from storefront.domain.models import MovementType, Product
from storefront.repositories.rows import PRODUCT_COLUMNS, now_iso, product_from_row


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def get_product(self, product_id: int) -> Optional[Product]: ...
    def insert_product(self, fields: dict) -> int: ...
    def next_sale_sequence(self) -> int: ...
    def insert_sale(self, sale_number: str, header: dict, created_at: str) -> int: ...
    def insert_sale_item(self, sale_id: int, item: dict) -> int: ...
    def write_movement(
        self,
        product_id: int,
        movement_type: MovementType,
        quantity: int,
        reason: str,
        reference_id: Optional[int],
        notes: Optional[str],
        created_by: Optional[int],
    ) -> tuple[int, int, str]: ...


class SqliteUnitOfWork:
    """Transactional scope for write use-cases.

    ``BEGIN IMMEDIATE`` takes the database write lock before anything is read,
    so stock checks and the writes that depend on them cannot interleave with
    another writer. Leaving the block commits; any exception rolls back.
    sqlite errors are re-raised as PersistenceError, domain errors pass through.
    """

    def __init__(self, connect: Callable[[], sqlite3.Connection]):
        self._connect = connect
        self.conn: sqlite3.Connection | None = None

    def __enter__(self) -> "SqliteUnitOfWork":
        conn = self._connect()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            conn.close()
            raise PersistenceError(f"Could not open transaction: {exc}") from exc
        self.conn = conn
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        conn = self.conn
        self.conn = None
        if conn is None:
            return None
        try:
            if exc_type is None:
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error as commit_exc:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise PersistenceError(f"Commit failed: {commit_exc}") from commit_exc
                return None
            if conn.in_transaction:
                conn.execute("ROLLBACK")
        finally:
            conn.close()
        if isinstance(exc, sqlite3.Error):
            raise PersistenceError(str(exc)) from exc
        return None

    def _cur(self) -> sqlite3.Cursor:
        if self.conn is None:
            raise PersistenceError("Unit of work is not active.")
        return self.conn.cursor()

    # ---------- Products ----------
    def get_product(self, product_id: int) -> Optional[Product]:
        cur = self._cur()
        cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id=?", (int(product_id),))
        r = cur.fetchone()
        return product_from_row(r) if r else None

    def insert_product(self, fields: dict) -> int:
        """Insert a product with zero stock; initial stock is booked as a movement."""
        ts = now_iso()
        cur = self._cur()
        try:
            cur.execute(
                """
                INSERT INTO products (
                    code, image_url, type, brand, model, year_range, stock, min_stock,
                    unit_price, supplier_id, warehouse_location, description, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    fields["code"],
                    fields.get("image_url"),
                    fields["type"],
                    fields["brand"],
                    fields["model"],
                    fields.get("year_range"),
                    int(fields["min_stock"]),
                    str(fields["unit_price"]),
                    fields.get("supplier_id"),
                    fields.get("warehouse_location"),
                    fields.get("description"),
                    ts,
                    ts,
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Could not create product '{fields['code']}': {exc}") from exc
        return int(cur.lastrowid)

    # ---------- Sales ----------
    def next_sale_sequence(self) -> int:
        cur = self._cur()
        cur.execute("UPDATE sale_number_counter SET last_value = last_value + 1 WHERE id = 1")
        cur.execute("SELECT last_value FROM sale_number_counter WHERE id = 1")
        return int(cur.fetchone()[0])

    def insert_sale(self, sale_number: str, header: dict, created_at: str) -> int:
        cur = self._cur()
        cur.execute("SAVEPOINT sale_header")
        try:
            cur.execute(
                """
                INSERT INTO sales (
                    sale_number, customer_id, customer_name, subtotal, discount, total,
                    payment_method, notes, created_by, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    sale_number,
                    header.get("customer_id"),
                    header["customer_name"],
                    str(header["subtotal"]),
                    str(header["discount"]),
                    str(header["total"]),
                    header["payment_method"],
                    header.get("notes"),
                    header.get("created_by"),
                    created_at,
                ),
            )
        except sqlite3.IntegrityError as exc:
            cur.execute("ROLLBACK TO SAVEPOINT sale_header")
            cur.execute("RELEASE SAVEPOINT sale_header")
            if "sale_number" in str(exc):
                raise NumberingConflictError(f"Sale number already used: {sale_number}") from exc
            raise
        cur.execute("RELEASE SAVEPOINT sale_header")
        return int(cur.lastrowid)

    def insert_sale_item(self, sale_id: int, item: dict) -> int:
        cur = self._cur()
        cur.execute(
            """
            INSERT INTO sale_items (sale_id, product_id, product_code, product_name, quantity, unit_price, total)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(sale_id),
                item["product_id"],
                item["product_code"],
                item["product_name"],
                int(item["quantity"]),
                str(Decimal(item["unit_price"])),
                str(Decimal(item["total"])),
            ),
        )
        return int(cur.lastrowid)

    # ---------- Inventory ----------
    def write_movement(
        self,
        product_id: int,
        movement_type: MovementType,
        quantity: int,
        reason: str,
        reference_id: Optional[int],
        notes: Optional[str],
        created_by: Optional[int],
    ) -> tuple[int, int, str]:
        """Apply a stock delta and append its movement row.

        Returns (movement_id, stock_after, created_at). This is the only
        statement pair in the code base that changes products.stock.
        """
        ts = now_iso()
        cur = self._cur()
        cur.execute(
            "UPDATE products SET stock = stock + ?, updated_at = ? WHERE id = ?",
            (int(quantity), ts, int(product_id)),
        )
        if cur.rowcount != 1:
            raise PersistenceError(f"Product {product_id} vanished during stock update.")
        cur.execute(
            """
            INSERT INTO inventory_movements (
                product_id, movement_type, quantity, reason, reference_id, notes, created_by, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (int(product_id), MovementType(movement_type).value, int(quantity), reason, reference_id, notes, created_by, ts),
        )
        movement_id = int(cur.lastrowid)
        cur.execute("SELECT stock FROM products WHERE id=?", (int(product_id),))
        stock_after = int(cur.fetchone()[0])
        return movement_id, stock_after, ts
