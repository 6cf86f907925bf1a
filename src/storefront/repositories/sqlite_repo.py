from __future__ import annotations

import sqlite3
from decimal import Decimal
from pathlib import Path
from typing import Optional

from storefront.domain.errors import PersistenceError, ValidationError
from storefront.domain.models import Actor, InventoryMovement, Product, Role, Sale, SaleItem, Supplier
from storefront.repositories.rows import (
    MOVEMENT_COLUMNS,
    PRODUCT_COLUMNS,
    SALE_COLUMNS,
    item_from_row,
    movement_from_row,
    now_iso,
    product_from_row,
    sale_from_row,
)
from storefront.repositories.unit_of_work import SqliteUnitOfWork

# fields a product form may edit; stock only moves through the ledger
EDITABLE_PRODUCT_FIELDS = (
    "type",
    "brand",
    "model",
    "year_range",
    "min_stock",
    "unit_price",
    "supplier_id",
    "warehouse_location",
    "description",
    "image_url",
)


class SqliteRepository:
    def __init__(self, db_path: Path | str, lock_timeout_seconds: float = 10.0):
        self.db_path = str(db_path)
        self.lock_timeout_seconds = float(lock_timeout_seconds)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.lock_timeout_seconds)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def unit_of_work(self) -> SqliteUnitOfWork:
        return SqliteUnitOfWork(self._conn)

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_sale_numbering),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(f"Database migration failed: {exc}") from exc
        finally:
            conn.close()

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS profiles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL UNIQUE,
                full_name TEXT,
                role TEXT NOT NULL DEFAULT 'employee' CHECK(role IN ('admin','manager','employee')),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS suppliers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                contact_person TEXT,
                phone TEXT,
                email TEXT,
                address TEXT,
                notes TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT NOT NULL UNIQUE,
                image_url TEXT,
                type TEXT NOT NULL,
                brand TEXT NOT NULL,
                model TEXT NOT NULL,
                year_range TEXT,
                stock INTEGER NOT NULL DEFAULT 0 CHECK(stock >= 0),
                min_stock INTEGER NOT NULL DEFAULT 0 CHECK(min_stock >= 0),
                unit_price TEXT NOT NULL CHECK(CAST(unit_price AS REAL) >= 0),
                supplier_id INTEGER REFERENCES suppliers(id) ON DELETE SET NULL,
                warehouse_location TEXT,
                description TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        # created_by holds the actor id only; actors need not have a profiles row
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sales (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sale_number TEXT NOT NULL UNIQUE,
                customer_id INTEGER,
                customer_name TEXT NOT NULL,
                subtotal TEXT NOT NULL CHECK(CAST(subtotal AS REAL) >= 0),
                discount TEXT NOT NULL CHECK(CAST(discount AS REAL) >= 0),
                total TEXT NOT NULL CHECK(CAST(total AS REAL) >= 0),
                payment_method TEXT NOT NULL,
                notes TEXT,
                created_by INTEGER,
                created_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sale_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sale_id INTEGER NOT NULL REFERENCES sales(id),
                product_id INTEGER REFERENCES products(id) ON DELETE SET NULL,
                product_code TEXT NOT NULL,
                product_name TEXT NOT NULL,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                unit_price TEXT NOT NULL CHECK(CAST(unit_price AS REAL) >= 0),
                total TEXT NOT NULL
            )
            """
        )

        # product_id is a weak reference: movements outlive deleted products
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS inventory_movements (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                movement_type TEXT NOT NULL CHECK(movement_type IN ('entry','exit','adjustment')),
                quantity INTEGER NOT NULL CHECK(quantity <> 0),
                reason TEXT NOT NULL,
                reference_id INTEGER,
                notes TEXT,
                created_by INTEGER,
                created_at TEXT NOT NULL
            )
            """
        )

    def _migration_v2_sale_numbering(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS sale_number_counter (
                id INTEGER PRIMARY KEY CHECK(id = 1),
                last_value INTEGER NOT NULL
            )
            """
        )
        cur.execute("INSERT OR IGNORE INTO sale_number_counter (id, last_value) VALUES (1, 0)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_created_at ON sales(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sale_items_sale ON sale_items(sale_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_movements_product ON inventory_movements(product_id)")

    # ---------- Profiles ----------
    def add_profile(self, email: str, full_name: Optional[str] = None, role: Role | str = Role.EMPLOYEE) -> int:
        ts = now_iso()
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO profiles (email, full_name, role, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (email, full_name, Role(role).value, ts, ts),
            )
            pid = int(cur.lastrowid)
            conn.commit()
            return pid
        finally:
            conn.close()

    def get_actor(self, profile_id: int) -> Optional[Actor]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, role, email, full_name FROM profiles WHERE id=?", (int(profile_id),))
        r = cur.fetchone()
        conn.close()
        if not r:
            return None
        return Actor(id=int(r[0]), role=Role(r[1]), email=str(r[2]), full_name=r[3])

    # ---------- Suppliers ----------
    def add_supplier(
        self,
        name: str,
        contact_person: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        address: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        ts = now_iso()
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO suppliers (name, contact_person, phone, email, address, notes, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (name, contact_person, phone, email, address, notes, ts, ts),
            )
            sid = int(cur.lastrowid)
            conn.commit()
            return sid
        finally:
            conn.close()

    def list_suppliers(self) -> list[Supplier]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT id, name, contact_person, phone, email, address, notes
            FROM suppliers
            ORDER BY name
            """
        )
        rows = cur.fetchall()
        conn.close()
        return [Supplier(*r) for r in rows]

    def delete_supplier(self, supplier_id: int) -> bool:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM suppliers WHERE id=?", (int(supplier_id),))
            changed = cur.rowcount > 0
            conn.commit()
            return bool(changed)
        finally:
            conn.close()

    # ---------- Products ----------
    def list_products(self) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products ORDER BY code")
        rows = cur.fetchall()
        conn.close()
        return [product_from_row(r) for r in rows]

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE id=?", (int(product_id),))
        r = cur.fetchone()
        conn.close()
        return product_from_row(r) if r else None

    def get_product_by_code(self, code: str) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {PRODUCT_COLUMNS} FROM products WHERE code=?", (code,))
        r = cur.fetchone()
        conn.close()
        return product_from_row(r) if r else None

    def update_product_details(self, product_id: int, fields: dict) -> bool:
        unknown = set(fields) - set(EDITABLE_PRODUCT_FIELDS)
        if unknown:
            raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
        if not fields:
            return self.get_product_by_id(product_id) is not None

        assignments = ", ".join(f"{name}=?" for name in fields)
        params = [str(v) if isinstance(v, Decimal) else v for v in fields.values()]
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"UPDATE products SET {assignments}, updated_at=? WHERE id=?",
                (*params, now_iso(), int(product_id)),
            )
            changed = cur.rowcount > 0
            conn.commit()
            return bool(changed)
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            raise ValidationError(f"Invalid product data: {exc}") from exc
        finally:
            conn.close()

    def delete_product(self, product_id: int) -> bool:
        """Remove a catalog row; sale items keep their snapshot with product_id NULL."""
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("DELETE FROM products WHERE id=?", (int(product_id),))
            changed = cur.rowcount > 0
            conn.commit()
            return bool(changed)
        finally:
            conn.close()

    # ---------- Sales ----------
    def _items_by_sale(self, cur: sqlite3.Cursor, sale_ids: list[int]) -> dict[int, list[SaleItem]]:
        out: dict[int, list[SaleItem]] = {sid: [] for sid in sale_ids}
        if not sale_ids:
            return out
        marks = ",".join("?" for _ in sale_ids)
        cur.execute(
            f"""
            SELECT id, sale_id, product_id, product_code, product_name, quantity, unit_price, total
            FROM sale_items
            WHERE sale_id IN ({marks})
            ORDER BY id
            """,
            sale_ids,
        )
        for r in cur.fetchall():
            item = item_from_row(r)
            out[item.sale_id].append(item)
        return out

    def _fetch_sales(self, where: str, params: tuple, tail: str = "") -> list[Sale]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(f"SELECT {SALE_COLUMNS} FROM sales {where} {tail}", params)
            rows = cur.fetchall()
            items = self._items_by_sale(cur, [int(r[0]) for r in rows])
        finally:
            conn.close()
        return [sale_from_row(r, items[int(r[0])]) for r in rows]

    def get_sale(self, sale_id: int) -> Optional[Sale]:
        sales = self._fetch_sales("WHERE id=?", (int(sale_id),))
        return sales[0] if sales else None

    def get_sale_by_number(self, sale_number: str) -> Optional[Sale]:
        sales = self._fetch_sales("WHERE sale_number=?", (sale_number,))
        return sales[0] if sales else None

    def list_sales_between(self, start_iso: str, end_iso: str) -> list[Sale]:
        return self._fetch_sales(
            "WHERE created_at >= ? AND created_at < ?",
            (start_iso, end_iso),
            "ORDER BY created_at DESC, id DESC",
        )

    def recent_sales(self, limit: int = 5) -> list[Sale]:
        return self._fetch_sales("", (int(limit),), "ORDER BY created_at DESC, id DESC LIMIT ?")

    # ---------- Inventory movements ----------
    def list_movements(
        self,
        product_id: Optional[int] = None,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[InventoryMovement]:
        clauses = []
        params: list = []
        if product_id is not None:
            clauses.append("product_id = ?")
            params.append(int(product_id))
        if start_iso is not None:
            clauses.append("created_at >= ?")
            params.append(start_iso)
        if end_iso is not None:
            clauses.append("created_at < ?")
            params.append(end_iso)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        tail = ""
        if limit is not None:
            tail = "LIMIT ?"
            params.append(int(limit))

        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"SELECT {MOVEMENT_COLUMNS} FROM inventory_movements {where} ORDER BY created_at DESC, id DESC {tail}",
            params,
        )
        rows = cur.fetchall()
        conn.close()
        return [movement_from_row(r) for r in rows]

    def ledger_mismatches(self) -> list[tuple[str, int, int]]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT p.code, p.stock, COALESCE(SUM(m.quantity), 0) AS ledger
            FROM products p
            LEFT JOIN inventory_movements m ON m.product_id = p.id
            GROUP BY p.id
            HAVING p.stock <> ledger
            ORDER BY p.code
            """
        )
        rows = cur.fetchall()
        conn.close()
        return [(str(r[0]), int(r[1]), int(r[2])) for r in rows]
