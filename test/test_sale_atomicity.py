import sqlite3
from datetime import datetime
from pathlib import Path

import pytest
from conftest import add_product, count_rows

from storefront.application.container import build_container
from storefront.config import Settings
from storefront.domain.errors import InsufficientStockError, NumberingConflictError, PersistenceError
from storefront.repositories.sqlite_repo import SqliteRepository
from storefront.repositories.unit_of_work import SqliteUnitOfWork
from storefront.services.inventory_service import InventoryService
from storefront.services.numbering_service import generate_sale_number
from storefront.services.sales_service import SalesService

FIXED_NOW = datetime(2026, 1, 15, 10, 30, 0)


class FailingUnitOfWork(SqliteUnitOfWork):
    def __init__(self, connect, fail_on_item: int):
        super().__init__(connect)
        self.fail_on_item = fail_on_item
        self.items_written = 0

    def insert_sale_item(self, sale_id, item):
        self.items_written += 1
        if self.items_written == self.fail_on_item:
            raise sqlite3.OperationalError("disk I/O error")
        return super().insert_sale_item(sale_id, item)


class FailingRepo(SqliteRepository):
    fail_on_item = 2

    def unit_of_work(self):
        return FailingUnitOfWork(self._conn, self.fail_on_item)


def _insert_sale_row(repo, sale_number: str) -> None:
    conn = repo._conn()
    conn.execute(
        """
        INSERT INTO sales (sale_number, customer_name, subtotal, discount, total, payment_method, created_at)
        VALUES (?, 'Legacy', '1.00', '0.00', '1.00', 'efectivo', '2026-01-15 09:00:00')
        """,
        (sale_number,),
    )
    conn.commit()
    conn.close()


def test_sale_rolls_back_everything_when_persistence_fails(tmp_path: Path):
    repo = FailingRepo(tmp_path / "failing.db")
    repo.init_db()
    inventory = InventoryService(repo)
    sales = SalesService(repo)

    a = inventory.add_product("A1", "Faro", "Bosch", "H4", "10.00", stock=5)
    b = inventory.add_product("B1", "Filtro", "Mann", "W712", "4.00", stock=5)

    with pytest.raises(PersistenceError, match="disk I/O error"):
        sales.create_sale(
            "Ana",
            "efectivo",
            [{"product_id": a, "quantity": 2}, {"product_id": b, "quantity": 1}],
        )

    assert inventory.get_product(a).stock == 5
    assert inventory.get_product(b).stock == 5
    assert count_rows(repo, "sales") == 0
    assert count_rows(repo, "sale_items") == 0
    assert count_rows(repo, "inventory_movements") == 2
    assert inventory.reconcile() == []


def test_numbering_collision_retries_with_a_fresh_number(container, repo):
    pid = add_product(container, "X1", stock=5)
    _insert_sale_row(repo, "V-20260115-000001")
    sales = SalesService(repo, clock=lambda: FIXED_NOW)

    sale = sales.create_sale("Ana", "efectivo", [{"product_id": pid, "quantity": 1}])

    assert sale.sale_number == "V-20260115-000002"
    assert container.inventory.get_product(pid).stock == 4
    # the retry re-runs numbering only, never the stock consumption
    assert len(container.inventory.movement_history(product_id=pid)) == 2


def test_numbering_gives_up_after_bounded_attempts(container, repo):
    pid = add_product(container, "X1", stock=5)
    _insert_sale_row(repo, "V-20260115-000001")
    sales = SalesService(repo, settings=Settings(sale_number_attempts=1), clock=lambda: FIXED_NOW)

    with pytest.raises(NumberingConflictError):
        sales.create_sale("Ana", "efectivo", [{"product_id": pid, "quantity": 1}])

    assert container.inventory.get_product(pid).stock == 5
    assert count_rows(repo, "sales") == 1
    assert count_rows(repo, "sale_items") == 0


def test_sale_numbers_are_unique_and_follow_creation_order(container):
    pid = add_product(container, "X1", stock=10)
    sales = SalesService(container.repo, settings=Settings(sale_number_prefix="POS"), clock=lambda: FIXED_NOW)

    numbers = [sales.create_sale("Ana", "efectivo", [{"product_id": pid, "quantity": 1}]).sale_number for _ in range(3)]

    assert numbers == ["POS-20260115-000001", "POS-20260115-000002", "POS-20260115-000003"]
    assert numbers == sorted(numbers)


def test_failed_sale_does_not_consume_a_number(container):
    pid = add_product(container, "X1", stock=1)
    sales = SalesService(container.repo, clock=lambda: FIXED_NOW)

    with pytest.raises(InsufficientStockError):
        sales.create_sale("Ana", "efectivo", [{"product_id": pid, "quantity": 2}])
    sale = sales.create_sale("Ana", "efectivo", [{"product_id": pid, "quantity": 1}])

    assert sale.sale_number.endswith("-000001")


def test_generate_sale_number_entry_point(repo):
    with repo.unit_of_work() as uow:
        first = generate_sale_number(uow, FIXED_NOW)
        second = generate_sale_number(uow, FIXED_NOW, Settings(sale_number_prefix="T"))

    assert first == "V-20260115-000001"
    assert second == "T-20260115-000002"


def test_sale_fails_cleanly_when_write_lock_is_held(tmp_path: Path):
    container = build_container(tmp_path / "locked.db", Settings(lock_timeout_seconds=0.2))
    pid = add_product(container, "X1", stock=5)
    holder = sqlite3.connect(str(tmp_path / "locked.db"), isolation_level=None)
    holder.execute("BEGIN IMMEDIATE")
    try:
        with pytest.raises(PersistenceError, match="locked"):
            container.sales.create_sale("Ana", "efectivo", [{"product_id": pid, "quantity": 1}])
    finally:
        holder.execute("ROLLBACK")
        holder.close()

    assert container.inventory.get_product(pid).stock == 5
    assert count_rows(container.repo, "sales") == 0
    assert len(container.inventory.movement_history(product_id=pid)) == 1
