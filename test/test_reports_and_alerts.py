from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import pytest
from conftest import add_product
from openpyxl import load_workbook

from storefront.domain.errors import AuthorizationError, ValidationError
from storefront.domain.models import Actor, PaymentMethod, Product, Role, Sale, SaleItem
from storefront.services.reporting_service import (
    inventory_summary,
    product_sales,
    sales_in_range,
    summarize_sales,
    top_products,
)
from storefront.services.stock_alerts import low_stock, low_stock_count


def _item(code: str, qty: int, price: str, name: str | None = None) -> SaleItem:
    unit = Decimal(price)
    return SaleItem(
        id=0,
        sale_id=0,
        product_id=None,
        product_code=code,
        product_name=name or f"Product {code}",
        quantity=qty,
        unit_price=unit,
        total=unit * qty,
    )


def _sale(number: str, items: list[SaleItem], discount: str = "0.00", when: datetime | None = None) -> Sale:
    subtotal = sum((i.total for i in items), Decimal("0.00"))
    return Sale(
        id=0,
        sale_number=number,
        customer_name="Ana",
        subtotal=subtotal,
        discount=Decimal(discount),
        total=subtotal - Decimal(discount),
        payment_method=PaymentMethod.CASH,
        created_at=when or datetime(2026, 3, 10, 12, 0, 0),
        items=tuple(items),
    )


def _product(code: str, stock: int, min_stock: int, price: str = "1.00") -> Product:
    return Product(
        id=0,
        code=code,
        type="Faro",
        brand="Bosch",
        model=code,
        stock=stock,
        min_stock=min_stock,
        unit_price=Decimal(price),
    )


def test_top_product_quantity_is_summed_across_sales():
    sales = [
        _sale("V-1", [_item("X1", 2, "10.00")]),
        _sale("V-2", [_item("X1", 3, "10.00"), _item("Y2", 1, "4.00")]),
    ]

    ranking = top_products(sales)

    assert ranking[0].code == "X1"
    assert ranking[0].quantity_sold == 5
    assert ranking[0].revenue == Decimal("50.00")
    assert [p.code for p in ranking] == ["X1", "Y2"]


def test_ranking_ties_are_broken_by_code():
    sales = [_sale("V-1", [_item("B2", 2, "1.00"), _item("A1", 2, "9.00"), _item("C3", 5, "1.00")])]

    assert [p.code for p in top_products(sales)] == ["C3", "A1", "B2"]
    assert [p.code for p in top_products(sales, limit=2)] == ["C3", "A1"]


def test_product_sales_keeps_first_seen_name():
    sales = [
        _sale("V-1", [_item("X1", 1, "1.00", name="Faro viejo")]),
        _sale("V-2", [_item("X1", 1, "1.00", name="Faro nuevo")]),
    ]

    assert product_sales(sales)[0].name == "Faro viejo"


def test_summary_totals_and_average():
    sales = [
        _sale("V-1", [_item("X1", 2, "10.00")], discount="5.00"),
        _sale("V-2", [_item("X1", 1, "10.00")]),
        _sale("V-3", [_item("Y2", 1, "0.01")]),
    ]

    summary = summarize_sales(sales)

    assert summary.count == 3
    assert summary.total_sales == Decimal("25.01")
    assert summary.total_discount == Decimal("5.00")
    assert summary.average_sale == Decimal("8.34")


def test_summary_of_no_sales_is_zero():
    summary = summarize_sales([])

    assert summary.count == 0
    assert summary.total_sales == Decimal("0.00")
    assert summary.average_sale == Decimal("0.00")
    assert top_products([]) == []


def test_aggregation_is_repeatable_over_the_same_snapshot():
    sales = [
        _sale("V-1", [_item("X1", 2, "10.00"), _item("Y2", 2, "3.30")], discount="1.10"),
        _sale("V-2", [_item("Y2", 2, "3.30")]),
    ]

    assert summarize_sales(sales) == summarize_sales(sales)
    assert top_products(sales) == top_products(sales)
    assert [str(p.revenue) for p in top_products(sales)] == ["13.20", "20.00"]


def test_range_filter_is_closed_on_both_ends():
    sales = [
        _sale("V-1", [_item("X1", 1, "1.00")], when=datetime(2026, 3, 1, 0, 0, 0)),
        _sale("V-2", [_item("X1", 1, "1.00")], when=datetime(2026, 3, 31, 23, 59, 59)),
        _sale("V-3", [_item("X1", 1, "1.00")], when=datetime(2026, 4, 1, 0, 0, 0)),
    ]

    picked = sales_in_range(sales, date(2026, 3, 1), date(2026, 3, 31))

    assert [s.sale_number for s in picked] == ["V-1", "V-2"]


def test_low_stock_orders_most_urgent_first_and_caps():
    products = [
        _product("A", stock=5, min_stock=5),
        _product("B", stock=0, min_stock=2),
        _product("C", stock=9, min_stock=2),
        _product("D", stock=1, min_stock=3),
        _product("E", stock=0, min_stock=1),
    ]

    assert [p.code for p in low_stock(products)] == ["B", "E", "D", "A"]
    assert [p.code for p in low_stock(products, limit=2)] == ["B", "E"]
    assert low_stock_count(products) == 4
    assert low_stock([]) == []


def test_inventory_summary():
    products = [_product("A", 2, 5, "10.00"), _product("B", 10, 1, "2.50")]

    summary = inventory_summary(products)

    assert summary.total_products == 2
    assert summary.total_stock == 12
    assert summary.inventory_value == Decimal("45.00")
    assert summary.low_stock_count == 1


def test_sales_report_reads_stored_sales(container):
    pid = add_product(container, "X1", stock=10)
    container.sales.create_sale("Ana", "efectivo", [{"product_id": pid, "quantity": 2}])
    container.sales.create_sale("Luis", "tarjeta", [{"product_id": pid, "quantity": 3}], discount="5")

    today = date.today()
    report = container.reporting.sales_report(today, today)

    assert report.summary.count == 2
    assert report.summary.total_sales == Decimal("45.00")
    assert report.summary.total_discount == Decimal("5.00")
    assert report.top_products[0].code == "X1"
    assert report.top_products[0].quantity_sold == 5

    with pytest.raises(ValidationError):
        container.reporting.sales_report(today, date(2000, 1, 1))


def test_dashboard(container):
    a = add_product(container, "A1", stock=3, min_stock=5)
    add_product(container, "B1", stock=20, min_stock=5)
    container.sales.create_sale("Ana", "efectivo", [{"product_id": a, "quantity": 1}])

    dash = container.reporting.dashboard()

    assert dash.inventory.total_products == 2
    assert dash.inventory.total_stock == 22
    assert [p.code for p in dash.low_stock] == ["A1"]
    assert len(dash.recent_sales) == 1
    assert dash.month_sales_total == Decimal("10.00")
    assert dash.top_products[0].code == "A1"


def test_excel_export_writes_all_sheets(container, repo, tmp_path: Path):
    pid = add_product(container, "X1", stock=10)
    container.sales.create_sale("Ana", "efectivo", [{"product_id": pid, "quantity": 2}])
    path = tmp_path / "report.xlsx"
    today = date.today()

    container.reporting.export_sales_report_excel(str(path), today, today)

    wb = load_workbook(path)
    assert wb.sheetnames == ["Summary", "Sales Detail", "Top Products", "Inventory"]
    assert wb["Summary"]["B5"].value == 1
    assert wb["Sales Detail"]["E2"].value == "X1"
    assert wb["Top Products"]["D2"].value == 2
    assert wb["Inventory"]["E2"].value == 8

    employee = Actor(id=repo.add_profile("caja@example.com"), role=Role.EMPLOYEE)
    with pytest.raises(AuthorizationError):
        container.reporting.export_sales_report_excel(str(path), today, today, actor=employee)


def test_average_sale_rounds_half_up_like_other_amounts():
    sales = [_sale("V-1", [_item("X1", 1, "0.01")]), _sale("V-2", [_item("X1", 1, "0.04")])]

    assert summarize_sales(sales).average_sale == Decimal("0.03")
