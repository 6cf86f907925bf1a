from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from storefront.config import Settings
from storefront.domain.errors import ValidationError
from storefront.domain.models import (
    Actor,
    InventorySummary,
    Product,
    ProductSales,
    Sale,
    SalesSummary,
    to_money,
)
from storefront.repositories.rows import day_range_iso
from storefront.services.permissions import require_action
from storefront.services.stock_alerts import low_stock, low_stock_count

ZERO = Decimal("0.00")


# ---------- Pure aggregation over snapshots ----------
def sales_in_range(sales: Iterable[Sale], date_from: date, date_to: date) -> list[Sale]:
    return [s for s in sales if date_from <= s.created_at.date() <= date_to]


def summarize_sales(sales: Iterable[Sale]) -> SalesSummary:
    sales = list(sales)
    count = len(sales)
    total_sales = sum((s.total for s in sales), ZERO)
    total_discount = sum((s.discount for s in sales), ZERO)
    average = to_money(total_sales / count) if count else ZERO
    return SalesSummary(
        count=count,
        total_sales=total_sales,
        total_discount=total_discount,
        average_sale=average,
    )


def product_sales(sales: Iterable[Sale]) -> list[ProductSales]:
    """Units and revenue per product code, ordered by code.

    The name shown is the one on the first line seen for that code.
    """
    names: dict[str, str] = {}
    quantities: dict[str, int] = {}
    revenue: dict[str, Decimal] = {}
    for sale in sales:
        for item in sale.items:
            code = item.product_code
            names.setdefault(code, item.product_name)
            quantities[code] = quantities.get(code, 0) + item.quantity
            revenue[code] = revenue.get(code, ZERO) + item.total
    return [
        ProductSales(code=code, name=names[code], quantity_sold=quantities[code], revenue=revenue[code])
        for code in sorted(names)
    ]


def top_products(sales: Iterable[Sale], limit: Optional[int] = 10) -> list[ProductSales]:
    ranked = sorted(product_sales(sales), key=lambda p: (-p.quantity_sold, p.code))
    return ranked if limit is None else ranked[:limit]


def inventory_summary(products: Iterable[Product]) -> InventorySummary:
    products = list(products)
    return InventorySummary(
        total_products=len(products),
        total_stock=sum(p.stock for p in products),
        inventory_value=sum((p.unit_price * p.stock for p in products), ZERO),
        low_stock_count=low_stock_count(products),
    )


@dataclass(frozen=True)
class SalesReport:
    date_from: date
    date_to: date
    summary: SalesSummary
    top_products: list[ProductSales]
    sales: list[Sale]


@dataclass(frozen=True)
class Dashboard:
    inventory: InventorySummary
    low_stock: list[Product]
    recent_sales: list[Sale]
    month_sales_total: Decimal
    top_products: list[ProductSales]


class ReportingService:
    def __init__(self, repo, settings: Settings | None = None):
        self.repo = repo
        self.settings = settings or Settings()

    def _load_sales(self, date_from: date, date_to: date) -> list[Sale]:
        if date_to < date_from:
            raise ValidationError("date_to must not be before date_from.")
        start_iso, end_iso = day_range_iso(date_from, date_to)
        return self.repo.list_sales_between(start_iso, end_iso)

    def sales_report(self, date_from: date, date_to: date, top: int = 10) -> SalesReport:
        sales = self._load_sales(date_from, date_to)
        return SalesReport(
            date_from=date_from,
            date_to=date_to,
            summary=summarize_sales(sales),
            top_products=top_products(sales, top),
            sales=sales,
        )

    def dashboard(self, today: Optional[date] = None) -> Dashboard:
        today = today or date.today()
        limit = self.settings.low_stock_dashboard_limit
        products = self.repo.list_products()
        recent = self.repo.recent_sales(limit)
        month_sales = self._load_sales(today.replace(day=1), today)
        return Dashboard(
            inventory=inventory_summary(products),
            low_stock=low_stock(products, limit),
            recent_sales=recent,
            month_sales_total=summarize_sales(month_sales).total_sales,
            top_products=top_products(recent, limit),
        )

    def export_sales_report_excel(
        self, path: str, date_from: date, date_to: date, actor: Optional[Actor] = None
    ) -> None:
        require_action(actor, "export_report")
        report = self.sales_report(date_from, date_to, top=None)
        products = self.repo.list_products()
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, end_row: int, end_col: int):
            if end_row <= start_row:
                return
            ref = f"A{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Sales summary"
        ws["A1"].font = Font(bold=True, size=14)
        ws["A3"] = "Window"
        ws["B3"] = f"{date_from.isoformat()}  ->  {date_to.isoformat()}"

        summary = report.summary
        rows = [
            ("Sales count", summary.count, False),
            ("Total sales", float(summary.total_sales), True),
            ("Total discount", float(summary.total_discount), True),
            ("Average sale", float(summary.average_sale), True),
        ]
        for i, (label, val, is_money) in enumerate(rows):
            r = 5 + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if is_money:
                money(ws[f"B{r}"])
        set_widths(ws, {"A": 22, "B": 30})

        # -------- 2) Sales Detail --------
        ws2 = wb.create_sheet("Sales Detail")
        ws2.append([
            "Sale Number", "Datetime", "Customer", "Payment Method",
            "Code", "Product", "Qty", "Unit Price", "Line Total",
            "Subtotal", "Discount", "Total",
        ])
        bold_row(ws2, 1)
        for sale in report.sales:
            for item in sale.items:
                ws2.append([
                    sale.sale_number, sale.created_at.isoformat(sep=" "), sale.customer_name,
                    sale.payment_method.value,
                    item.product_code, item.product_name, item.quantity,
                    float(item.unit_price), float(item.total),
                    float(sale.subtotal), float(sale.discount), float(sale.total),
                ])
                for col in "HIJKL":
                    money(ws2[f"{col}{ws2.max_row}"])
        ws2.freeze_panes = "A2"
        set_widths(ws2, {
            "A": 20, "B": 20, "C": 24, "D": 16,
            "E": 14, "F": 30, "G": 6, "H": 12,
            "I": 12, "J": 12, "K": 12, "L": 12,
        })
        add_table(ws2, "SalesDetail", 1, ws2.max_row, 12)

        # -------- 3) Top Products --------
        ws3 = wb.create_sheet("Top Products")
        ws3.append(["Rank", "Code", "Product", "Quantity Sold", "Revenue"])
        bold_row(ws3, 1)
        for rank, p in enumerate(report.top_products, start=1):
            ws3.append([rank, p.code, p.name, p.quantity_sold, float(p.revenue)])
            money(ws3[f"E{ws3.max_row}"])
        set_widths(ws3, {"A": 6, "B": 14, "C": 30, "D": 14, "E": 14})
        add_table(ws3, "TopProducts", 1, ws3.max_row, 5)

        # -------- 4) Inventory --------
        ws4 = wb.create_sheet("Inventory")
        ws4.append(["Code", "Type", "Brand", "Model", "Stock", "Min Stock", "Unit Price", "Value", "Low Stock"])
        bold_row(ws4, 1)
        for p in products:
            ws4.append([
                p.code, p.type, p.brand, p.model, p.stock, p.min_stock,
                float(p.unit_price), float(p.unit_price * p.stock),
                "yes" if p.stock <= p.min_stock else "",
            ])
            money(ws4[f"G{ws4.max_row}"])
            money(ws4[f"H{ws4.max_row}"])
        ws4.freeze_panes = "A2"
        set_widths(ws4, {"A": 14, "B": 14, "C": 16, "D": 20, "E": 8, "F": 10, "G": 12, "H": 14, "I": 10})
        add_table(ws4, "InventoryTable", 1, ws4.max_row, 9)

        wb.save(path)
