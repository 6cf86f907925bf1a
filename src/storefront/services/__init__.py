from .inventory_service import InventoryLedger, InventoryService
from .numbering_service import SaleNumberGenerator, generate_sale_number
from .reporting_service import ReportingService
from .sales_service import SalesService

__all__ = [
    "InventoryLedger",
    "InventoryService",
    "SaleNumberGenerator",
    "generate_sale_number",
    "ReportingService",
    "SalesService",
]
