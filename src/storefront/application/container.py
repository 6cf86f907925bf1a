from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from storefront.config import Settings, load_settings
from storefront.repositories.sqlite_repo import SqliteRepository
from storefront.services.inventory_service import InventoryLedger, InventoryService
from storefront.services.numbering_service import SaleNumberGenerator
from storefront.services.reporting_service import ReportingService
from storefront.services.sales_service import SalesService


@dataclass(frozen=True)
class AppContainer:
    settings: Settings
    repo: SqliteRepository
    ledger: InventoryLedger
    inventory: InventoryService
    sales: SalesService
    reporting: ReportingService


def build_container(db_path: Path | str, settings: Settings | None = None) -> AppContainer:
    settings = settings or load_settings()
    repo = SqliteRepository(db_path, lock_timeout_seconds=settings.lock_timeout_seconds)
    repo.init_db()

    ledger = InventoryLedger()
    inventory = InventoryService(repo, ledger)
    sales = SalesService(repo, ledger=ledger, numbering=SaleNumberGenerator(settings), settings=settings)
    reporting = ReportingService(repo, settings)

    return AppContainer(
        settings=settings,
        repo=repo,
        ledger=ledger,
        inventory=inventory,
        sales=sales,
        reporting=reporting,
    )
