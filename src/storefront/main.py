from __future__ import annotations

import logging

from storefront.application.container import build_container
from storefront.config import get_app_paths
from storefront.logging_config import setup_logging

log = logging.getLogger("storefront")


def main() -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    container = build_container(paths.db_path)
    drift = container.inventory.reconcile()
    low = container.inventory.low_stock()
    log.info(
        "storefront_ready db=%s products=%s low_stock=%s ledger_mismatches=%s",
        paths.db_path,
        len(container.inventory.list_products()),
        len(low),
        len(drift),
    )


if __name__ == "__main__":
    main()
