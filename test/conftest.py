import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from storefront.application.container import build_container  # noqa: E402
from storefront.config import Settings  # noqa: E402


@pytest.fixture
def container(tmp_path: Path):
    return build_container(tmp_path / "storefront.db", Settings())


@pytest.fixture
def repo(container):
    return container.repo


def add_product(container, code: str = "X1", stock: int = 10, price: str = "10.00", min_stock: int = 2, **extra) -> int:
    return container.inventory.add_product(
        code=code,
        type=extra.pop("type", "Faro"),
        brand=extra.pop("brand", "Bosch"),
        model=extra.pop("model", f"Model {code}"),
        unit_price=price,
        stock=stock,
        min_stock=min_stock,
        **extra,
    )


def count_rows(repo, table: str) -> int:
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute(f"SELECT COUNT(*) FROM {table}")
    n = int(cur.fetchone()[0])
    conn.close()
    return n
