from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
import os
import sys

from storefront.domain.errors import ValidationError


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class Settings:
    sale_number_prefix: str = "V"
    sale_number_attempts: int = 5
    lock_timeout_seconds: float = 10.0
    low_stock_dashboard_limit: int = 5


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "Storefront") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "storefront.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    defaults = Settings()

    prefix = env.get("STOREFRONT_SALE_PREFIX", "").strip() or defaults.sale_number_prefix
    if not prefix.isalnum():
        raise ValidationError("STOREFRONT_SALE_PREFIX must be alphanumeric.")

    try:
        attempts = int(env.get("STOREFRONT_SALE_NUMBER_ATTEMPTS", defaults.sale_number_attempts))
        timeout = float(env.get("STOREFRONT_LOCK_TIMEOUT", defaults.lock_timeout_seconds))
    except ValueError as exc:
        raise ValidationError(f"Invalid storefront setting: {exc}") from exc
    if attempts < 1:
        raise ValidationError("STOREFRONT_SALE_NUMBER_ATTEMPTS must be >= 1.")
    if timeout <= 0:
        raise ValidationError("STOREFRONT_LOCK_TIMEOUT must be > 0.")

    return Settings(
        sale_number_prefix=prefix.upper(),
        sale_number_attempts=attempts,
        lock_timeout_seconds=timeout,
    )
