from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys


FX_SOURCES = (
    "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1/currencies/usd.json",
    "https://latest.currency-api.pages.dev/v1/currencies/usd.json",
)


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class Settings:
    # Used to value ARS purchases that were recorded without an exchange rate.
    fallback_usd_ars: float = 1200.0
    busy_timeout_seconds: float = 5.0
    fx_sources: tuple[str, ...] = FX_SOURCES


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "Stockbook") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "stockbook.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")
    return value


def load_settings() -> Settings:
    return Settings(
        fallback_usd_ars=_env_float("STOCKBOOK_FALLBACK_USD_ARS", Settings.fallback_usd_ars),
        busy_timeout_seconds=_env_float("STOCKBOOK_BUSY_TIMEOUT", Settings.busy_timeout_seconds),
    )
