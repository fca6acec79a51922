import sqlite3
from pathlib import Path

import pytest

from conftest import make_container
from stockbook.repositories.sqlite_repo import SqliteRepository


def test_migrations_are_versioned_and_idempotent(tmp_path: Path):
    db = tmp_path / "m.db"
    repo = SqliteRepository(db)
    repo.init_db()
    repo.init_db()

    assert repo.schema_version() == 2
    conn = sqlite3.connect(db)
    try:
        counters = conn.execute("SELECT COUNT(*) FROM customers WHERE is_counter = 1").fetchone()[0]
        triggers = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'trigger'")}
    finally:
        conn.close()
    assert counters == 1
    assert triggers == {"stock_movements_no_update", "stock_movements_no_delete"}


def test_failed_migration_restores_backup(tmp_path: Path):
    db = tmp_path / "m.db"
    SqliteRepository(db).init_db()
    make_container(tmp_path, name="m.db").inventory.add_product("SKU-1", "Kept", 1.0)

    class BrokenRepo(SqliteRepository):
        def _migration_v2_ledger_guards_and_counter(self, cur):
            raise sqlite3.OperationalError("broken")

    conn = sqlite3.connect(db)
    conn.execute("DELETE FROM schema_migrations WHERE version = 2")
    conn.commit()
    conn.close()

    with pytest.raises(RuntimeError, match="restored"):
        BrokenRepo(db).init_db()

    repo = SqliteRepository(db)
    assert repo.get_product_by_sku("SKU-1").name == "Kept"
    assert list(tmp_path.glob("m.pre_migration_*.bak"))


def test_schema_rejects_negative_cached_stock(tmp_path: Path):
    c = make_container(tmp_path)
    pid = c.inventory.add_product("SKU-1", "One", 1.0).value.id

    conn = c.repo._conn()
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("UPDATE products SET current_stock = -1 WHERE id = ?", (pid,))
    finally:
        conn.close()


def test_only_one_counter_customer(tmp_path: Path):
    c = make_container(tmp_path)
    conn = c.repo._conn()
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO customers (name, customer_type, has_credit_account, is_counter) VALUES ('X', 'retail', 0, 1)"
            )
    finally:
        conn.close()
