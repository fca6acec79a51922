from __future__ import annotations

import sqlite3
import shutil
from contextlib import closing
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional, TypeVar

from stockbook.domain.models import (
    CANCELLED,
    PENDING,
    APPLIED,
    CONFIRMED,
    CreditNote,
    Customer,
    DocumentRef,
    FullPurchase,
    Order,
    OrderLine,
    Payment,
    Product,
    Purchase,
    PurchaseLine,
    SimplePurchase,
    StockMovement,
    Supplier,
    document_ref,
)

T = TypeVar("T")


def now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


def _d(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(str(value)[:10]) if value else None


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


class SqliteRepository:
    def __init__(self, db_path: Path | str, busy_timeout: float = 5.0):
        self.db_path = str(db_path)
        self.busy_timeout = float(busy_timeout)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def read(self, fetch: Callable[..., T], *args, **kwargs) -> T:
        """Run a cursor-level fetch on a short-lived connection."""
        with closing(self._conn()) as conn:
            return fetch(conn.cursor(), *args, **kwargs)

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_ledger_guards_and_counter),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def schema_version(self) -> int:
        with closing(self._conn()) as conn:
            row = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations").fetchone()
        return int(row[0])

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sku TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                current_stock INTEGER NOT NULL DEFAULT 0 CHECK(current_stock >= 0),
                cost_unit REAL CHECK(cost_unit IS NULL OR cost_unit >= 0),
                cost_currency TEXT NOT NULL DEFAULT 'USD' CHECK(cost_currency IN ('USD','ARS')),
                price_unit REAL CHECK(price_unit IS NULL OR price_unit >= 0),
                min_stock INTEGER NOT NULL DEFAULT 0 CHECK(min_stock >= 0),
                active INTEGER NOT NULL DEFAULT 1 CHECK(active IN (0,1))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS customers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                customer_type TEXT NOT NULL CHECK(customer_type IN ('retail','workshop','mechanic','store')),
                has_credit_account INTEGER NOT NULL DEFAULT 0 CHECK(has_credit_account IN (0,1)),
                is_counter INTEGER NOT NULL DEFAULT 0 CHECK(is_counter IN (0,1))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS suppliers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE COLLATE NOCASE,
                payment_term_days INTEGER CHECK(payment_term_days IS NULL OR payment_term_days > 0),
                early_payment_days INTEGER CHECK(early_payment_days IS NULL OR early_payment_days > 0),
                early_payment_discount_pct REAL
                    CHECK(early_payment_discount_pct IS NULL OR (early_payment_discount_pct > 0 AND early_payment_discount_pct <= 100))
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS orders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                customer_id INTEGER NOT NULL,
                order_type TEXT NOT NULL CHECK(order_type IN ('cash','credit')),
                status TEXT NOT NULL CHECK(status IN ('confirmed','cancelled')),
                total_amount REAL NOT NULL DEFAULT 0 CHECK(total_amount >= 0),
                sale_date TEXT NOT NULL,
                channel TEXT CHECK(channel IS NULL OR channel IN ('counter','whatsapp','mercadolibre')),
                cancel_reason TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY(customer_id) REFERENCES customers(id)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS order_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                order_id INTEGER NOT NULL,
                product_id INTEGER NOT NULL,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                unit_price REAL NOT NULL CHECK(unit_price >= 0),
                FOREIGN KEY(order_id) REFERENCES orders(id) ON DELETE CASCADE,
                FOREIGN KEY(product_id) REFERENCES products(id)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                supplier_id INTEGER NOT NULL,
                mode TEXT NOT NULL CHECK(mode IN ('simple','full')),
                invoice_number TEXT,
                amount REAL CHECK(amount IS NULL OR amount > 0),
                currency TEXT NOT NULL CHECK(currency IN ('USD','ARS')),
                exchange_rate REAL CHECK(exchange_rate IS NULL OR exchange_rate > 0),
                purchase_date TEXT NOT NULL,
                due_date TEXT,
                early_payment_due_date TEXT,
                early_payment_discount_pct REAL
                    CHECK(early_payment_discount_pct IS NULL OR (early_payment_discount_pct > 0 AND early_payment_discount_pct <= 100)),
                paid_with_discount INTEGER NOT NULL DEFAULT 0 CHECK(paid_with_discount IN (0,1)),
                paid_at TEXT,
                status TEXT NOT NULL CHECK(status IN ('pending','paid','confirmed','cancelled')),
                notes TEXT,
                created_at TEXT NOT NULL,
                CHECK(currency = 'ARS' OR exchange_rate IS NOT NULL),
                CHECK(mode = 'full' OR (amount IS NOT NULL AND invoice_number IS NOT NULL AND due_date IS NOT NULL)),
                FOREIGN KEY(supplier_id) REFERENCES suppliers(id)
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS purchases_due_date ON purchases(due_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS purchases_invoice_number ON purchases(invoice_number)")

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS purchase_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                purchase_id INTEGER NOT NULL,
                product_id INTEGER NOT NULL,
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                unit_cost REAL NOT NULL CHECK(unit_cost >= 0),
                FOREIGN KEY(purchase_id) REFERENCES purchases(id) ON DELETE CASCADE,
                FOREIGN KEY(product_id) REFERENCES products(id)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS stock_movements (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                movement_type TEXT NOT NULL CHECK(movement_type IN ('purchase','sale','adjustment')),
                quantity INTEGER NOT NULL CHECK(quantity <> 0),
                reference_type TEXT CHECK(reference_type IS NULL OR reference_type IN ('order','purchase')),
                reference_id INTEGER,
                note TEXT,
                created_at TEXT NOT NULL,
                CHECK((reference_type IS NULL) = (reference_id IS NULL)),
                FOREIGN KEY(product_id) REFERENCES products(id)
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS stock_movements_product ON stock_movements(product_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS stock_movements_reference ON stock_movements(reference_type, reference_id)")

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS credit_notes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                supplier_id INTEGER NOT NULL,
                purchase_id INTEGER,
                credit_note_number TEXT NOT NULL UNIQUE,
                amount REAL NOT NULL CHECK(amount > 0),
                currency TEXT NOT NULL DEFAULT 'ARS' CHECK(currency IN ('USD','ARS')),
                exchange_rate REAL CHECK(exchange_rate IS NULL OR exchange_rate > 0),
                issue_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending' CHECK(status IN ('pending','applied','cancelled')),
                applied_at TEXT,
                notes TEXT,
                CHECK(currency = 'ARS' OR exchange_rate IS NOT NULL),
                FOREIGN KEY(supplier_id) REFERENCES suppliers(id),
                FOREIGN KEY(purchase_id) REFERENCES purchases(id)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS payments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                customer_id INTEGER NOT NULL,
                amount REAL NOT NULL CHECK(amount > 0),
                payment_method TEXT NOT NULL CHECK(payment_method IN ('cash','transfer','check','card')),
                payment_date TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY(customer_id) REFERENCES customers(id)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS fx_rates (
                date TEXT PRIMARY KEY,
                usd_ars REAL NOT NULL CHECK(usd_ars > 0)
            )
            """
        )

    def _migration_v2_ledger_guards_and_counter(self, cur: sqlite3.Cursor) -> None:
        for event in ("UPDATE", "DELETE"):
            cur.execute(
                f"""
                CREATE TRIGGER IF NOT EXISTS stock_movements_no_{event.lower()}
                BEFORE {event} ON stock_movements
                BEGIN
                    SELECT RAISE(ABORT, 'stock_movements is append-only');
                END
                """
            )

        cur.execute("CREATE UNIQUE INDEX IF NOT EXISTS customers_single_counter ON customers(is_counter) WHERE is_counter = 1")
        cur.execute(
            """
            INSERT INTO customers (name, customer_type, has_credit_account, is_counter)
            SELECT 'Counter', 'retail', 0, 1
            WHERE NOT EXISTS (SELECT 1 FROM customers WHERE is_counter = 1)
            """
        )

    # ---------- Products ----------
    @staticmethod
    def _product(r: sqlite3.Row) -> Product:
        return Product(
            id=int(r["id"]),
            sku=str(r["sku"]),
            name=str(r["name"]),
            current_stock=int(r["current_stock"]),
            cost_unit=(float(r["cost_unit"]) if r["cost_unit"] is not None else None),
            cost_currency=str(r["cost_currency"]),
            price_unit=(float(r["price_unit"]) if r["price_unit"] is not None else None),
            min_stock=int(r["min_stock"]),
            active=int(r["active"]),
        )

    def insert_product(
        self,
        cur: sqlite3.Cursor,
        sku: str,
        name: str,
        price_unit: Optional[float],
        cost_unit: Optional[float] = None,
        min_stock: int = 0,
    ) -> int:
        cur.execute(
            """
            INSERT INTO products (sku, name, current_stock, cost_unit, cost_currency, price_unit, min_stock)
            VALUES (?, ?, 0, ?, 'USD', ?, ?)
            """,
            (sku, name, cost_unit, price_unit, int(min_stock)),
        )
        return int(cur.lastrowid)

    def update_product_details(
        self, cur: sqlite3.Cursor, product_id: int, name: str, price_unit: Optional[float], min_stock: int
    ) -> bool:
        cur.execute(
            "UPDATE products SET name=?, price_unit=?, min_stock=?, active=1 WHERE id=?",
            (name, price_unit, int(min_stock), int(product_id)),
        )
        return cur.rowcount > 0

    def deactivate_product(self, cur: sqlite3.Cursor, product_id: int) -> bool:
        cur.execute("UPDATE products SET active=0 WHERE id=? AND active=1", (int(product_id),))
        return cur.rowcount > 0

    def fetch_product(self, cur: sqlite3.Cursor, product_id: int, include_inactive: bool = False) -> Optional[Product]:
        if include_inactive:
            cur.execute("SELECT * FROM products WHERE id=?", (int(product_id),))
        else:
            cur.execute("SELECT * FROM products WHERE active=1 AND id=?", (int(product_id),))
        r = cur.fetchone()
        return self._product(r) if r else None

    def fetch_product_by_sku(self, cur: sqlite3.Cursor, sku: str) -> Optional[Product]:
        cur.execute("SELECT * FROM products WHERE sku=?", (sku,))
        r = cur.fetchone()
        return self._product(r) if r else None

    def fetch_products(self, cur: sqlite3.Cursor) -> list[Product]:
        cur.execute("SELECT * FROM products WHERE active=1 ORDER BY name")
        return [self._product(r) for r in cur.fetchall()]

    def fetch_low_stock(self, cur: sqlite3.Cursor, limit: int = 10) -> list[Product]:
        cur.execute(
            """
            SELECT * FROM products
            WHERE active=1 AND current_stock < min_stock
            ORDER BY (current_stock - min_stock) ASC, name ASC
            LIMIT ?
            """,
            (int(limit),),
        )
        return [self._product(r) for r in cur.fetchall()]

    def set_product_cost(self, cur: sqlite3.Cursor, product_id: int, cost_unit: float, cost_currency: str) -> None:
        cur.execute(
            "UPDATE products SET cost_unit=?, cost_currency=? WHERE id=?",
            (float(cost_unit), cost_currency, int(product_id)),
        )

    def recompute_product_stock(self, cur: sqlite3.Cursor, product_id: int) -> int:
        cur.execute(
            """
            UPDATE products
            SET current_stock = (SELECT COALESCE(SUM(quantity), 0) FROM stock_movements WHERE product_id = ?)
            WHERE id = ?
            """,
            (int(product_id), int(product_id)),
        )
        cur.execute("SELECT current_stock FROM products WHERE id=?", (int(product_id),))
        return int(cur.fetchone()[0])

    # ---------- Stock movements ----------
    @staticmethod
    def _movement(r: sqlite3.Row) -> StockMovement:
        return StockMovement(
            id=int(r["id"]),
            product_id=int(r["product_id"]),
            kind=str(r["movement_type"]),
            quantity=int(r["quantity"]),
            reference=document_ref(r["reference_type"], r["reference_id"]),
            note=r["note"],
            created_at=str(r["created_at"]),
        )

    def insert_movement(
        self,
        cur: sqlite3.Cursor,
        product_id: int,
        kind: str,
        quantity: int,
        reference: Optional[DocumentRef],
        note: Optional[str],
    ) -> StockMovement:
        cur.execute(
            """
            INSERT INTO stock_movements (product_id, movement_type, quantity, reference_type, reference_id, note, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(product_id),
                kind,
                int(quantity),
                reference.kind if reference else None,
                reference.id if reference else None,
                note,
                now_iso(),
            ),
        )
        cur.execute("SELECT * FROM stock_movements WHERE id=?", (int(cur.lastrowid),))
        return self._movement(cur.fetchone())

    def fetch_movements_for_product(self, cur: sqlite3.Cursor, product_id: int) -> list[StockMovement]:
        cur.execute("SELECT * FROM stock_movements WHERE product_id=? ORDER BY id", (int(product_id),))
        return [self._movement(r) for r in cur.fetchall()]

    def count_movements(self, cur: sqlite3.Cursor, product_id: Optional[int] = None) -> int:
        if product_id is None:
            cur.execute("SELECT COUNT(*) FROM stock_movements")
        else:
            cur.execute("SELECT COUNT(*) FROM stock_movements WHERE product_id=?", (int(product_id),))
        return int(cur.fetchone()[0])

    def fetch_stock_drift(self, cur: sqlite3.Cursor) -> list[tuple[str, int, int]]:
        cur.execute(
            """
            SELECT p.sku, p.current_stock, COALESCE(SUM(m.quantity), 0) AS ledger_stock
            FROM products p
            LEFT JOIN stock_movements m ON m.product_id = p.id
            GROUP BY p.id
            HAVING p.current_stock <> ledger_stock
            ORDER BY p.sku
            """
        )
        return [(str(r[0]), int(r[1]), int(r[2])) for r in cur.fetchall()]

    # ---------- Customers & suppliers ----------
    @staticmethod
    def _customer(r: sqlite3.Row) -> Customer:
        return Customer(
            id=int(r["id"]),
            name=str(r["name"]),
            customer_type=str(r["customer_type"]),
            has_credit_account=bool(r["has_credit_account"]),
            is_counter=bool(r["is_counter"]),
        )

    def insert_customer(self, cur: sqlite3.Cursor, name: str, customer_type: str, has_credit_account: bool) -> int:
        cur.execute(
            "INSERT INTO customers (name, customer_type, has_credit_account) VALUES (?, ?, ?)",
            (name, customer_type, int(bool(has_credit_account))),
        )
        return int(cur.lastrowid)

    def set_credit_account(self, cur: sqlite3.Cursor, customer_id: int, enabled: bool) -> bool:
        cur.execute(
            "UPDATE customers SET has_credit_account=? WHERE id=? AND is_counter=0",
            (int(bool(enabled)), int(customer_id)),
        )
        return cur.rowcount > 0

    def fetch_customer(self, cur: sqlite3.Cursor, customer_id: int) -> Optional[Customer]:
        cur.execute("SELECT * FROM customers WHERE id=?", (int(customer_id),))
        r = cur.fetchone()
        return self._customer(r) if r else None

    def fetch_counter_customer(self, cur: sqlite3.Cursor) -> Optional[Customer]:
        cur.execute("SELECT * FROM customers WHERE is_counter=1")
        r = cur.fetchone()
        return self._customer(r) if r else None

    @staticmethod
    def _supplier(r: sqlite3.Row) -> Supplier:
        return Supplier(
            id=int(r["id"]),
            name=str(r["name"]),
            payment_term_days=(int(r["payment_term_days"]) if r["payment_term_days"] is not None else None),
            early_payment_days=(int(r["early_payment_days"]) if r["early_payment_days"] is not None else None),
            early_payment_discount_pct=(
                float(r["early_payment_discount_pct"]) if r["early_payment_discount_pct"] is not None else None
            ),
        )

    def insert_supplier(
        self,
        cur: sqlite3.Cursor,
        name: str,
        payment_term_days: Optional[int],
        early_payment_days: Optional[int],
        early_payment_discount_pct: Optional[float],
    ) -> int:
        cur.execute(
            """
            INSERT INTO suppliers (name, payment_term_days, early_payment_days, early_payment_discount_pct)
            VALUES (?, ?, ?, ?)
            """,
            (name, payment_term_days, early_payment_days, early_payment_discount_pct),
        )
        return int(cur.lastrowid)

    def fetch_supplier(self, cur: sqlite3.Cursor, supplier_id: int) -> Optional[Supplier]:
        cur.execute("SELECT * FROM suppliers WHERE id=?", (int(supplier_id),))
        r = cur.fetchone()
        return self._supplier(r) if r else None

    def fetch_supplier_by_name(self, cur: sqlite3.Cursor, name: str) -> Optional[Supplier]:
        cur.execute("SELECT * FROM suppliers WHERE name=? COLLATE NOCASE", (name,))
        r = cur.fetchone()
        return self._supplier(r) if r else None

    def fetch_suppliers(self, cur: sqlite3.Cursor) -> list[Supplier]:
        cur.execute("SELECT * FROM suppliers ORDER BY name")
        return [self._supplier(r) for r in cur.fetchall()]

    # ---------- Orders ----------
    def insert_order(
        self,
        cur: sqlite3.Cursor,
        customer_id: int,
        order_type: str,
        sale_date: date,
        channel: Optional[str],
    ) -> int:
        cur.execute(
            """
            INSERT INTO orders (customer_id, order_type, status, total_amount, sale_date, channel, created_at)
            VALUES (?, ?, ?, 0, ?, ?, ?)
            """,
            (int(customer_id), order_type, CONFIRMED, _iso(sale_date), channel, now_iso()),
        )
        return int(cur.lastrowid)

    def insert_order_line(self, cur: sqlite3.Cursor, order_id: int, product_id: int, quantity: int, unit_price: float) -> OrderLine:
        cur.execute(
            "INSERT INTO order_items (order_id, product_id, quantity, unit_price) VALUES (?, ?, ?, ?)",
            (int(order_id), int(product_id), int(quantity), float(unit_price)),
        )
        return OrderLine(
            id=int(cur.lastrowid),
            order_id=int(order_id),
            product_id=int(product_id),
            quantity=int(quantity),
            unit_price=float(unit_price),
        )

    def refresh_order_total(self, cur: sqlite3.Cursor, order_id: int) -> float:
        cur.execute(
            """
            UPDATE orders
            SET total_amount = (SELECT COALESCE(SUM(quantity * unit_price), 0) FROM order_items WHERE order_id = ?)
            WHERE id = ?
            """,
            (int(order_id), int(order_id)),
        )
        cur.execute("SELECT total_amount FROM orders WHERE id=?", (int(order_id),))
        return float(cur.fetchone()[0])

    def set_order_cancelled(self, cur: sqlite3.Cursor, order_id: int, reason: Optional[str]) -> bool:
        cur.execute(
            "UPDATE orders SET status=?, cancel_reason=? WHERE id=? AND status=?",
            (CANCELLED, reason, int(order_id), CONFIRMED),
        )
        return cur.rowcount > 0

    def fetch_order(self, cur: sqlite3.Cursor, order_id: int) -> Optional[Order]:
        cur.execute("SELECT * FROM orders WHERE id=?", (int(order_id),))
        r = cur.fetchone()
        if not r:
            return None
        cur.execute("SELECT * FROM order_items WHERE order_id=? ORDER BY id", (int(order_id),))
        lines = tuple(
            OrderLine(
                id=int(li["id"]),
                order_id=int(li["order_id"]),
                product_id=int(li["product_id"]),
                quantity=int(li["quantity"]),
                unit_price=float(li["unit_price"]),
            )
            for li in cur.fetchall()
        )
        return Order(
            id=int(r["id"]),
            customer_id=int(r["customer_id"]),
            order_type=str(r["order_type"]),
            status=str(r["status"]),
            total_amount=float(r["total_amount"]),
            sale_date=_d(r["sale_date"]),
            channel=r["channel"],
            cancel_reason=r["cancel_reason"],
            lines=lines,
        )

    def fetch_order_ids(self, cur: sqlite3.Cursor, customer_id: Optional[int] = None) -> list[int]:
        if customer_id is None:
            cur.execute("SELECT id FROM orders ORDER BY sale_date DESC, id DESC")
        else:
            cur.execute("SELECT id FROM orders WHERE customer_id=? ORDER BY sale_date DESC, id DESC", (int(customer_id),))
        return [int(r[0]) for r in cur.fetchall()]

    def credit_orders_total(self, cur: sqlite3.Cursor, customer_id: int) -> float:
        cur.execute(
            """
            SELECT COALESCE(SUM(total_amount), 0)
            FROM orders
            WHERE customer_id=? AND order_type='credit' AND status <> ?
            """,
            (int(customer_id), CANCELLED),
        )
        return float(cur.fetchone()[0])

    def count_orders(self, cur: sqlite3.Cursor) -> int:
        cur.execute("SELECT COUNT(*) FROM orders")
        return int(cur.fetchone()[0])

    def count_order_lines(self, cur: sqlite3.Cursor) -> int:
        cur.execute("SELECT COUNT(*) FROM order_items")
        return int(cur.fetchone()[0])

    # ---------- Purchases ----------
    def insert_purchase(
        self,
        cur: sqlite3.Cursor,
        *,
        supplier_id: int,
        mode: str,
        currency: str,
        exchange_rate: Optional[float],
        purchase_date: date,
        status: str,
        invoice_number: Optional[str] = None,
        amount: Optional[float] = None,
        due_date: Optional[date] = None,
        early_payment_due_date: Optional[date] = None,
        early_payment_discount_pct: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> int:
        cur.execute(
            """
            INSERT INTO purchases (
                supplier_id, mode, invoice_number, amount, currency, exchange_rate, purchase_date,
                due_date, early_payment_due_date, early_payment_discount_pct, status, notes, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(supplier_id),
                mode,
                invoice_number,
                amount,
                currency,
                exchange_rate,
                _iso(purchase_date),
                _iso(due_date),
                _iso(early_payment_due_date),
                early_payment_discount_pct,
                status,
                notes,
                now_iso(),
            ),
        )
        return int(cur.lastrowid)

    def insert_purchase_line(self, cur: sqlite3.Cursor, purchase_id: int, product_id: int, quantity: int, unit_cost: float) -> None:
        cur.execute(
            "INSERT INTO purchase_items (purchase_id, product_id, quantity, unit_cost) VALUES (?, ?, ?, ?)",
            (int(purchase_id), int(product_id), int(quantity), float(unit_cost)),
        )

    def _purchase(self, cur: sqlite3.Cursor, r: sqlite3.Row) -> Purchase:
        common = dict(
            id=int(r["id"]),
            supplier_id=int(r["supplier_id"]),
            currency=str(r["currency"]),
            exchange_rate=(float(r["exchange_rate"]) if r["exchange_rate"] is not None else None),
            purchase_date=_d(r["purchase_date"]),
            status=str(r["status"]),
            notes=r["notes"],
        )
        if r["mode"] == "simple":
            return SimplePurchase(
                **common,
                invoice_number=str(r["invoice_number"]),
                amount=float(r["amount"]),
                due_date=_d(r["due_date"]),
                early_payment_due_date=_d(r["early_payment_due_date"]),
                early_payment_discount_pct=(
                    float(r["early_payment_discount_pct"]) if r["early_payment_discount_pct"] is not None else None
                ),
                paid_with_discount=bool(r["paid_with_discount"]),
                paid_at=_d(r["paid_at"]),
            )

        cur.execute("SELECT * FROM purchase_items WHERE purchase_id=? ORDER BY id", (int(r["id"]),))
        lines = tuple(
            PurchaseLine(
                id=int(li["id"]),
                purchase_id=int(li["purchase_id"]),
                product_id=int(li["product_id"]),
                quantity=int(li["quantity"]),
                unit_cost=float(li["unit_cost"]),
            )
            for li in cur.fetchall()
        )
        return FullPurchase(**common, lines=lines, due_date=_d(r["due_date"]), invoice_number=r["invoice_number"])

    def fetch_purchase(self, cur: sqlite3.Cursor, purchase_id: int) -> Optional[Purchase]:
        cur.execute("SELECT * FROM purchases WHERE id=?", (int(purchase_id),))
        r = cur.fetchone()
        return self._purchase(cur, r) if r else None

    def fetch_purchases(
        self,
        cur: sqlite3.Cursor,
        mode: Optional[str] = None,
        supplier_id: Optional[int] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Purchase]:
        clauses, params = [], []
        if mode:
            clauses.append("mode = ?")
            params.append(mode)
        if supplier_id is not None:
            clauses.append("supplier_id = ?")
            params.append(int(supplier_id))
        if status:
            clauses.append("status = ?")
            params.append(status)
        if search and search.strip():
            clauses.append("invoice_number LIKE ?")
            params.append(f"%{search.strip()}%")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cur.execute(f"SELECT * FROM purchases {where} ORDER BY purchase_date DESC, id DESC", params)
        rows = cur.fetchall()
        return [self._purchase(cur, r) for r in rows]

    def set_purchase_status(self, cur: sqlite3.Cursor, purchase_id: int, status: str, expected: str) -> bool:
        cur.execute(
            "UPDATE purchases SET status=? WHERE id=? AND status=?",
            (status, int(purchase_id), expected),
        )
        return cur.rowcount > 0

    def mark_purchase_paid(self, cur: sqlite3.Cursor, purchase_id: int, paid_at: date, paid_with_discount: bool) -> bool:
        cur.execute(
            """
            UPDATE purchases
            SET status='paid', paid_at=?, paid_with_discount=?
            WHERE id=? AND mode='simple' AND status=?
            """,
            (_iso(paid_at), int(bool(paid_with_discount)), int(purchase_id), PENDING),
        )
        return cur.rowcount > 0

    def fetch_costing_lines(self, cur: sqlite3.Cursor, product_id: int) -> list[tuple[int, float, str, Optional[float]]]:
        """(quantity, unit_cost, currency, exchange_rate) for every non-cancelled purchase line of a product."""
        cur.execute(
            """
            SELECT pi.quantity, pi.unit_cost, p.currency, p.exchange_rate
            FROM purchase_items pi
            JOIN purchases p ON p.id = pi.purchase_id
            WHERE pi.product_id = ? AND p.status <> ?
            ORDER BY pi.id
            """,
            (int(product_id), CANCELLED),
        )
        return [
            (int(r[0]), float(r[1]), str(r[2]), (float(r[3]) if r[3] is not None else None))
            for r in cur.fetchall()
        ]

    # ---------- Credit notes ----------
    @staticmethod
    def _credit_note(r: sqlite3.Row) -> CreditNote:
        return CreditNote(
            id=int(r["id"]),
            supplier_id=int(r["supplier_id"]),
            purchase_id=(int(r["purchase_id"]) if r["purchase_id"] is not None else None),
            credit_note_number=str(r["credit_note_number"]),
            amount=float(r["amount"]),
            currency=str(r["currency"]),
            exchange_rate=(float(r["exchange_rate"]) if r["exchange_rate"] is not None else None),
            issue_date=_d(r["issue_date"]),
            status=str(r["status"]),
            applied_at=_d(r["applied_at"]),
            notes=r["notes"],
        )

    def insert_credit_note(
        self,
        cur: sqlite3.Cursor,
        supplier_id: int,
        purchase_id: Optional[int],
        credit_note_number: str,
        amount: float,
        currency: str,
        exchange_rate: Optional[float],
        issue_date: date,
        notes: Optional[str],
    ) -> int:
        cur.execute(
            """
            INSERT INTO credit_notes (
                supplier_id, purchase_id, credit_note_number, amount, currency, exchange_rate, issue_date, status, notes
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(supplier_id),
                purchase_id,
                credit_note_number,
                float(amount),
                currency,
                exchange_rate,
                _iso(issue_date),
                PENDING,
                notes,
            ),
        )
        return int(cur.lastrowid)

    def fetch_credit_note(self, cur: sqlite3.Cursor, credit_note_id: int) -> Optional[CreditNote]:
        cur.execute("SELECT * FROM credit_notes WHERE id=?", (int(credit_note_id),))
        r = cur.fetchone()
        return self._credit_note(r) if r else None

    def fetch_credit_note_by_number(self, cur: sqlite3.Cursor, number: str) -> Optional[CreditNote]:
        cur.execute("SELECT * FROM credit_notes WHERE credit_note_number=?", (number,))
        r = cur.fetchone()
        return self._credit_note(r) if r else None

    def fetch_credit_notes(
        self,
        cur: sqlite3.Cursor,
        supplier_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> list[CreditNote]:
        clauses, params = [], []
        if supplier_id is not None:
            clauses.append("supplier_id = ?")
            params.append(int(supplier_id))
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cur.execute(f"SELECT * FROM credit_notes {where} ORDER BY issue_date DESC, id DESC", params)
        return [self._credit_note(r) for r in cur.fetchall()]

    def set_credit_note_status(
        self, cur: sqlite3.Cursor, credit_note_id: int, status: str, applied_at: Optional[date] = None
    ) -> bool:
        cur.execute(
            "UPDATE credit_notes SET status=?, applied_at=? WHERE id=? AND status=?",
            (status, _iso(applied_at), int(credit_note_id), PENDING),
        )
        return cur.rowcount > 0

    def apply_credit_notes_for_purchase(self, cur: sqlite3.Cursor, purchase_id: int, applied_at: date) -> int:
        cur.execute(
            "UPDATE credit_notes SET status=?, applied_at=? WHERE purchase_id=? AND status=?",
            (APPLIED, _iso(applied_at), int(purchase_id), PENDING),
        )
        return int(cur.rowcount)

    def apply_orphan_credit_notes(self, cur: sqlite3.Cursor, supplier_id: int, applied_at: date) -> int:
        cur.execute(
            "UPDATE credit_notes SET status=?, applied_at=? WHERE supplier_id=? AND purchase_id IS NULL AND status=?",
            (APPLIED, _iso(applied_at), int(supplier_id), PENDING),
        )
        return int(cur.rowcount)

    # ---------- Payments ----------
    @staticmethod
    def _payment(r: sqlite3.Row) -> Payment:
        return Payment(
            id=int(r["id"]),
            customer_id=int(r["customer_id"]),
            amount=float(r["amount"]),
            method=str(r["payment_method"]),
            payment_date=_d(r["payment_date"]),
            notes=r["notes"],
        )

    def insert_payment(
        self, cur: sqlite3.Cursor, customer_id: int, amount: float, method: str, payment_date: date, notes: Optional[str]
    ) -> Payment:
        cur.execute(
            """
            INSERT INTO payments (customer_id, amount, payment_method, payment_date, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (int(customer_id), float(amount), method, _iso(payment_date), notes, now_iso()),
        )
        cur.execute("SELECT * FROM payments WHERE id=?", (int(cur.lastrowid),))
        return self._payment(cur.fetchone())

    def fetch_payments(self, cur: sqlite3.Cursor, customer_id: int) -> list[Payment]:
        cur.execute(
            "SELECT * FROM payments WHERE customer_id=? ORDER BY payment_date DESC, id DESC",
            (int(customer_id),),
        )
        return [self._payment(r) for r in cur.fetchall()]

    def payments_total(self, cur: sqlite3.Cursor, customer_id: int) -> float:
        cur.execute("SELECT COALESCE(SUM(amount), 0) FROM payments WHERE customer_id=?", (int(customer_id),))
        return float(cur.fetchone()[0])

    # ---------- Reads on their own connection ----------
    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        return self.read(self.fetch_product, product_id)

    def get_product_by_sku(self, sku: str) -> Optional[Product]:
        return self.read(self.fetch_product_by_sku, sku)

    def list_products(self) -> list[Product]:
        return self.read(self.fetch_products)

    def get_order(self, order_id: int) -> Optional[Order]:
        return self.read(self.fetch_order, order_id)

    def get_purchase(self, purchase_id: int) -> Optional[Purchase]:
        return self.read(self.fetch_purchase, purchase_id)

    def get_credit_note(self, credit_note_id: int) -> Optional[CreditNote]:
        return self.read(self.fetch_credit_note, credit_note_id)

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        return self.read(self.fetch_customer, customer_id)

    def get_supplier(self, supplier_id: int) -> Optional[Supplier]:
        return self.read(self.fetch_supplier, supplier_id)

    # ---------- FX ----------
    def get_fx_rate(self, date_iso: str) -> Optional[float]:
        with closing(self._conn()) as conn:
            row = conn.execute("SELECT usd_ars FROM fx_rates WHERE date = ?", (date_iso,)).fetchone()
        return float(row[0]) if row else None

    def set_fx_rate(self, date_iso: str, usd_ars: float) -> None:
        with closing(self._conn()) as conn:
            conn.execute(
                """
                INSERT INTO fx_rates (date, usd_ars) VALUES (?, ?)
                ON CONFLICT(date) DO UPDATE SET usd_ars=excluded.usd_ars
                """,
                (date_iso, float(usd_ars)),
            )
            conn.commit()

    def get_latest_fx_rate(self) -> Optional[float]:
        with closing(self._conn()) as conn:
            row = conn.execute("SELECT usd_ars FROM fx_rates ORDER BY date DESC LIMIT 1").fetchone()
        return float(row[0]) if row else None
