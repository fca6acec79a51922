import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_container(tmp_path: Path, name: str = "stockbook.db", **settings):
    from stockbook.application.container import build_container
    from stockbook.config import Settings

    return build_container(tmp_path / name, Settings(**settings))


def seed_product(container, sku: str = "SKU-1", stock: int = 0, price: float = 100.0, min_stock: int = 0) -> int:
    product = container.inventory.add_product(sku, f"Product {sku}", price, min_stock=min_stock)
    assert product.succeeded, product.errors
    pid = product.value.id
    if stock:
        moved = container.inventory.adjust(pid, "adjustment", stock, note="opening stock")
        assert moved.succeeded, moved.errors
    return pid


def seed_supplier(container, name: str = "Acme Parts", **terms) -> int:
    supplier = container.contacts.add_supplier(name, **terms)
    assert supplier.succeeded, supplier.errors
    return supplier.value.id


def seed_credit_customer(container, name: str = "Taller Sur") -> int:
    customer = container.contacts.add_customer(name, "workshop", has_credit_account=True)
    assert customer.succeeded, customer.errors
    return customer.value.id


def ledger_sum(container, product_id: int) -> int:
    return sum(m.quantity for m in container.inventory.movements_for(product_id))
