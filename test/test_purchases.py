from datetime import date
from pathlib import Path

from conftest import make_container, seed_product, seed_supplier
from stockbook.domain.models import PurchaseRef


def test_usd_purchase_then_cancel(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-1")

    created = c.purchases.create_purchase(
        sid,
        [{"product_id": pid, "quantity": 10, "unit_cost": 12.5}],
        "USD",
        exchange_rate=1000.0,
        purchase_date=date(2024, 3, 1),
    )

    assert created.succeeded, created.errors
    purchase = created.value
    assert purchase.mode == "full"
    assert purchase.status == "confirmed"
    assert purchase.total_amount == 125.0
    assert purchase.total_in_reference_currency == 125_000.0
    assert c.inventory.stock_level(pid) == 10
    assert c.inventory.movements_for(pid)[-1].reference == PurchaseRef(purchase.id)

    cancelled = c.purchases.cancel_purchase(purchase.id)

    assert cancelled.succeeded
    assert cancelled.value.status == "cancelled"
    assert c.inventory.stock_level(pid) == 0
    kinds = [(m.kind, m.quantity) for m in c.inventory.movements_for(pid)]
    assert kinds == [("purchase", 10), ("adjustment", -10)]
    assert c.purchases.cancel_purchase(purchase.id).errors == ["Purchase is already cancelled"]


def test_cancel_fails_when_stock_was_sold(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-1")
    purchase = c.purchases.create_purchase(
        sid, [{"product_id": pid, "quantity": 5, "unit_cost": 10.0}], "USD", exchange_rate=1000.0
    ).value
    assert c.sales.create_order(None, [{"product_id": pid, "quantity": 3}], "cash").succeeded

    out = c.purchases.cancel_purchase(purchase.id)

    assert out.failed
    assert "Insufficient stock" in out.message
    assert c.purchases.get_purchase(purchase.id).status == "confirmed"
    assert c.inventory.stock_level(pid) == 2


def test_usd_purchase_requires_rate(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-1")

    out = c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 1, "unit_cost": 1.0}], "USD")

    assert out.errors == ["Exchange rate required for USD purchases"]
    assert c.inventory.stock_level(pid) == 0


def test_purchase_validation(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-1")
    line = [{"product_id": pid, "quantity": 1, "unit_cost": 1.0}]

    assert c.purchases.create_purchase(sid, line, "EUR").errors == ["Invalid currency. Must be USD or ARS"]
    assert c.purchases.create_purchase(sid, [], "USD", exchange_rate=1.0).failed
    assert c.purchases.create_purchase(999, line, "USD", exchange_rate=1.0).errors == ["Supplier not found"]
    assert c.purchases.create_purchase(
        sid, [{"product_id": 999, "quantity": 1, "unit_cost": 1.0}], "USD", exchange_rate=1.0
    ).failed
    assert c.purchases.create_purchase(
        sid, line, "USD", exchange_rate=1.0, purchase_date=date(2024, 2, 1), due_date=date(2024, 1, 1)
    ).errors == ["Due date cannot be before purchase date"]
    assert c.purchases.list_purchases() == []


def test_ars_purchase_looks_up_rate(tmp_path: Path):
    c = make_container(tmp_path)
    c.repo.set_fx_rate("2024-06-03", 910.0)
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-1")

    out = c.purchases.create_purchase(
        sid, [{"product_id": pid, "quantity": 2, "unit_cost": 9100.0}], "ARS", purchase_date=date(2024, 6, 3)
    )

    assert out.value.exchange_rate == 910.0
    assert out.value.total_in_reference_currency == 18_200.0
    assert c.repo.get_product_by_id(pid).cost_unit == 10.0


def test_multi_line_purchase_revalues_each_product(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    a = seed_product(c, "SKU-A")
    b = seed_product(c, "SKU-B")

    out = c.purchases.create_purchase(
        sid,
        [
            {"product_id": a, "quantity": 1, "unit_cost": 10.0},
            {"product_id": b, "quantity": 2, "unit_cost": 4.0},
            {"product_id": a, "quantity": 1, "unit_cost": 20.0},
        ],
        "USD",
        exchange_rate=1000.0,
    )

    assert out.succeeded
    assert len(out.value.lines) == 3
    assert c.repo.get_product_by_id(a).cost_unit == 15.0
    assert c.repo.get_product_by_id(b).cost_unit == 4.0
    assert c.inventory.stock_level(a) == 2
