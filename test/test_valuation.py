from datetime import date
from pathlib import Path

import pytest

from conftest import make_container, seed_product, seed_supplier
from stockbook.domain.models import FullPurchase, SimplePurchase, to_reference_currency


def test_weighted_average_of_two_usd_purchases(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-W")

    c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 5, "unit_cost": 10.0}], "USD", exchange_rate=1000)
    c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 5, "unit_cost": 20.0}], "USD", exchange_rate=1100)

    product = c.repo.get_product_by_id(pid)
    assert product.cost_unit == 15.0
    assert product.cost_currency == "USD"
    assert product.current_stock == 10


def test_ars_lines_are_normalised_with_their_purchase_rate(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-ARS")

    c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 4, "unit_cost": 12000.0}], "ARS", exchange_rate=1200)
    c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 4, "unit_cost": 30.0}], "USD", exchange_rate=1200)

    assert c.repo.get_product_by_id(pid).cost_unit == 20.0


def test_ars_purchase_without_rate_is_valued_at_fallback(tmp_path: Path):
    c = make_container(tmp_path, fallback_usd_ars=1000.0)
    c.purchases.fx = None
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-FB")

    out = c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 2, "unit_cost": 5000.0}], "ARS")

    assert out.succeeded
    assert out.value.exchange_rate is None
    assert c.repo.get_product_by_id(pid).cost_unit == 5.0


def test_cancelled_purchases_stop_contributing(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-C")

    c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 5, "unit_cost": 10.0}], "USD", exchange_rate=1000)
    second = c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 5, "unit_cost": 20.0}], "USD", exchange_rate=1000)
    assert c.repo.get_product_by_id(pid).cost_unit == 15.0

    assert c.purchases.cancel_purchase(second.value.id).succeeded
    assert c.repo.get_product_by_id(pid).cost_unit == 10.0


def test_cost_is_kept_when_last_purchase_is_cancelled(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-K")

    only = c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 3, "unit_cost": 7.5}], "USD", exchange_rate=1000)
    assert c.purchases.cancel_purchase(only.value.id).succeeded

    product = c.repo.get_product_by_id(pid)
    assert product.current_stock == 0
    assert product.cost_unit == 7.5


def test_recalculate_is_idempotent(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    pid = seed_product(c, "SKU-I")
    c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 3, "unit_cost": 10.0}], "USD", exchange_rate=1000)
    c.purchases.create_purchase(sid, [{"product_id": pid, "quantity": 7, "unit_cost": 11.0}], "USD", exchange_rate=1000)

    first = c.valuation.recalculate_average_cost(pid)
    second = c.valuation.recalculate_average_cost(pid)

    assert first.succeeded and second.succeeded
    assert first.value == second.value == 10.7


def test_recalculate_without_purchases_leaves_cost_alone(tmp_path: Path):
    c = make_container(tmp_path)
    out = c.inventory.add_product("SKU-Z", "No history", 10.0, cost_unit=3.25)

    result = c.valuation.recalculate_average_cost(out.value.id)

    assert result.succeeded
    assert result.value is None
    assert c.repo.get_product_by_id(out.value.id).cost_unit == 3.25


def test_reference_currency_conversions():
    usd = SimplePurchase(
        id=1, supplier_id=1, currency="USD", exchange_rate=1200.0, purchase_date=date(2024, 1, 1),
        status="pending", notes=None, invoice_number="A-1", amount=1000.0, due_date=date(2024, 2, 1),
    )
    ars = SimplePurchase(
        id=2, supplier_id=1, currency="ARS", exchange_rate=1200.0, purchase_date=date(2024, 1, 1),
        status="pending", notes=None, invoice_number="A-2", amount=500_000.0, due_date=date(2024, 2, 1),
    )

    assert usd.total_in_reference_currency == 1_200_000.0
    assert ars.total_in_reference_currency == 500_000.0
    assert to_reference_currency(10, "ARS", None) == 10.0


def test_full_purchase_total_is_sum_of_lines():
    from stockbook.domain.models import PurchaseLine

    p = FullPurchase(
        id=1, supplier_id=1, currency="USD", exchange_rate=1000.0, purchase_date=date(2024, 1, 1),
        status="confirmed", notes=None,
        lines=(PurchaseLine(1, 1, 1, 2, 10.0), PurchaseLine(2, 1, 2, 3, 5.0)),
    )

    assert p.total_amount == pytest.approx(35.0)
    assert p.total_in_reference_currency == pytest.approx(35_000.0)
