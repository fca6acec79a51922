from datetime import date
from pathlib import Path

from conftest import ledger_sum, make_container, seed_credit_customer, seed_product
from stockbook.domain.models import OrderRef


def test_cash_order_without_customer_goes_to_counter(tmp_path: Path):
    c = make_container(tmp_path)
    pid = seed_product(c, "SKU-1", stock=10, price=250.0)

    out = c.sales.create_order(None, [{"product_id": pid, "quantity": 3}], "cash", channel="counter")

    assert out.succeeded, out.errors
    order = out.value
    assert order.customer_id == c.counter_customer_id
    assert order.status == "confirmed"
    assert order.total_amount == 750.0
    assert order.lines[0].unit_price == 250.0
    assert c.inventory.stock_level(pid) == 7
    sale = c.inventory.movements_for(pid)[-1]
    assert sale.kind == "sale"
    assert sale.reference == OrderRef(order.id)


def test_explicit_unit_price_and_unpriced_products(tmp_path: Path):
    c = make_container(tmp_path)
    priced = seed_product(c, "SKU-P", stock=5, price=100.0)
    unpriced = c.inventory.add_product("SKU-U", "Unpriced", None).value.id
    c.inventory.adjust(unpriced, "adjustment", 5)

    out = c.sales.create_order(
        None,
        [{"product_id": priced, "quantity": 2, "unit_price": 80.0}, {"product_id": unpriced, "quantity": 1}],
        "cash",
        sale_date=date(2024, 5, 1),
    )

    assert out.succeeded
    assert out.value.total_amount == 160.0
    assert out.value.sale_date == date(2024, 5, 1)


def test_order_with_insufficient_stock_writes_nothing(tmp_path: Path):
    c = make_container(tmp_path)
    a = seed_product(c, "SKU-A", stock=10)
    b = seed_product(c, "SKU-B", stock=1)

    out = c.sales.create_order(
        None,
        [{"product_id": a, "quantity": 4}, {"product_id": b, "quantity": 2}],
        "cash",
    )

    assert out.failed
    assert "Insufficient stock" in out.message
    assert c.inventory.stock_level(a) == 10
    assert c.inventory.stock_level(b) == 1
    assert ledger_sum(c, a) == 10
    assert c.sales.list_orders() == []


def test_credit_order_requires_credit_account(tmp_path: Path):
    c = make_container(tmp_path)
    pid = seed_product(c, "SKU-1", stock=5)
    walk_in = c.contacts.add_customer("Ana", "retail").value

    out = c.sales.create_order(walk_in.id, [{"product_id": pid, "quantity": 1}], "credit")
    anonymous = c.sales.create_order(None, [{"product_id": pid, "quantity": 1}], "credit")

    assert out.errors == ["Customer does not have credit account enabled"]
    assert anonymous.failed
    assert c.inventory.stock_level(pid) == 5


def test_order_validation_messages(tmp_path: Path):
    c = make_container(tmp_path)
    pid = seed_product(c, "SKU-1", stock=5)

    assert c.sales.create_order(None, [], "cash").errors == ["Order must have at least one item"]
    assert c.sales.create_order(None, [{"product_id": pid, "quantity": 0}], "cash").errors == [
        "Quantity must be greater than zero"
    ]
    assert c.sales.create_order(None, [{"product_id": 999, "quantity": 1}], "cash").failed
    assert c.sales.create_order(None, [{"product_id": pid, "quantity": 1}], "barter").failed
    assert c.sales.create_order(None, [{"product_id": pid, "quantity": 1}], "cash", channel="fax").failed


def test_cancel_restores_stock_once(tmp_path: Path):
    c = make_container(tmp_path)
    pid = seed_product(c, "SKU-1", stock=10)
    order = c.sales.create_order(None, [{"product_id": pid, "quantity": 4}], "cash").value

    first = c.sales.cancel_order(order.id, reason="customer changed mind")
    second = c.sales.cancel_order(order.id)

    assert first.succeeded
    assert first.value.status == "cancelled"
    assert first.value.cancel_reason == "customer changed mind"
    assert second.errors == ["Order is already cancelled"]
    assert c.inventory.stock_level(pid) == 10
    restore = c.inventory.movements_for(pid)[-1]
    assert restore.kind == "adjustment"
    assert restore.quantity == 4
    assert restore.note == "customer changed mind"
    assert len(c.inventory.movements_for(pid)) == 3


def test_cancel_unknown_order(tmp_path: Path):
    c = make_container(tmp_path)
    assert c.sales.cancel_order(12345).errors == ["Order not found"]
