import logging
from pathlib import Path

import pytest

from stockbook.config import Settings
from stockbook.domain.errors import InsufficientStockError
from stockbook.repositories.sqlite_repo import SqliteRepository
from stockbook.services.contacts_service import ContactsService
from stockbook.services.inventory_service import InventoryService
from stockbook.services.purchase_service import PurchaseService
from stockbook.services.sales_service import SalesService
from stockbook.services.valuation_service import ValuationService


class FailingRepo(SqliteRepository):
    """Blows up after the ledger has already been written inside the transaction."""

    fail_on_order_total = False
    fail_on_cost = False

    def refresh_order_total(self, cur, order_id):
        if self.fail_on_order_total:
            raise RuntimeError("boom")
        return super().refresh_order_total(cur, order_id)

    def set_product_cost(self, cur, product_id, cost_unit, cost_currency):
        if self.fail_on_cost:
            raise RuntimeError("boom")
        return super().set_product_cost(cur, product_id, cost_unit, cost_currency)


def _services(tmp_path: Path):
    repo = FailingRepo(tmp_path / "t.db")
    repo.init_db()
    inventory = InventoryService(repo)
    valuation = ValuationService(repo, Settings())
    sales = SalesService(repo, inventory)
    purchases = PurchaseService(repo, inventory, valuation)
    contacts = ContactsService(repo)
    pid = inventory.add_product("SKU-1", "Producto", 4.0).value.id
    inventory.adjust(pid, "adjustment", 10)
    return repo, inventory, sales, purchases, contacts, pid


def test_order_rolls_back_when_repository_fails(tmp_path: Path, caplog):
    repo, inventory, sales, _, _, pid = _services(tmp_path)
    orders_before = repo.read(repo.count_orders)
    repo.fail_on_order_total = True

    with caplog.at_level(logging.ERROR, logger="stockbook.sales"):
        out = sales.create_order(None, [{"product_id": pid, "quantity": 4}], "cash")

    assert out.errors == ["Error creating order"]
    assert "order_create_failed" in caplog.text
    assert inventory.stock_level(pid) == 10
    assert len(inventory.movements_for(pid)) == 1
    assert sales.list_orders() == []
    assert repo.read(repo.count_orders) == orders_before == 0
    assert repo.read(repo.count_order_lines) == 0


def test_purchase_rolls_back_when_valuation_fails(tmp_path: Path):
    repo, inventory, _, purchases, contacts, pid = _services(tmp_path)
    sid = contacts.add_supplier("Acme").value.id
    repo.fail_on_cost = True

    out = purchases.create_purchase(sid, [{"product_id": pid, "quantity": 5, "unit_cost": 3.0}], "USD", exchange_rate=1000.0)

    assert out.errors == ["Error creating purchase"]
    product = repo.get_product_by_id(pid)
    assert product.current_stock == 10
    assert product.cost_unit is None
    assert purchases.list_purchases() == []


def test_cancel_purchase_rolls_back_when_valuation_fails(tmp_path: Path):
    repo, inventory, _, purchases, contacts, pid = _services(tmp_path)
    sid = contacts.add_supplier("Acme").value.id
    kept = purchases.create_purchase(
        sid, [{"product_id": pid, "quantity": 5, "unit_cost": 3.0}], "USD", exchange_rate=1000.0
    )
    cancelled = purchases.create_purchase(
        sid, [{"product_id": pid, "quantity": 5, "unit_cost": 5.0}], "USD", exchange_rate=1000.0
    ).value
    assert kept.succeeded
    assert repo.get_product_by_id(pid).cost_unit == 4.0
    movements_before = repo.read(repo.count_movements, pid)
    repo.fail_on_cost = True

    out = purchases.cancel_purchase(cancelled.id)

    assert out.errors == ["Error cancelling purchase"]
    assert purchases.get_purchase(cancelled.id).status == "confirmed"
    assert inventory.stock_level(pid) == 20
    assert repo.read(repo.count_movements, pid) == movements_before == 3
    assert repo.get_product_by_id(pid).cost_unit == 4.0


def test_failed_outcome_from_work_rolls_back_earlier_writes(tmp_path: Path):
    repo, inventory, _, _, _, pid = _services(tmp_path)

    def work(uow):
        first = inventory.adjust_within(uow, pid, "adjustment", -3)
        assert first.succeeded
        return inventory.adjust_within(uow, pid, "theft", -1)

    out = inventory._execute("two_step", work, "Error adjusting stock")

    assert out.errors == ["Invalid movement type: theft"]
    assert inventory.stock_level(pid) == 10
    assert repo.read(repo.count_movements, pid) == 1


def test_insufficient_stock_inside_work_abandons_earlier_writes(tmp_path: Path):
    repo, inventory, _, _, _, pid = _services(tmp_path)

    def work(uow):
        first = inventory.adjust_within(uow, pid, "adjustment", -3)
        assert first.succeeded
        with pytest.raises(InsufficientStockError, match="available 7, requested 50"):
            inventory.adjust_within(uow, pid, "adjustment", -50)
        return inventory.adjust_within(uow, pid, "adjustment", -50)

    out = inventory._execute("two_step", work, "Error adjusting stock")

    assert out.failed
    assert "Insufficient stock" in out.message
    assert inventory.stock_level(pid) == 10
    assert repo.read(repo.count_movements) == 1
