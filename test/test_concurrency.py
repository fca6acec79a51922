import threading
from pathlib import Path

from conftest import ledger_sum, make_container, seed_product


def _run_together(workers: int, target):
    start = threading.Barrier(workers)
    results = []
    lock = threading.Lock()

    def run():
        start.wait()
        out = target()
        with lock:
            results.append(out)

    threads = [threading.Thread(target=run) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


def test_concurrent_sales_never_oversell(tmp_path: Path):
    c = make_container(tmp_path, busy_timeout_seconds=30.0)
    pid = seed_product(c, "SKU-1", stock=5)

    results = _run_together(12, lambda: c.sales.create_order(None, [{"product_id": pid, "quantity": 1}], "cash"))

    assert len(results) == 12
    assert sum(1 for r in results if r.succeeded) == 5
    assert all("Insufficient stock" in r.message for r in results if r.failed)
    assert c.inventory.stock_level(pid) == 0
    assert ledger_sum(c, pid) == 0
    assert len(c.sales.list_orders()) == 5
    assert c.inventory.verify_stock_integrity() == []


def test_concurrent_adjusters_keep_cache_equal_to_ledger(tmp_path: Path):
    c = make_container(tmp_path, busy_timeout_seconds=30.0)
    pid = seed_product(c, "SKU-1", stock=3)

    results = _run_together(8, lambda: c.inventory.adjust(pid, "adjustment", -1))

    assert sum(1 for r in results if r.succeeded) == 3
    assert c.inventory.stock_level(pid) == 0 == ledger_sum(c, pid)
