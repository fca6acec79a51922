from datetime import date
from pathlib import Path

from conftest import make_container, seed_supplier


def _invoice(c, sid, number, amount=1000.0, due=date(2024, 4, 19), **kw):
    kw.setdefault("currency", "ARS")
    out = c.purchases.create_simple_purchase(sid, number, amount, due_date=due, purchase_date=date(2024, 4, 1), **kw)
    assert out.succeeded, out.errors
    return out.value


def test_linked_credit_note_inherits_currency_and_rate(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    inv = _invoice(c, sid, "F-1", amount=500.0, currency="USD", exchange_rate=1100.0)

    out = c.credit_notes.create_credit_note(sid, "NC-1", 50.0, issue_date=date(2024, 4, 3), purchase_id=inv.id)

    assert out.succeeded, out.errors
    note = out.value
    assert note.currency == "USD"
    assert note.exchange_rate == 1100.0
    assert note.total_in_reference_currency == 55_000.0
    assert note.status == "pending"
    assert not note.is_orphan


def test_credit_note_validation(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c, "Acme")
    other = seed_supplier(c, "Other")
    inv = _invoice(c, sid, "F-1")
    assert c.credit_notes.create_credit_note(sid, "NC-1", 10.0).succeeded

    assert c.credit_notes.create_credit_note(sid, "NC-1", 10.0).errors == ["Credit note number already exists: NC-1"]
    assert c.credit_notes.create_credit_note(sid, "NC-2", 0).errors == ["Amount must be greater than zero"]
    assert c.credit_notes.create_credit_note(other, "NC-3", 5.0, purchase_id=inv.id).errors == [
        "Invoice belongs to a different supplier"
    ]
    assert c.credit_notes.create_credit_note(sid, "NC-4", 5.0, currency="USD").errors == [
        "Exchange rate required for USD purchases"
    ]


def test_apply_and_cancel_only_from_pending(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    a = c.credit_notes.create_credit_note(sid, "NC-A", 10.0).value
    b = c.credit_notes.create_credit_note(sid, "NC-B", 10.0).value

    applied = c.credit_notes.apply_credit_note(a.id, applied_on=date(2024, 4, 8))
    cancelled = c.credit_notes.cancel_credit_note(b.id)

    assert applied.value.status == "applied"
    assert applied.value.applied_at == date(2024, 4, 8)
    assert cancelled.value.status == "cancelled"
    assert c.credit_notes.cancel_credit_note(a.id).failed
    assert c.credit_notes.apply_credit_note(b.id).failed


def test_paying_invoice_applies_linked_credit_notes(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    inv = _invoice(c, sid, "F-1")
    note = c.credit_notes.create_credit_note(sid, "NC-1", 100.0, purchase_id=inv.id).value

    assert c.purchases.mark_as_paid(inv.id, payment_date=date(2024, 4, 10)).succeeded

    refreshed = c.credit_notes.get_credit_note(note.id)
    assert refreshed.status == "applied"
    assert refreshed.applied_at == date(2024, 4, 10)


def test_supplier_balance_nets_pending_credit_notes(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    _invoice(c, sid, "F-1", amount=1000.0)
    _invoice(c, sid, "F-2", amount=10.0, currency="USD", exchange_rate=1000.0)
    c.credit_notes.create_credit_note(sid, "NC-1", 200.0)

    assert c.purchases.supplier_balance(sid) == 10_800.0


def test_mark_supplier_paid_pays_period_and_orphan_notes(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    due_this_week = _invoice(c, sid, "F-1", due=date(2024, 4, 19))
    due_later = _invoice(c, sid, "F-2", due=date(2024, 5, 20))
    linked = c.credit_notes.create_credit_note(sid, "NC-L", 50.0, purchase_id=due_this_week.id).value
    orphan = c.credit_notes.create_credit_note(sid, "NC-O", 30.0).value
    later_note = c.credit_notes.create_credit_note(sid, "NC-X", 20.0, purchase_id=due_later.id).value

    out = c.purchases.mark_supplier_paid(sid, "this_week", payment_date=date(2024, 4, 18), today=date(2024, 4, 17))

    assert out.succeeded, out.errors
    assert [p.id for p in out.value] == [due_this_week.id]
    assert out.value[0].paid_at == date(2024, 4, 18)
    assert c.credit_notes.get_credit_note(linked.id).status == "applied"
    assert c.credit_notes.get_credit_note(orphan.id).status == "applied"
    assert c.credit_notes.get_credit_note(later_note.id).status == "pending"
    assert c.purchases.get_purchase(due_later.id).status == "pending"


def test_mark_supplier_paid_with_nothing_due_changes_nothing(tmp_path: Path):
    c = make_container(tmp_path)
    sid = seed_supplier(c)
    inv = _invoice(c, sid, "F-1", due=date(2024, 5, 20))
    orphan = c.credit_notes.create_credit_note(sid, "NC-O", 30.0).value

    out = c.purchases.mark_supplier_paid(sid, "this_week", today=date(2024, 4, 17))

    assert out.errors == ["Supplier has no pending invoices for this period"]
    assert c.purchases.get_purchase(inv.id).status == "pending"
    assert c.credit_notes.get_credit_note(orphan.id).status == "pending"
