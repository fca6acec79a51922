from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from stockbook.domain.errors import InvalidTransitionError, NotFoundError, ValidationError
from stockbook.domain.models import (
    CANCELLED,
    CONFIRMED,
    CURRENCIES,
    PENDING,
    FullPurchase,
    Purchase,
    PurchaseRef,
    SimplePurchase,
    Supplier,
    priority_ordered,
)
from stockbook.domain.outcome import Outcome
from stockbook.services.base import TransactionalService

log = logging.getLogger("stockbook.purchases")

DUE_PERIODS = ("overdue", "this_week", "next_week", "this_month", "next_month")


def _month_start(d: date, offset: int = 0) -> date:
    month_index = d.year * 12 + (d.month - 1) + offset
    return date(month_index // 12, month_index % 12 + 1, 1)


def period_bounds(period: str, today: date) -> tuple[Optional[date], date]:
    """Inclusive (start, end) due-date window; overdue has no start. Weeks run Monday to Sunday."""
    if period == "overdue":
        return None, today - timedelta(days=1)
    if period in ("this_week", "next_week"):
        monday = today - timedelta(days=today.weekday())
        if period == "next_week":
            monday += timedelta(days=7)
        return monday, monday + timedelta(days=6)
    if period in ("this_month", "next_month"):
        offset = 1 if period == "next_month" else 0
        return _month_start(today, offset), _month_start(today, offset + 1) - timedelta(days=1)
    raise ValidationError(f"Invalid period. Must be one of: {', '.join(DUE_PERIODS)}")


def _due_in(invoice: SimplePurchase, start: Optional[date], end: date) -> bool:
    if invoice.due_date is None:
        return False
    return (start is None or invoice.due_date >= start) and invoice.due_date <= end


def validate_currency(currency: str, exchange_rate: Optional[float]) -> None:
    if currency not in CURRENCIES:
        raise ValidationError("Invalid currency. Must be USD or ARS")
    if exchange_rate is not None and float(exchange_rate) <= 0:
        raise ValidationError("Exchange rate must be greater than zero")
    if currency == "USD" and exchange_rate is None:
        raise ValidationError("Exchange rate required for USD purchases")


@dataclass(frozen=True)
class PayableRow:
    invoice: SimplePurchase
    supplier_name: str
    days_until_due: Optional[int]
    overdue: bool
    discount_available: bool


class PurchaseService(TransactionalService):
    log = logging.getLogger("stockbook.purchases")

    def __init__(self, repo, inventory, valuation, fx=None, uow_factory=None):
        super().__init__(repo, uow_factory)
        self.inventory = inventory
        self.valuation = valuation
        self.fx = fx

    # ---------- Full purchases ----------
    def create_purchase(
        self,
        supplier_id: int,
        items: Iterable[dict],
        currency: str,
        exchange_rate: Optional[float] = None,
        purchase_date: Optional[date] = None,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Outcome[FullPurchase]:
        """
        items: [{product_id, quantity, unit_cost}]   unit_cost is in the purchase currency

        Stock goes in through the ledger, then every product on the purchase is revalued.
        """
        items = list(items)
        purchase_date = purchase_date or date.today()

        try:
            validate_currency(currency, exchange_rate)
        except ValidationError as e:
            return Outcome.fail(str(e))
        if currency == "ARS" and exchange_rate is None and self.fx is not None:
            try:
                exchange_rate = self.fx.rate_or_none(purchase_date)
            except Exception:
                log.exception("purchase_create_failed step=fx_rate date=%s", purchase_date.isoformat())
                return Outcome.fail("Error creating purchase")

        def work(uow) -> Outcome[FullPurchase]:
            if not items:
                raise ValidationError("Purchase must have at least one item")
            self._require_supplier(uow, supplier_id)
            if due_date is not None and due_date < purchase_date:
                raise ValidationError("Due date cannot be before purchase date")

            checked = []
            for it in items:
                qty = int(it["quantity"])
                unit_cost = float(it["unit_cost"])
                if qty <= 0:
                    raise ValidationError("Quantity must be greater than zero")
                if unit_cost < 0:
                    raise ValidationError("Unit cost must be >= 0")
                product = self.repo.fetch_product(uow.cur, int(it["product_id"]))
                if not product:
                    raise NotFoundError(f"Product not found: {it['product_id']}")
                checked.append((product.id, qty, unit_cost))

            purchase_id = self.repo.insert_purchase(
                uow.cur,
                supplier_id=supplier_id,
                mode="full",
                currency=currency,
                exchange_rate=exchange_rate,
                purchase_date=purchase_date,
                due_date=due_date,
                status=CONFIRMED,
                notes=notes,
            )
            ref = PurchaseRef(purchase_id)
            for product_id, qty, unit_cost in checked:
                self.repo.insert_purchase_line(uow.cur, purchase_id, product_id, qty, unit_cost)
                moved = self.inventory.adjust_within(uow, product_id, "purchase", qty, ref)
                if moved.failed:
                    return Outcome.fail(*moved.errors)

            for product_id in dict.fromkeys(pid for pid, _, _ in checked):
                self.valuation.recalculate_within(uow, product_id)

            purchase = self.repo.fetch_purchase(uow.cur, purchase_id)
            log.info(
                "purchase_created purchase_id=%s supplier_id=%s lines=%s total=%.2f currency=%s rate=%s",
                purchase_id,
                supplier_id,
                len(checked),
                purchase.total_amount,
                currency,
                exchange_rate,
            )
            return Outcome.ok(purchase)

        return self._execute("purchase_create", work, "Error creating purchase")

    # ---------- Simple invoices ----------
    def create_simple_purchase(
        self,
        supplier_id: int,
        invoice_number: str,
        amount: float,
        currency: str,
        due_date: Optional[date],
        exchange_rate: Optional[float] = None,
        purchase_date: Optional[date] = None,
        early_payment_due_date: Optional[date] = None,
        early_payment_discount_pct: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> Outcome[SimplePurchase]:
        purchase_date = purchase_date or date.today()

        def work(uow) -> Outcome[SimplePurchase]:
            validate_currency(currency, exchange_rate)
            number = (invoice_number or "").strip()
            if not number:
                raise ValidationError("Invoice number is required")
            if amount is None or float(amount) <= 0:
                raise ValidationError("Amount must be greater than zero")
            if due_date is None:
                raise ValidationError("Due date is required")
            if due_date < purchase_date:
                raise ValidationError("Due date cannot be before purchase date")

            supplier = self._require_supplier(uow, supplier_id)
            ep_date, ep_pct = self._early_payment_terms(
                supplier, purchase_date, early_payment_due_date, early_payment_discount_pct
            )

            purchase_id = self.repo.insert_purchase(
                uow.cur,
                supplier_id=supplier.id,
                mode="simple",
                invoice_number=number,
                amount=float(amount),
                currency=currency,
                exchange_rate=exchange_rate,
                purchase_date=purchase_date,
                due_date=due_date,
                early_payment_due_date=ep_date,
                early_payment_discount_pct=ep_pct,
                status=PENDING,
                notes=notes,
            )
            log.info(
                "invoice_created purchase_id=%s supplier_id=%s invoice=%s amount=%.2f currency=%s due=%s",
                purchase_id,
                supplier.id,
                number,
                float(amount),
                currency,
                due_date.isoformat(),
            )
            return Outcome.ok(self.repo.fetch_purchase(uow.cur, purchase_id))

        return self._execute("invoice_create", work, "Error creating purchase")

    @staticmethod
    def _early_payment_terms(
        supplier: Supplier,
        purchase_date: date,
        early_payment_due_date: Optional[date],
        early_payment_discount_pct: Optional[float],
    ) -> tuple[Optional[date], Optional[float]]:
        ep_date, ep_pct = early_payment_due_date, early_payment_discount_pct
        # supplier terms only count as a pair
        if supplier.has_early_payment_discount:
            if ep_date is None:
                ep_date = purchase_date + timedelta(days=int(supplier.early_payment_days))
            if ep_pct is None:
                ep_pct = supplier.early_payment_discount_pct

        if ep_pct is not None and not (0 < float(ep_pct) <= 100):
            raise ValidationError("Discount percentage must be between 0 and 100")
        if ep_date is not None and ep_date < purchase_date:
            raise ValidationError("Early payment date cannot be before purchase date")
        return ep_date, (float(ep_pct) if ep_pct is not None else None)

    def mark_as_paid(
        self, purchase_id: int, payment_date: Optional[date] = None, apply_discount: bool = False
    ) -> Outcome[SimplePurchase]:
        payment_date = payment_date or date.today()

        def work(uow) -> Outcome[SimplePurchase]:
            purchase = self.repo.fetch_purchase(uow.cur, purchase_id)
            if not purchase:
                raise NotFoundError("Purchase not found")
            return Outcome.ok(self._pay_within(uow, purchase, payment_date, apply_discount))

        return self._execute("invoice_pay", work, "Error marking purchase as paid")

    def _pay_within(self, uow, purchase: Purchase, payment_date: date, apply_discount: bool) -> SimplePurchase:
        if not isinstance(purchase, SimplePurchase):
            raise ValidationError("Only simple invoices can be marked as paid")
        if not purchase.is_pending:
            raise InvalidTransitionError("Invoice is not pending")
        if payment_date < purchase.purchase_date:
            raise ValidationError("Payment date cannot be before purchase date")
        if apply_discount:
            if purchase.early_payment_due_date is None or not purchase.early_payment_discount_pct:
                raise ValidationError("Invoice has no early payment discount")
            if not purchase.discount_available(payment_date):
                raise ValidationError("Early payment discount window has expired")

        if not self.repo.mark_purchase_paid(uow.cur, purchase.id, payment_date, apply_discount):
            raise InvalidTransitionError("Invoice is not pending")
        applied = self.repo.apply_credit_notes_for_purchase(uow.cur, purchase.id, payment_date)
        log.info(
            "invoice_paid purchase_id=%s paid_at=%s discount=%s credit_notes_applied=%s",
            purchase.id,
            payment_date.isoformat(),
            bool(apply_discount),
            applied,
        )
        return self.repo.fetch_purchase(uow.cur, purchase.id)

    # ---------- Cancellation ----------
    def cancel_purchase(self, purchase_id: int) -> Outcome[Purchase]:
        def work(uow) -> Outcome[Purchase]:
            purchase = self.repo.fetch_purchase(uow.cur, purchase_id)
            if not purchase:
                raise NotFoundError("Purchase not found")
            if purchase.is_cancelled:
                raise InvalidTransitionError("Purchase is already cancelled")

            if isinstance(purchase, SimplePurchase):
                if not self.repo.set_purchase_status(uow.cur, purchase.id, CANCELLED, expected=PENDING):
                    raise InvalidTransitionError("Only pending invoices can be cancelled")
            else:
                ref = PurchaseRef(purchase.id)
                note = f"Purchase #{purchase.id} cancelled"
                for line in purchase.lines:
                    moved = self.inventory.adjust_within(uow, line.product_id, "adjustment", -line.quantity, ref, note)
                    if moved.failed:
                        return Outcome.fail(*moved.errors)
                if not self.repo.set_purchase_status(uow.cur, purchase.id, CANCELLED, expected=CONFIRMED):
                    raise InvalidTransitionError("Purchase is already cancelled")
                for product_id in dict.fromkeys(line.product_id for line in purchase.lines):
                    self.valuation.recalculate_within(uow, product_id)

            log.info("purchase_cancelled purchase_id=%s mode=%s", purchase.id, purchase.mode)
            return Outcome.ok(self.repo.fetch_purchase(uow.cur, purchase.id))

        return self._execute("purchase_cancel", work, "Error cancelling purchase")

    # ---------- Queries ----------
    @staticmethod
    def priority_ordered(purchases: Iterable[Purchase]) -> list[Purchase]:
        return priority_ordered(purchases)

    def get_purchase(self, purchase_id: int) -> Optional[Purchase]:
        return self.repo.get_purchase(purchase_id)

    def list_purchases(self, supplier_id: int | None = None, mode: str | None = None) -> list[Purchase]:
        return self.repo.read(self.repo.fetch_purchases, mode=mode, supplier_id=supplier_id)

    def list_payables(
        self, supplier_id: int | None = None, search: str | None = None, today: date | None = None
    ) -> list[PayableRow]:
        """Simple invoices, pending first and soonest due first."""
        today = today or date.today()

        def fetch(cur):
            invoices = self.repo.fetch_purchases(cur, mode="simple", supplier_id=supplier_id, search=search)
            names = {s.id: s.name for s in self.repo.fetch_suppliers(cur)}
            return invoices, names

        invoices, names = self.repo.read(fetch)
        return [
            PayableRow(
                invoice=inv,
                supplier_name=names.get(inv.supplier_id, ""),
                days_until_due=inv.days_until_due(today),
                overdue=inv.is_overdue(today),
                discount_available=inv.is_pending and inv.discount_available(today),
            )
            for inv in priority_ordered(invoices)
        ]

    def pending_due_in(self, period: str, today: date | None = None, supplier_id: int | None = None) -> list[SimplePurchase]:
        start, end = period_bounds(period, today or date.today())
        invoices = self.repo.read(self.repo.fetch_purchases, mode="simple", supplier_id=supplier_id, status=PENDING)
        return priority_ordered(inv for inv in invoices if _due_in(inv, start, end))

    # ---------- Supplier account ----------
    def mark_supplier_paid(
        self,
        supplier_id: int,
        period: str,
        payment_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> Outcome[list[SimplePurchase]]:
        """Pay every pending invoice of the supplier due in ``period``, then apply its orphan credit notes."""
        today = today or date.today()
        payment_date = payment_date or today

        def work(uow) -> Outcome[list[SimplePurchase]]:
            self._require_supplier(uow, supplier_id)
            start, end = period_bounds(period, today)
            pending = self.repo.fetch_purchases(uow.cur, mode="simple", supplier_id=supplier_id, status=PENDING)
            due = [inv for inv in priority_ordered(pending) if _due_in(inv, start, end)]
            if not due:
                raise ValidationError("Supplier has no pending invoices for this period")

            paid = [self._pay_within(uow, inv, payment_date, apply_discount=False) for inv in due]
            orphans = self.repo.apply_orphan_credit_notes(uow.cur, supplier_id, payment_date)
            log.info(
                "supplier_paid supplier_id=%s period=%s invoices=%s orphan_credit_notes=%s",
                supplier_id,
                period,
                len(paid),
                orphans,
            )
            return Outcome.ok(paid)

        return self._execute("supplier_pay", work, "Error marking supplier invoices as paid")

    def supplier_balance(self, supplier_id: int) -> float:
        """Pending invoices minus pending credit notes, in the reference currency."""

        def fetch(cur):
            invoices = self.repo.fetch_purchases(cur, mode="simple", supplier_id=supplier_id, status=PENDING)
            notes = self.repo.fetch_credit_notes(cur, supplier_id=supplier_id, status=PENDING)
            return invoices, notes

        invoices, notes = self.repo.read(fetch)
        owed = sum(inv.total_in_reference_currency for inv in invoices)
        credited = sum(cn.total_in_reference_currency for cn in notes)
        return round(owed - credited, 2)

    def _require_supplier(self, uow, supplier_id: int) -> Supplier:
        supplier = self.repo.fetch_supplier(uow.cur, supplier_id)
        if not supplier:
            raise NotFoundError("Supplier not found")
        return supplier
