from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from stockbook.domain.errors import InvalidTransitionError, NotFoundError, ValidationError
from stockbook.domain.models import APPLIED, CANCELLED, CreditNote
from stockbook.domain.outcome import Outcome
from stockbook.services.base import TransactionalService
from stockbook.services.purchase_service import validate_currency

log = logging.getLogger("stockbook.purchases")


class CreditNoteService(TransactionalService):
    log = logging.getLogger("stockbook.purchases")

    def create_credit_note(
        self,
        supplier_id: int,
        credit_note_number: str,
        amount: float,
        issue_date: Optional[date] = None,
        purchase_id: Optional[int] = None,
        currency: str = "ARS",
        exchange_rate: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> Outcome[CreditNote]:
        """A note linked to an invoice takes the invoice's currency and rate."""
        issue_date = issue_date or date.today()

        def work(uow) -> Outcome[CreditNote]:
            number = (credit_note_number or "").strip()
            if not number:
                raise ValidationError("Credit note number is required")
            if amount is None or float(amount) <= 0:
                raise ValidationError("Amount must be greater than zero")
            if not self.repo.fetch_supplier(uow.cur, supplier_id):
                raise NotFoundError("Supplier not found")
            if self.repo.fetch_credit_note_by_number(uow.cur, number):
                raise ValidationError(f"Credit note number already exists: {number}")

            note_currency, note_rate = currency, exchange_rate
            if purchase_id is not None:
                purchase = self.repo.fetch_purchase(uow.cur, purchase_id)
                if not purchase:
                    raise NotFoundError("Purchase not found")
                if purchase.supplier_id != supplier_id:
                    raise ValidationError("Invoice belongs to a different supplier")
                if purchase.is_cancelled:
                    raise ValidationError("Cannot issue a credit note against a cancelled purchase")
                note_currency, note_rate = purchase.currency, purchase.exchange_rate
            else:
                validate_currency(note_currency, note_rate)

            credit_note_id = self.repo.insert_credit_note(
                uow.cur,
                supplier_id,
                purchase_id,
                number,
                float(amount),
                note_currency,
                note_rate,
                issue_date,
                notes,
            )
            log.info(
                "credit_note_created credit_note_id=%s supplier_id=%s purchase_id=%s amount=%.2f currency=%s",
                credit_note_id,
                supplier_id,
                purchase_id,
                float(amount),
                note_currency,
            )
            return Outcome.ok(self.repo.fetch_credit_note(uow.cur, credit_note_id))

        return self._execute("credit_note_create", work, "Error creating credit note")

    def apply_credit_note(self, credit_note_id: int, applied_on: Optional[date] = None) -> Outcome[CreditNote]:
        applied_on = applied_on or date.today()
        return self._transition(credit_note_id, APPLIED, applied_on, "credit_note_apply", "Error applying credit note")

    def cancel_credit_note(self, credit_note_id: int) -> Outcome[CreditNote]:
        return self._transition(credit_note_id, CANCELLED, None, "credit_note_cancel", "Error cancelling credit note")

    def _transition(
        self, credit_note_id: int, status: str, applied_at: Optional[date], operation: str, failure_message: str
    ) -> Outcome[CreditNote]:
        def work(uow) -> Outcome[CreditNote]:
            note = self.repo.fetch_credit_note(uow.cur, credit_note_id)
            if not note:
                raise NotFoundError("Credit note not found")
            if not self.repo.set_credit_note_status(uow.cur, note.id, status, applied_at):
                raise InvalidTransitionError(f"Credit note is {note.status}; only pending credit notes can change")
            log.info("credit_note_%s credit_note_id=%s", status, note.id)
            return Outcome.ok(self.repo.fetch_credit_note(uow.cur, note.id))

        return self._execute(operation, work, failure_message)

    def get_credit_note(self, credit_note_id: int) -> Optional[CreditNote]:
        return self.repo.get_credit_note(credit_note_id)

    def list_credit_notes(self, supplier_id: int | None = None, status: str | None = None) -> list[CreditNote]:
        return self.repo.read(self.repo.fetch_credit_notes, supplier_id=supplier_id, status=status)
