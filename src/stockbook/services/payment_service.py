from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from stockbook.domain.errors import NotFoundError, ValidationError
from stockbook.domain.models import PAYMENT_METHODS, Payment
from stockbook.domain.outcome import Outcome
from stockbook.services.base import TransactionalService

log = logging.getLogger("stockbook.payments")


class PaymentService(TransactionalService):
    log = logging.getLogger("stockbook.payments")

    def register_payment(
        self,
        customer_id: int,
        amount: float,
        method: str,
        payment_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> Outcome[Payment]:
        """Record money received on a customer's credit account. Overpaying is allowed."""
        payment_date = payment_date or date.today()

        def work(uow) -> Outcome[Payment]:
            customer = self.repo.fetch_customer(uow.cur, customer_id)
            if not customer:
                raise NotFoundError("Customer not found")
            if not customer.has_credit_account:
                raise ValidationError("Customer does not have credit account enabled")
            if amount is None or float(amount) <= 0:
                raise ValidationError("Amount must be greater than zero")
            if method not in PAYMENT_METHODS:
                raise ValidationError("Invalid payment method")

            payment = self.repo.insert_payment(uow.cur, customer.id, float(amount), method, payment_date, notes)
            log.info(
                "payment_registered payment_id=%s customer_id=%s amount=%.2f method=%s",
                payment.id,
                customer.id,
                payment.amount,
                method,
            )
            return Outcome.ok(payment)

        return self._execute("payment_register", work, "Error registering payment")

    def customer_balance(self, customer_id: int) -> float:
        def fetch(cur):
            customer = self.repo.fetch_customer(cur, customer_id)
            if not customer:
                raise NotFoundError("Customer not found")
            if not customer.has_credit_account:
                return 0.0
            return self.repo.credit_orders_total(cur, customer.id) - self.repo.payments_total(cur, customer.id)

        return round(self.repo.read(fetch), 2)

    def list_payments(self, customer_id: int) -> list[Payment]:
        return self.repo.read(self.repo.fetch_payments, customer_id)
