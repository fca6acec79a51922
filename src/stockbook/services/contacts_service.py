from __future__ import annotations

import logging
from typing import Optional

from stockbook.domain.errors import NotFoundError, ValidationError
from stockbook.domain.models import CUSTOMER_TYPES, Customer, Supplier
from stockbook.domain.outcome import Outcome
from stockbook.services.base import TransactionalService

log = logging.getLogger("stockbook.contacts")


class ContactsService(TransactionalService):
    log = logging.getLogger("stockbook.contacts")

    # ---------- Customers ----------
    def add_customer(self, name: str, customer_type: str = "retail", has_credit_account: bool = False) -> Outcome[Customer]:
        def work(uow) -> Outcome[Customer]:
            clean = (name or "").strip()
            if not clean:
                raise ValidationError("Customer name is required")
            if customer_type not in CUSTOMER_TYPES:
                raise ValidationError(f"Invalid customer type: {customer_type}")
            customer_id = self.repo.insert_customer(uow.cur, clean, customer_type, has_credit_account)
            log.info("customer_created customer_id=%s type=%s credit=%s", customer_id, customer_type, has_credit_account)
            return Outcome.ok(self.repo.fetch_customer(uow.cur, customer_id))

        return self._execute("customer_create", work, "Error creating customer")

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        return self.repo.get_customer(customer_id)

    def counter_customer(self) -> Customer:
        customer = self.repo.read(self.repo.fetch_counter_customer)
        if not customer:
            raise NotFoundError("Counter customer is missing")
        return customer

    def set_credit_account(self, customer_id: int, enabled: bool) -> Outcome[Customer]:
        def work(uow) -> Outcome[Customer]:
            customer = self.repo.fetch_customer(uow.cur, customer_id)
            if not customer:
                raise NotFoundError("Customer not found")
            if customer.is_counter:
                raise ValidationError("The counter customer cannot have a credit account")
            self.repo.set_credit_account(uow.cur, customer.id, enabled)
            return Outcome.ok(self.repo.fetch_customer(uow.cur, customer.id))

        return self._execute("customer_credit_account", work, "Error updating customer")

    # ---------- Suppliers ----------
    def add_supplier(
        self,
        name: str,
        payment_term_days: Optional[int] = None,
        early_payment_days: Optional[int] = None,
        early_payment_discount_pct: Optional[float] = None,
    ) -> Outcome[Supplier]:
        def work(uow) -> Outcome[Supplier]:
            clean = (name or "").strip()
            if not clean:
                raise ValidationError("Supplier name is required")
            if payment_term_days is not None and int(payment_term_days) <= 0:
                raise ValidationError("Payment term days must be greater than zero")
            if early_payment_days is not None and int(early_payment_days) <= 0:
                raise ValidationError("Early payment days must be greater than zero")
            if early_payment_discount_pct is not None and not (0 < float(early_payment_discount_pct) <= 100):
                raise ValidationError("Discount percentage must be between 0 and 100")
            if self.repo.fetch_supplier_by_name(uow.cur, clean):
                raise ValidationError(f"Supplier already exists: {clean}")

            supplier_id = self.repo.insert_supplier(
                uow.cur,
                clean,
                None if payment_term_days is None else int(payment_term_days),
                None if early_payment_days is None else int(early_payment_days),
                None if early_payment_discount_pct is None else float(early_payment_discount_pct),
            )
            log.info("supplier_created supplier_id=%s name=%s", supplier_id, clean)
            return Outcome.ok(self.repo.fetch_supplier(uow.cur, supplier_id))

        return self._execute("supplier_create", work, "Error creating supplier")

    def get_supplier(self, supplier_id: int) -> Optional[Supplier]:
        return self.repo.get_supplier(supplier_id)

    def list_suppliers(self) -> list[Supplier]:
        return self.repo.read(self.repo.fetch_suppliers)
