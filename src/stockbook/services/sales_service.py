from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional

from stockbook.domain.errors import InvalidTransitionError, NotFoundError, ValidationError
from stockbook.domain.models import ORDER_CHANNELS, ORDER_TYPES, Order, OrderRef
from stockbook.domain.outcome import Outcome
from stockbook.services.base import TransactionalService

log = logging.getLogger("stockbook.sales")


class SalesService(TransactionalService):
    log = logging.getLogger("stockbook.sales")

    def __init__(self, repo, inventory, counter_customer_id: int | None = None, uow_factory=None):
        super().__init__(repo, uow_factory)
        self.inventory = inventory
        self.counter_customer_id = counter_customer_id

    def create_order(
        self,
        customer_id: Optional[int],
        lines: Iterable[dict],
        order_type: str,
        sale_date: Optional[date] = None,
        channel: Optional[str] = None,
    ) -> Outcome[Order]:
        """
        lines: [{product_id, quantity, unit_price?}]

        A line without unit_price sells at the product's current price (0 if unpriced).
        """
        lines = list(lines)
        sale_date = sale_date or date.today()

        def work(uow) -> Outcome[Order]:
            if order_type not in ORDER_TYPES:
                raise ValidationError("Invalid order type. Must be cash or credit")
            if channel is not None and channel not in ORDER_CHANNELS:
                raise ValidationError(f"Invalid channel: {channel}")
            if not lines:
                raise ValidationError("Order must have at least one item")

            customer = self._resolve_customer(uow, customer_id, order_type)

            priced = []
            for line in lines:
                qty = int(line["quantity"])
                if qty <= 0:
                    raise ValidationError("Quantity must be greater than zero")
                product = self.repo.fetch_product(uow.cur, int(line["product_id"]))
                if not product:
                    raise NotFoundError(f"Product not found: {line['product_id']}")
                unit_price = line.get("unit_price")
                if unit_price is None:
                    unit_price = product.price_unit or 0.0
                if float(unit_price) < 0:
                    raise ValidationError("Unit price must be >= 0")
                priced.append((product, qty, float(unit_price)))

            order_id = self.repo.insert_order(uow.cur, customer.id, order_type, sale_date, channel)
            ref = OrderRef(order_id)
            for product, qty, unit_price in priced:
                self.repo.insert_order_line(uow.cur, order_id, product.id, qty, unit_price)
                moved = self.inventory.adjust_within(uow, product.id, "sale", -qty, ref)
                if moved.failed:
                    return Outcome.fail(*moved.errors)

            total = self.repo.refresh_order_total(uow.cur, order_id)
            log.info(
                "order_created order_id=%s customer_id=%s type=%s lines=%s total=%.2f",
                order_id,
                customer.id,
                order_type,
                len(priced),
                total,
            )
            return Outcome.ok(self.repo.fetch_order(uow.cur, order_id))

        return self._execute("order_create", work, "Error creating order")

    def cancel_order(self, order_id: int, reason: Optional[str] = None) -> Outcome[Order]:
        def work(uow) -> Outcome[Order]:
            order = self.repo.fetch_order(uow.cur, order_id)
            if not order:
                raise NotFoundError("Order not found")
            if order.is_cancelled:
                raise InvalidTransitionError("Order is already cancelled")

            ref = OrderRef(order.id)
            note = reason or f"Order #{order.id} cancelled"
            for line in order.lines:
                moved = self.inventory.adjust_within(uow, line.product_id, "adjustment", line.quantity, ref, note)
                if moved.failed:
                    return Outcome.fail(*moved.errors)

            if not self.repo.set_order_cancelled(uow.cur, order.id, reason):
                raise InvalidTransitionError("Order is already cancelled")
            log.info("order_cancelled order_id=%s lines=%s reason=%s", order.id, len(order.lines), reason)
            return Outcome.ok(self.repo.fetch_order(uow.cur, order.id))

        return self._execute("order_cancel", work, "Error cancelling order")

    def get_order(self, order_id: int) -> Optional[Order]:
        return self.repo.get_order(order_id)

    def list_orders(self, customer_id: int | None = None) -> list[Order]:
        def fetch(cur):
            return [self.repo.fetch_order(cur, oid) for oid in self.repo.fetch_order_ids(cur, customer_id)]

        return self.repo.read(fetch)

    def _resolve_customer(self, uow, customer_id: Optional[int], order_type: str):
        if customer_id is None:
            if order_type == "credit":
                raise ValidationError("Credit orders require a customer")
            customer = (
                self.repo.fetch_customer(uow.cur, self.counter_customer_id)
                if self.counter_customer_id is not None
                else self.repo.fetch_counter_customer(uow.cur)
            )
            if not customer:
                raise NotFoundError("Counter customer is missing")
            return customer

        customer = self.repo.fetch_customer(uow.cur, customer_id)
        if not customer:
            raise NotFoundError("Customer not found")
        if order_type == "credit" and not customer.has_credit_account:
            raise ValidationError("Customer does not have credit account enabled")
        return customer
