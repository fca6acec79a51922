from __future__ import annotations

import logging
from typing import Optional

from stockbook.config import Settings
from stockbook.domain.errors import NotFoundError
from stockbook.domain.models import COST_CURRENCY
from stockbook.domain.outcome import Outcome
from stockbook.services.base import TransactionalService

log = logging.getLogger("stockbook.ledger")


class ValuationService(TransactionalService):
    """Weighted-average unit cost, always expressed in USD.

    Only lines of purchases that are not cancelled contribute. ARS lines are
    converted with their own purchase's rate, or with the configured fallback
    when the purchase was stored without one.
    """

    log = logging.getLogger("stockbook.ledger")

    def __init__(self, repo, settings: Settings | None = None, uow_factory=None):
        super().__init__(repo, uow_factory)
        self.settings = settings or Settings()

    def recalculate_average_cost(self, product_id: int) -> Outcome[Optional[float]]:
        return self._execute(
            "cost_recalculate",
            lambda uow: Outcome.ok(self.recalculate_within(uow, product_id)),
            "Error recalculating cost",
        )

    def recalculate_within(self, uow, product_id: int) -> Optional[float]:
        """Recompute and store the product's cost; returns None when nothing contributes."""
        product = self.repo.fetch_product(uow.cur, product_id, include_inactive=True)
        if not product:
            raise NotFoundError("Product not found")

        total_qty = 0
        total_cost_usd = 0.0
        for qty, unit_cost, currency, rate in self.repo.fetch_costing_lines(uow.cur, product.id):
            total_qty += qty
            total_cost_usd += qty * self.cost_in_usd(unit_cost, currency, rate)

        if total_qty <= 0:
            log.info("cost_unchanged product_id=%s reason=no_purchases cost=%s", product.id, product.cost_unit)
            return None

        cost = round(total_cost_usd / total_qty, 2)
        self.repo.set_product_cost(uow.cur, product.id, cost, COST_CURRENCY)
        log.info("cost_recalculated product_id=%s qty=%s cost_usd=%.2f", product.id, total_qty, cost)
        return cost

    def cost_in_usd(self, unit_cost: float, currency: str, exchange_rate: Optional[float]) -> float:
        if currency == COST_CURRENCY:
            return float(unit_cost)
        rate = float(exchange_rate) if exchange_rate else float(self.settings.fallback_usd_ars)
        return float(unit_cost) / rate
