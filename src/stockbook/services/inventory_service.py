from __future__ import annotations

import logging
from typing import Optional

from stockbook.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from stockbook.domain.models import MOVEMENT_KINDS, DocumentRef, Product, StockMovement
from stockbook.domain.outcome import Outcome
from stockbook.services.base import TransactionalService

log = logging.getLogger("stockbook.ledger")


class InventoryService(TransactionalService):
    log = logging.getLogger("stockbook.ledger")

    # ---------- Ledger ----------
    def adjust(
        self,
        product_id: int,
        kind: str,
        quantity: int,
        reference: Optional[DocumentRef] = None,
        note: Optional[str] = None,
    ) -> Outcome[StockMovement]:
        """Append one signed movement and refresh the product's cached stock."""
        return self._execute(
            "stock_adjust",
            lambda uow: self.adjust_within(uow, product_id, kind, quantity, reference, note),
            "Error adjusting stock",
        )

    def adjust_within(
        self,
        uow,
        product_id: int,
        kind: str,
        quantity: int,
        reference: Optional[DocumentRef] = None,
        note: Optional[str] = None,
    ) -> Outcome[StockMovement]:
        """Same as :meth:`adjust` but joined to the caller's open unit of work.

        Nothing is committed here: the caller decides, based on the returned
        Outcome, whether the whole unit of work is kept. A movement that would
        take stock below zero raises InsufficientStockError instead, which
        abandons the unit of work outright.
        """
        if kind not in MOVEMENT_KINDS:
            return Outcome.fail(f"Invalid movement type: {kind}")
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            return Outcome.fail("Quantity must be a whole number")
        if quantity == 0:
            return Outcome.fail("Quantity cannot be zero")

        product = self.repo.fetch_product(uow.cur, product_id, include_inactive=True)
        if not product:
            return Outcome.fail("Product not found")

        projected = product.current_stock + quantity
        if projected < 0:
            raise InsufficientStockError(
                f"Insufficient stock to perform this operation "
                f"({product.sku}: available {product.current_stock}, requested {-quantity})"
            )

        movement = self.repo.insert_movement(uow.cur, product.id, kind, quantity, reference, note)
        stock = self.repo.recompute_product_stock(uow.cur, product.id)
        log.info(
            "stock_adjusted product_id=%s sku=%s kind=%s qty=%s ref=%s stock=%s",
            product.id,
            product.sku,
            kind,
            quantity,
            f"{reference.kind}:{reference.id}" if reference else None,
            stock,
        )
        return Outcome.ok(movement)

    def movements_for(self, product_id: int) -> list[StockMovement]:
        return self.repo.read(self.repo.fetch_movements_for_product, product_id)

    def stock_level(self, product_id: int) -> int:
        product = self.repo.read(self.repo.fetch_product, product_id, include_inactive=True)
        if not product:
            raise NotFoundError("Product not found")
        return int(product.current_stock)

    def verify_stock_integrity(self) -> list[tuple[str, int, int]]:
        """(sku, cached stock, ledger sum) for every product whose cache drifted."""
        return self.repo.read(self.repo.fetch_stock_drift)

    # ---------- Catalog ----------
    def list_products(self) -> list[Product]:
        return self.repo.list_products()

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.repo.get_product_by_id(product_id)

    def get_product_by_sku(self, sku: str) -> Product:
        p = self.repo.get_product_by_sku((sku or "").strip())
        if not p:
            raise NotFoundError("Product not found")
        return p

    def add_product(
        self,
        sku: str,
        name: str,
        price_unit: Optional[float],
        cost_unit: Optional[float] = None,
        min_stock: int = 0,
    ) -> Outcome[Product]:
        def work(uow) -> Outcome[Product]:
            clean_sku, clean_name = self._validate_product_fields(sku, name, price_unit, min_stock)
            if cost_unit is not None and float(cost_unit) < 0:
                raise ValidationError("Cost must be >= 0")
            if self.repo.fetch_product_by_sku(uow.cur, clean_sku):
                raise ValidationError(f"SKU already exists: {clean_sku}")
            product_id = self.repo.insert_product(
                uow.cur,
                clean_sku,
                clean_name,
                None if price_unit is None else float(price_unit),
                None if cost_unit is None else float(cost_unit),
                int(min_stock),
            )
            log.info("product_created product_id=%s sku=%s", product_id, clean_sku)
            return Outcome.ok(self.repo.fetch_product(uow.cur, product_id))

        return self._execute("product_create", work, "Error creating product")

    def update_product(self, product_id: int, name: str, price_unit: Optional[float], min_stock: int) -> Outcome[Product]:
        def work(uow) -> Outcome[Product]:
            product = self.repo.fetch_product(uow.cur, product_id, include_inactive=True)
            if not product:
                raise NotFoundError("Product not found")
            _, clean_name = self._validate_product_fields(product.sku, name, price_unit, min_stock)
            self.repo.update_product_details(
                uow.cur,
                product.id,
                clean_name,
                None if price_unit is None else float(price_unit),
                int(min_stock),
            )
            return Outcome.ok(self.repo.fetch_product(uow.cur, product.id))

        return self._execute("product_update", work, "Error updating product")

    def deactivate_product(self, product_id: int) -> Outcome[None]:
        def work(uow) -> Outcome[None]:
            if not self.repo.deactivate_product(uow.cur, product_id):
                raise NotFoundError("Product not found")
            log.info("product_deactivated product_id=%s", product_id)
            return Outcome.ok()

        return self._execute("product_deactivate", work, "Error deactivating product")

    @staticmethod
    def _validate_product_fields(sku, name, price_unit, min_stock) -> tuple[str, str]:
        sku = (sku or "").strip()
        name = (name or "").strip()
        if not sku or not name:
            raise ValidationError("SKU and Name are required")
        if price_unit is not None and float(price_unit) < 0:
            raise ValidationError("Price must be >= 0")
        if int(min_stock) < 0:
            raise ValidationError("Min stock must be >= 0")
        return sku, name
