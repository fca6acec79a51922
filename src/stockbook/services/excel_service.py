from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from openpyxl import load_workbook

from stockbook.domain.errors import ValidationError
from stockbook.domain.outcome import Outcome
from stockbook.services.base import TransactionalService

log = logging.getLogger("stockbook.import")

REQUIRED_COLUMNS = ("sku", "name", "cost_usd", "price", "stock")


@dataclass
class ImportSummary:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    movements: int = 0
    errors: list[str] = field(default_factory=list)


def _optional_float(value) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return float(value)


class ExcelService(TransactionalService):
    log = logging.getLogger("stockbook.import")

    def __init__(self, repo, inventory, uow_factory=None):
        super().__init__(repo, uow_factory)
        self.inventory = inventory

    def import_stock_sheet(self, path: str | Path) -> ImportSummary:
        """
        The sheet holds ABSOLUTE stock, not a delta.
        Headers:
          sku | name | cost_usd | price | stock

        Each row is reconciled in its own transaction: the product is created or
        updated, then one adjustment movement brings its stock to the target.
        Re-importing the same sheet posts no new movements. A sheet missing one
        of the headers imports nothing and reports the missing column in errors.
        """
        summary = ImportSummary()
        try:
            self._import_rows(Path(path), summary)
        except ValidationError as e:
            summary.errors.append(str(e))
            log.warning("stock_import_rejected path=%s error=%s", path, e)
            return summary

        log.info(
            "stock_import_done path=%s created=%s updated=%s skipped=%s movements=%s errors=%s",
            path,
            summary.created,
            summary.updated,
            summary.skipped,
            summary.movements,
            len(summary.errors),
        )
        return summary

    def _import_rows(self, path: Path, summary: ImportSummary) -> None:
        for row_number, row in self._rows(path):
            sku = str(row.get("sku") or "").strip()
            name = str(row.get("name") or "").strip()
            if not sku or not name:
                summary.skipped += 1
                continue

            try:
                raw_stock = row.get("stock")
                if raw_stock is None or str(raw_stock).strip() == "":
                    summary.skipped += 1
                    continue
                target = int(float(raw_stock))
                if target < 0:
                    summary.skipped += 1
                    continue
                cost = _optional_float(row.get("cost_usd"))
                price = _optional_float(row.get("price"))
            except (TypeError, ValueError) as e:
                summary.errors.append(f"Row {row_number}: {e}")
                log.warning("stock_import_row_invalid row=%s sku=%s error=%s", row_number, sku, e)
                continue

            outcome = self._execute(
                "stock_import_row",
                lambda uow: self._reconcile_within(uow, sku, name, cost, price, target),
                f"Error importing row {row_number}",
            )
            if outcome.failed:
                summary.errors.append(f"Row {row_number} ({sku}): {outcome.message}")
                continue

            created, moved = outcome.value
            if created:
                summary.created += 1
            else:
                summary.updated += 1
            if moved:
                summary.movements += 1

    def _reconcile_within(
        self, uow, sku: str, name: str, cost: Optional[float], price: Optional[float], target: int
    ) -> Outcome[tuple[bool, bool]]:
        if (cost is not None and cost < 0) or (price is not None and price < 0):
            raise ValidationError("Cost and price must be >= 0")

        product = self.repo.fetch_product_by_sku(uow.cur, sku)
        if product is None:
            product_id = self.repo.insert_product(uow.cur, sku, name, price, cost, 0)
            current, created = 0, True
        else:
            product_id = product.id
            self.repo.update_product_details(
                uow.cur,
                product.id,
                name,
                price if price is not None else product.price_unit,
                product.min_stock,
            )
            if product.cost_unit is None and cost is not None:
                self.repo.set_product_cost(uow.cur, product.id, cost, "USD")
            current, created = product.current_stock, False

        delta = target - current
        if delta:
            moved = self.inventory.adjust_within(uow, product_id, "adjustment", delta, None, f"Stock import: {sku}")
            if moved.failed:
                return Outcome.fail(*moved.errors)
        return Outcome.ok((created, bool(delta)))

    def _rows(self, path: Path) -> Iterator[tuple[int, dict]]:
        if path.suffix.lower() == ".csv":
            yield from self._csv_rows(path)
        else:
            yield from self._xlsx_rows(path)

    @staticmethod
    def _check_headers(headers) -> None:
        present = {str(h).strip().lower() for h in headers if h is not None}
        for r in REQUIRED_COLUMNS:
            if r not in present:
                raise ValidationError(f"Missing column header: {r}")

    def _csv_rows(self, path: Path) -> Iterator[tuple[int, dict]]:
        with path.open(newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh)
            self._check_headers(reader.fieldnames or [])
            for row_number, raw in enumerate(reader, start=2):
                yield row_number, {str(k).strip().lower(): v for k, v in raw.items() if k is not None}

    def _xlsx_rows(self, path: Path) -> Iterator[tuple[int, dict]]:
        wb = load_workbook(path, read_only=True, data_only=True)
        try:
            ws = wb.active
            rows = ws.iter_rows(values_only=True)
            header_row = next(rows, None) or ()
            self._check_headers(header_row)
            headers = [str(h).strip().lower() if h is not None else None for h in header_row]
            for row_number, values in enumerate(rows, start=2):
                yield row_number, {h: v for h, v in zip(headers, values) if h}
        finally:
            wb.close()
