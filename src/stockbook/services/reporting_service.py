from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from stockbook.config import Settings
from stockbook.domain.models import Product


@dataclass(frozen=True)
class InventoryValuation:
    products: int
    units: int
    cost_usd: float
    cost_ars: float
    retail_ars: float
    usd_ars: float


class ReportingService:
    def __init__(self, repo, purchases, fx=None, settings: Settings | None = None):
        self.repo = repo
        self.purchases = purchases
        self.fx = fx
        self.settings = settings or Settings()

    def valuation_rate(self, on: Optional[date] = None) -> float:
        if self.fx is not None:
            rate = self.fx.rate_or_none(on or date.today())
            if rate is not None:
                return rate
        return float(self.settings.fallback_usd_ars)

    def inventory_valuation(self, usd_ars: Optional[float] = None) -> InventoryValuation:
        """Stock on hand valued at average cost (USD, and ARS at ``usd_ars``) and at sale price."""
        rate = float(usd_ars) if usd_ars else self.valuation_rate()
        products = self.repo.list_products()
        cost_usd = sum(p.current_stock * (p.cost_unit or 0.0) for p in products)
        retail = sum(p.current_stock * (p.price_unit or 0.0) for p in products)
        return InventoryValuation(
            products=len(products),
            units=sum(p.current_stock for p in products),
            cost_usd=round(cost_usd, 2),
            cost_ars=round(cost_usd * rate, 2),
            retail_ars=round(retail, 2),
            usd_ars=rate,
        )

    def low_stock(self, limit: int = 10) -> list[Product]:
        return self.repo.read(self.repo.fetch_low_stock, limit)

    def export_payables_excel(self, path: str, today: Optional[date] = None) -> None:
        today = today or date.today()
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, end_row: int, end_col: int):
            ref = f"A1:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        # -------- 1) Payables --------
        ws = wb.active
        ws.title = "Payables"
        ws.append([
            "Invoice", "Supplier", "Status", "Purchase Date", "Due Date", "Days To Due",
            "Currency", "Amount", "Rate", "Amount ARS", "Early Pay Until", "Discount %", "Paid At",
        ])
        bold_row(ws, 1)

        for row in self.purchases.list_payables(today=today):
            inv = row.invoice
            ws.append([
                inv.invoice_number,
                row.supplier_name,
                "overdue" if row.overdue else inv.status,
                inv.purchase_date,
                inv.due_date,
                row.days_until_due,
                inv.currency,
                float(inv.amount),
                inv.exchange_rate,
                float(inv.total_in_reference_currency),
                inv.early_payment_due_date,
                inv.early_payment_discount_pct,
                inv.paid_at,
            ])
            r = ws.max_row
            money(ws[f"H{r}"])
            money(ws[f"J{r}"])

        ws.freeze_panes = "A2"
        set_widths(ws, {
            "A": 16, "B": 26, "C": 11, "D": 14, "E": 14, "F": 11, "G": 9,
            "H": 16, "I": 10, "J": 18, "K": 16, "L": 11, "M": 14,
        })
        if ws.max_row >= 2:
            add_table(ws, "PayablesTable", ws.max_row, 13)

        # -------- 2) Suppliers --------
        ws2 = wb.create_sheet("Suppliers")
        ws2.append(["Supplier", "Payment Term Days", "Early Pay Days", "Discount %", "Balance ARS"])
        bold_row(ws2, 1)
        for s in self.repo.read(self.repo.fetch_suppliers):
            ws2.append([
                s.name,
                s.payment_term_days,
                s.early_payment_days,
                s.early_payment_discount_pct,
                self.purchases.supplier_balance(s.id),
            ])
            money(ws2[f"E{ws2.max_row}"])
        ws2.freeze_panes = "A2"
        set_widths(ws2, {"A": 28, "B": 18, "C": 15, "D": 11, "E": 18})
        if ws2.max_row >= 2:
            add_table(ws2, "SuppliersTable", ws2.max_row, 5)

        # -------- 3) Stock --------
        ws3 = wb.create_sheet("Stock")
        ws3.append(["SKU", "Product Name", "Stock", "Min Stock", "Cost USD", "Price", "Low"])
        bold_row(ws3, 1)
        for p in self.repo.list_products():
            ws3.append([
                p.sku,
                p.name,
                int(p.current_stock),
                int(p.min_stock),
                p.cost_unit,
                p.price_unit,
                "yes" if p.low_stock else "",
            ])
            money(ws3[f"E{ws3.max_row}"])
            money(ws3[f"F{ws3.max_row}"])
        ws3.freeze_panes = "A2"
        set_widths(ws3, {"A": 14, "B": 34, "C": 8, "D": 10, "E": 12, "F": 12, "G": 6})
        if ws3.max_row >= 2:
            add_table(ws3, "StockTable", ws3.max_row, 7)

        wb.save(path)
