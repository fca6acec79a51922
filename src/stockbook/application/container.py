from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from stockbook.config import Settings
from stockbook.domain.errors import NotFoundError
from stockbook.repositories.sqlite_repo import SqliteRepository
from stockbook.services.contacts_service import ContactsService
from stockbook.services.credit_note_service import CreditNoteService
from stockbook.services.excel_service import ExcelService
from stockbook.services.fx_service import FxService
from stockbook.services.inventory_service import InventoryService
from stockbook.services.payment_service import PaymentService
from stockbook.services.purchase_service import PurchaseService
from stockbook.services.reporting_service import ReportingService
from stockbook.services.sales_service import SalesService
from stockbook.services.valuation_service import ValuationService


@dataclass(frozen=True)
class AppContainer:
    settings: Settings
    repo: SqliteRepository
    fx: FxService
    inventory: InventoryService
    valuation: ValuationService
    contacts: ContactsService
    sales: SalesService
    purchases: PurchaseService
    credit_notes: CreditNoteService
    payments: PaymentService
    excel: ExcelService
    reporting: ReportingService
    counter_customer_id: int


def build_container(db_path: Path | str, settings: Settings | None = None) -> AppContainer:
    settings = settings or Settings()
    repo = SqliteRepository(db_path, busy_timeout=settings.busy_timeout_seconds)
    repo.init_db()

    counter = repo.read(repo.fetch_counter_customer)
    if counter is None:
        raise NotFoundError("Counter customer is missing; database migrations did not complete.")

    fx = FxService(repo, sources=settings.fx_sources)
    inventory = InventoryService(repo)
    valuation = ValuationService(repo, settings)
    contacts = ContactsService(repo)
    sales = SalesService(repo, inventory, counter_customer_id=counter.id)
    purchases = PurchaseService(repo, inventory, valuation, fx=fx)
    credit_notes = CreditNoteService(repo)
    payments = PaymentService(repo)
    excel = ExcelService(repo, inventory)
    reporting = ReportingService(repo, purchases, fx=fx, settings=settings)

    return AppContainer(
        settings=settings,
        repo=repo,
        fx=fx,
        inventory=inventory,
        valuation=valuation,
        contacts=contacts,
        sales=sales,
        purchases=purchases,
        credit_notes=credit_notes,
        payments=payments,
        excel=excel,
        reporting=reporting,
        counter_customer_id=counter.id,
    )
