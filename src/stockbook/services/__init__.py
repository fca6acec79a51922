from .fx_service import FxService
from .inventory_service import InventoryService
from .valuation_service import ValuationService
from .contacts_service import ContactsService
from .sales_service import SalesService
from .purchase_service import PurchaseService
from .credit_note_service import CreditNoteService
from .payment_service import PaymentService
from .excel_service import ExcelService, ImportSummary
from .reporting_service import ReportingService

__all__ = [
    "FxService",
    "InventoryService",
    "ValuationService",
    "ContactsService",
    "SalesService",
    "PurchaseService",
    "CreditNoteService",
    "PaymentService",
    "ExcelService",
    "ImportSummary",
    "ReportingService",
]
