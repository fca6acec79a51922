from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import ClassVar, Iterable, Optional, Union


MOVEMENT_KINDS = ("purchase", "sale", "adjustment")

# Document totals are reported in the local currency; average costs are kept in USD.
REFERENCE_CURRENCY = "ARS"
COST_CURRENCY = "USD"
CURRENCIES = ("USD", "ARS")

ORDER_TYPES = ("cash", "credit")
ORDER_CHANNELS = ("counter", "whatsapp", "mercadolibre")
PAYMENT_METHODS = ("cash", "transfer", "check", "card")
CUSTOMER_TYPES = ("retail", "workshop", "mechanic", "store")

PENDING = "pending"
PAID = "paid"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
APPLIED = "applied"


def to_reference_currency(amount: float, currency: str, exchange_rate: Optional[float]) -> float:
    if currency == REFERENCE_CURRENCY:
        return float(amount)
    return float(amount) * float(exchange_rate or 0)


@dataclass(frozen=True)
class Product:
    id: int
    sku: str
    name: str
    current_stock: int
    cost_unit: Optional[float]
    cost_currency: str
    price_unit: Optional[float]
    min_stock: int = 0
    active: int = 1

    @property
    def low_stock(self) -> bool:
        return self.current_stock < self.min_stock


@dataclass(frozen=True)
class OrderRef:
    id: int
    kind: ClassVar[str] = "order"


@dataclass(frozen=True)
class PurchaseRef:
    id: int
    kind: ClassVar[str] = "purchase"


DocumentRef = Union[OrderRef, PurchaseRef]


def document_ref(kind: Optional[str], ref_id: Optional[int]) -> Optional[DocumentRef]:
    if kind is None or ref_id is None:
        return None
    if kind == OrderRef.kind:
        return OrderRef(int(ref_id))
    if kind == PurchaseRef.kind:
        return PurchaseRef(int(ref_id))
    raise ValueError(f"Unknown document reference type: {kind}")


@dataclass(frozen=True)
class StockMovement:
    id: int
    product_id: int
    kind: str
    quantity: int
    reference: Optional[DocumentRef]
    note: Optional[str]
    created_at: str


@dataclass(frozen=True)
class Customer:
    id: int
    name: str
    customer_type: str
    has_credit_account: bool
    is_counter: bool = False


@dataclass(frozen=True)
class Supplier:
    id: int
    name: str
    payment_term_days: Optional[int] = None
    early_payment_days: Optional[int] = None
    early_payment_discount_pct: Optional[float] = None

    @property
    def has_early_payment_discount(self) -> bool:
        return bool(self.early_payment_days) and bool(self.early_payment_discount_pct)


@dataclass(frozen=True)
class OrderLine:
    id: int
    order_id: int
    product_id: int
    quantity: int
    unit_price: float

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class Order:
    id: int
    customer_id: int
    order_type: str
    status: str
    total_amount: float
    sale_date: date
    channel: Optional[str] = None
    cancel_reason: Optional[str] = None
    lines: tuple[OrderLine, ...] = ()

    @property
    def is_cancelled(self) -> bool:
        return self.status == CANCELLED


@dataclass(frozen=True)
class PurchaseLine:
    id: int
    purchase_id: int
    product_id: int
    quantity: int
    unit_cost: float

    @property
    def subtotal(self) -> float:
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class PurchaseDocument:
    """Fields and currency accessors shared by both purchase modes."""

    id: int
    supplier_id: int
    currency: str
    exchange_rate: Optional[float]
    purchase_date: date
    status: str
    notes: Optional[str]

    mode: ClassVar[str] = ""

    @property
    def total_amount(self) -> float:
        raise NotImplementedError

    @property
    def total_in_reference_currency(self) -> float:
        return to_reference_currency(self.total_amount, self.currency, self.exchange_rate)

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING

    @property
    def is_cancelled(self) -> bool:
        return self.status == CANCELLED

    def days_until_due(self, today: date) -> Optional[int]:
        due = getattr(self, "due_date", None)
        if due is None:
            return None
        return (due - today).days

    def is_overdue(self, today: date) -> bool:
        days = self.days_until_due(today)
        return self.is_pending and days is not None and days < 0


@dataclass(frozen=True)
class SimplePurchase(PurchaseDocument):
    invoice_number: str
    amount: float
    due_date: date
    early_payment_due_date: Optional[date] = None
    early_payment_discount_pct: Optional[float] = None
    paid_with_discount: bool = False
    paid_at: Optional[date] = None

    mode: ClassVar[str] = "simple"

    @property
    def total_amount(self) -> float:
        return float(self.amount)

    def discount_available(self, on: date) -> bool:
        if self.early_payment_due_date is None or not self.early_payment_discount_pct:
            return False
        return on <= self.early_payment_due_date

    @property
    def discount_amount(self) -> float:
        if not self.paid_with_discount or not self.early_payment_discount_pct:
            return 0.0
        return round(self.amount * float(self.early_payment_discount_pct) / 100.0, 2)

    @property
    def amount_payable(self) -> float:
        return float(self.amount) - self.discount_amount


@dataclass(frozen=True)
class FullPurchase(PurchaseDocument):
    lines: tuple[PurchaseLine, ...] = ()
    due_date: Optional[date] = None
    invoice_number: Optional[str] = None

    mode: ClassVar[str] = "full"

    @property
    def total_amount(self) -> float:
        return float(sum(line.subtotal for line in self.lines))


Purchase = Union[SimplePurchase, FullPurchase]


def priority_ordered(documents: Iterable[PurchaseDocument]) -> list[PurchaseDocument]:
    """Pending first, then documents that have a due date, then by due date."""
    def key(doc: PurchaseDocument):
        due = getattr(doc, "due_date", None)
        return (
            0 if doc.is_pending else 1,
            0 if due is not None else 1,
            due or date.max,
        )

    return sorted(documents, key=key)


@dataclass(frozen=True)
class CreditNote:
    id: int
    supplier_id: int
    purchase_id: Optional[int]
    credit_note_number: str
    amount: float
    currency: str
    exchange_rate: Optional[float]
    issue_date: date
    status: str
    applied_at: Optional[date] = None
    notes: Optional[str] = None

    @property
    def total_in_reference_currency(self) -> float:
        return to_reference_currency(self.amount, self.currency, self.exchange_rate)

    @property
    def is_orphan(self) -> bool:
        return self.purchase_id is None


@dataclass(frozen=True)
class Payment:
    id: int
    customer_id: int
    amount: float
    method: str
    payment_date: date
    notes: Optional[str] = None
