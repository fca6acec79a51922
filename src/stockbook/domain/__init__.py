from .models import (
    Product,
    StockMovement,
    OrderRef,
    PurchaseRef,
    Customer,
    Supplier,
    Order,
    OrderLine,
    SimplePurchase,
    FullPurchase,
    PurchaseLine,
    CreditNote,
    Payment,
)
from .errors import ValidationError, NotFoundError, InsufficientStockError, InvalidTransitionError, FxUnavailableError
from .outcome import Outcome

__all__ = [
    "Product",
    "StockMovement",
    "OrderRef",
    "PurchaseRef",
    "Customer",
    "Supplier",
    "Order",
    "OrderLine",
    "SimplePurchase",
    "FullPurchase",
    "PurchaseLine",
    "CreditNote",
    "Payment",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "InvalidTransitionError",
    "FxUnavailableError",
    "Outcome",
]
