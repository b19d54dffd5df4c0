"""ORM models exposed for easy imports."""

from .approval import ApprovalStep
from .expense import Expense
from .fuel_price import FuelPrice
from .invoice import Invoice
from .supplier import Supplier
from .user import User

__all__ = [
    "ApprovalStep",
    "Expense",
    "FuelPrice",
    "Invoice",
    "Supplier",
    "User",
]
