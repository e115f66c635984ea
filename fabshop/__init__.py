"""Operations dashboard for a CNC fabrication shop.

This package provides the data model, order pricing, payment ledger and
status pipeline rules, SQLite persistence and the service layer behind the
shop's inventory, orders, expenses and analytics pages.
"""

from .domain import (
    Expense,
    ExpenseType,
    Machine,
    MachineStatus,
    Material,
    Order,
    OrderStatus,
    Payment,
    PaymentMode,
    Service,
    Staff,
    Supplier,
)
from .services import OrderDetails, ShopService

__all__ = [
    "Expense",
    "ExpenseType",
    "Machine",
    "MachineStatus",
    "Material",
    "Order",
    "OrderStatus",
    "Payment",
    "PaymentMode",
    "Service",
    "Staff",
    "Supplier",
    "OrderDetails",
    "ShopService",
]
