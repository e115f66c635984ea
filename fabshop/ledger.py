"""Payment ledger rules for a single order."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, MutableSequence

from .domain import Order, Payment, to_money


class LedgerError(ValueError):
    """Base exception for rejected payments."""


class InvalidPaymentAmountError(LedgerError):
    """Raised when a payment amount is zero or negative."""


class PaymentExceedsBalanceError(LedgerError):
    """Raised when a payment is larger than the order's remaining balance."""

    def __init__(self, amount: Decimal, remaining_balance: Decimal) -> None:
        super().__init__(
            f"Payment amount {amount} exceeds the remaining balance "
            f"({remaining_balance})"
        )
        self.amount = amount
        self.remaining_balance = remaining_balance


def total_paid(payments: Iterable[Payment]) -> Decimal:
    return to_money(sum((payment.amount for payment in payments), Decimal("0")))


def remaining(order: Order, payments: Iterable[Payment]) -> Decimal:
    """Final price minus everything paid so far. Not clamped at zero."""

    return to_money(order.final_price - total_paid(payments))


def check_payment(order: Order, payments: Iterable[Payment], amount: Decimal) -> None:
    if amount <= 0:
        raise InvalidPaymentAmountError("Payment amount must be greater than zero")
    balance = remaining(order, payments)
    if amount > balance:
        raise PaymentExceedsBalanceError(amount, balance)


def record_payment(
    order: Order,
    payments: MutableSequence[Payment],
    new_payment: Payment,
) -> Payment:
    """Append ``new_payment`` to ``payments`` if the balance allows it.

    Nothing is mutated when the payment is rejected.
    """

    if new_payment.order_id != order.id:
        raise LedgerError(
            f"Payment for order {new_payment.order_id!r} cannot be booked "
            f"against order {order.id!r}"
        )
    check_payment(order, payments, new_payment.amount)
    payments.append(new_payment)
    return new_payment


def payment_history(payments: Iterable[Payment]) -> List[Payment]:
    """Payments ordered by payment date, newest first, for display."""

    return sorted(payments, key=lambda payment: payment.payment_date, reverse=True)


__all__ = [
    "LedgerError",
    "InvalidPaymentAmountError",
    "PaymentExceedsBalanceError",
    "total_paid",
    "remaining",
    "check_payment",
    "record_payment",
    "payment_history",
]
