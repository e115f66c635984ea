"""Core data structures for the fabrication shop dashboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

E = TypeVar("E", bound="LenientEnum")


class LenientEnum(str, Enum):
    """String enum that can coerce unknown stored values to a safe default."""

    @classmethod
    def default(cls: Type[E]) -> E:  # pragma: no cover - overridden
        raise NotImplementedError

    @classmethod
    def coerce(cls: Type[E], value: Any) -> E:
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            fallback = cls.default()
            logger.warning(
                "Unknown %s value %r, falling back to %r",
                cls.__name__,
                value,
                fallback.value,
            )
            return fallback


class OrderStatus(LenientEnum):
    """Pipeline stages of an order, in display order."""

    LEAD = "lead"
    CONTACTED = "contacted"
    CONFIRMED = "confirmed"
    PROGRESSING = "progressing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def default(cls) -> "OrderStatus":
        return cls.LEAD

    @property
    def label(self) -> str:
        return {
            OrderStatus.LEAD: "Lead",
            OrderStatus.CONTACTED: "Contacted",
            OrderStatus.CONFIRMED: "Order Confirmed",
            OrderStatus.PROGRESSING: "In Production",
            OrderStatus.COMPLETED: "Completed",
            OrderStatus.CANCELLED: "Cancelled",
        }[self]


class MachineStatus(LenientEnum):
    AVAILABLE = "available"
    MAINTENANCE = "maintenance"
    UNAVAILABLE = "unavailable"

    @classmethod
    def default(cls) -> "MachineStatus":
        return cls.AVAILABLE


class PaymentMode(LenientEnum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    CREDIT = "credit"

    @classmethod
    def default(cls) -> "PaymentMode":
        return cls.CASH


class ExpenseType(LenientEnum):
    BILL = "bill"
    MATERIAL_PURCHASE = "material_purchase"
    SUPPLIER_PAYMENT = "supplier_payment"
    SALARY = "salary"
    OTHER = "other"

    @classmethod
    def default(cls) -> "ExpenseType":
        return cls.OTHER

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


def to_decimal(value: Any) -> Decimal:
    """Convert a number or numeric string to a finite Decimal.

    Unparseable and non-finite input (``NaN``, ``Infinity``) raises
    ``ValueError`` so callers can report it like any other bad input.
    """

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{value!r} is not a valid number") from exc
    if not amount.is_finite():
        raise ValueError(f"{value!r} is not a finite number")
    return amount


def to_money(value: Any) -> Decimal:
    """Convert a number or numeric string to a two-place Decimal."""

    amount = to_decimal(value)
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"{value!r} is too large for a money amount") from exc


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def _date(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(str(value)[:10])


def _datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class Record:
    """Mixin that maps dataclasses to and from plain storage records."""

    def to_record(self) -> Dict[str, Any]:
        return {f.name: _encode(getattr(self, f.name)) for f in fields(self)}  # type: ignore[arg-type]


@dataclass(slots=True)
class Material(Record):
    """Sheet or stock material sold as part of an order."""

    id: str
    name: str
    selling_price: Decimal
    thickness: Decimal = Decimal("0")
    purchase_price: Decimal = Decimal("0")
    current_stock: Decimal = Decimal("0")
    min_quantity: Decimal = Decimal("0")

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock < self.min_quantity

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Material":
        return cls(
            id=data["id"],
            name=data["name"],
            selling_price=to_decimal(data["selling_price"]),
            thickness=to_decimal(data.get("thickness", 0)),
            purchase_price=to_decimal(data.get("purchase_price", 0)),
            current_stock=to_decimal(data.get("current_stock", 0)),
            min_quantity=to_decimal(data.get("min_quantity", 0)),
        )


@dataclass(slots=True)
class Service(Record):
    """A priced shop service such as laser cutting or engraving."""

    id: str
    name: str
    price: Decimal
    description: str = ""

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Service":
        return cls(
            id=data["id"],
            name=data["name"],
            price=to_decimal(data["price"]),
            description=data.get("description") or "",
        )


@dataclass(slots=True)
class Machine(Record):
    """A cutting or routing machine and its availability."""

    id: str
    name: str
    model: str = ""
    status: MachineStatus = MachineStatus.AVAILABLE

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Machine":
        return cls(
            id=data["id"],
            name=data["name"],
            model=data.get("model") or "",
            status=MachineStatus.coerce(data.get("status")),
        )


@dataclass(slots=True)
class Staff(Record):
    """A shop employee who can be assigned to orders."""

    id: str
    name: str
    role: str = ""
    contact_info: str = ""
    is_available: bool = True

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Staff":
        return cls(
            id=data["id"],
            name=data["name"],
            role=data.get("role") or "",
            contact_info=data.get("contact_info") or "",
            is_available=bool(data.get("is_available", True)),
        )


@dataclass(slots=True)
class OrderStaffAssignment(Record):
    """Association between an order and an assigned staff member."""

    order_id: str
    staff_id: str

    @property
    def id(self) -> str:
        return assignment_id(self.order_id, self.staff_id)

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "OrderStaffAssignment":
        return cls(order_id=data["order_id"], staff_id=data["staff_id"])


def assignment_id(order_id: str, staff_id: str) -> str:
    return f"{order_id}:{staff_id}"


@dataclass(slots=True)
class Order(Record):
    """A customer job carrying pricing and pipeline status.

    ``final_price`` is derived from ``base_price`` and ``additional_charges``
    and cannot be assigned directly.
    """

    id: str
    client_name: str
    phone: str = ""
    location: str = ""
    material_id: Optional[str] = None
    material_qty: Optional[Decimal] = None
    service_id: Optional[str] = None
    machine_id: Optional[str] = None
    base_price: Decimal = Decimal("0.00")
    additional_charges: Decimal = Decimal("0.00")
    status: OrderStatus = OrderStatus.LEAD
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    @property
    def final_price(self) -> Decimal:
        return to_money(self.base_price + self.additional_charges)

    def to_record(self) -> Dict[str, Any]:
        record = Record.to_record(self)
        # stored alongside its inputs for reporting queries
        record["final_price"] = str(self.final_price)
        return record

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Order":
        updated_at = data.get("updated_at")
        return cls(
            id=data["id"],
            client_name=data["client_name"],
            phone=data.get("phone") or "",
            location=data.get("location") or "",
            material_id=data.get("material_id"),
            material_qty=_optional_decimal(data.get("material_qty")),
            service_id=data.get("service_id"),
            machine_id=data.get("machine_id"),
            base_price=to_money(data.get("base_price") or 0),
            additional_charges=to_money(data.get("additional_charges") or 0),
            status=OrderStatus.coerce(data.get("status")),
            created_at=_datetime(data["created_at"]),
            updated_at=_datetime(updated_at) if updated_at else None,
        )


@dataclass(slots=True)
class Payment(Record):
    """A single payment received against an order."""

    id: str
    order_id: str
    amount: Decimal
    payment_mode: PaymentMode = PaymentMode.CASH
    payment_date: date = field(default_factory=date.today)

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Payment":
        payment_date = data.get("payment_date")
        return cls(
            id=data["id"],
            order_id=data["order_id"],
            amount=to_money(data["amount"]),
            payment_mode=PaymentMode.coerce(data.get("payment_mode")),
            payment_date=_date(payment_date) if payment_date else date.today(),
        )


@dataclass(slots=True)
class Expense(Record):
    """A shop running cost such as a bill or salary."""

    id: str
    type: ExpenseType
    amount: Decimal
    expense_date: date = field(default_factory=date.today)
    description: str = ""
    created_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Expense":
        return cls(
            id=data["id"],
            type=ExpenseType.coerce(data.get("type")),
            amount=to_money(data["amount"]),
            expense_date=_date(data["expense_date"]),
            description=data.get("description") or "",
            created_at=_datetime(data["created_at"]),
        )


@dataclass(slots=True)
class Supplier(Record):
    """A material supplier and what the shop still owes them."""

    id: str
    name: str
    contact_info: str = ""
    outstanding_payment: Decimal = Decimal("0.00")
    created_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Supplier":
        return cls(
            id=data["id"],
            name=data["name"],
            contact_info=data.get("contact_info") or "",
            outstanding_payment=to_money(data.get("outstanding_payment") or 0),
            created_at=_datetime(data["created_at"]),
        )


__all__ = [
    "CENT",
    "OrderStatus",
    "MachineStatus",
    "PaymentMode",
    "ExpenseType",
    "Material",
    "Service",
    "Machine",
    "Staff",
    "OrderStaffAssignment",
    "Order",
    "Payment",
    "Expense",
    "Supplier",
    "assignment_id",
    "to_money",
    "to_decimal",
]
