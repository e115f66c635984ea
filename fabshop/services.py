"""Service layer that implements the shop's use-cases."""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import (
    Any,
    Callable,
    ContextManager,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)
from uuid import uuid4

from . import ledger, pipeline, pricing
from .domain import (
    Expense,
    ExpenseType,
    Machine,
    MachineStatus,
    Material,
    Order,
    OrderStaffAssignment,
    OrderStatus,
    Payment,
    PaymentMode,
    Service,
    Staff,
    Supplier,
    assignment_id,
    to_decimal,
    to_money,
)
from .repository import InMemoryRepository, RecordNotFoundError, Repository

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXPENSE_PERIODS = ("all", "week", "month", "3months")

_UNSET: Any = object()


@dataclass(slots=True)
class OrderDetails:
    """Read model of an order with its references resolved.

    Dangling references (a deleted material, service or machine) resolve to
    ``None``.
    """

    order: Order
    material: Optional[Material]
    service: Optional[Service]
    machine: Optional[Machine]
    staff: List[Staff] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)

    @property
    def total_paid(self) -> Decimal:
        return ledger.total_paid(self.payments)

    @property
    def remaining(self) -> Decimal:
        return ledger.remaining(self.order, self.payments)


@dataclass(slots=True)
class StaffAssignmentChange:
    """Result of replacing an order's staff assignments."""

    order_id: str
    added: Tuple[str, ...]
    removed: Tuple[str, ...]


def _require_text(value: str, label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValueError(f"{label} is required")
    return cleaned


def _non_negative(value: Any, label: str) -> Decimal:
    amount = to_decimal(value)
    if amount < 0:
        raise ValueError(f"{label} cannot be negative")
    return amount


def _positive_money(value: Any, label: str) -> Decimal:
    amount = to_money(value)
    if amount <= 0:
        raise ValueError(f"{label} must be greater than zero")
    return amount


def matches_search(order: Order, search: Optional[str]) -> bool:
    """Client name (case-insensitive) or phone substring match."""

    if not search:
        return True
    term = search.strip()
    if not term:
        return True
    if term.lower() in order.client_name.lower():
        return True
    return bool(order.phone) and term in order.phone


def in_date_range(day: date, start: Optional[date], end: Optional[date]) -> bool:
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def expense_period(
    window: str, today: Optional[date] = None
) -> Tuple[Optional[date], Optional[date]]:
    """Date range for the expense page presets.

    ``week`` is the current Monday-to-Sunday week, ``month`` the current
    calendar month and ``3months`` the current month plus the two before it.
    """

    today = today or date.today()
    if window == "all":
        return None, None
    if window == "week":
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    month_start = today.replace(day=1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    month_end = next_month - timedelta(days=1)
    if window == "month":
        return month_start, month_end
    if window == "3months":
        year, month = month_start.year, month_start.month - 2
        if month < 1:
            year, month = year - 1, month + 12
        return date(year, month, 1), month_end
    raise ValueError(f"Unknown expense period {window!r}")


def _or_memory(repo: Optional[Repository[T]], kind: str) -> Repository[T]:
    # an empty store is falsy, so test for None explicitly
    return InMemoryRepository(kind) if repo is None else repo


class ShopService:
    """Facade that exposes shop use-cases to clients."""

    def __init__(
        self,
        material_repo: Optional[Repository[Material]] = None,
        service_repo: Optional[Repository[Service]] = None,
        machine_repo: Optional[Repository[Machine]] = None,
        staff_repo: Optional[Repository[Staff]] = None,
        order_repo: Optional[Repository[Order]] = None,
        order_staff_repo: Optional[Repository[OrderStaffAssignment]] = None,
        payment_repo: Optional[Repository[Payment]] = None,
        expense_repo: Optional[Repository[Expense]] = None,
        supplier_repo: Optional[Repository[Supplier]] = None,
        *,
        transitions: Optional[pipeline.TransitionTable] = None,
        atomic: Optional[Callable[[], ContextManager[Any]]] = None,
    ) -> None:
        self.materials = _or_memory(material_repo, "material")
        self.services = _or_memory(service_repo, "service")
        self.machines = _or_memory(machine_repo, "machine")
        self.staff = _or_memory(staff_repo, "staff member")
        self.orders = _or_memory(order_repo, "order")
        self.order_staff = _or_memory(order_staff_repo, "staff assignment")
        self.payments = _or_memory(payment_repo, "payment")
        self.expenses = _or_memory(expense_repo, "expense")
        self.suppliers = _or_memory(supplier_repo, "supplier")
        self.transitions = transitions or pipeline.DEFAULT_TRANSITIONS
        self._atomic = atomic or nullcontext

    @classmethod
    def from_database(cls, database: Any, **kwargs: Any) -> "ShopService":
        return cls(
            material_repo=database.materials,
            service_repo=database.services,
            machine_repo=database.machines,
            staff_repo=database.staff,
            order_repo=database.orders,
            order_staff_repo=database.order_staff,
            payment_repo=database.payments,
            expense_repo=database.expenses,
            supplier_repo=database.suppliers,
            atomic=database.atomic,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------
    def create_material(
        self,
        name: str,
        selling_price: Any,
        *,
        thickness: Any = 0,
        purchase_price: Any = 0,
        current_stock: Any = 0,
        min_quantity: Any = 0,
    ) -> Material:
        material = Material(
            id=str(uuid4()),
            name=_require_text(name, "Material name"),
            selling_price=to_money(_non_negative(selling_price, "Selling price")),
            thickness=_non_negative(thickness, "Thickness"),
            purchase_price=to_money(_non_negative(purchase_price, "Purchase price")),
            current_stock=_non_negative(current_stock, "Current stock"),
            min_quantity=_non_negative(min_quantity, "Minimum quantity"),
        )
        self.materials.add(material.id, material)
        logger.info("Created material %s (%s)", material.name, material.id)
        return material

    def update_material(self, material_id: str, **changes: Any) -> Material:
        material = self.materials.get(material_id)
        if "name" in changes:
            material.name = _require_text(changes["name"], "Material name")
        for money_field in ("selling_price", "purchase_price"):
            if money_field in changes:
                value = _non_negative(changes[money_field], money_field.replace("_", " "))
                setattr(material, money_field, to_money(value))
        for quantity_field in ("thickness", "current_stock", "min_quantity"):
            if quantity_field in changes:
                value = _non_negative(
                    changes[quantity_field], quantity_field.replace("_", " ")
                )
                setattr(material, quantity_field, value)
        self.materials.upsert(material.id, material)
        logger.info("Updated material %s", material.id)
        return material

    def delete_material(self, material_id: str) -> None:
        # orders keep their material_id; details resolve it to None
        self.materials.remove(material_id)
        logger.info("Deleted material %s", material_id)

    def list_materials(self) -> List[Material]:
        return sorted(self.materials.list(), key=lambda item: item.name.lower())

    def low_stock_materials(self) -> List[Material]:
        return [item for item in self.list_materials() if item.is_low_stock]

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------
    def create_service(self, name: str, price: Any, *, description: str = "") -> Service:
        service = Service(
            id=str(uuid4()),
            name=_require_text(name, "Service name"),
            price=to_money(_non_negative(price, "Service price")),
            description=description,
        )
        self.services.add(service.id, service)
        logger.info("Created service %s (%s)", service.name, service.id)
        return service

    def update_service(
        self,
        service_id: str,
        *,
        name: Optional[str] = None,
        price: Any = None,
        description: Optional[str] = None,
    ) -> Service:
        service = self.services.get(service_id)
        if name is not None:
            service.name = _require_text(name, "Service name")
        if price is not None:
            service.price = to_money(_non_negative(price, "Service price"))
        if description is not None:
            service.description = description
        self.services.upsert(service.id, service)
        logger.info("Updated service %s", service.id)
        return service

    def delete_service(self, service_id: str) -> None:
        self.services.remove(service_id)
        logger.info("Deleted service %s", service_id)

    def list_services(self) -> List[Service]:
        return sorted(self.services.list(), key=lambda item: item.name.lower())

    # ------------------------------------------------------------------
    # Machines
    # ------------------------------------------------------------------
    def register_machine(
        self,
        name: str,
        *,
        model: str = "",
        status: Any = MachineStatus.AVAILABLE,
    ) -> Machine:
        machine = Machine(
            id=str(uuid4()),
            name=_require_text(name, "Machine name"),
            model=model,
            status=MachineStatus(status),
        )
        self.machines.add(machine.id, machine)
        logger.info("Registered machine %s (%s)", machine.name, machine.id)
        return machine

    def update_machine(
        self,
        machine_id: str,
        *,
        name: Optional[str] = None,
        model: Optional[str] = None,
        status: Any = None,
    ) -> Machine:
        machine = self.machines.get(machine_id)
        if name is not None:
            machine.name = _require_text(name, "Machine name")
        if model is not None:
            machine.model = model
        if status is not None:
            machine.status = MachineStatus(status)
        self.machines.upsert(machine.id, machine)
        logger.info("Updated machine %s", machine.id)
        return machine

    def delete_machine(self, machine_id: str) -> None:
        self.machines.remove(machine_id)
        logger.info("Deleted machine %s", machine_id)

    def list_machines(self) -> List[Machine]:
        return sorted(self.machines.list(), key=lambda item: item.name.lower())

    def available_machines(self) -> List[Machine]:
        """Machines offered for selection when a new order is created."""

        return [
            machine
            for machine in self.list_machines()
            if machine.status == MachineStatus.AVAILABLE
        ]

    # ------------------------------------------------------------------
    # Staff
    # ------------------------------------------------------------------
    def create_staff(
        self,
        name: str,
        *,
        role: str = "",
        contact_info: str = "",
        is_available: bool = True,
    ) -> Staff:
        member = Staff(
            id=str(uuid4()),
            name=_require_text(name, "Staff name"),
            role=role,
            contact_info=contact_info,
            is_available=is_available,
        )
        self.staff.add(member.id, member)
        logger.info("Created staff member %s (%s)", member.name, member.id)
        return member

    def update_staff(
        self,
        staff_id: str,
        *,
        name: Optional[str] = None,
        role: Optional[str] = None,
        contact_info: Optional[str] = None,
        is_available: Optional[bool] = None,
    ) -> Staff:
        member = self.staff.get(staff_id)
        if name is not None:
            member.name = _require_text(name, "Staff name")
        if role is not None:
            member.role = role
        if contact_info is not None:
            member.contact_info = contact_info
        if is_available is not None:
            member.is_available = is_available
        self.staff.upsert(member.id, member)
        logger.info("Updated staff member %s", member.id)
        return member

    def delete_staff(self, staff_id: str) -> None:
        with self._atomic():
            for link in self.order_staff.filter(lambda link: link.staff_id == staff_id):
                self.order_staff.remove(link.id)
            self.staff.remove(staff_id)
        logger.info("Deleted staff member %s", staff_id)

    def list_staff(self) -> List[Staff]:
        return sorted(self.staff.list(), key=lambda item: item.name.lower())

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def _reprice(self, order: Order) -> Order:
        material = self.materials.find(order.material_id)
        service = self.services.find(order.service_id)
        return pricing.reprice(order, material, service)

    def _check_references(
        self,
        material_id: Optional[str],
        service_id: Optional[str],
        machine_id: Optional[str],
    ) -> None:
        if material_id is not None and material_id not in self.materials:
            raise RecordNotFoundError(f"Material {material_id!r} does not exist")
        if service_id is not None and service_id not in self.services:
            raise RecordNotFoundError(f"Service {service_id!r} does not exist")
        if machine_id is not None and machine_id not in self.machines:
            raise RecordNotFoundError(f"Machine {machine_id!r} does not exist")

    @staticmethod
    def _check_quantity(material_id: Optional[str], material_qty: Any) -> Optional[Decimal]:
        quantity = None if material_qty is None else to_decimal(material_qty)
        if material_id is not None and quantity is None:
            raise ValueError("Material quantity is required when a material is selected")
        return quantity

    def create_order(
        self,
        client_name: str,
        *,
        phone: str = "",
        location: str = "",
        material_id: Optional[str] = None,
        material_qty: Any = None,
        service_id: Optional[str] = None,
        machine_id: Optional[str] = None,
        additional_charges: Any = 0,
        status: Any = OrderStatus.LEAD,
    ) -> Order:
        quantity = self._check_quantity(material_id, material_qty)
        charges = to_money(additional_charges or 0)
        pricing.validate_price_inputs(quantity, charges)
        self._check_references(material_id, service_id, machine_id)
        order = Order(
            id=str(uuid4()),
            client_name=_require_text(client_name, "Client name"),
            phone=phone.strip(),
            location=location.strip(),
            material_id=material_id,
            material_qty=quantity,
            service_id=service_id,
            machine_id=machine_id,
            additional_charges=charges,
            status=pipeline.parse_status(status),
        )
        self._reprice(order)
        self.orders.add(order.id, order)
        logger.info(
            "Created order %s for %s (final price %s)",
            order.id,
            order.client_name,
            order.final_price,
        )
        return order

    def update_order(
        self,
        order_id: str,
        *,
        client_name: Optional[str] = None,
        phone: Optional[str] = None,
        location: Optional[str] = None,
        material_id: Optional[str] = _UNSET,
        material_qty: Any = _UNSET,
        service_id: Optional[str] = _UNSET,
        machine_id: Optional[str] = _UNSET,
        additional_charges: Any = None,
        status: Any = None,
    ) -> Order:
        """Apply edits to an order.

        The base price is recomputed whenever the material, quantity or
        service changes; the final price always follows from the base price
        and the additional charges. Reference fields use a sentinel so that
        ``None`` clears a selection while omitting the argument leaves it
        untouched.
        """

        order = self.orders.get(order_id)
        new_material_id = order.material_id if material_id is _UNSET else material_id
        new_service_id = order.service_id if service_id is _UNSET else service_id
        new_machine_id = order.machine_id if machine_id is _UNSET else machine_id
        raw_qty = order.material_qty if material_qty is _UNSET else material_qty
        quantity = self._check_quantity(new_material_id, raw_qty)
        charges = (
            order.additional_charges
            if additional_charges is None
            else to_money(additional_charges)
        )
        pricing.validate_price_inputs(quantity, charges)
        # an unchanged id may point at a deleted record; only new ones must exist
        self._check_references(
            None if new_material_id == order.material_id else new_material_id,
            None if new_service_id == order.service_id else new_service_id,
            None if new_machine_id == order.machine_id else new_machine_id,
        )
        target_status = None
        if status is not None:
            target_status = pipeline.parse_status(status)
            if target_status != order.status and not self.transitions.can_transition(
                order.status, target_status
            ):
                raise pipeline.TransitionNotAllowedError(
                    f"Order cannot move from {order.status.value!r} "
                    f"to {target_status.value!r}"
                )

        selection_changed = (new_material_id, quantity, new_service_id) != (
            order.material_id,
            order.material_qty,
            order.service_id,
        )

        if client_name is not None:
            order.client_name = _require_text(client_name, "Client name")
        if phone is not None:
            order.phone = phone.strip()
        if location is not None:
            order.location = location.strip()
        order.material_id = new_material_id
        order.material_qty = quantity
        order.service_id = new_service_id
        order.machine_id = new_machine_id
        order.additional_charges = charges
        if target_status is not None:
            order.status = target_status
        if selection_changed:
            self._reprice(order)
        order.updated_at = datetime.utcnow()
        self.orders.upsert(order.id, order)
        logger.info("Updated order %s (final price %s)", order.id, order.final_price)
        return order

    def delete_order(self, order_id: str) -> None:
        self.orders.get(order_id)
        with self._atomic():
            for payment in self.payments_for_order(order_id):
                self.payments.remove(payment.id)
            for link in self._assignments(order_id):
                self.order_staff.remove(link.id)
            self.orders.remove(order_id)
        logger.info("Deleted order %s", order_id)

    def set_order_status(self, order_id: str, status: Any) -> Order:
        order = self.orders.get(order_id)
        previous = order.status
        pipeline.set_status(order, status, self.transitions)
        order.updated_at = datetime.utcnow()
        self.orders.upsert(order.id, order)
        logger.info(
            "Order %s moved from %s to %s", order.id, previous.value, order.status.value
        )
        return order

    def assign_machine(self, order_id: str, machine_id: Optional[str]) -> Order:
        order = self.orders.get(order_id)
        if machine_id is not None and machine_id != order.machine_id:
            self._check_references(None, None, machine_id)
        order.machine_id = machine_id
        order.updated_at = datetime.utcnow()
        self.orders.upsert(order.id, order)
        logger.info("Assigned machine %s to order %s", machine_id, order.id)
        return order

    def _assignments(self, order_id: str) -> List[OrderStaffAssignment]:
        return self.order_staff.filter(lambda link: link.order_id == order_id)

    def assigned_staff_ids(self, order_id: str) -> List[str]:
        return [link.staff_id for link in self._assignments(order_id)]

    def assign_staff(
        self, order_id: str, staff_ids: Iterable[str]
    ) -> StaffAssignmentChange:
        """Make ``staff_ids`` the exact set of staff assigned to the order.

        Only the difference against the current assignments is written, in a
        single transaction when the store supports one.
        """

        self.orders.get(order_id)
        wanted = list(dict.fromkeys(staff_ids))
        for staff_id in wanted:
            if staff_id not in self.staff:
                raise RecordNotFoundError(f"Staff member {staff_id!r} does not exist")
        current = set(self.assigned_staff_ids(order_id))
        added = tuple(staff_id for staff_id in wanted if staff_id not in current)
        removed = tuple(sorted(current.difference(wanted)))
        with self._atomic():
            for staff_id in removed:
                self.order_staff.remove(assignment_id(order_id, staff_id))
            for staff_id in added:
                link = OrderStaffAssignment(order_id=order_id, staff_id=staff_id)
                self.order_staff.add(link.id, link)
        logger.info(
            "Staff for order %s: %d added, %d removed", order_id, len(added), len(removed)
        )
        return StaffAssignmentChange(order_id=order_id, added=added, removed=removed)

    def payments_for_order(self, order_id: str) -> List[Payment]:
        return self.payments.filter(lambda payment: payment.order_id == order_id)

    def record_payment(
        self,
        order_id: str,
        amount: Any,
        *,
        payment_mode: Any = PaymentMode.CASH,
        payment_date: Optional[date] = None,
    ) -> Payment:
        """Book a payment against an order.

        The balance check runs before anything is written; a rejected payment
        leaves the store untouched.
        """

        order = self.orders.get(order_id)
        payment = Payment(
            id=str(uuid4()),
            order_id=order.id,
            amount=to_money(amount),
            payment_mode=PaymentMode(payment_mode),
            payment_date=payment_date or date.today(),
        )
        history = self.payments_for_order(order.id)
        ledger.record_payment(order, history, payment)
        self.payments.add(payment.id, payment)
        logger.info(
            "Recorded %s payment of %s for order %s",
            payment.payment_mode.value,
            payment.amount,
            order.id,
        )
        return payment

    def order_details(self, order_id: str) -> OrderDetails:
        order = self.orders.get(order_id)
        staff = [
            member
            for member in (self.staff.find(sid) for sid in self.assigned_staff_ids(order_id))
            if member is not None
        ]
        return OrderDetails(
            order=order,
            material=self.materials.find(order.material_id),
            service=self.services.find(order.service_id),
            machine=self.machines.find(order.machine_id),
            staff=sorted(staff, key=lambda member: member.name.lower()),
            payments=ledger.payment_history(self.payments_for_order(order_id)),
        )

    def list_orders(
        self,
        *,
        search: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[Order]:
        """Orders matching the search and creation date range, newest first."""

        orders = self.orders.filter(
            lambda order: matches_search(order, search)
            and in_date_range(order.created_at.date(), start, end)
        )
        orders.sort(key=lambda order: order.created_at, reverse=True)
        return orders

    def list_order_details(self, **filters: Any) -> List[OrderDetails]:
        return [self.order_details(order.id) for order in self.list_orders(**filters)]

    def kanban_board(self, **filters: Any) -> Dict[OrderStatus, List[OrderDetails]]:
        columns = pipeline.bucket_orders(self.list_orders(**filters))
        return {
            status: [self.order_details(order.id) for order in orders]
            for status, orders in columns.items()
        }

    # ------------------------------------------------------------------
    # Expenses and suppliers
    # ------------------------------------------------------------------
    def create_expense(
        self,
        expense_type: Any,
        amount: Any,
        *,
        expense_date: Optional[date] = None,
        description: str = "",
    ) -> Expense:
        expense = Expense(
            id=str(uuid4()),
            type=ExpenseType(expense_type),
            amount=_positive_money(amount, "Expense amount"),
            expense_date=expense_date or date.today(),
            description=description,
        )
        self.expenses.add(expense.id, expense)
        logger.info("Recorded %s expense of %s", expense.type.value, expense.amount)
        return expense

    def update_expense(
        self,
        expense_id: str,
        *,
        expense_type: Any = None,
        amount: Any = None,
        expense_date: Optional[date] = None,
        description: Optional[str] = None,
    ) -> Expense:
        expense = self.expenses.get(expense_id)
        if expense_type is not None:
            expense.type = ExpenseType(expense_type)
        if amount is not None:
            expense.amount = _positive_money(amount, "Expense amount")
        if expense_date is not None:
            expense.expense_date = expense_date
        if description is not None:
            expense.description = description
        self.expenses.upsert(expense.id, expense)
        logger.info("Updated expense %s", expense.id)
        return expense

    def delete_expense(self, expense_id: str) -> None:
        self.expenses.remove(expense_id)
        logger.info("Deleted expense %s", expense_id)

    def list_expenses(
        self, *, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[Expense]:
        expenses = self.expenses.filter(
            lambda expense: in_date_range(expense.expense_date, start, end)
        )
        expenses.sort(key=lambda expense: expense.expense_date, reverse=True)
        return expenses

    @staticmethod
    def total_expenses(expenses: Sequence[Expense]) -> Decimal:
        return to_money(sum((expense.amount for expense in expenses), Decimal("0")))

    def create_supplier(
        self,
        name: str,
        *,
        contact_info: str = "",
        outstanding_payment: Any = 0,
    ) -> Supplier:
        supplier = Supplier(
            id=str(uuid4()),
            name=_require_text(name, "Supplier name"),
            contact_info=contact_info,
            outstanding_payment=to_money(
                _non_negative(outstanding_payment or 0, "Outstanding payment")
            ),
        )
        self.suppliers.add(supplier.id, supplier)
        logger.info("Created supplier %s (%s)", supplier.name, supplier.id)
        return supplier

    def update_supplier(
        self,
        supplier_id: str,
        *,
        name: Optional[str] = None,
        contact_info: Optional[str] = None,
        outstanding_payment: Any = None,
    ) -> Supplier:
        supplier = self.suppliers.get(supplier_id)
        if name is not None:
            supplier.name = _require_text(name, "Supplier name")
        if contact_info is not None:
            supplier.contact_info = contact_info
        if outstanding_payment is not None:
            supplier.outstanding_payment = to_money(
                _non_negative(outstanding_payment, "Outstanding payment")
            )
        self.suppliers.upsert(supplier.id, supplier)
        logger.info("Updated supplier %s", supplier.id)
        return supplier

    def delete_supplier(self, supplier_id: str) -> None:
        self.suppliers.remove(supplier_id)
        logger.info("Deleted supplier %s", supplier_id)

    def list_suppliers(self) -> List[Supplier]:
        return sorted(self.suppliers.list(), key=lambda item: item.name.lower())

    def total_outstanding(self) -> Decimal:
        return to_money(
            sum((supplier.outstanding_payment for supplier in self.suppliers), Decimal("0"))
        )


__all__ = [
    "ShopService",
    "OrderDetails",
    "StaffAssignmentChange",
    "EXPENSE_PERIODS",
    "expense_period",
    "matches_search",
    "in_date_range",
]
