"""Aggregations behind the analytics dashboard."""

from __future__ import annotations

import calendar
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from .domain import OrderStatus, to_money
from .ledger import total_paid
from .pipeline import PIPELINE
from .services import ShopService, in_date_range

UNKNOWN_MATERIAL = "Unknown material"


@dataclass(slots=True)
class MonthlyRevenue:
    month: str
    revenue: Decimal


@dataclass(slots=True)
class StatusCount:
    status: OrderStatus
    count: int

    @property
    def label(self) -> str:
        return self.status.label


@dataclass(slots=True)
class MaterialUsage:
    material_id: str
    name: str
    quantity: Decimal
    share: Decimal


@dataclass(slots=True)
class StaffUtilization:
    staff_id: str
    name: str
    assignments: int


@dataclass(slots=True)
class DashboardSummary:
    """Summary cards plus the series the charts are drawn from."""

    total_customers: int
    pending_work: int
    cancelled_orders: int
    total_revenue: Decimal
    received_revenue: Decimal
    monthly_revenue: List[MonthlyRevenue] = field(default_factory=list)
    status_distribution: List[StatusCount] = field(default_factory=list)
    material_usage: List[MaterialUsage] = field(default_factory=list)
    staff_utilization: List[StaffUtilization] = field(default_factory=list)

    @property
    def pending_revenue(self) -> Decimal:
        return to_money(self.total_revenue - self.received_revenue)


def build_dashboard(
    service: ShopService,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> DashboardSummary:
    orders = service.list_orders(start=start, end=end)
    payments = service.payments.filter(
        lambda payment: in_date_range(payment.payment_date, start, end)
    )

    monthly: Dict[int, Decimal] = {month: Decimal("0") for month in range(1, 13)}
    for order in orders:
        monthly[order.created_at.month] += order.final_price

    status_counts = Counter(order.status for order in orders)

    usage: Dict[str, Decimal] = {}
    for order in orders:
        if order.material_id and order.material_qty:
            usage[order.material_id] = usage.get(order.material_id, Decimal("0")) + order.material_qty
    total_usage = sum(usage.values(), Decimal("0"))
    material_usage = []
    for material_id, quantity in usage.items():
        material = service.materials.find(material_id)
        material_usage.append(
            MaterialUsage(
                material_id=material_id,
                name=material.name if material else UNKNOWN_MATERIAL,
                quantity=quantity,
                share=(quantity / total_usage * 100).quantize(Decimal("0.1")),
            )
        )
    material_usage.sort(key=lambda entry: entry.quantity, reverse=True)

    order_ids = {order.id for order in orders}
    staff_counts = Counter(
        link.staff_id
        for link in service.order_staff
        if link.order_id in order_ids
    )
    staff_utilization = []
    for staff_id, count in staff_counts.most_common():
        member = service.staff.find(staff_id)
        if member is None:
            continue
        staff_utilization.append(
            StaffUtilization(staff_id=staff_id, name=member.name, assignments=count)
        )

    return DashboardSummary(
        total_customers=len({order.client_name for order in orders}),
        pending_work=sum(
            1
            for order in orders
            if order.status not in {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
        ),
        cancelled_orders=status_counts.get(OrderStatus.CANCELLED, 0),
        total_revenue=to_money(sum((order.final_price for order in orders), Decimal("0"))),
        received_revenue=total_paid(payments),
        monthly_revenue=[
            MonthlyRevenue(month=calendar.month_abbr[month], revenue=to_money(amount))
            for month, amount in monthly.items()
        ],
        status_distribution=[
            StatusCount(status=status, count=status_counts.get(status, 0))
            for status in PIPELINE
        ],
        material_usage=material_usage,
        staff_utilization=staff_utilization,
    )


__all__ = [
    "DashboardSummary",
    "MonthlyRevenue",
    "StatusCount",
    "MaterialUsage",
    "StaffUtilization",
    "build_dashboard",
]
