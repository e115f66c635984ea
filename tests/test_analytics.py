from datetime import date, datetime
from decimal import Decimal

from fabshop import OrderStatus
from fabshop.analytics import UNKNOWN_MATERIAL, build_dashboard


def _backdate(shop, order, when):
    order.created_at = when
    shop.orders.upsert(order.id, order)
    return order


def test_empty_dashboard(shop):
    summary = build_dashboard(shop)
    assert summary.total_customers == 0
    assert summary.total_revenue == Decimal("0.00")
    assert summary.pending_revenue == Decimal("0.00")
    assert len(summary.monthly_revenue) == 12
    assert [entry.count for entry in summary.status_distribution] == [0] * 6


def test_dashboard_totals(shop, catalog, priced_order):
    second = shop.create_order("Greenleaf Cafe", service_id=catalog.laser_cut.id)
    repeat = shop.create_order("Sharma Interiors", additional_charges=100)
    shop.set_order_status(second.id, OrderStatus.CANCELLED)
    shop.set_order_status(repeat.id, OrderStatus.COMPLETED)
    shop.record_payment(priced_order.id, Decimal("200"))
    shop.record_payment(repeat.id, Decimal("100"))

    summary = build_dashboard(shop)

    assert summary.total_customers == 2
    assert summary.pending_work == 1
    assert summary.cancelled_orders == 1
    assert summary.total_revenue == Decimal("990.00")
    assert summary.received_revenue == Decimal("300.00")
    assert summary.pending_revenue == summary.total_revenue - summary.received_revenue
    counts = {entry.status: entry.count for entry in summary.status_distribution}
    assert counts[OrderStatus.LEAD] == 1
    assert counts[OrderStatus.CANCELLED] == 1
    assert summary.status_distribution[2].label == "Order Confirmed"


def test_monthly_revenue_and_date_filter(shop, catalog):
    january = _backdate(
        shop,
        shop.create_order("Patel Traders", service_id=catalog.laser_cut.id),
        datetime(2024, 1, 15, 12, 0),
    )
    march = _backdate(
        shop,
        shop.create_order("Greenleaf Cafe", additional_charges=250),
        datetime(2024, 3, 2, 9, 30),
    )
    shop.record_payment(january.id, Decimal("300"), payment_date=date(2024, 1, 20))
    shop.record_payment(march.id, Decimal("50"), payment_date=date(2024, 3, 5))

    summary = build_dashboard(shop)
    revenue = {entry.month: entry.revenue for entry in summary.monthly_revenue}
    assert revenue["Jan"] == Decimal("300.00")
    assert revenue["Mar"] == Decimal("250.00")
    assert revenue["Feb"] == Decimal("0.00")

    filtered = build_dashboard(shop, start=date(2024, 3, 1), end=date(2024, 3, 31))
    assert filtered.total_customers == 1
    assert filtered.total_revenue == Decimal("250.00")
    assert filtered.received_revenue == Decimal("50.00")


def test_material_share_and_staff_utilisation(shop, catalog):
    mdf = shop.create_material("MDF 6mm", Decimal("90"))
    first = shop.create_order("A", material_id=catalog.acrylic.id, material_qty=3)
    second = shop.create_order("B", material_id=mdf.id, material_qty=1)
    shop.assign_staff(first.id, [catalog.operator.id, catalog.designer.id])
    shop.assign_staff(second.id, [catalog.operator.id])
    shop.delete_material(mdf.id)

    summary = build_dashboard(shop)

    usage = [(entry.name, entry.quantity, entry.share) for entry in summary.material_usage]
    assert usage == [
        ("Acrylic 3mm", Decimal("3"), Decimal("75.0")),
        (UNKNOWN_MATERIAL, Decimal("1"), Decimal("25.0")),
    ]
    assert [(s.name, s.assignments) for s in summary.staff_utilization] == [
        ("Ravi Kumar", 2),
        ("Anita Sharma", 1),
    ]
