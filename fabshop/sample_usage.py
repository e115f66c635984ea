"""Demonstration script for the fabrication shop dashboard."""

from __future__ import annotations

from pprint import pprint

from . import OrderStatus, PaymentMode, ShopService
from .analytics import build_dashboard
from .invoice import build_invoice
from .ledger import LedgerError


def main() -> None:
    shop = ShopService()

    # Catalogue
    acrylic = shop.create_material(
        name="Acrylic 3mm",
        selling_price=120,
        thickness=3,
        purchase_price=80,
        current_stock=25,
        min_quantity=10,
    )
    laser_cut = shop.create_service(name="Laser Cut", price=300)
    laser = shop.register_machine(name="CO2 Laser 1390", model="LX-1390")
    operator = shop.create_staff(name="Ravi Kumar", role="Machine operator")

    order = shop.create_order(
        client_name="Sharma Interiors",
        phone="9876543210",
        material_id=acrylic.id,
        material_qty=2,
        service_id=laser_cut.id,
        machine_id=laser.id,
        additional_charges=50,
    )
    print(f"Base price: {order.base_price}, final price: {order.final_price}")

    shop.assign_staff(order.id, [operator.id])
    shop.set_order_status(order.id, OrderStatus.CONFIRMED)

    shop.record_payment(order.id, 200, payment_mode=PaymentMode.UPI)
    shop.record_payment(order.id, 390, payment_mode=PaymentMode.CASH)
    try:
        shop.record_payment(order.id, 1)
    except LedgerError as exc:
        print(f"Rejected: {exc}")

    details = shop.order_details(order.id)
    print(f"Paid: {details.total_paid}, remaining: {details.remaining}")

    shop.set_order_status(order.id, OrderStatus.COMPLETED)
    pprint(build_invoice(shop.order_details(order.id)))
    pprint(build_dashboard(shop))


if __name__ == "__main__":
    main()
