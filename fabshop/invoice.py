"""Printable invoice assembled from a single order."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import List

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .domain import to_money
from .services import OrderDetails

TEMPLATES_DIR = Path(__file__).resolve().parent / "web" / "templates"


def format_money(amount: Decimal, symbol: str = "₹") -> str:
    return f"{symbol}{to_money(amount):,.2f}"


_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)
_environment.filters["money"] = format_money


@dataclass(slots=True)
class InvoiceLine:
    item: str
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal


@dataclass(slots=True)
class Invoice:
    order_id: str
    client_name: str
    phone: str
    location: str
    issued_on: date
    base_price: Decimal
    additional_charges: Decimal
    final_price: Decimal
    total_paid: Decimal
    lines: List[InvoiceLine] = field(default_factory=list)

    @property
    def outstanding(self) -> Decimal:
        return to_money(self.final_price - self.total_paid)


def build_invoice(details: OrderDetails) -> Invoice:
    order = details.order
    lines: List[InvoiceLine] = []
    if details.material is not None:
        quantity = order.material_qty or Decimal("0")
        lines.append(
            InvoiceLine(
                item="Material",
                description=details.material.name,
                quantity=quantity,
                rate=details.material.selling_price,
                amount=to_money(details.material.selling_price * quantity),
            )
        )
    if details.service is not None:
        lines.append(
            InvoiceLine(
                item="Service",
                description=details.service.name,
                quantity=Decimal("1"),
                rate=details.service.price,
                amount=details.service.price,
            )
        )
    return Invoice(
        order_id=order.id,
        client_name=order.client_name,
        phone=order.phone,
        location=order.location,
        issued_on=order.created_at.date(),
        base_price=order.base_price,
        additional_charges=order.additional_charges,
        final_price=order.final_price,
        total_paid=details.total_paid,
        lines=lines,
    )


def render_invoice(invoice: Invoice, *, currency: str = "₹") -> str:
    template = _environment.get_template("invoice.html")
    return template.render(invoice=invoice, currency=currency)


__all__ = ["Invoice", "InvoiceLine", "build_invoice", "render_invoice", "format_money"]
