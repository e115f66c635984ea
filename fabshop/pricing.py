"""Order price derivation from material and service selections."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .domain import Material, Order, Service, to_decimal, to_money

ZERO = Decimal("0.00")


class PricingError(ValueError):
    """Raised when a price input is outside its allowed range."""


@dataclass(frozen=True, slots=True)
class MaterialSelection:
    """A material picked for an order together with the requested quantity."""

    material: Optional[Material]
    quantity: Optional[Decimal]


def compute_base_price(
    material_selection: Optional[MaterialSelection],
    service: Optional[Service],
) -> Decimal:
    """Return material cost plus service cost.

    A missing material or a missing quantity contributes nothing, as does a
    missing service.
    """

    material_cost = ZERO
    if (
        material_selection is not None
        and material_selection.material is not None
        and material_selection.quantity is not None
    ):
        material_cost = (
            material_selection.material.selling_price
            * to_decimal(material_selection.quantity)
        )
    service_cost = service.price if service is not None else ZERO
    return to_money(material_cost + service_cost)


def compute_final_price(
    base_price: Decimal, additional_charges: Optional[Decimal] = None
) -> Decimal:
    return to_money(base_price + (additional_charges or ZERO))


def validate_price_inputs(
    material_qty: Optional[Decimal], additional_charges: Optional[Decimal]
) -> None:
    if material_qty is not None and material_qty < 0:
        raise PricingError("Material quantity cannot be negative")
    if additional_charges is not None and additional_charges < 0:
        raise PricingError("Additional charges cannot be negative")


def reprice(
    order: Order,
    material: Optional[Material],
    service: Optional[Service],
) -> Order:
    """Recompute the order's base price from its current selections.

    The final price follows automatically since it is derived from the base
    price and the additional charges.
    """

    selection = MaterialSelection(material=material, quantity=order.material_qty)
    order.base_price = compute_base_price(selection, service)
    order.additional_charges = to_money(order.additional_charges or ZERO)
    return order


__all__ = [
    "MaterialSelection",
    "PricingError",
    "compute_base_price",
    "compute_final_price",
    "validate_price_inputs",
    "reprice",
]
