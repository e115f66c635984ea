from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import pytest

from fabshop import Machine, Material, Service, ShopService, Staff


@dataclass
class Catalog:
    acrylic: Material
    laser_cut: Service
    laser: Machine
    operator: Staff
    designer: Staff


@pytest.fixture
def shop() -> ShopService:
    return ShopService()


@pytest.fixture
def catalog(shop: ShopService) -> Catalog:
    return Catalog(
        acrylic=shop.create_material(
            "Acrylic 3mm",
            Decimal("120"),
            thickness=3,
            current_stock=20,
            min_quantity=5,
        ),
        laser_cut=shop.create_service("Laser Cut", Decimal("300")),
        laser=shop.register_machine("CO2 Laser 1390", model="LX-1390"),
        operator=shop.create_staff("Ravi Kumar", role="Machine operator"),
        designer=shop.create_staff("Anita Sharma", role="Designer"),
    )


@pytest.fixture
def priced_order(shop: ShopService, catalog: Catalog):
    """Acrylic x2 + laser cut + 50 surcharge: base 540, final 590."""

    return shop.create_order(
        "Sharma Interiors",
        phone="9876543210",
        material_id=catalog.acrylic.id,
        material_qty=2,
        service_id=catalog.laser_cut.id,
        machine_id=catalog.laser.id,
        additional_charges=Decimal("50"),
    )
