import json
import logging
from decimal import Decimal

import pytest

from fabshop import OrderStatus, PaymentMode, ShopService
from fabshop.repository import DuplicateRecordError, RecordNotFoundError, StoreError
from fabshop.storage import ShopDatabase


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "shop.sqlite3")


def _seed(service: ShopService):
    acrylic = service.create_material("Acrylic 3mm", Decimal("120.50"), current_stock=4)
    laser_cut = service.create_service("Laser Cut", Decimal("300"))
    return service.create_order(
        "Sharma Interiors",
        material_id=acrylic.id,
        material_qty=Decimal("2.5"),
        service_id=laser_cut.id,
        additional_charges=Decimal("49.99"),
    )


def test_empty_database_is_used_as_is(db_path):
    with ShopDatabase(db_path) as database:
        service = ShopService.from_database(database)
        assert service.orders is database.orders
        assert service.order_staff is database.order_staff


def test_missing_record_message_names_the_kind(db_path):
    with ShopDatabase(db_path) as database:
        with pytest.raises(RecordNotFoundError, match="No order with id 'abc'"):
            database.orders.get("abc")


def test_values_survive_reopen(db_path):
    with ShopDatabase(db_path) as database:
        service = ShopService.from_database(database)
        order = _seed(service)
        service.record_payment(order.id, Decimal("100.10"), payment_mode=PaymentMode.UPI)

    with ShopDatabase(db_path) as database:
        service = ShopService.from_database(database)
        details = service.order_details(order.id)
        assert details.order.material_qty == Decimal("2.5")
        assert details.order.base_price == Decimal("601.25")
        assert details.order.final_price == Decimal("651.24")
        assert details.material.selling_price == Decimal("120.50")
        assert details.payments[0].payment_mode is PaymentMode.UPI
        assert details.remaining == Decimal("551.14")


def _raw_update(database, table, item_id, **changes):
    row = database.connection.execute(
        f"SELECT payload FROM {table} WHERE id = ?", (item_id,)
    ).fetchone()
    payload = json.loads(row[0])
    payload.update(changes)
    database.connection.execute(
        f"UPDATE {table} SET payload = ? WHERE id = ?", (json.dumps(payload), item_id)
    )
    database.connection.commit()


def test_unknown_stored_values_are_normalised(db_path, caplog):
    with ShopDatabase(db_path) as database:
        service = ShopService.from_database(database)
        order = _seed(service)
        payment = service.record_payment(order.id, Decimal("10"))
        _raw_update(database, "orders", order.id, status="archived")
        _raw_update(database, "payments", payment.id, payment_mode="cheque")

        with caplog.at_level(logging.WARNING, logger="fabshop"):
            loaded = service.orders.get(order.id)
            loaded_payment = service.payments.get(payment.id)

    assert loaded.status is OrderStatus.LEAD
    assert loaded_payment.payment_mode is PaymentMode.CASH
    assert "archived" in caplog.text
    assert "cheque" in caplog.text


def test_stored_final_price_is_not_trusted(db_path):
    with ShopDatabase(db_path) as database:
        service = ShopService.from_database(database)
        order = _seed(service)
        _raw_update(database, "orders", order.id, final_price="1.00")
        assert service.orders.get(order.id).final_price == Decimal("651.24")


def test_duplicate_and_missing_records(db_path):
    with ShopDatabase(db_path) as database:
        service = ShopService.from_database(database)
        material = service.create_material("MDF 6mm", Decimal("90"))
        with pytest.raises(DuplicateRecordError):
            database.materials.add(material.id, material)
        with pytest.raises(RecordNotFoundError):
            database.materials.remove("missing")
        with pytest.raises(RecordNotFoundError):
            database.materials.get("missing")
        assert database.materials.find("missing") is None
        assert len(database.materials) == 1


def test_atomic_rolls_back_on_error(db_path):
    with ShopDatabase(db_path) as database:
        service = ShopService.from_database(database)
        order = _seed(service)
        with pytest.raises(RuntimeError):
            with database.atomic():
                service.record_payment(order.id, Decimal("10"))
                raise RuntimeError("boom")
        assert len(database.payments) == 0


def test_failed_staff_assignment_leaves_links_untouched(db_path):
    with ShopDatabase(db_path) as database:
        service = ShopService.from_database(database)
        order = _seed(service)
        ravi = service.create_staff("Ravi Kumar")
        service.assign_staff(order.id, [ravi.id])
        with pytest.raises(RecordNotFoundError):
            service.assign_staff(order.id, ["ghost"])
        assert service.assigned_staff_ids(order.id) == [ravi.id]


def test_closed_database_raises_store_error(db_path):
    database = ShopDatabase(db_path)
    database.close()
    with pytest.raises(StoreError):
        database.orders.list()
