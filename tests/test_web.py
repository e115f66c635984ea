from datetime import date
from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from fabshop import OrderStatus
from fabshop.config import Settings
from fabshop.pipeline import TransitionTable
from fabshop.web import create_app
from fabshop.web.app import default_order_window, parse_decimal, safe_redirect_target


def _settings(tmp_path, seed=False):
    return Settings(
        database_path=str(tmp_path / "web.sqlite3"),
        seed_demo_data=seed,
        log_level="WARNING",
    )


@pytest.fixture
def app(tmp_path):
    return create_app(_settings(tmp_path))


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def service(app):
    return app.state.shop_service


def _query(response):
    return parse_qs(urlsplit(response.headers["location"]).query)


def _order(service):
    material = service.create_material("Acrylic 3mm", Decimal("120"))
    laser_cut = service.create_service("Laser Cut", Decimal("300"))
    return service.create_order(
        "Sharma Interiors",
        material_id=material.id,
        material_qty=2,
        service_id=laser_cut.id,
        additional_charges=Decimal("50"),
    )


def test_seeded_pages_render(tmp_path):
    app = create_app(_settings(tmp_path, seed=True))
    client = TestClient(app)
    for path in ("/", "/shop", "/shop?low_stock=1", "/orders", "/orders?view=list", "/expenses"):
        assert client.get(path).status_code == 200, path
    assert client.get("/expenses?period=all").status_code == 200

    order = app.state.shop_service.list_orders()[0]
    response = client.get(f"/orders/{order.id}")
    assert response.status_code == 200
    assert order.client_name in response.text


def test_create_order_redirects_with_message(client, service):
    material = service.create_material("Acrylic 3mm", Decimal("120"))
    response = client.post(
        "/orders",
        data={
            "client_name": "Greenleaf Cafe",
            "material_id": material.id,
            "material_qty": "5",
            "additional_charges": "25",
        },
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert _query(response)["message"] == ["Order for Greenleaf Cafe created"]
    (order,) = service.list_orders()
    assert order.final_price == Decimal("625.00")


def test_create_order_without_quantity_is_rejected(client, service):
    material = service.create_material("Acrylic 3mm", Decimal("120"))
    response = client.post(
        "/orders",
        data={"client_name": "Greenleaf Cafe", "material_id": material.id},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert "error" in _query(response)
    assert service.list_orders() == []


def test_overpayment_is_rejected(client, service):
    order = _order(service)
    ok = client.post(
        f"/orders/{order.id}/payments",
        data={"amount": "500", "payment_mode": "upi"},
        follow_redirects=False,
    )
    assert _query(ok)["message"] == ["Payment recorded"]

    response = client.post(
        f"/orders/{order.id}/payments",
        data={"amount": "100"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert urlsplit(response.headers["location"]).path == f"/orders/{order.id}"
    error = _query(response)["error"][0]
    assert "exceeds the remaining balance (90.00)" in error
    assert len(service.payments_for_order(order.id)) == 1


@pytest.mark.parametrize("bad", ["NaN", "Infinity", "1e40"])
def test_unusable_amounts_are_reported(client, service, bad):
    order = _order(service)
    payment = client.post(
        f"/orders/{order.id}/payments",
        data={"amount": bad},
        follow_redirects=False,
    )
    assert payment.status_code == 303
    assert "error" in _query(payment)
    assert service.payments_for_order(order.id) == []

    created = client.post(
        "/orders",
        data={"client_name": "Greenleaf Cafe", "additional_charges": bad},
        follow_redirects=False,
    )
    assert created.status_code == 303
    assert "error" in _query(created)
    assert len(service.list_orders()) == 1


def test_edit_after_material_was_deleted_keeps_its_cost(client, service):
    order = _order(service)
    service.delete_material(order.material_id)

    page = client.get(f"/orders/{order.id}")
    assert "(deleted material)" in page.text

    response = client.post(
        f"/orders/{order.id}",
        data={
            "client_name": "Sharma Interiors Pvt",
            "material_id": order.material_id,
            "material_qty": "2",
            "service_id": order.service_id,
            "additional_charges": "50",
            "status": "lead",
        },
        follow_redirects=False,
    )
    assert _query(response)["message"] == ["Order updated"]
    updated = service.orders.get(order.id)
    assert updated.client_name == "Sharma Interiors Pvt"
    assert updated.base_price == Decimal("540.00")
    assert updated.final_price == Decimal("590.00")


def test_status_change(client, service):
    order = _order(service)
    response = client.post(
        f"/orders/{order.id}/status",
        data={"status": "progressing", "next_url": "/orders?view=list"},
        follow_redirects=False,
    )
    assert response.headers["location"].startswith("/orders?view=list&")
    assert service.orders.get(order.id).status is OrderStatus.PROGRESSING

    rejected = client.post(
        f"/orders/{order.id}/status",
        data={"status": "archived"},
        follow_redirects=False,
    )
    assert "error" in _query(rejected)
    assert service.orders.get(order.id).status is OrderStatus.PROGRESSING


def test_update_order_reprices(client, service):
    order = _order(service)
    response = client.post(
        f"/orders/{order.id}",
        data={
            "client_name": "Sharma Interiors",
            "material_id": order.material_id,
            "material_qty": "3",
            "service_id": "",
            "additional_charges": "0",
            "status": "confirmed",
        },
        follow_redirects=False,
    )
    assert _query(response)["message"] == ["Order updated"]
    updated = service.orders.get(order.id)
    assert updated.final_price == Decimal("360.00")
    assert updated.status is OrderStatus.CONFIRMED


def test_staff_assignment_form(client, service):
    order = _order(service)
    ravi = service.create_staff("Ravi Kumar")
    anita = service.create_staff("Anita Sharma")
    client.post(
        f"/orders/{order.id}/staff",
        data={"staff_ids": [ravi.id, anita.id]},
        follow_redirects=False,
    )
    assert set(service.assigned_staff_ids(order.id)) == {ravi.id, anita.id}

    client.post(f"/orders/{order.id}/staff", data={}, follow_redirects=False)
    assert service.assigned_staff_ids(order.id) == []


def test_invoice_page(client, service):
    order = _order(service)
    response = client.get(f"/orders/{order.id}/invoice")
    assert response.status_code == 200
    assert "₹590.00" in response.text


def test_missing_order_redirects(client):
    response = client.get("/orders/missing", follow_redirects=False)
    assert response.status_code == 303
    assert "error" in _query(response)


def test_expense_and_supplier_forms(client, service):
    response = client.post(
        "/expenses",
        data={"expense_type": "salary", "amount": "15000", "expense_date": "2024-03-10"},
        follow_redirects=False,
    )
    assert _query(response)["message"] == ["Expense added"]
    rejected = client.post(
        "/expenses",
        data={"expense_type": "bill", "amount": "abc"},
        follow_redirects=False,
    )
    assert "error" in _query(rejected)

    client.post(
        "/suppliers",
        data={"name": "Steel Mart", "outstanding_payment": "750"},
        follow_redirects=False,
    )
    assert service.total_outstanding() == Decimal("750.00")
    page = client.get("/expenses?period=custom&start=2024-03-01&end=2024-03-31")
    assert page.status_code == 200


def test_form_helpers():
    assert parse_decimal(" 12.5 ") == Decimal("12.5")
    assert parse_decimal("", default=None) is None
    with pytest.raises(ValueError):
        parse_decimal("")
    with pytest.raises(ValueError):
        parse_decimal("twelve")
    for text in ("NaN", "Infinity", "-inf"):
        with pytest.raises(ValueError):
            parse_decimal(text)
    assert safe_redirect_target("//evil.example") == "/orders"
    assert safe_redirect_target("https://evil.example") == "/orders"
    assert safe_redirect_target("/orders/abc") == "/orders/abc"


def test_default_order_window():
    assert default_order_window(date(2024, 3, 14)) == (date(2024, 2, 1), date(2024, 3, 14))
    assert default_order_window(date(2024, 1, 3)) == (date(2023, 12, 1), date(2024, 1, 3))


def test_status_picker_offers_current_status(client, service):
    order = _order(service)
    service.transitions = TransitionTable.from_mapping({"lead": ["contacted"]})
    page = client.get(f"/orders/{order.id}")
    assert '<option value="lead" selected>' in page.text
    assert '<option value="contacted">' in page.text
    assert '<option value="completed"' not in page.text
