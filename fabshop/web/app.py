"""FastAPI-based web interface for the shop dashboard."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from ..analytics import build_dashboard
from ..config import Settings, configure_logging, get_settings
from ..domain import ExpenseType, MachineStatus, OrderStatus, PaymentMode
from ..invoice import build_invoice, format_money, render_invoice
from ..pipeline import PIPELINE
from ..repository import RecordNotFoundError, RepositoryError
from ..services import EXPENSE_PERIODS, ShopService, expense_period
from ..storage import ShopDatabase

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["money"] = format_money


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    database = ShopDatabase(settings.database_path)
    service = ShopService.from_database(database)
    if settings.seed_demo_data:
        ensure_demo_data(service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        database.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.shop_service = service
    app.state.database = database
    app.state.settings = settings

    def render(request: Request, name: str, context: dict):
        context.setdefault("message", request.query_params.get("message"))
        context.setdefault("error", request.query_params.get("error"))
        context.setdefault("currency", settings.currency)
        context.setdefault("app_name", settings.app_name)
        return templates.TemplateResponse(request, name, context)

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------
    @app.get("/")
    async def dashboard(
        request: Request, start: Optional[str] = None, end: Optional[str] = None
    ):
        service: ShopService = request.app.state.shop_service
        start_date = parse_date(start)
        end_date = parse_date(end)
        summary = build_dashboard(service, start=start_date, end=end_date)
        return render(
            request,
            "dashboard.html",
            {
                "summary": summary,
                "start": start_date,
                "end": end_date,
                "low_stock": service.low_stock_materials(),
            },
        )

    # ------------------------------------------------------------------
    # Shop: materials, machines, staff, services
    # ------------------------------------------------------------------
    @app.get("/shop")
    async def shop_overview(request: Request, low_stock: Optional[str] = None):
        service: ShopService = request.app.state.shop_service
        materials = (
            service.low_stock_materials() if low_stock else service.list_materials()
        )
        return render(
            request,
            "shop.html",
            {
                "materials": materials,
                "low_stock_only": bool(low_stock),
                "machines": service.list_machines(),
                "staff": service.list_staff(),
                "services": service.list_services(),
                "machine_statuses": list(MachineStatus),
            },
        )

    @app.post("/materials")
    async def create_material(
        request: Request,
        name: str = Form(...),
        selling_price: str = Form(...),
        thickness: str = Form("0"),
        purchase_price: str = Form("0"),
        current_stock: str = Form("0"),
        min_quantity: str = Form("0"),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.create_material(
                name=name,
                selling_price=parse_decimal(selling_price),
                thickness=parse_decimal(thickness, default=Decimal("0")),
                purchase_price=parse_decimal(purchase_price, default=Decimal("0")),
                current_stock=parse_decimal(current_stock, default=Decimal("0")),
                min_quantity=parse_decimal(min_quantity, default=Decimal("0")),
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/shop", "create material", exc)
        return flash_redirect("/shop", message="Material added")

    @app.post("/materials/{material_id}")
    async def update_material(
        material_id: str,
        request: Request,
        name: str = Form(...),
        selling_price: str = Form(...),
        thickness: str = Form("0"),
        purchase_price: str = Form("0"),
        current_stock: str = Form("0"),
        min_quantity: str = Form("0"),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.update_material(
                material_id,
                name=name,
                selling_price=parse_decimal(selling_price),
                thickness=parse_decimal(thickness, default=Decimal("0")),
                purchase_price=parse_decimal(purchase_price, default=Decimal("0")),
                current_stock=parse_decimal(current_stock, default=Decimal("0")),
                min_quantity=parse_decimal(min_quantity, default=Decimal("0")),
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/shop", "update material", exc)
        return flash_redirect("/shop", message="Material updated")

    @app.post("/materials/{material_id}/delete")
    async def delete_material(material_id: str, request: Request):
        service: ShopService = request.app.state.shop_service
        try:
            service.delete_material(material_id)
        except RepositoryError as exc:
            return failed("/shop", "delete material", exc)
        return flash_redirect("/shop", message="Material deleted")

    @app.post("/services")
    async def create_service(
        request: Request,
        name: str = Form(...),
        price: str = Form(...),
        description: str = Form(""),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.create_service(
                name=name, price=parse_decimal(price), description=description
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/shop", "create service", exc)
        return flash_redirect("/shop", message="Service added")

    @app.post("/services/{service_id}")
    async def update_service(
        service_id: str,
        request: Request,
        name: str = Form(...),
        price: str = Form(...),
        description: str = Form(""),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.update_service(
                service_id,
                name=name,
                price=parse_decimal(price),
                description=description,
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/shop", "update service", exc)
        return flash_redirect("/shop", message="Service updated")

    @app.post("/services/{service_id}/delete")
    async def delete_service(service_id: str, request: Request):
        service: ShopService = request.app.state.shop_service
        try:
            service.delete_service(service_id)
        except RepositoryError as exc:
            return failed("/shop", "delete service", exc)
        return flash_redirect("/shop", message="Service deleted")

    @app.post("/machines")
    async def create_machine(
        request: Request,
        name: str = Form(...),
        model: str = Form(""),
        status: str = Form(MachineStatus.AVAILABLE.value),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.register_machine(name=name, model=model, status=status)
        except (ValueError, RepositoryError) as exc:
            return failed("/shop", "register machine", exc)
        return flash_redirect("/shop", message="Machine added")

    @app.post("/machines/{machine_id}")
    async def update_machine(
        machine_id: str,
        request: Request,
        name: str = Form(...),
        model: str = Form(""),
        status: str = Form(...),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.update_machine(machine_id, name=name, model=model, status=status)
        except (ValueError, RepositoryError) as exc:
            return failed("/shop", "update machine", exc)
        return flash_redirect("/shop", message="Machine updated")

    @app.post("/machines/{machine_id}/delete")
    async def delete_machine(machine_id: str, request: Request):
        service: ShopService = request.app.state.shop_service
        try:
            service.delete_machine(machine_id)
        except RepositoryError as exc:
            return failed("/shop", "delete machine", exc)
        return flash_redirect("/shop", message="Machine deleted")

    @app.post("/staff")
    async def create_staff(
        request: Request,
        name: str = Form(...),
        role: str = Form(""),
        contact_info: str = Form(""),
        is_available: Optional[str] = Form(None),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.create_staff(
                name=name,
                role=role,
                contact_info=contact_info,
                is_available=is_available is not None,
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/shop", "create staff member", exc)
        return flash_redirect("/shop", message="Staff member added")

    @app.post("/staff/{staff_id}")
    async def update_staff(
        staff_id: str,
        request: Request,
        name: str = Form(...),
        role: str = Form(""),
        contact_info: str = Form(""),
        is_available: Optional[str] = Form(None),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.update_staff(
                staff_id,
                name=name,
                role=role,
                contact_info=contact_info,
                is_available=is_available is not None,
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/shop", "update staff member", exc)
        return flash_redirect("/shop", message="Staff member updated")

    @app.post("/staff/{staff_id}/delete")
    async def delete_staff(staff_id: str, request: Request):
        service: ShopService = request.app.state.shop_service
        try:
            service.delete_staff(staff_id)
        except RepositoryError as exc:
            return failed("/shop", "delete staff member", exc)
        return flash_redirect("/shop", message="Staff member deleted")

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    @app.get("/orders")
    async def orders_overview(
        request: Request,
        view: str = "kanban",
        search: str = "",
        start: Optional[str] = None,
        end: Optional[str] = None,
    ):
        service: ShopService = request.app.state.shop_service
        if start is None and end is None:
            start_date, end_date = default_order_window(date.today())
        else:
            start_date, end_date = parse_date(start), parse_date(end)
        filters = {"search": search, "start": start_date, "end": end_date}
        context = {
            "view": "list" if view == "list" else "kanban",
            "search": search,
            "start": start_date,
            "end": end_date,
            "pipeline": PIPELINE,
            "materials": service.list_materials(),
            "services": service.list_services(),
            "machines": service.available_machines(),
        }
        if context["view"] == "list":
            context["orders"] = service.list_order_details(**filters)
        else:
            context["board"] = service.kanban_board(**filters)
        return render(request, "orders.html", context)

    @app.post("/orders")
    async def create_order(
        request: Request,
        client_name: str = Form(...),
        phone: str = Form(""),
        location: str = Form(""),
        material_id: str = Form(""),
        material_qty: str = Form(""),
        service_id: str = Form(""),
        machine_id: str = Form(""),
        additional_charges: str = Form("0"),
        status: str = Form(OrderStatus.LEAD.value),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            order = service.create_order(
                client_name=client_name,
                phone=phone,
                location=location,
                material_id=optional_id(material_id),
                material_qty=parse_decimal(material_qty, default=None),
                service_id=optional_id(service_id),
                machine_id=optional_id(machine_id),
                additional_charges=parse_decimal(
                    additional_charges, default=Decimal("0")
                ),
                status=status,
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/orders", "create order", exc)
        return flash_redirect(
            "/orders", message=f"Order for {order.client_name} created"
        )

    @app.get("/orders/{order_id}")
    async def order_detail(order_id: str, request: Request):
        service: ShopService = request.app.state.shop_service
        try:
            details = service.order_details(order_id)
        except RecordNotFoundError as exc:
            return failed("/orders", "open order", exc)
        return render(
            request,
            "order_detail.html",
            {
                "details": details,
                "order": details.order,
                "pipeline": PIPELINE,
                "allowed_statuses": service.transitions.choices(details.order.status),
                "materials": service.list_materials(),
                "services": service.list_services(),
                "machines": service.list_machines(),
                "staff": service.list_staff(),
                "assigned_ids": {member.id for member in details.staff},
                "payment_modes": list(PaymentMode),
                "today": date.today(),
            },
        )

    @app.post("/orders/{order_id}")
    async def update_order(
        order_id: str,
        request: Request,
        client_name: str = Form(...),
        phone: str = Form(""),
        location: str = Form(""),
        material_id: str = Form(""),
        material_qty: str = Form(""),
        service_id: str = Form(""),
        machine_id: str = Form(""),
        additional_charges: str = Form("0"),
        status: str = Form(...),
    ):
        service: ShopService = request.app.state.shop_service
        target = f"/orders/{order_id}"
        try:
            service.update_order(
                order_id,
                client_name=client_name,
                phone=phone,
                location=location,
                material_id=optional_id(material_id),
                material_qty=parse_decimal(material_qty, default=None),
                service_id=optional_id(service_id),
                machine_id=optional_id(machine_id),
                additional_charges=parse_decimal(
                    additional_charges, default=Decimal("0")
                ),
                status=status,
            )
        except (ValueError, RepositoryError) as exc:
            return failed(target, "update order", exc)
        return flash_redirect(target, message="Order updated")

    @app.post("/orders/{order_id}/delete")
    async def delete_order(order_id: str, request: Request):
        service: ShopService = request.app.state.shop_service
        try:
            service.delete_order(order_id)
        except RepositoryError as exc:
            return failed("/orders", "delete order", exc)
        return flash_redirect("/orders", message="Order deleted")

    @app.post("/orders/{order_id}/status")
    async def move_order(
        order_id: str,
        request: Request,
        status: str = Form(...),
        next_url: str = Form("/orders"),
    ):
        service: ShopService = request.app.state.shop_service
        target = safe_redirect_target(next_url)
        try:
            order = service.set_order_status(order_id, status)
        except (ValueError, RepositoryError) as exc:
            return failed(target, "update order status", exc)
        return flash_redirect(
            target, message=f"Order moved to {order.status.label}"
        )

    @app.post("/orders/{order_id}/machine")
    async def assign_machine(
        order_id: str, request: Request, machine_id: str = Form("")
    ):
        service: ShopService = request.app.state.shop_service
        target = f"/orders/{order_id}"
        try:
            service.assign_machine(order_id, optional_id(machine_id))
        except RepositoryError as exc:
            return failed(target, "assign machine", exc)
        return flash_redirect(target, message="Machine assigned")

    @app.post("/orders/{order_id}/staff")
    async def assign_staff(
        order_id: str,
        request: Request,
        staff_ids: List[str] = Form(default=[]),
    ):
        service: ShopService = request.app.state.shop_service
        target = f"/orders/{order_id}"
        try:
            service.assign_staff(order_id, staff_ids)
        except RepositoryError as exc:
            return failed(target, "update staff assignments", exc)
        return flash_redirect(target, message="Staff assignments updated")

    @app.post("/orders/{order_id}/payments")
    async def add_payment(
        order_id: str,
        request: Request,
        amount: str = Form(...),
        payment_mode: str = Form(PaymentMode.CASH.value),
        payment_date: Optional[str] = Form(None),
    ):
        service: ShopService = request.app.state.shop_service
        target = f"/orders/{order_id}"
        try:
            service.record_payment(
                order_id,
                parse_decimal(amount),
                payment_mode=payment_mode,
                payment_date=parse_date(payment_date),
            )
        except (ValueError, RepositoryError) as exc:
            return failed(target, "record payment", exc)
        return flash_redirect(target, message="Payment recorded")

    @app.get("/orders/{order_id}/invoice", response_class=HTMLResponse)
    async def order_invoice(order_id: str, request: Request):
        service: ShopService = request.app.state.shop_service
        try:
            details = service.order_details(order_id)
        except RecordNotFoundError as exc:
            return failed("/orders", "print invoice", exc)
        invoice = build_invoice(details)
        return HTMLResponse(render_invoice(invoice, currency=settings.currency))

    # ------------------------------------------------------------------
    # Expenses and suppliers
    # ------------------------------------------------------------------
    @app.get("/expenses")
    async def expenses_overview(
        request: Request,
        period: str = "month",
        start: Optional[str] = None,
        end: Optional[str] = None,
    ):
        service: ShopService = request.app.state.shop_service
        if period == "custom":
            start_date, end_date = parse_date(start), parse_date(end)
        else:
            if period not in EXPENSE_PERIODS:
                period = "month"
            start_date, end_date = expense_period(period)
        expenses = service.list_expenses(start=start_date, end=end_date)
        return render(
            request,
            "expenses.html",
            {
                "period": period,
                "periods": EXPENSE_PERIODS + ("custom",),
                "start": start_date,
                "end": end_date,
                "expenses": expenses,
                "total_expenses": service.total_expenses(expenses),
                "expense_types": list(ExpenseType),
                "suppliers": service.list_suppliers(),
                "total_outstanding": service.total_outstanding(),
                "today": date.today(),
            },
        )

    @app.post("/expenses")
    async def create_expense(
        request: Request,
        expense_type: str = Form(...),
        amount: str = Form(...),
        expense_date: Optional[str] = Form(None),
        description: str = Form(""),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.create_expense(
                expense_type,
                parse_decimal(amount),
                expense_date=parse_date(expense_date),
                description=description,
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/expenses", "record expense", exc)
        return flash_redirect("/expenses", message="Expense added")

    @app.post("/expenses/{expense_id}")
    async def update_expense(
        expense_id: str,
        request: Request,
        expense_type: str = Form(...),
        amount: str = Form(...),
        expense_date: Optional[str] = Form(None),
        description: str = Form(""),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.update_expense(
                expense_id,
                expense_type=expense_type,
                amount=parse_decimal(amount),
                expense_date=parse_date(expense_date),
                description=description,
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/expenses", "update expense", exc)
        return flash_redirect("/expenses", message="Expense updated")

    @app.post("/expenses/{expense_id}/delete")
    async def delete_expense(expense_id: str, request: Request):
        service: ShopService = request.app.state.shop_service
        try:
            service.delete_expense(expense_id)
        except RepositoryError as exc:
            return failed("/expenses", "delete expense", exc)
        return flash_redirect("/expenses", message="Expense deleted")

    @app.post("/suppliers")
    async def create_supplier(
        request: Request,
        name: str = Form(...),
        contact_info: str = Form(""),
        outstanding_payment: str = Form("0"),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.create_supplier(
                name=name,
                contact_info=contact_info,
                outstanding_payment=parse_decimal(
                    outstanding_payment, default=Decimal("0")
                ),
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/expenses", "create supplier", exc)
        return flash_redirect("/expenses", message="Supplier added")

    @app.post("/suppliers/{supplier_id}")
    async def update_supplier(
        supplier_id: str,
        request: Request,
        name: str = Form(...),
        contact_info: str = Form(""),
        outstanding_payment: str = Form("0"),
    ):
        service: ShopService = request.app.state.shop_service
        try:
            service.update_supplier(
                supplier_id,
                name=name,
                contact_info=contact_info,
                outstanding_payment=parse_decimal(
                    outstanding_payment, default=Decimal("0")
                ),
            )
        except (ValueError, RepositoryError) as exc:
            return failed("/expenses", "update supplier", exc)
        return flash_redirect("/expenses", message="Supplier updated")

    @app.post("/suppliers/{supplier_id}/delete")
    async def delete_supplier(supplier_id: str, request: Request):
        service: ShopService = request.app.state.shop_service
        try:
            service.delete_supplier(supplier_id)
        except RepositoryError as exc:
            return failed("/expenses", "delete supplier", exc)
        return flash_redirect("/expenses", message="Supplier deleted")

    return app


_MISSING = object()


def parse_decimal(value: Optional[str], default=_MISSING) -> Optional[Decimal]:
    """Parse a numeric form field; blank fields fall back to ``default``."""

    text = (value or "").strip()
    if not text:
        if default is _MISSING:
            raise ValueError("A numeric value is required")
        return default
    try:
        amount = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"{value!r} is not a valid number") from exc
    if not amount.is_finite():
        raise ValueError(f"{value!r} is not a valid number")
    return amount


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def optional_id(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


def default_order_window(today: date):
    """Start of the previous month through today."""

    previous_month_end = today.replace(day=1) - timedelta(days=1)
    return previous_month_end.replace(day=1), today


def safe_redirect_target(value: str) -> str:
    if value.startswith("/") and not value.startswith("//"):
        return value
    return "/orders"


def flash_redirect(path: str, **params: str) -> RedirectResponse:
    query = urlencode({key: value for key, value in params.items() if value})
    separator = "&" if "?" in path else "?"
    return RedirectResponse(
        f"{path}{separator}{query}" if query else path, status_code=303
    )


def failed(path: str, action: str, exc: Exception) -> RedirectResponse:
    if isinstance(exc, RepositoryError) and not isinstance(exc, RecordNotFoundError):
        logger.exception("Failed to %s", action)
    else:
        logger.info("Rejected request to %s: %s", action, exc)
    return flash_redirect(path, error=f"Failed to {action}: {exc}")


def ensure_demo_data(service: ShopService) -> None:
    if len(service.materials) > 0:
        return

    acrylic = service.create_material(
        name="Acrylic 3mm",
        selling_price=120,
        thickness=3,
        purchase_price=80,
        current_stock=40,
        min_quantity=10,
    )
    mdf = service.create_material(
        name="MDF 6mm",
        selling_price=90,
        thickness=6,
        purchase_price=55,
        current_stock=6,
        min_quantity=15,
    )
    service.create_material(
        name="Stainless Steel 1.5mm",
        selling_price=650,
        thickness=Decimal("1.5"),
        purchase_price=480,
        current_stock=12,
        min_quantity=5,
    )

    laser_cut = service.create_service(
        name="Laser Cut", price=300, description="CO2 laser cutting per sheet"
    )
    engraving = service.create_service(
        name="Engraving", price=150, description="Raster engraving up to A3"
    )
    service.create_service(name="CNC Routing", price=450)

    laser = service.register_machine(name="CO2 Laser 1390", model="LX-1390")
    router = service.register_machine(name="CNC Router 1325", model="R-1325")
    service.register_machine(
        name="Fiber Laser 3015", model="FL-3015", status=MachineStatus.MAINTENANCE
    )

    operator = service.create_staff(name="Ravi Kumar", role="Machine operator")
    designer = service.create_staff(name="Anita Sharma", role="Designer")

    signage = service.create_order(
        client_name="Sharma Interiors",
        phone="9876543210",
        location="Pune",
        material_id=acrylic.id,
        material_qty=2,
        service_id=laser_cut.id,
        machine_id=laser.id,
        additional_charges=50,
        status=OrderStatus.CONFIRMED,
    )
    service.assign_staff(signage.id, [operator.id, designer.id])
    service.record_payment(signage.id, 200, payment_mode=PaymentMode.UPI)

    panels = service.create_order(
        client_name="Greenleaf Cafe",
        phone="9123456780",
        location="Mumbai",
        material_id=mdf.id,
        material_qty=5,
        service_id=engraving.id,
        machine_id=router.id,
        status=OrderStatus.PROGRESSING,
    )
    service.assign_staff(panels.id, [operator.id])

    service.create_order(client_name="Patel Traders", phone="9988776655")

    service.create_expense(
        ExpenseType.MATERIAL_PURCHASE, 2400, description="Acrylic sheets restock"
    )
    service.create_expense(ExpenseType.BILL, 1800, description="Electricity")
    service.create_supplier(
        name="Acrylic Sheets Co.",
        contact_info="sales@acrylicsheets.example",
        outstanding_payment=1200,
    )
