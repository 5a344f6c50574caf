"""
Tests for the cash register reports

Cover product aggregation, the line source fallbacks, discount spreading,
closing summary figures, history and the printable text.
"""

import logging
import random
import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

from mostrador.common.exceptions import NotFoundError
from mostrador.common.money import utcnow
from mostrador.core.config import settings
from mostrador.modules.cash_registers.schemas import CashDifference
from mostrador.modules.orders.models import OrderItem
from mostrador.modules.orders.schemas import OrderItemCreate
from mostrador.modules.orders.service import OrderService
from mostrador.modules.payments.models import PaymentMethod
from mostrador.modules.payments.schemas import SettleRequest
from mostrador.modules.payments.service import PaymentSettlementService
from mostrador.modules.reports import tasks
from mostrador.modules.reports.services import (
    CashRegisterReportService, ProductSaleLine, aggregate_product_sales, discount_ratio
)
from mostrador.modules.reports.services.cash_registers import (
    SOURCE_ALL_ORDERS, SOURCE_ITEMS_IN_WINDOW, SOURCE_NONE, SOURCE_PAID_ORDERS
)
from mostrador.modules.reports.utils import format_money, format_quantity, render_closing_report


# ===== FIXTURES =====

@pytest.fixture
def reports(db_session):
    return CashRegisterReportService(db_session)


@pytest.fixture
def settle(db_session, close_requests, cashier_id):
    def _settle(order, method=PaymentMethod.CASH, coupon=None):
        service = PaymentSettlementService(db_session, close_requests)
        return service.settle(order.id, SettleRequest(payment_method=method, coupon_code=coupon), cashier_id)
    return _settle


def line(name, quantity, total, product_id=None, method=PaymentMethod.CASH):
    return ProductSaleLine(
        order_id=uuid4(),
        product_id=product_id,
        product_name=name,
        quantity=Decimal(quantity),
        unit_price=Decimal(total),
        total_price=Decimal(total),
        discounted_total=Decimal(total),
        payment_method=method,
    )


def move_items_out_of_window(db_session, register):
    db_session.query(OrderItem).update(
        {"created_at": register.started_at - timedelta(days=1)},
        synchronize_session=False,
    )
    db_session.commit()


# ===== AGGREGATION =====

class TestAggregation:

    def test_any_input_order_yields_same_totals(self):
        pan, queso = uuid4(), uuid4()
        lines = [
            line("Pan", "2", "20.00", pan),
            line("Queso", "0.250", "15.50", queso, PaymentMethod.CREDIT),
            line("Pan", "1", "10.00", pan, PaymentMethod.TRANSFER),
            line("Queso", "1.100", "68.20", queso),
            line("Pan", "3", "30.00", pan),
        ]
        expected = aggregate_product_sales(lines)

        rng = random.Random(7)
        for _ in range(10):
            shuffled = list(lines)
            rng.shuffle(shuffled)
            assert aggregate_product_sales(shuffled) == expected

        by_name = {s.product_name: s for s in expected}
        assert by_name["Pan"].quantity == Decimal("6")
        assert by_name["Pan"].total_price == Decimal("60.00")
        assert by_name["Pan"].cash_quantity == Decimal("5")
        assert by_name["Pan"].transfer_quantity == Decimal("1")
        assert by_name["Queso"].quantity == Decimal("1.350")
        assert by_name["Queso"].credit_quantity == Decimal("0.250")

    def test_search_without_matches_is_empty(self):
        lines = [line("Pan", "1", "10.00"), line("Facturas", "6", "60.00")]
        assert aggregate_product_sales(lines, search="alfajor") == []

    def test_search_is_case_insensitive(self):
        lines = [line("Pan de campo", "1", "10.00"), line("Facturas", "6", "60.00")]
        result = aggregate_product_sales(lines, search="  CAMPO ")
        assert [s.product_name for s in result] == ["Pan de campo"]

    def test_sorting(self):
        lines = [line("Budín", "1", "90.00"), line("Alfajor", "5", "50.00"), line("Café", "2", "70.00")]

        assert [s.product_name for s in aggregate_product_sales(lines)] == ["Alfajor", "Budín", "Café"]
        assert [s.product_name for s in aggregate_product_sales(lines, sort_by="quantity", direction="desc")] == [
            "Alfajor", "Café", "Budín"
        ]
        assert [s.product_name for s in aggregate_product_sales(lines, sort_by="total_price")] == [
            "Alfajor", "Café", "Budín"
        ]

    def test_invalid_sort_field(self):
        with pytest.raises(ValueError):
            aggregate_product_sales([], sort_by="price")

    def test_discount_ratio(self):
        assert discount_ratio(Decimal("100"), None, None) == Decimal("1")
        assert discount_ratio(Decimal("100"), Decimal("10"), Decimal("90")) == Decimal("0.9")
        assert discount_ratio(Decimal("100"), Decimal("25"), None) == Decimal("0.75")
        assert discount_ratio(Decimal("0"), Decimal("5"), Decimal("0")) == Decimal("1")


# ===== FORMATTING =====

class TestFormatting:

    @pytest.mark.parametrize("quantity, weighable, expected", [
        ("0.250", True, "250g"),
        ("0.05", True, "50g"),
        ("1.25", True, "1.250kg"),
        ("3.000", False, "3"),
        ("10", False, "10"),
        ("2.5", False, "2.5"),
    ])
    def test_format_quantity(self, quantity, weighable, expected):
        assert format_quantity(Decimal(quantity), weighable) == expected

    def test_format_money(self):
        assert format_money(Decimal("1234.5")) == "$1,234.50"
        assert format_money(None) == "-"


# ===== REGISTER REPORT =====

class TestCashRegisterReport:

    def test_report_for_closed_register(self, db_session, reports, register_service, open_register,
                                        make_order, make_product, settle, cashier_id):
        register = open_register("100")
        queso = make_product("Queso", price="8000.00", is_weighable=True, unit_label="kg")
        order = make_order(items=[
            OrderItemCreate(product_id=queso.id, quantity=Decimal("0.250"), unit_price=Decimal("8000.00")),
            ("Medialuna", "6", "150.00"),
        ])
        settle(order)
        register_service.request_close(cashier_id, Decimal("2990"))
        register_service.confirm_close(cashier_id)

        report = reports.get_register_report(register.id)

        assert report.source == SOURCE_ITEMS_IN_WINDOW
        assert report.summary.cash_sales == Decimal("2900.00")
        assert report.summary.expected_cash == Decimal("3000.00")
        assert report.summary.difference == Decimal("-10.00")
        assert report.summary.classification == CashDifference.SHORTAGE

        by_name = {p.product_name: p for p in report.products}
        assert by_name["Queso"].is_weighable is True
        assert by_name["Queso"].unit_label == "kg"
        assert by_name["Queso"].total_price == Decimal("2000.00")
        assert by_name["Medialuna"].unit_label == "un"
        assert by_name["Medialuna"].quantity == Decimal("6")

    def test_open_register_uses_now_as_window_end(self, reports, open_register, make_order):
        register = open_register("100")
        make_order(items=[("Pan", "2", "10.00")])

        report = reports.get_register_report(register.id)

        assert report.summary.closed_at is None
        assert report.summary.classification is None
        assert [p.product_name for p in report.products] == ["Pan"]

    def test_discount_spread_over_lines(self, reports, open_register, make_order, make_coupon, settle):
        register = open_register("100")
        make_coupon("DESC10")
        order = make_order(items=[("Torta", "1", "60.00"), ("Café", "2", "20.00")])
        settle(order, coupon="DESC10")

        report = reports.get_register_report(register.id)

        totals = {p.product_name: p.total_price for p in report.products}
        assert totals == {"Torta": Decimal("54.00"), "Café": Decimal("36.00")}

    def test_cancelled_orders_excluded(self, db_session, reports, open_register, make_order):
        register = open_register("100")
        make_order(items=[("Pan", "1", "10.00")])
        cancelled = make_order(items=[("Torta", "1", "60.00")])
        OrderService(db_session).cancel_order(cancelled.id)

        report = reports.get_register_report(register.id)

        assert [p.product_name for p in report.products] == ["Pan"]

    def test_fallback_to_paid_orders(self, db_session, reports, open_register, make_order, settle):
        register = open_register("100")
        paid = make_order(items=[("Pan", "1", "10.00")])
        make_order(items=[("Torta", "1", "60.00")])
        settle(paid)
        move_items_out_of_window(db_session, register)

        report = reports.get_register_report(register.id)

        assert report.source == SOURCE_PAID_ORDERS
        assert [p.product_name for p in report.products] == ["Pan"]

    def test_fallback_to_all_orders(self, db_session, reports, open_register, make_order):
        register = open_register("100")
        make_order(items=[("Torta", "1", "60.00")])
        move_items_out_of_window(db_session, register)

        report = reports.get_register_report(register.id)

        assert report.source == SOURCE_ALL_ORDERS
        assert [p.product_name for p in report.products] == ["Torta"]

    def test_no_sales_is_empty_not_error(self, reports, open_register):
        register = open_register("100")

        report = reports.get_register_report(register.id, search="pan")

        assert report.source == SOURCE_NONE
        assert report.products == []
        assert report.summary.expected_cash == Decimal("100.00")

    def test_search_filters_products(self, reports, open_register, make_order):
        register = open_register("100")
        make_order(items=[("Pan", "1", "10.00"), ("Torta", "1", "60.00")])

        assert reports.get_register_report(register.id, search="xyz").products == []
        assert [p.product_name for p in reports.get_register_report(register.id, search="tor").products] == ["Torta"]

    def test_unknown_register(self, reports):
        with pytest.raises(NotFoundError):
            reports.get_register_report(uuid4())


# ===== HISTORY =====

class TestRegisterHistory:

    @pytest.fixture
    def closed_registers(self, db_session, register_service, open_register, cashier_id):
        other_cashier = uuid4()
        for cashier, amount in ((cashier_id, "100"), (other_cashier, "200")):
            register = open_register(amount, cashier=cashier)
            register_service.record_sale(register.id, PaymentMethod.CASH, Decimal("50"))
            db_session.commit()
            register_service.request_close(cashier, Decimal(amount) + Decimal("50"))
            register_service.confirm_close(cashier)
        return other_cashier

    def test_history_totals(self, reports, closed_registers):
        history = reports.get_register_history()

        assert history["total"] == 2
        assert history["totals"]["cash_sales"] == Decimal("100.00")
        assert all(r.classification == CashDifference.BALANCED for r in history["registers"])

    def test_history_filters(self, reports, closed_registers, cashier_id):
        assert reports.get_register_history(cashier_id=cashier_id)["total"] == 1
        tomorrow = (utcnow() + timedelta(days=1)).date()
        assert reports.get_register_history(start_date=tomorrow)["total"] == 0
        assert reports.get_register_history(end_date=utcnow().date())["total"] == 2

    def test_open_registers_not_listed(self, reports, open_register):
        open_register("100")
        assert reports.get_register_history()["total"] == 0

    def test_pagination_keeps_full_totals(self, reports, closed_registers):
        history = reports.get_register_history(limit=1)

        assert len(history["registers"]) == 1
        assert history["total"] == 2
        assert history["totals"]["cash_sales"] == Decimal("100.00")


# ===== PRINTED REPORT =====

class TestClosingReportText:

    def test_render(self, reports, register_service, open_register, make_order, settle, cashier_id):
        register = open_register("100")
        settle(make_order(items=[("Pan", "3", "10.00")]))
        register_service.request_close(cashier_id, Decimal("130"))
        register_service.confirm_close(cashier_id)

        text = render_closing_report(reports.get_register_report(register.id))

        assert "REPORTE DE CIERRE DE CAJA" in text
        assert "Cuadra" in text
        assert "Pan" in text
        assert "3 un" in text
        assert "$130.00" in text

    def test_render_without_sales(self, reports, open_register):
        register = open_register("100")
        text = render_closing_report(reports.get_register_report(register.id))
        assert "Sin ventas registradas en el período" in text

    def test_print_task(self, db_session, open_register, caplog):
        register = open_register("100")

        with caplog.at_level(logging.INFO, logger="mostrador.printer"):
            result = tasks.print_closing_report(str(register.id))

        assert result["status"] == "printed"
        assert any("REPORTE DE CIERRE DE CAJA" in r.getMessage() for r in caplog.records)

    def test_print_task_unknown_register(self, db_session):
        result = tasks.print_closing_report(str(uuid4()))
        assert result["status"] == "not_found"

    def test_confirm_close_dispatches_print(self, register_service, open_register, cashier_id, monkeypatch):
        register = open_register("100")
        dispatched = []
        monkeypatch.setattr(settings, "PRINT_CLOSING_REPORTS", True)
        monkeypatch.setattr(tasks.print_closing_report, "delay", lambda register_id: dispatched.append(register_id))

        register_service.request_close(cashier_id, Decimal("100"))
        register_service.confirm_close(cashier_id)

        assert dispatched == [str(register.id)]


# ===== HTTP =====

class TestReportEndpoints:

    def test_report_endpoint(self, client, cashier_headers, open_register, make_order):
        register = open_register("100")
        make_order(items=[("Queso", "0.250", "8000.00")])

        response = client.get(f"/api/v1/reports/cash-registers/{register.id}", headers=cashier_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["source"] == SOURCE_ITEMS_IN_WINDOW
        assert body["products"][0]["product_name"] == "Queso"
        assert Decimal(body["summary"]["expected_cash"]) == Decimal("100")

    def test_text_endpoint(self, client, cashier_headers, open_register):
        register = open_register("100")
        response = client.get(f"/api/v1/reports/cash-registers/{register.id}/text", headers=cashier_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "REPORTE DE CIERRE DE CAJA" in response.text

    def test_history_requires_manager(self, client, cashier_headers, manager_headers):
        assert client.get("/api/v1/reports/cash-registers", headers=cashier_headers).status_code == 403
        response = client.get("/api/v1/reports/cash-registers", headers=manager_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 0

    def test_history_rejects_inverted_range(self, client, manager_headers):
        response = client.get(
            "/api/v1/reports/cash-registers",
            params={"start_date": "2026-03-10", "end_date": "2026-03-01"},
            headers=manager_headers,
        )
        assert response.status_code == 422

    def test_unknown_register_returns_404(self, client, cashier_headers):
        response = client.get(f"/api/v1/reports/cash-registers/{uuid4()}", headers=cashier_headers)
        assert response.status_code == 404
