"""
Tests para el módulo de Cajas Registradoras

Cubren:
- Apertura (una sola caja abierta por cajero)
- Efectivo esperado = apertura + ventas en efectivo - egresos
- Solicitud, confirmación y cancelación del cierre (estado CLOSING)
- Egresos y sus validaciones
- Endpoints HTTP
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from mostrador.common.exceptions import InvalidStateError, NotFoundError, ValidationError
from mostrador.modules.cash_registers.models import CashRegister, CashRegisterExpense, ExpenseType
from mostrador.modules.cash_registers.schemas import CashDifference, ExpenseCreate, RegisterState
from mostrador.modules.cash_registers.service import CashRegisterService
from mostrador.modules.payments.models import PaymentMethod


def expense(amount="20.00", type=ExpenseType.SUPPLIER_PAYMENT, party_id=None, description="Pago a panadería"):
    return ExpenseCreate(
        amount=Decimal(amount),
        type=type,
        description=description,
        party_id=party_id or uuid4(),
        party_name="Panadería La Espiga",
    )


# ===== APERTURA =====

class TestOpenRegister:

    @pytest.mark.parametrize("amount", ["0.01", "100", "2500.50"])
    def test_expected_cash_equals_opening_amount(self, open_register, register_service, amount):
        """Recién abierta, el efectivo esperado es el monto inicial"""
        register = open_register(amount)

        assert register.closed_at is None
        assert register.cash_sales == 0
        assert register.expenses_total == 0
        assert register_service.compute_expected_cash(register) == Decimal(amount)

    def test_open_twice_fails_with_invalid_state(self, open_register):
        open_register("100")
        with pytest.raises(InvalidStateError):
            open_register("50")

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_amount_fails(self, open_register, amount):
        with pytest.raises(ValidationError):
            open_register(amount)

    def test_each_cashier_has_its_own_register(self, open_register, register_service, cashier_id):
        other_cashier = uuid4()
        open_register("100")
        open_register("200", cashier=other_cashier)

        assert register_service.get_state(cashier_id) == RegisterState.OPEN
        assert register_service.get_state(other_cashier) == RegisterState.OPEN

    def test_state_closed_without_register(self, register_service, cashier_id):
        assert register_service.get_state(cashier_id) == RegisterState.CLOSED
        with pytest.raises(InvalidStateError):
            register_service.require_active_register(cashier_id)


# ===== OPERACIÓN =====

class TestRunningTotals:

    def test_expected_cash_accumulates_in_any_order(self, db_session, open_register, register_service, cashier_id):
        """Ventas y egresos se acumulan sin importar el orden"""
        register = open_register("100")
        register_service.record_expense(cashier_id, expense("15"))
        register_service.record_sale(register.id, PaymentMethod.CASH, Decimal("30"))
        register_service.record_sale(register.id, PaymentMethod.CREDIT, Decimal("80"))
        register_service.record_expense(cashier_id, expense("5", type=ExpenseType.EMPLOYEE_ADVANCE))
        register_service.record_sale(register.id, PaymentMethod.CASH, Decimal("12.50"))
        register_service.record_sale(register.id, PaymentMethod.TRANSFER, Decimal("40"))
        db_session.commit()

        db_session.refresh(register)
        assert register.cash_sales == Decimal("42.50")
        assert register.card_sales == Decimal("80.00")
        assert register.transfer_sales == Decimal("40.00")
        assert register.expenses_total == Decimal("20.00")
        assert register_service.compute_expected_cash(register) == Decimal("122.50")

    def test_deposit_sale_counts_in_cash_and_deposits(self, db_session, open_register, register_service):
        register = open_register("100")
        register_service.record_sale(register.id, PaymentMethod.CASH, Decimal("36"), is_deposit=True)
        db_session.commit()

        db_session.refresh(register)
        assert register.cash_sales == Decimal("36.00")
        assert register.deposits_received == Decimal("36.00")
        assert register_service.compute_expected_cash(register) == Decimal("136.00")

    def test_expense_requires_open_register(self, register_service, cashier_id):
        with pytest.raises(InvalidStateError):
            register_service.record_expense(cashier_id, expense())

    def test_expense_validations(self, open_register, register_service, cashier_id):
        open_register("100")
        with pytest.raises(ValidationError):
            register_service.record_expense(cashier_id, expense("0"))
        with pytest.raises(ValidationError):
            register_service.record_expense(cashier_id, expense(description="   "))

        no_party = ExpenseCreate(amount=Decimal("10"), type=ExpenseType.EMPLOYEE_ADVANCE, description="Adelanto")
        with pytest.raises(ValidationError) as exc:
            register_service.record_expense(cashier_id, no_party)
        assert "empleado" in exc.value.message

    def test_list_expenses(self, open_register, register_service, cashier_id):
        register = open_register("100")
        register_service.record_expense(cashier_id, expense("20"))
        register_service.record_expense(cashier_id, expense("7.50"))

        expenses, total = register_service.list_expenses(register.id)
        assert len(expenses) == 2
        assert total == Decimal("27.50")

    def test_expense_publishes_register_update(self, open_register, register_service, cashier_id, change_feed):
        register = open_register("100")
        events = []
        change_feed.subscribe("cash_registers", events.append)

        register_service.record_expense(cashier_id, expense())

        assert [(e.entity_id, e.action) for e in events] == [(register.id, "updated")]

    def test_expense_after_concurrent_close_is_rejected(self, db_session, open_register, register_service, cashier_id):
        """Un egreso no puede sumarse a una caja que otra sesión acaba de cerrar"""
        register = open_register("100")
        original = register_service.require_active_register

        def read_then_close(cid):
            found = original(cid)
            db_session.query(CashRegister).filter(CashRegister.id == register.id).update(
                {"closing_amount": Decimal("100"), "closed_at": register.started_at},
                synchronize_session=False,
            )
            db_session.commit()
            return found

        register_service.require_active_register = read_then_close
        with pytest.raises(InvalidStateError):
            register_service.record_expense(cashier_id, expense("20"))

        db_session.expire_all()
        assert db_session.get(CashRegister, register.id).expenses_total == Decimal("0.00")
        assert db_session.query(CashRegisterExpense).count() == 0


# ===== CIERRE =====

class TestCloseRegister:

    def test_end_to_end_balanced(self, db_session, open_register, register_service, cashier_id):
        """Apertura 100, venta en efectivo 50, egreso 20, declarado 130: cuadra"""
        register = open_register("100")
        register_service.record_sale(register.id, PaymentMethod.CASH, Decimal("50"))
        db_session.commit()
        register_service.record_expense(cashier_id, expense("20"))

        summary = register_service.request_close(cashier_id, Decimal("130"))

        assert summary.expected_cash == Decimal("130.00")
        assert summary.difference == Decimal("0.00")
        assert summary.classification == CashDifference.BALANCED

    def test_request_close_is_a_dry_run(self, db_session, open_register, register_service, cashier_id):
        register = open_register("100")

        summary = register_service.request_close(cashier_id, Decimal("90"))

        assert summary.classification == CashDifference.SHORTAGE
        assert summary.difference == Decimal("-10.00")
        assert register_service.get_state(cashier_id) == RegisterState.CLOSING
        db_session.refresh(register)
        assert register.closed_at is None
        assert register.closing_amount is None

    def test_recount_while_closing_replaces_declared_amount(self, open_register, register_service, cashier_id):
        open_register("100")
        register_service.request_close(cashier_id, Decimal("90"))
        summary = register_service.request_close(cashier_id, Decimal("110"))

        assert summary.classification == CashDifference.SURPLUS
        assert register_service.get_current(cashier_id)["declared_amount"] == Decimal("110.00")

    def test_confirm_close_finalizes_register(self, open_register, register_service, cashier_id):
        register = open_register("100")
        register_service.request_close(cashier_id, Decimal("95"))

        closed, summary = register_service.confirm_close(cashier_id)

        assert closed.id == register.id
        assert closed.closing_amount == Decimal("95.00")
        assert closed.closed_at is not None
        assert summary.classification == CashDifference.SHORTAGE
        assert register_service.get_state(cashier_id) == RegisterState.CLOSED

    def test_confirm_twice_fails_and_keeps_closing_amount(self, db_session, open_register, register_service, cashier_id):
        register = open_register("100")
        register_service.request_close(cashier_id, Decimal("100"))
        register_service.confirm_close(cashier_id)

        with pytest.raises(InvalidStateError):
            register_service.confirm_close(cashier_id, Decimal("999"))

        db_session.refresh(register)
        assert register.closing_amount == Decimal("100.00")

    def test_confirm_without_request_fails(self, open_register, register_service, cashier_id):
        open_register("100")
        with pytest.raises(InvalidStateError):
            register_service.confirm_close(cashier_id)

    def test_confirm_when_closed_elsewhere(self, db_session, open_register, register_service, close_requests, cashier_id):
        """Si otra sesión cerró la caja, la confirmación no pisa su cierre"""
        register = open_register("100")
        register_service.request_close(cashier_id, Decimal("100"))

        other_session_service = CashRegisterService(db_session, close_requests)
        # Simula el cierre concurrente justo después de leer la caja abierta
        original = other_session_service.get_active_register

        def read_then_close(cid):
            found = original(cid)
            db_session.query(CashRegister).filter(CashRegister.id == register.id).update(
                {"closing_amount": Decimal("80"), "closed_at": register.started_at},
                synchronize_session=False,
            )
            db_session.commit()
            return found

        other_session_service.get_active_register = read_then_close
        with pytest.raises(InvalidStateError):
            other_session_service.confirm_close(cashier_id)

        db_session.expire_all()
        assert db_session.get(CashRegister, register.id).closing_amount == Decimal("80.00")

    def test_cancel_close_returns_to_open(self, open_register, register_service, cashier_id):
        open_register("100")
        register_service.request_close(cashier_id, Decimal("100"))

        register_service.cancel_close(cashier_id)

        assert register_service.get_state(cashier_id) == RegisterState.OPEN
        with pytest.raises(InvalidStateError):
            register_service.cancel_close(cashier_id)

    def test_cancel_close_publishes_register_update(self, open_register, register_service, cashier_id, change_feed):
        register = open_register("100")
        register_service.request_close(cashier_id, Decimal("100"))
        events = []
        change_feed.subscribe("cash_registers", events.append)

        register_service.cancel_close(cashier_id)

        assert [(e.entity_id, e.action) for e in events] == [(register.id, "updated")]

    def test_pending_close_dropped_when_closed_elsewhere(
        self, db_session, open_register, register_service, close_requests, cashier_id
    ):
        register = open_register("100")
        register_service.request_close(cashier_id, Decimal("100"))
        db_session.query(CashRegister).filter(CashRegister.id == register.id).update(
            {"closing_amount": Decimal("100"), "closed_at": register.started_at},
            synchronize_session=False,
        )
        db_session.commit()

        assert register_service.get_state(cashier_id) == RegisterState.CLOSED
        assert register.id not in close_requests
        assert len(close_requests) == 0

        second = open_register("50")
        assert register_service.get_state(cashier_id) == RegisterState.OPEN
        assert second.id not in close_requests

    def test_closing_blocks_expenses(self, open_register, register_service, cashier_id):
        open_register("100")
        register_service.request_close(cashier_id, Decimal("100"))
        with pytest.raises(InvalidStateError):
            register_service.record_expense(cashier_id, expense())

    def test_negative_declared_amount_fails(self, open_register, register_service, cashier_id):
        open_register("100")
        with pytest.raises(ValidationError):
            register_service.request_close(cashier_id, Decimal("-1"))

    def test_new_register_after_close(self, open_register, register_service, cashier_id):
        first = open_register("100")
        register_service.request_close(cashier_id, Decimal("100"))
        register_service.confirm_close(cashier_id)

        second = open_register("150")

        assert second.id != first.id
        assert register_service.compute_expected_cash(second) == Decimal("150.00")

    def test_get_register_not_found(self, register_service):
        with pytest.raises(NotFoundError):
            register_service.get_register(uuid4())


# ===== HTTP =====

class TestCashRegisterEndpoints:

    def test_full_shift(self, client, cashier_headers):
        response = client.get("/api/v1/cash-registers/current", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["state"] == "closed"

        response = client.post("/api/v1/cash-registers/open", json={"opening_amount": "100"}, headers=cashier_headers)
        assert response.status_code == 201
        register_id = response.json()["id"]

        response = client.post(
            "/api/v1/cash-registers/current/expenses",
            json={
                "amount": "20",
                "type": "supplier_payment",
                "description": "Harina",
                "party_id": str(uuid4()),
            },
            headers=cashier_headers,
        )
        assert response.status_code == 201

        response = client.get("/api/v1/cash-registers/current/expenses", headers=cashier_headers)
        assert Decimal(response.json()["total"]) == Decimal("20")

        response = client.post(
            "/api/v1/cash-registers/current/close/request",
            json={"declared_amount": "75"},
            headers=cashier_headers,
        )
        assert response.status_code == 200
        assert response.json()["classification"] == "shortage"
        assert Decimal(response.json()["difference"]) == Decimal("-5")

        current = client.get("/api/v1/cash-registers/current", headers=cashier_headers).json()
        assert current["state"] == "closing"
        assert Decimal(current["expected_cash"]) == Decimal("80")

        response = client.post("/api/v1/cash-registers/current/close/confirm", headers=cashier_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["register"]["id"] == register_id
        assert Decimal(body["register"]["closing_amount"]) == Decimal("75")
        assert body["register"]["is_open"] is False

        response = client.post("/api/v1/cash-registers/current/close/confirm", headers=cashier_headers)
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidStateError"

    def test_open_twice_returns_conflict(self, client, cashier_headers):
        client.post("/api/v1/cash-registers/open", json={"opening_amount": "100"}, headers=cashier_headers)
        response = client.post("/api/v1/cash-registers/open", json={"opening_amount": "100"}, headers=cashier_headers)
        assert response.status_code == 409

    def test_seller_cannot_open_register(self, client, seller_headers):
        response = client.post("/api/v1/cash-registers/open", json={"opening_amount": "100"}, headers=seller_headers)
        assert response.status_code == 403

    def test_requires_token(self, client):
        response = client.get("/api/v1/cash-registers/current")
        assert response.status_code in (401, 403)
