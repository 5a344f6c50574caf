"""
Tests para el módulo de Cobros

Cubren:
- Monto base según tipo y estado del pedido
- Descuentos solo en efectivo (y la excepción del saldo con seña en efectivo)
- Liquidación atómica: Payment, CouponUsage, pedido y caja juntos
- Idempotencia por settlement_key
- Reglas de la seña (DepositManager)
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from mostrador.common.exceptions import (
    BusinessRuleError, InvalidStateError, NotFoundError, TransientIOError, ValidationError
)
from mostrador.modules.cash_registers.models import CashRegister
from mostrador.modules.cash_registers.service import CashRegisterService
from mostrador.modules.coupons.models import CouponUsage
from mostrador.modules.orders.models import Order, OrderQueueEntry, OrderStatus, OrderType
from mostrador.modules.orders.service import OrderService
from mostrador.modules.payments.deposits import DepositManager, DepositRange
from mostrador.modules.payments.models import Payment, PaymentMethod
from mostrador.modules.payments.schemas import QuoteRequest, SettleRequest
from mostrador.modules.payments.service import PaymentSettlementService


# ===== FIXTURES =====

@pytest.fixture
def settlement(db_session, close_requests, change_feed):
    return PaymentSettlementService(db_session, close_requests, change_feed)


def settle_request(method=PaymentMethod.CASH, deposit=None, coupon=None, key=None):
    return SettleRequest(
        payment_method=method,
        deposit_amount=Decimal(deposit) if deposit is not None else None,
        coupon_code=coupon,
        settlement_key=key,
    )


def register_of(db_session, register_id):
    db_session.expire_all()
    return db_session.get(CashRegister, register_id)


# ===== MONTO BASE =====

class TestSettlementPlan:

    def test_regular_order_charges_total(self, settlement, make_order):
        order = make_order("250.00")
        plan = settlement.build_plan(order, PaymentMethod.CASH)

        assert plan.base_amount == Decimal("250.00")
        assert plan.final_amount == Decimal("250.00")
        assert plan.next_status == OrderStatus.PAID
        assert plan.is_deposit is False

    def test_preorder_pending_charges_deposit(self, settlement, make_order):
        order = make_order("100.00", order_type=OrderType.PRE_ORDER)
        plan = settlement.build_plan(order, PaymentMethod.TRANSFER, deposit_amount=Decimal("50"))

        assert plan.is_deposit is True
        assert plan.base_amount == Decimal("50.00")
        assert plan.remaining_after == Decimal("50.00")
        assert plan.next_status == OrderStatus.PROCESSING
        assert plan.pay_cash == Decimal("0.00")
        assert plan.pay_non_cash == Decimal("50.00")

    def test_preorder_without_deposit_fails(self, settlement, make_order):
        order = make_order("100.00", order_type=OrderType.PRE_ORDER)
        with pytest.raises(ValidationError) as exc:
            settlement.build_plan(order, PaymentMethod.CASH)
        assert exc.value.context["minimum_deposit"] == Decimal("10.00")

    def test_deposit_on_regular_order_fails(self, settlement, make_order):
        order = make_order("100.00")
        with pytest.raises(ValidationError):
            settlement.build_plan(order, PaymentMethod.CASH, deposit_amount=Decimal("40"))

    def test_discount_never_drives_final_below_zero(self, settlement, make_order, make_coupon):
        make_coupon("TOTAL", discount_percentage="100")
        order = make_order("80.00")
        plan = settlement.build_plan(order, PaymentMethod.CASH, coupon_code="TOTAL")

        assert plan.discount_amount == Decimal("80.00")
        assert plan.final_amount == Decimal("0.00")


# ===== COBRO =====

class TestSettle:

    def test_regular_cash_settlement(self, db_session, settlement, open_register, make_order, cashier_id):
        register = open_register("100")
        order = make_order("45.50")

        payment, settled, replayed = settlement.settle(order.id, settle_request(), cashier_id)

        assert replayed is False
        assert payment.amount == Decimal("45.50")
        assert payment.pay_cash == Decimal("45.50")
        assert payment.pay_non_cash == Decimal("0.00")
        assert payment.register_id == register.id
        assert settled.status == OrderStatus.PAID
        assert settled.remaining_amount == Decimal("0.00")
        assert settled.payment_method == PaymentMethod.CASH

        register = register_of(db_session, register.id)
        assert register.cash_sales == Decimal("45.50")
        assert register.deposits_received == Decimal("0.00")

        entry = db_session.query(OrderQueueEntry).filter(OrderQueueEntry.order_id == order.id).one()
        assert entry.priority == 0

    @pytest.mark.parametrize("method, column", [
        (PaymentMethod.CREDIT, "card_sales"),
        (PaymentMethod.TRANSFER, "transfer_sales"),
    ])
    def test_non_cash_goes_to_its_column(self, db_session, settlement, open_register, make_order, cashier_id, method, column):
        register = open_register("100")
        order = make_order("70.00")

        settlement.settle(order.id, settle_request(method), cashier_id)

        register = register_of(db_session, register.id)
        assert getattr(register, column) == Decimal("70.00")
        assert register.cash_sales == Decimal("0.00")
        assert CashRegisterService.compute_expected_cash(register) == Decimal("100.00")

    def test_coupon_with_credit_fails_and_nothing_is_charged(self, db_session, settlement, open_register,
                                                             make_order, make_coupon, cashier_id):
        """Un cupón con tarjeta se rechaza; sin cupón se cobra el total"""
        register = open_register("100")
        make_coupon("DESC10", discount_percentage="10")
        order = make_order("100.00")

        with pytest.raises(BusinessRuleError) as exc:
            settlement.settle(order.id, settle_request(PaymentMethod.CREDIT, coupon="desc10"), cashier_id)
        assert exc.value.reason == "not_cash_payment"
        assert db_session.query(Payment).count() == 0

        payment, settled, _ = settlement.settle(order.id, settle_request(PaymentMethod.CREDIT), cashier_id)
        assert payment.amount == Decimal("100.00")
        assert payment.discount_amount is None
        assert register_of(db_session, register.id).card_sales == Decimal("100.00")

    def test_preorder_deposit_with_cash_coupon(self, db_session, settlement, open_register,
                                               make_order, make_coupon, cashier_id):
        """Total 100, seña 40 con cupón 10% en efectivo: se cobran 36"""
        register = open_register("100")
        coupon = make_coupon("DESC10", discount_percentage="10")
        order = make_order("100.00", order_type=OrderType.PRE_ORDER)

        payment, settled, _ = settlement.settle(
            order.id, settle_request(deposit="40", coupon="DESC10"), cashier_id
        )

        assert payment.is_deposit is True
        assert payment.discount_amount == Decimal("4.00")
        assert payment.amount == Decimal("36.00")
        assert settled.status == OrderStatus.PROCESSING
        assert settled.deposit_amount == Decimal("40.00")
        assert settled.remaining_amount == Decimal("60.00")
        assert settled.discount_total == Decimal("4.00")
        assert settled.total_amount_with_discount == Decimal("96.00")

        register = register_of(db_session, register.id)
        assert register.cash_sales == Decimal("36.00")
        assert register.deposits_received == Decimal("36.00")

        usage = db_session.query(CouponUsage).one()
        assert usage.coupon_id == coupon.id
        assert usage.payment_id == payment.id
        assert usage.discount_amount == Decimal("4.00")

        assert db_session.query(OrderQueueEntry).count() == 0

    def test_preorder_remaining_after_cash_deposit_extends_discount_base(self, db_session, settlement, open_register,
                                                                         make_order, make_coupon, cashier_id):
        """Saldo con tarjeta: el descuento se calcula sobre el efectivo previo"""
        open_register("100")
        make_coupon("DESC10", discount_percentage="10")
        order = make_order("100.00", order_type=OrderType.PRE_ORDER)
        settlement.settle(order.id, settle_request(deposit="40"), cashier_id)

        payment, settled, _ = settlement.settle(
            order.id, settle_request(PaymentMethod.CREDIT, coupon="DESC10"), cashier_id
        )

        # Base 60, elegible = 40 de efectivo previo
        assert payment.discount_amount == Decimal("4.00")
        assert payment.amount == Decimal("56.00")
        assert payment.pay_non_cash == Decimal("56.00")
        assert settled.status == OrderStatus.PAID
        assert settled.remaining_amount == Decimal("0.00")

        entry = db_session.query(OrderQueueEntry).filter(OrderQueueEntry.order_id == order.id).one()
        assert entry.priority == 1

    def test_discount_on_remaining_never_exceeds_amount_owed(self, db_session, settlement, open_register,
                                                              make_order, make_coupon, cashier_id):
        """Seña 90 en efectivo, saldo 10 con cupón 20%: el descuento se limita a 10"""
        register = open_register("100")
        coupon = make_coupon("DESC20", discount_percentage="20")
        order = make_order("100.00", order_type=OrderType.PRE_ORDER)
        settlement.settle(order.id, settle_request(deposit="90"), cashier_id)

        payment, settled, _ = settlement.settle(order.id, settle_request(coupon="DESC20"), cashier_id)

        # Elegible 90 + 10 = 100, el 20% (20) supera el saldo
        assert payment.discount_amount == Decimal("10.00")
        assert payment.amount == Decimal("0.00")
        assert settled.status == OrderStatus.PAID
        assert settled.discount_total == Decimal("10.00")
        assert settled.total_amount_with_discount == Decimal("90.00")

        usage = db_session.query(CouponUsage).filter(CouponUsage.coupon_id == coupon.id).one()
        assert usage.discount_amount == Decimal("10.00")
        assert register_of(db_session, register.id).cash_sales == Decimal("90.00")

    def test_preorder_remaining_without_prior_cash_rejects_non_cash_coupon(self, settlement, open_register,
                                                                           make_order, make_coupon, cashier_id):
        open_register("100")
        make_coupon("DESC10")
        order = make_order("100.00", order_type=OrderType.PRE_ORDER)
        settlement.settle(order.id, settle_request(PaymentMethod.TRANSFER, deposit="30"), cashier_id)

        with pytest.raises(BusinessRuleError):
            settlement.settle(order.id, settle_request(PaymentMethod.CREDIT, coupon="DESC10"), cashier_id)

    def test_paid_order_cannot_be_settled_again(self, settlement, open_register, make_order, cashier_id):
        open_register("100")
        order = make_order("10.00")
        settlement.settle(order.id, settle_request(), cashier_id)

        with pytest.raises(InvalidStateError):
            settlement.settle(order.id, settle_request(), cashier_id)

    def test_cancelled_order_cannot_be_settled(self, db_session, settlement, open_register, make_order, cashier_id):
        open_register("100")
        order = make_order("10.00")
        OrderService(db_session).cancel_order(order.id)

        with pytest.raises(InvalidStateError):
            settlement.settle(order.id, settle_request(), cashier_id)

    def test_settle_requires_open_register(self, settlement, make_order, cashier_id):
        order = make_order("10.00")
        with pytest.raises(InvalidStateError):
            settlement.settle(order.id, settle_request(), cashier_id)

    def test_settle_rejected_while_closing(self, settlement, register_service, open_register, make_order, cashier_id):
        open_register("100")
        register_service.request_close(cashier_id, Decimal("100"))
        order = make_order("10.00")

        with pytest.raises(InvalidStateError):
            settlement.settle(order.id, settle_request(), cashier_id)

    def test_unknown_order(self, settlement, open_register, cashier_id):
        open_register("100")
        with pytest.raises(NotFoundError):
            settlement.settle(uuid4(), settle_request(), cashier_id)

    def test_failure_rolls_back_every_step(self, db_session, settlement, open_register, make_order,
                                           make_coupon, cashier_id, monkeypatch):
        """Si falla la actualización de la caja no queda ningún rastro del cobro"""
        register = open_register("100")
        make_coupon("DESC10")
        order = make_order("100.00")

        def broken_record_sale(self, *args, **kwargs):
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr(CashRegisterService, "record_sale", broken_record_sale)

        with pytest.raises(TransientIOError):
            settlement.settle(order.id, settle_request(coupon="DESC10"), cashier_id)

        db_session.expire_all()
        assert db_session.query(Payment).count() == 0
        assert db_session.query(CouponUsage).count() == 0
        assert db_session.get(Order, order.id).status == OrderStatus.PENDING
        assert db_session.get(CashRegister, register.id).cash_sales == Decimal("0.00")

    def test_settle_publishes_changes(self, settlement, open_register, make_order, cashier_id, change_feed):
        register = open_register("100")
        order = make_order("10.00")
        events = []
        for kind in ("payments", "orders", "cash_registers"):
            change_feed.subscribe(kind, events.append)

        payment, _, _ = settlement.settle(order.id, settle_request(), cashier_id)

        assert [(e.entity_kind, e.entity_id) for e in events] == [
            ("payments", payment.id),
            ("orders", order.id),
            ("cash_registers", register.id),
        ]


# ===== IDEMPOTENCIA =====

class TestSettlementIdempotency:

    def test_same_key_returns_original_payment(self, db_session, settlement, open_register, make_order, cashier_id):
        register = open_register("100")
        order = make_order("25.00")

        first, _, replayed_first = settlement.settle(order.id, settle_request(key="intento-1"), cashier_id)
        second, settled, replayed_second = settlement.settle(order.id, settle_request(key="intento-1"), cashier_id)

        assert replayed_first is False
        assert replayed_second is True
        assert second.id == first.id
        assert settled.status == OrderStatus.PAID
        assert db_session.query(Payment).count() == 1
        assert register_of(db_session, register.id).cash_sales == Decimal("25.00")

    def test_key_reused_on_other_order_fails(self, settlement, open_register, make_order, cashier_id):
        open_register("100")
        first_order = make_order("25.00")
        second_order = make_order("30.00")
        settlement.settle(first_order.id, settle_request(key="intento-1"), cashier_id)

        with pytest.raises(ValidationError):
            settlement.settle(second_order.id, settle_request(key="intento-1"), cashier_id)

    def test_generated_keys_are_unique(self, settlement, open_register, make_order, cashier_id):
        open_register("100")
        first, _, _ = settlement.settle(make_order("1.00").id, settle_request(), cashier_id)
        second, _, _ = settlement.settle(make_order("2.00").id, settle_request(), cashier_id)

        assert first.settlement_key != second.settlement_key


# ===== SIMULACIÓN =====

class TestQuote:

    def test_quote_with_cash_coupon(self, settlement, make_order, make_coupon):
        make_coupon("DESC10")
        order = make_order("100.00")

        quote = settlement.quote(order.id, QuoteRequest(payment_method=PaymentMethod.CASH, coupon_code="desc10"))

        assert quote["coupon_code"] == "DESC10"
        assert quote["discount_percentage"] == Decimal("10")
        assert quote["discount_amount"] == Decimal("10.00")
        assert quote["final_amount"] == Decimal("90.00")
        assert quote["coupon_notice"] is None

    def test_switching_to_card_clears_coupon(self, settlement, make_order, make_coupon):
        make_coupon("DESC10")
        order = make_order("100.00")

        quote = settlement.quote(order.id, QuoteRequest(payment_method=PaymentMethod.CREDIT, coupon_code="DESC10"))

        assert quote["coupon_code"] is None
        assert quote["coupon_notice"] == "not_cash_payment"
        assert quote["discount_amount"] == Decimal("0.00")
        assert quote["final_amount"] == Decimal("100.00")

    def test_quote_does_not_write(self, db_session, settlement, make_order):
        order = make_order("100.00", order_type=OrderType.PRE_ORDER)

        quote = settlement.quote(order.id, QuoteRequest(payment_method=PaymentMethod.CASH, deposit_amount=Decimal("20")))

        assert quote["is_deposit"] is True
        assert quote["minimum_deposit"] == Decimal("10.00")
        assert quote["deposit_advisory"] is not None
        db_session.expire_all()
        assert db_session.get(Order, order.id).deposit_amount == Decimal("0.00")


# ===== SEÑA =====

class TestDepositManager:

    @pytest.mark.parametrize("total, minimum", [
        ("50", "10.00"),
        ("200", "20.00"),
        ("100", "10.00"),
        ("1234.56", "123.46"),
    ])
    def test_minimum_deposit(self, total, minimum):
        assert DepositManager().minimum_deposit(Decimal(total)) == Decimal(minimum)

    def test_deposit_above_total_fails(self):
        with pytest.raises(ValidationError) as exc:
            DepositManager().validate(Decimal("200"), Decimal("200") * Decimal("1.01"))
        assert "superar" in exc.value.message

    def test_deposit_below_minimum_reports_minimum(self):
        with pytest.raises(ValidationError) as exc:
            DepositManager().validate(Decimal("200"), Decimal("15"))
        assert exc.value.context["minimum_deposit"] == Decimal("20.00")
        assert "$20.00" in exc.value.message
        assert "10%" in exc.value.message

    @pytest.mark.parametrize("deposit", ["0", "-5"])
    def test_non_positive_deposit_fails(self, deposit):
        with pytest.raises(ValidationError):
            DepositManager().validate(Decimal("100"), Decimal(deposit))

    def test_total_below_absolute_minimum_admits_no_deposit(self):
        with pytest.raises(ValidationError):
            DepositManager().validate(Decimal("8"), Decimal("8"))

    @pytest.mark.parametrize("deposit, expected_range, has_advisory", [
        ("20", DepositRange.BELOW_RECOMMENDED, True),
        ("30", DepositRange.RECOMMENDED, False),
        ("50", DepositRange.RECOMMENDED, False),
        ("70", DepositRange.RECOMMENDED, False),
        ("71", DepositRange.HIGH, True),
        ("100", DepositRange.HIGH, True),
    ])
    def test_assess_ranges(self, deposit, expected_range, has_advisory):
        assessment = DepositManager().assess(Decimal("100"), Decimal(deposit))

        assert assessment.range == expected_range
        assert (assessment.advisory is not None) == has_advisory
        assert assessment.remaining_amount == Decimal("100") - Decimal(deposit)

    def test_advisory_text(self):
        assessment = DepositManager().assess(Decimal("100"), Decimal("20"))
        assert assessment.advisory == "Sugerencia: la seña es menor al 30% recomendado"

    def test_presets(self):
        assert DepositManager.presets(Decimal("85")) == {
            30: Decimal("25.50"),
            50: Decimal("42.50"),
            70: Decimal("59.50"),
            100: Decimal("85.00"),
        }

    def test_custom_thresholds(self):
        manager = DepositManager(min_ratio=Decimal("0.20"), min_amount=Decimal("5"))
        assert manager.minimum_deposit(Decimal("100")) == Decimal("20.00")
        assert manager.minimum_deposit(Decimal("10")) == Decimal("5.00")


# ===== HTTP =====

class TestPaymentEndpoints:

    def test_settle_and_list(self, client, cashier_headers, make_order):
        client.post("/api/v1/cash-registers/open", json={"opening_amount": "100"}, headers=cashier_headers)
        order = make_order("60.00")

        response = client.post(
            f"/api/v1/payments/orders/{order.id}/settle",
            json={"payment_method": "cash", "settlement_key": "caja-1-pedido-1"},
            headers=cashier_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["order_status"] == "paid"
        assert body["replayed"] is False
        assert Decimal(body["payment"]["amount"]) == Decimal("60")

        response = client.post(
            f"/api/v1/payments/orders/{order.id}/settle",
            json={"payment_method": "cash", "settlement_key": "caja-1-pedido-1"},
            headers=cashier_headers,
        )
        assert response.status_code == 200
        assert response.json()["replayed"] is True

        response = client.get(f"/api/v1/payments/orders/{order.id}", headers=cashier_headers)
        assert len(response.json()["payments"]) == 1
        assert Decimal(response.json()["total_paid"]) == Decimal("60")

    def test_settle_without_register_returns_conflict(self, client, cashier_headers, make_order):
        order = make_order("60.00")
        response = client.post(
            f"/api/v1/payments/orders/{order.id}/settle",
            json={"payment_method": "cash"},
            headers=cashier_headers,
        )
        assert response.status_code == 409

    def test_deposit_assessment(self, client, cashier_headers):
        response = client.get(
            "/api/v1/payments/deposits/assessment",
            params={"total_amount": "100", "deposit_amount": "80"},
            headers=cashier_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["range"] == "high"
        assert Decimal(body["remaining_amount"]) == Decimal("20")
        assert Decimal(body["presets"]["50"]) == Decimal("50")

    def test_deposit_assessment_below_minimum(self, client, cashier_headers):
        response = client.get(
            "/api/v1/payments/deposits/assessment",
            params={"total_amount": "200", "deposit_amount": "10"},
            headers=cashier_headers,
        )
        assert response.status_code == 422
        assert response.json()["minimum_deposit"] == "20.00"
