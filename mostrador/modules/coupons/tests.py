"""
Tests para el módulo de Cupones

Verifican cada motivo de rechazo en el orden en que se evalúa y el
descarte automático al cambiar a un medio de pago distinto de efectivo.
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

from mostrador.common.exceptions import BusinessRuleError, NotFoundError, ValidationError
from mostrador.common.money import utcnow
from mostrador.modules.coupons.models import CouponUsage
from mostrador.modules.coupons.service import CouponRejection, CouponService, CouponValidation, normalize_code
from mostrador.modules.payments.models import Payment, PaymentMethod


@pytest.fixture
def coupons(db_session):
    return CouponService(db_session)


@pytest.fixture
def record_prior_usage(db_session, make_order, open_register, cashier_id):
    """Registra un uso previo del cupón con un cobro real de respaldo"""
    def _record(coupon):
        order = make_order("50.00")
        register = open_register("100")
        payment = Payment(
            order_id=order.id,
            register_id=register.id,
            cashier_id=cashier_id,
            amount=Decimal("45.00"),
            payment_method=PaymentMethod.CASH,
            pay_cash=Decimal("45.00"),
            pay_non_cash=Decimal("0.00"),
            settlement_key=uuid4().hex,
        )
        db_session.add(payment)
        db_session.flush()
        db_session.add(CouponUsage(
            coupon_id=coupon.id,
            order_id=order.id,
            payment_id=payment.id,
            discount_amount=Decimal("5.00"),
        ))
        db_session.commit()
    return _record


class TestCouponValidation:

    def test_valid_coupon(self, coupons, make_coupon):
        coupon = make_coupon("VERANO15", discount_percentage="15")

        result = coupons.validate("  verano15 ", Decimal("100"), PaymentMethod.CASH)

        assert result.coupon_id == coupon.id
        assert result.code == "VERANO15"
        assert result.discount_percentage == Decimal("15")

    @pytest.mark.parametrize("method", [PaymentMethod.CREDIT, PaymentMethod.TRANSFER])
    def test_non_cash_rejected_first(self, coupons, method):
        """El medio de pago se verifica antes que el código"""
        with pytest.raises(BusinessRuleError) as exc:
            coupons.validate("", Decimal("100"), method)
        assert exc.value.reason == CouponRejection.NOT_CASH_PAYMENT.value

    def test_non_cash_allowed_with_prior_cash(self, coupons, make_coupon):
        make_coupon("DESC10")
        result = coupons.validate("DESC10", Decimal("60"), PaymentMethod.CREDIT, prior_cash_amount=Decimal("40"))
        assert result.code == "DESC10"

    @pytest.mark.parametrize("code", ["", "   ", None])
    def test_empty_code(self, coupons, code):
        with pytest.raises(ValidationError) as exc:
            coupons.validate(code, Decimal("100"), PaymentMethod.CASH)
        assert exc.value.reason == CouponRejection.EMPTY_CODE.value

    def test_unknown_code(self, coupons):
        with pytest.raises(NotFoundError) as exc:
            coupons.validate("NOEXISTE", Decimal("100"), PaymentMethod.CASH)
        assert exc.value.reason == CouponRejection.NOT_FOUND.value

    def test_inactive_coupon(self, coupons, make_coupon):
        make_coupon("VIEJO", is_active=False)
        with pytest.raises(NotFoundError) as exc:
            coupons.validate("VIEJO", Decimal("100"), PaymentMethod.CASH)
        assert exc.value.reason == CouponRejection.INACTIVE.value

    def test_below_minimum_order(self, coupons, make_coupon):
        make_coupon("GRANDE", min_order_amount=Decimal("500"))
        with pytest.raises(BusinessRuleError) as exc:
            coupons.validate("GRANDE", Decimal("499.99"), PaymentMethod.CASH)
        assert exc.value.reason == CouponRejection.BELOW_MINIMUM_ORDER.value
        assert "$500.00" in exc.value.message

        assert coupons.validate("GRANDE", Decimal("500"), PaymentMethod.CASH).code == "GRANDE"

    def test_usage_limit_reached(self, coupons, make_coupon, record_prior_usage):
        """Con usage_limit = 1 y un uso previo se rechaza aunque esté vigente"""
        now = utcnow()
        coupon = make_coupon(
            "UNICO",
            usage_limit=1,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=30),
        )
        record_prior_usage(coupon)

        with pytest.raises(BusinessRuleError) as exc:
            coupons.validate("UNICO", Decimal("100"), PaymentMethod.CASH)
        assert exc.value.reason == CouponRejection.USAGE_LIMIT_REACHED.value
        assert coupons.usage_count(coupon.id) == 1

    def test_zero_usage_limit_is_unlimited(self, coupons, make_coupon, record_prior_usage):
        coupon = make_coupon("LIBRE", usage_limit=0)
        record_prior_usage(coupon)
        assert coupons.validate("LIBRE", Decimal("100"), PaymentMethod.CASH).code == "LIBRE"

    def test_not_yet_valid(self, coupons, make_coupon):
        make_coupon("FUTURO", valid_from=utcnow() + timedelta(days=2))
        with pytest.raises(BusinessRuleError) as exc:
            coupons.validate("FUTURO", Decimal("100"), PaymentMethod.CASH)
        assert exc.value.reason == CouponRejection.NOT_YET_VALID.value

    def test_expired(self, coupons, make_coupon):
        make_coupon("PASADO", valid_until=utcnow() - timedelta(minutes=1))
        with pytest.raises(BusinessRuleError) as exc:
            coupons.validate("PASADO", Decimal("100"), PaymentMethod.CASH)
        assert exc.value.reason == CouponRejection.EXPIRED.value

    def test_validity_checked_against_given_now(self, coupons, make_coupon):
        now = utcnow()
        make_coupon("SEMANA", valid_from=now, valid_until=now + timedelta(days=7))

        assert coupons.validate("SEMANA", Decimal("10"), PaymentMethod.CASH, now=now + timedelta(days=3))
        with pytest.raises(BusinessRuleError):
            coupons.validate("SEMANA", Decimal("10"), PaymentMethod.CASH, now=now + timedelta(days=8))


class TestCouponHelpers:

    def test_normalize_code(self):
        assert normalize_code("  desc10 ") == "DESC10"
        assert normalize_code(None) == ""

    def test_reconcile_clears_coupon_on_non_cash(self):
        applied = CouponValidation(coupon_id=uuid4(), code="DESC10", discount_percentage=Decimal("10"))

        assert CouponService.reconcile_payment_method(applied, PaymentMethod.CASH) == (applied, None)
        assert CouponService.reconcile_payment_method(applied, PaymentMethod.CREDIT) == (
            None, CouponRejection.NOT_CASH_PAYMENT
        )
        assert CouponService.reconcile_payment_method(None, PaymentMethod.TRANSFER) == (None, None)


class TestCouponEndpoints:

    def test_validate_endpoint(self, client, cashier_headers, make_coupon):
        make_coupon("DESC10")
        response = client.post(
            "/api/v1/coupons/validate",
            json={"code": "desc10", "order_total": "100", "payment_method": "cash"},
            headers=cashier_headers,
        )
        assert response.status_code == 200
        assert Decimal(response.json()["discount_percentage"]) == Decimal("10")

    def test_validate_endpoint_reports_reason(self, client, cashier_headers, make_coupon):
        make_coupon("DESC10")
        response = client.post(
            "/api/v1/coupons/validate",
            json={"code": "DESC10", "order_total": "100", "payment_method": "credit"},
            headers=cashier_headers,
        )
        assert response.status_code == 422
        assert response.json()["reason"] == "not_cash_payment"
        assert response.json()["error"] == "BusinessRuleError"
