"""
Validación de cupones de descuento.

Los descuentos solo aplican a pagos en efectivo. Excepción: el saldo de un
pedido anticipado cuya seña se pagó en efectivo (prior_cash_amount > 0).

Orden de verificación:
1. medio de pago en efectivo
2. código no vacío
3. existe / está activo
4. monto mínimo del pedido
5. límite de usos (solo si usage_limit > 0)
6. vigencia (valid_from / valid_until)
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from mostrador.common.exceptions import BusinessRuleError, NotFoundError, ValidationError
from mostrador.common.money import as_utc, to_decimal, to_money, utcnow
from mostrador.modules.coupons.models import Coupon, CouponUsage
from mostrador.modules.payments.models import PaymentMethod

logger = logging.getLogger(__name__)


class CouponRejection(str, Enum):
    NOT_CASH_PAYMENT = "not_cash_payment"
    EMPTY_CODE = "empty_code"
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    BELOW_MINIMUM_ORDER = "below_minimum_order"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class CouponValidation:
    coupon_id: UUID
    code: str
    discount_percentage: Decimal


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class CouponService:
    def __init__(self, db: Session):
        self.db = db

    def validate(self, code: Optional[str], order_total, payment_method: PaymentMethod,
                 prior_cash_amount=0, now: Optional[datetime] = None) -> CouponValidation:
        """Validar un código contra el monto base y el medio de pago"""
        if PaymentMethod(payment_method) != PaymentMethod.CASH and to_decimal(prior_cash_amount) <= 0:
            self._reject(BusinessRuleError, CouponRejection.NOT_CASH_PAYMENT,
                         "Los descuentos solo aplican a pagos en efectivo")

        normalized = normalize_code(code)
        if not normalized:
            self._reject(ValidationError, CouponRejection.EMPTY_CODE, "Ingrese un código de cupón")

        coupon = self.db.query(Coupon).filter(Coupon.code == normalized).first()
        if not coupon:
            self._reject(NotFoundError, CouponRejection.NOT_FOUND, "Cupón no encontrado", code=normalized)
        if not coupon.is_active:
            self._reject(NotFoundError, CouponRejection.INACTIVE, "El cupón está inactivo", code=normalized)

        order_total = to_money(order_total)
        if coupon.min_order_amount and order_total < to_money(coupon.min_order_amount):
            self._reject(
                BusinessRuleError, CouponRejection.BELOW_MINIMUM_ORDER,
                f"Este cupón requiere un monto mínimo de ${to_money(coupon.min_order_amount)}",
                code=normalized, min_order_amount=to_money(coupon.min_order_amount),
            )

        if coupon.usage_limit and coupon.usage_limit > 0:
            used = self.usage_count(coupon.id)
            if used >= coupon.usage_limit:
                self._reject(
                    BusinessRuleError, CouponRejection.USAGE_LIMIT_REACHED,
                    "Este cupón ha alcanzado su límite de uso",
                    code=normalized, usage_limit=coupon.usage_limit,
                )

        now = now or utcnow()
        valid_from = as_utc(coupon.valid_from)
        valid_until = as_utc(coupon.valid_until)
        if valid_from and now < valid_from:
            self._reject(BusinessRuleError, CouponRejection.NOT_YET_VALID,
                         "Este cupón aún no es válido", code=normalized, valid_from=valid_from)
        if valid_until and now > valid_until:
            self._reject(BusinessRuleError, CouponRejection.EXPIRED,
                         "Este cupón ha expirado", code=normalized, valid_until=valid_until)

        return CouponValidation(
            coupon_id=coupon.id,
            code=coupon.code,
            discount_percentage=to_decimal(coupon.discount_percentage),
        )

    @staticmethod
    def reconcile_payment_method(applied: Optional[CouponValidation],
                                 payment_method: PaymentMethod) -> Tuple[Optional[CouponValidation], Optional[CouponRejection]]:
        """
        Al cambiar el medio de pago a uno distinto de efectivo, el cupón
        aplicado se descarta y se informa NOT_CASH_PAYMENT.
        """
        if applied is not None and PaymentMethod(payment_method) != PaymentMethod.CASH:
            return None, CouponRejection.NOT_CASH_PAYMENT
        return applied, None

    def usage_count(self, coupon_id: UUID) -> int:
        return self.db.query(func.count(CouponUsage.id)).filter(
            CouponUsage.coupon_id == coupon_id
        ).scalar() or 0

    def record_usage(self, coupon_id: UUID, order_id: UUID, payment_id: UUID, discount_amount) -> CouponUsage:
        """Registrar el uso dentro de la transacción del cobro (sin commit)"""
        usage = CouponUsage(
            coupon_id=coupon_id,
            order_id=order_id,
            payment_id=payment_id,
            discount_amount=to_money(discount_amount),
        )
        self.db.add(usage)
        self.db.flush()
        return usage

    @staticmethod
    def _reject(error_cls, reason: CouponRejection, message: str, **context):
        logger.info(f"Coupon rejected ({reason.value}): {context.get('code', '')}")
        raise error_cls(message, reason=reason.value, **context)
