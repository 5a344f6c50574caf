"""
Motor de cobros: liquidación de pedidos contra la caja del cajero.

Monto base según el pedido:
- regular / delivery en pending: total_amount
- anticipado en pending: seña (editable, validada por DepositManager)
- anticipado en processing: remaining_amount

Descuento: solo sobre efectivo. Para el saldo de un anticipado cuya seña
se cobró en efectivo, la base del descuento es el efectivo previo más el
efectivo actual.

discount_amount = min(base_amount, discount_eligible * discount_percentage / 100)
final_amount = max(0, base_amount - discount_amount)

Pasos 2 a 7 (split de seña, Payment, CouponUsage, estado del pedido,
totales de caja, cola de preparación) se confirman en una sola
transacción. La clave settlement_key hace que reintentar un cobro sea
seguro.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mostrador.common.exceptions import (
    InvalidStateError, NotFoundError, POSError, TransientIOError, ValidationError
)
from mostrador.common.money import ZERO, to_decimal, to_money, percentage_of, utcnow
from mostrador.common.realtime import ChangeFeed
from mostrador.modules.cash_registers.close_requests import CloseRequestStore
from mostrador.modules.cash_registers.service import CashRegisterService
from mostrador.modules.coupons.service import CouponRejection, CouponService, CouponValidation
from mostrador.modules.orders.models import Order, OrderQueueEntry, OrderStatus
from mostrador.modules.payments.deposits import DepositAssessment, DepositManager
from mostrador.modules.payments.models import Payment, PaymentMethod
from mostrador.modules.payments.schemas import QuoteRequest, SettleRequest

logger = logging.getLogger(__name__)


@dataclass
class SettlementPlan:
    """Cifras de un cobro antes de persistirlo"""
    order_status: OrderStatus
    next_status: OrderStatus
    is_deposit: bool
    base_amount: Decimal
    discount_eligible_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    remaining_after: Decimal
    pay_cash: Decimal
    pay_non_cash: Decimal
    coupon: Optional[CouponValidation] = None
    coupon_notice: Optional[CouponRejection] = None
    deposit: Optional[DepositAssessment] = None

    @property
    def discount_percentage(self) -> Optional[Decimal]:
        if self.coupon is None or self.discount_amount <= 0:
            return None
        return self.coupon.discount_percentage


class PaymentSettlementService:
    def __init__(self, db: Session, close_requests: CloseRequestStore,
                 change_feed: Optional[ChangeFeed] = None,
                 deposit_manager: Optional[DepositManager] = None):
        self.db = db
        self.close_requests = close_requests
        self.change_feed = change_feed
        self.deposit_manager = deposit_manager or DepositManager()
        self.coupons = CouponService(db)

    # ===== CONSULTAS =====

    def get_order(self, order_id: UUID) -> Order:
        order = self.db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Pedido no encontrado", order_id=order_id)
        return order

    def prior_cash_amount(self, order_id: UUID) -> Decimal:
        """Efectivo ya cobrado en el pedido (p. ej. seña en efectivo)"""
        total = self.db.query(func.coalesce(func.sum(Payment.pay_cash), 0)).filter(
            Payment.order_id == order_id
        ).scalar()
        return to_money(total)

    def list_payments(self, order_id: UUID) -> List[Payment]:
        self.get_order(order_id)
        return self.db.query(Payment).filter(
            Payment.order_id == order_id
        ).order_by(Payment.created_at).all()

    # ===== CÁLCULO =====

    def build_plan(self, order: Order, payment_method: PaymentMethod,
                   deposit_amount: Optional[Decimal] = None,
                   coupon_code: Optional[str] = None,
                   strict: bool = True) -> SettlementPlan:
        """
        Calcular base, descuento y monto final de un cobro.

        En modo estricto (cobro) un cupón con medio no efectivo es un
        BusinessRuleError; en la simulación el cupón se descarta y se
        informa en coupon_notice.
        """
        payment_method = PaymentMethod(payment_method)
        status = OrderStatus(order.status)
        total = to_money(order.total_amount)

        if status == OrderStatus.PENDING:
            pass
        elif status == OrderStatus.PROCESSING and order.is_preorder:
            pass
        else:
            raise InvalidStateError(
                f"No se puede cobrar un pedido en estado {status.value}",
                order_id=order.id, status=status.value,
            )

        deposit = None
        if order.is_preorder and status == OrderStatus.PENDING:
            requested = deposit_amount if deposit_amount is not None else order.deposit_amount
            if requested is None or to_decimal(requested) <= 0:
                raise ValidationError(
                    "Debe indicar el monto de la seña",
                    minimum_deposit=self.deposit_manager.minimum_deposit(total),
                )
            deposit = self.deposit_manager.assess(total, requested)
            base_amount = deposit.deposit_amount
            next_status = OrderStatus.PROCESSING
        else:
            if deposit_amount is not None:
                raise ValidationError("La seña solo aplica a pedidos anticipados pendientes")
            if status == OrderStatus.PROCESSING:
                base_amount = to_money(order.remaining_amount)
            else:
                base_amount = total
            next_status = OrderStatus.PAID

        is_cash = payment_method == PaymentMethod.CASH
        current_cash = base_amount if is_cash else ZERO
        prior_cash = ZERO
        if order.is_preorder and status == OrderStatus.PROCESSING:
            prior_cash = self.prior_cash_amount(order.id)
        eligible = to_money(prior_cash + current_cash) if prior_cash > 0 else current_cash

        coupon = None
        notice = None
        if coupon_code:
            if strict:
                coupon = self.coupons.validate(coupon_code, base_amount, payment_method,
                                               prior_cash_amount=prior_cash)
            else:
                coupon = self.coupons.validate(coupon_code, base_amount, PaymentMethod.CASH,
                                               prior_cash_amount=prior_cash)
                if prior_cash <= 0:
                    coupon, notice = CouponService.reconcile_payment_method(coupon, payment_method)

        discount = ZERO
        if coupon is not None and eligible > 0:
            # Con efectivo previo la base elegible puede superar lo adeudado
            discount = min(base_amount, percentage_of(eligible, coupon.discount_percentage))
        final_amount = max(ZERO, to_money(base_amount - discount))

        if next_status == OrderStatus.PAID:
            remaining_after = ZERO
        else:
            remaining_after = to_money(total - base_amount)

        return SettlementPlan(
            order_status=status,
            next_status=next_status,
            is_deposit=deposit is not None,
            base_amount=base_amount,
            discount_eligible_amount=eligible,
            discount_amount=discount,
            final_amount=final_amount,
            remaining_after=remaining_after,
            pay_cash=final_amount if is_cash else ZERO,
            pay_non_cash=ZERO if is_cash else final_amount,
            coupon=coupon,
            coupon_notice=notice,
            deposit=deposit,
        )

    def quote(self, order_id: UUID, request: QuoteRequest) -> dict:
        order = self.get_order(order_id)
        plan = self.build_plan(order, request.payment_method, request.deposit_amount,
                               request.coupon_code, strict=False)
        return {
            "order_id": order.id,
            "order_status": plan.order_status,
            "is_deposit": plan.is_deposit,
            "base_amount": plan.base_amount,
            "discount_eligible_amount": plan.discount_eligible_amount,
            "discount_percentage": plan.discount_percentage,
            "discount_amount": plan.discount_amount,
            "final_amount": plan.final_amount,
            "remaining_after": plan.remaining_after,
            "next_status": plan.next_status,
            "coupon_code": plan.coupon.code if plan.coupon else None,
            "coupon_notice": plan.coupon_notice.value if plan.coupon_notice else None,
            "minimum_deposit": plan.deposit.minimum_deposit if plan.deposit else None,
            "deposit_advisory": plan.deposit.advisory if plan.deposit else None,
        }

    # ===== COBRO =====

    def settle(self, order_id: UUID, request: SettleRequest, cashier_id: UUID) -> Tuple[Payment, Order, bool]:
        """
        Liquidar un cobro. Retorna (payment, order, replayed).

        replayed es True cuando settlement_key ya existía: se devuelve el
        cobro original sin modificar nada.
        """
        settlement_key = request.settlement_key or uuid4().hex

        replay = self._find_replay(settlement_key, order_id)
        if replay is not None:
            return replay, self.get_order(order_id), True

        order = self.get_order(order_id)
        registers = CashRegisterService(self.db, self.close_requests)
        register = registers.require_active_register(cashier_id)

        plan = self.build_plan(order, request.payment_method, request.deposit_amount,
                               request.coupon_code, strict=True)
        payment_method = PaymentMethod(request.payment_method)
        total = to_money(order.total_amount)
        now = utcnow()

        try:
            payment = Payment(
                order_id=order.id,
                register_id=register.id,
                cashier_id=cashier_id,
                amount=plan.final_amount,
                payment_method=payment_method,
                is_deposit=plan.is_deposit,
                discount_percentage=plan.discount_percentage,
                discount_amount=plan.discount_amount if plan.discount_amount > 0 else None,
                pay_cash=plan.pay_cash,
                pay_non_cash=plan.pay_non_cash,
                settlement_key=settlement_key,
                created_at=now,
            )
            self.db.add(payment)
            self.db.flush()

            if plan.coupon is not None and plan.discount_amount > 0:
                self.coupons.record_usage(plan.coupon.coupon_id, order.id, payment.id, plan.discount_amount)

            values = {
                "status": plan.next_status,
                "payment_method": payment_method,
                "cashier_id": cashier_id,
                "last_payment_at": now,
            }
            if plan.is_deposit:
                values["deposit_amount"] = plan.base_amount
                values["remaining_amount"] = to_money(total - plan.base_amount)
            if plan.next_status == OrderStatus.PAID:
                values["remaining_amount"] = ZERO
            if plan.discount_amount > 0:
                discount_total = to_money(to_decimal(order.discount_total) + plan.discount_amount)
                values["discount_percentage"] = plan.coupon.discount_percentage
                values["discount_total"] = discount_total
                values["total_amount_with_discount"] = to_money(total - discount_total)

            result = self.db.execute(
                update(Order)
                .where(Order.id == order.id, Order.status == plan.order_status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise InvalidStateError(
                    "El pedido fue modificado por otro cobro; actualice e intente nuevamente",
                    order_id=order.id,
                )

            registers.record_sale(register.id, payment_method, plan.final_amount, is_deposit=plan.is_deposit)

            if plan.next_status == OrderStatus.PAID:
                self.db.add(OrderQueueEntry(order_id=order.id, priority=1 if order.is_preorder else 0))

            self.db.commit()
        except POSError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            replay = self._find_replay(settlement_key, order_id)
            if replay is not None:
                return replay, self.get_order(order_id), True
            logger.error(f"Integrity error settling order {order_id}: {e}")
            raise TransientIOError("No se pudo registrar el cobro, intente nuevamente")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error settling order {order_id}: {e}")
            raise TransientIOError("No se pudo registrar el cobro, intente nuevamente")

        self.db.refresh(payment)
        self.db.refresh(order)

        logger.info(
            f"Payment {payment.id} settled for order {order.order_number}: "
            f"{plan.final_amount} {payment_method.value} (status {plan.next_status.value})"
        )
        self._publish(order.id, register.id, payment.id)
        return payment, order, False

    # ===== HELPERS =====

    def _find_replay(self, settlement_key: str, order_id: UUID) -> Optional[Payment]:
        existing = self.db.query(Payment).filter(Payment.settlement_key == settlement_key).first()
        if existing is None:
            return None
        if existing.order_id != order_id:
            raise ValidationError(
                "La clave de cobro ya fue usada en otro pedido",
                settlement_key=settlement_key,
            )
        logger.info(f"Settlement {settlement_key} replayed for order {order_id}")
        return existing

    def _publish(self, order_id: UUID, register_id: UUID, payment_id: UUID) -> None:
        if self.change_feed is None:
            return
        self.change_feed.publish("payments", payment_id, "created")
        self.change_feed.publish("orders", order_id, "updated")
        self.change_feed.publish("cash_registers", register_id, "updated")
