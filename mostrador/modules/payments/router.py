from fastapi import APIRouter, Query
from decimal import Decimal
from uuid import UUID

from mostrador.common.money import ZERO, to_decimal, to_money
from mostrador.dependencies.dbDependencies import db_dependency
from mostrador.dependencies.stateDependencies import change_feed_dependency, close_requests_dependency
from mostrador.dependencies.userDependencies import cashier_dependency
from mostrador.modules.payments.deposits import DepositManager
from mostrador.modules.payments.service import PaymentSettlementService
from mostrador.modules.payments.schemas import (
    QuoteRequest, SettleRequest, SettlementQuote, SettlementResult,
    PaymentOut, PaymentList, DepositAssessmentOut
)

payments_router = APIRouter(prefix="/payments", tags=["Payments"])


@payments_router.post("/orders/{order_id}/quote", response_model=SettlementQuote)
def quote_settlement(
    order_id: UUID,
    request: QuoteRequest,
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
):
    """
    Simular el cobro de un pedido: monto base, descuento y monto final.

    Si se indica un cupón con un medio de pago distinto de efectivo, el
    cupón se descarta y `coupon_notice` vale `not_cash_payment`.
    """
    service = PaymentSettlementService(db, close_requests)
    return service.quote(order_id, request)


@payments_router.post("/orders/{order_id}/settle", response_model=SettlementResult)
def settle_order(
    order_id: UUID,
    request: SettleRequest,
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
    change_feed: change_feed_dependency,
):
    """
    Cobrar un pedido con la caja abierta del cajero.

    - **payment_method**: cash, credit o transfer
    - **deposit_amount**: seña (solo anticipados en pending)
    - **coupon_code**: cupón de descuento (solo efectivo)
    - **settlement_key**: clave de idempotencia; reenviar la misma clave
      devuelve el cobro original con `replayed = true`
    """
    service = PaymentSettlementService(db, close_requests, change_feed)
    payment, order, replayed = service.settle(order_id, request, auth_context.user_id)
    return SettlementResult(
        payment=PaymentOut.model_validate(payment),
        order_id=order.id,
        order_status=order.status,
        remaining_amount=to_money(order.remaining_amount),
        replayed=replayed,
    )


@payments_router.get("/orders/{order_id}", response_model=PaymentList)
def list_order_payments(
    order_id: UUID,
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
):
    service = PaymentSettlementService(db, close_requests)
    payments = service.list_payments(order_id)
    total_paid = to_money(sum((to_decimal(p.amount) for p in payments), ZERO))
    return PaymentList(payments=[PaymentOut.model_validate(p) for p in payments], total_paid=total_paid)


@payments_router.get("/deposits/assessment", response_model=DepositAssessmentOut)
def assess_deposit(
    auth_context: cashier_dependency,
    total_amount: Decimal = Query(..., gt=0, description="Total del pedido"),
    deposit_amount: Decimal = Query(..., description="Seña propuesta"),
):
    """
    Validar una seña y clasificarla (below_recommended / recommended / high).

    Incluye los atajos de 30/50/70/100% del total.
    """
    manager = DepositManager()
    assessment = manager.assess(total_amount, deposit_amount)
    return DepositAssessmentOut(
        total_amount=to_money(total_amount),
        deposit_amount=assessment.deposit_amount,
        remaining_amount=assessment.remaining_amount,
        percentage=assessment.percentage,
        minimum_deposit=assessment.minimum_deposit,
        range=assessment.range,
        advisory=assessment.advisory,
        presets=manager.presets(total_amount),
    )
