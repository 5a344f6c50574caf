"""
Esquemas Pydantic para cobros y señas.
"""
from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import datetime

from mostrador.modules.orders.models import OrderStatus
from mostrador.modules.payments.deposits import DepositRange
from mostrador.modules.payments.models import PaymentMethod


# ===== REQUESTS =====

class QuoteRequest(BaseModel):
    """Simulación de cobro (no escribe nada)"""
    payment_method: PaymentMethod
    deposit_amount: Optional[Decimal] = Field(None, description="Seña editada por el cajero (solo anticipados pendientes)")
    coupon_code: Optional[str] = Field(None, max_length=50)

    @field_validator('coupon_code')
    @classmethod
    def normalize_coupon(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None


class SettleRequest(QuoteRequest):
    settlement_key: Optional[str] = Field(
        None, min_length=1, max_length=80,
        description="Clave de idempotencia; repetirla devuelve el cobro original"
    )


# ===== RESPONSES =====

class SettlementQuote(BaseModel):
    order_id: UUID
    order_status: OrderStatus
    is_deposit: bool
    base_amount: Decimal
    discount_eligible_amount: Decimal
    discount_percentage: Optional[Decimal] = None
    discount_amount: Decimal
    final_amount: Decimal
    remaining_after: Decimal
    next_status: OrderStatus
    coupon_code: Optional[str] = None
    coupon_notice: Optional[str] = None
    minimum_deposit: Optional[Decimal] = None
    deposit_advisory: Optional[str] = None


class PaymentOut(BaseModel):
    id: UUID
    order_id: UUID
    register_id: UUID
    cashier_id: UUID
    amount: Decimal
    payment_method: PaymentMethod
    is_deposit: bool
    discount_percentage: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    pay_cash: Decimal
    pay_non_cash: Decimal
    settlement_key: str
    created_at: datetime

    model_config = {"from_attributes": True}


class SettlementResult(BaseModel):
    payment: PaymentOut
    order_id: UUID
    order_status: OrderStatus
    remaining_amount: Decimal
    replayed: bool = False


class PaymentList(BaseModel):
    payments: List[PaymentOut]
    total_paid: Decimal


class DepositAssessmentOut(BaseModel):
    total_amount: Decimal
    deposit_amount: Decimal
    remaining_amount: Decimal
    percentage: Decimal
    minimum_deposit: Decimal
    range: DepositRange
    advisory: Optional[str] = None
    presets: Dict[int, Decimal]
