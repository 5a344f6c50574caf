from pydantic import BaseModel, Field
from decimal import Decimal
from uuid import UUID

from mostrador.modules.payments.models import PaymentMethod


class CouponValidateRequest(BaseModel):
    code: str = Field(..., max_length=50)
    order_total: Decimal = Field(..., description="Monto base del cobro")
    payment_method: PaymentMethod
    prior_cash_amount: Decimal = Field(Decimal("0"), description="Efectivo ya cobrado en el pedido (seña)")


class CouponValidationOut(BaseModel):
    coupon_id: UUID
    code: str
    discount_percentage: Decimal
