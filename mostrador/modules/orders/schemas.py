"""
Esquemas Pydantic para pedidos.
"""
from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from mostrador.modules.orders.models import OrderStatus, OrderType
from mostrador.modules.payments.models import PaymentMethod


class OrderItemCreate(BaseModel):
    product_id: Optional[UUID] = None
    product_name: Optional[str] = Field(None, max_length=150)
    quantity: Decimal = Field(..., gt=0, description="Cantidad (kg para productos pesables)")
    unit_price: Decimal = Field(..., ge=0)

    @field_validator('quantity')
    @classmethod
    def validate_quantity(cls, v):
        # Hasta gramos para productos pesables
        return round(v, 3)


class OrderCreate(BaseModel):
    order_type: OrderType = OrderType.REGULAR
    customer_name: str = Field(..., max_length=150)
    customer_email: Optional[str] = Field(None, max_length=150)
    customer_phone: Optional[str] = Field(None, max_length=50)
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[OrderItemCreate] = Field(default_factory=list)

    @field_validator('customer_name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class OrderItemOut(BaseModel):
    id: UUID
    product_id: Optional[UUID] = None
    product_name: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal

    model_config = {"from_attributes": True}


class OrderOut(BaseModel):
    id: UUID
    order_number: str
    order_type: OrderType
    is_preorder: bool
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    status: OrderStatus
    total_amount: Decimal
    deposit_amount: Decimal
    remaining_amount: Decimal
    payment_method: Optional[PaymentMethod] = None
    discount_percentage: Optional[Decimal] = None
    discount_total: Optional[Decimal] = None
    total_amount_with_discount: Optional[Decimal] = None
    seller_id: Optional[UUID] = None
    cashier_id: Optional[UUID] = None
    last_payment_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrderDetail(OrderOut):
    items: List[OrderItemOut] = []


class OrderList(BaseModel):
    orders: List[OrderOut]
    total: int
    limit: int
    offset: int
