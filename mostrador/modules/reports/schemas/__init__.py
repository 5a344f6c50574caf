"""
Pydantic schemas for Reports module

Response models for the cash register reports.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from mostrador.modules.cash_registers.schemas import CashDifference


class RegisterSummaryOut(BaseModel):
    """Closing figures of one register"""
    register_id: UUID
    cashier_id: UUID
    started_at: datetime
    closed_at: Optional[datetime] = None
    opening_amount: Decimal
    cash_sales: Decimal
    card_sales: Decimal
    transfer_sales: Decimal
    deposits_received: Decimal
    expenses_total: Decimal
    total_sales: Decimal
    expected_cash: Decimal
    closing_amount: Optional[Decimal] = None
    difference: Optional[Decimal] = None
    classification: Optional[CashDifference] = None

    model_config = {"from_attributes": True}


class ProductSalesOut(BaseModel):
    """Aggregated sales of one product in the register window"""
    product_id: Optional[UUID] = None
    product_name: str
    is_weighable: bool
    unit_label: str
    quantity: Decimal
    quantity_display: str = Field(..., description="250g, 1.250kg or units")
    total_price: Decimal
    cash_quantity: Decimal
    credit_quantity: Decimal
    transfer_quantity: Decimal


class CashRegisterReportOut(BaseModel):
    summary: RegisterSummaryOut
    products: List[ProductSalesOut]
    source: str = Field(..., description="items_in_window, paid_orders_in_window, all_orders_in_window or none")


class HistoryTotals(BaseModel):
    cash_sales: Decimal
    card_sales: Decimal
    transfer_sales: Decimal
    deposits_received: Decimal
    expenses_total: Decimal


class CashRegisterHistoryOut(BaseModel):
    registers: List[RegisterSummaryOut]
    totals: HistoryTotals
    total: int
    limit: int
    offset: int
