"""
Esquemas Pydantic para cajas registradoras y egresos.
"""
from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from enum import Enum

from mostrador.modules.cash_registers.models import ExpenseType


# ===== ENUMS =====

class RegisterState(str, Enum):
    CLOSED = "closed"     # Sin caja activa para el cajero
    OPEN = "open"         # Turno en curso
    CLOSING = "closing"   # Monto de cierre declarado, pendiente de confirmación


class CashDifference(str, Enum):
    BALANCED = "balanced"   # Cuadra
    SURPLUS = "surplus"     # Sobrante
    SHORTAGE = "shortage"   # Faltante


# ===== CASH REGISTER SCHEMAS =====

class CashRegisterOpen(BaseModel):
    """Esquema para abrir caja registradora"""
    opening_amount: Decimal = Field(..., description="Monto inicial en el cajón")


class CashRegisterCloseRequest(BaseModel):
    """Monto de cierre declarado (efectivo contado en caja)"""
    declared_amount: Decimal = Field(..., description="Efectivo contado al cierre")


class CashRegisterOut(BaseModel):
    id: UUID
    cashier_id: UUID
    opening_amount: Decimal
    cash_sales: Decimal
    card_sales: Decimal
    transfer_sales: Decimal
    deposits_received: Decimal
    expenses_total: Decimal
    started_at: datetime
    closed_at: Optional[datetime] = None
    closing_amount: Optional[Decimal] = None
    is_open: bool

    model_config = {"from_attributes": True}


class CurrentRegisterOut(BaseModel):
    """Estado de la caja del cajero autenticado"""
    state: RegisterState
    register: Optional[CashRegisterOut] = None
    expected_cash: Optional[Decimal] = None
    declared_amount: Optional[Decimal] = None


class CloseSummary(BaseModel):
    """Arqueo: esperado vs declarado"""
    register_id: UUID
    opening_amount: Decimal
    cash_sales: Decimal
    expenses_total: Decimal
    expected_cash: Decimal
    declared_amount: Decimal
    difference: Decimal
    classification: CashDifference


class CashRegisterClosed(BaseModel):
    register: CashRegisterOut
    summary: CloseSummary


# ===== EXPENSE SCHEMAS =====

class ExpenseCreate(BaseModel):
    amount: Decimal = Field(..., description="Monto del egreso")
    type: ExpenseType
    description: str = Field(..., max_length=500)
    party_id: Optional[UUID] = Field(None, description="Proveedor o empleado")
    party_name: Optional[str] = Field(None, max_length=150)

    @field_validator('description')
    @classmethod
    def strip_description(cls, v: str) -> str:
        return v.strip()


class ExpenseOut(BaseModel):
    id: UUID
    register_id: UUID
    amount: Decimal
    type: ExpenseType
    description: str
    party_id: UUID
    party_name: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ExpenseList(BaseModel):
    expenses: List[ExpenseOut]
    total: Decimal
