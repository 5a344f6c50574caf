"""
Modelos SQLAlchemy para cobros.

Payment es el registro de auditoría de cada cobro: se crea una sola vez
por liquidación y nunca se modifica ni se borra.
"""
from mostrador.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Numeric, Enum, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from mostrador.common.mixins import CreatedAtMixin
import enum


class PaymentMethod(str, enum.Enum):
    """Medios de pago aceptados en caja"""
    CASH = "cash"           # Efectivo
    CREDIT = "credit"       # Tarjeta
    TRANSFER = "transfer"   # Transferencia


class Payment(Base, CreatedAtMixin):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False, index=True)
    register_id = Column(Uuid, ForeignKey("cash_registers.id"), nullable=False, index=True)
    cashier_id = Column(Uuid, nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    is_deposit = Column(Boolean, nullable=False, default=False)

    discount_percentage = Column(Numeric(5, 2), nullable=True)
    discount_amount = Column(Numeric(12, 2), nullable=True)

    # Split efectivo / no efectivo
    pay_cash = Column(Numeric(12, 2), nullable=False, default=0)
    pay_non_cash = Column(Numeric(12, 2), nullable=False, default=0)

    # Clave de idempotencia por intento de cobro
    settlement_key = Column(String(80), nullable=False, unique=True)

    # Relationships
    order = relationship("Order", back_populates="payments")
    register = relationship("CashRegister")
