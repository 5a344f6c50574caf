"""
Modelos SQLAlchemy para cajas registradoras.

CashRegister: una fila por turno de cajero. Mientras closed_at es NULL la
caja está abierta; los totales acumulados solo crecen (cobros y egresos)
y al cerrar se fijan closing_amount y closed_at. Después del cierre la
fila no se vuelve a modificar.

CashRegisterExpense: egresos pagados desde el cajón (proveedores,
adelantos a empleados). Inmutables.
"""
from mostrador.database.database import Base
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Enum, Text, Index, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from mostrador.common.mixins import CreatedAtMixin
from mostrador.common.money import utcnow
import enum


class ExpenseType(str, enum.Enum):
    SUPPLIER_PAYMENT = "supplier_payment"   # Pago a proveedor
    EMPLOYEE_ADVANCE = "employee_advance"   # Adelanto a empleado


class CashRegister(Base):
    __tablename__ = "cash_registers"

    id = Column(Uuid, primary_key=True, default=uuid4)
    cashier_id = Column(Uuid, nullable=False, index=True)

    opening_amount = Column(Numeric(12, 2), nullable=False)

    # Totales acumulados (solo incrementos atómicos en servidor)
    cash_sales = Column(Numeric(12, 2), nullable=False, default=0)
    card_sales = Column(Numeric(12, 2), nullable=False, default=0)
    transfer_sales = Column(Numeric(12, 2), nullable=False, default=0)
    deposits_received = Column(Numeric(12, 2), nullable=False, default=0)
    expenses_total = Column(Numeric(12, 2), nullable=False, default=0)

    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    closed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    closing_amount = Column(Numeric(12, 2), nullable=True)

    # Relationships
    expenses = relationship("CashRegisterExpense", back_populates="register", order_by="CashRegisterExpense.created_at")

    __table_args__ = (
        # Una sola caja abierta por cajero
        Index(
            "uq_cash_register_open_per_cashier",
            "cashier_id",
            unique=True,
            postgresql_where=closed_at.is_(None),
            sqlite_where=closed_at.is_(None),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.closed_at is None


class CashRegisterExpense(Base, CreatedAtMixin):
    __tablename__ = "cash_register_expenses"

    id = Column(Uuid, primary_key=True, default=uuid4)
    register_id = Column(Uuid, ForeignKey("cash_registers.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    type = Column(Enum(ExpenseType), nullable=False)
    description = Column(Text, nullable=False)
    party_id = Column(Uuid, nullable=False)  # Proveedor o empleado según el tipo
    party_name = Column(String(150), nullable=True)

    # Relationships
    register = relationship("CashRegister", back_populates="expenses")
