"""
Servicio de cajas registradoras: apertura, operación y cierre con arqueo.

Estados por cajero (derivados, no persistidos):
- CLOSED: no hay fila abierta (closed_at NULL) para el cajero
- OPEN: turno en curso
- CLOSING: hay un monto de cierre declarado pendiente de confirmación

Los totales de la caja se actualizan solo con incrementos evaluados en el
servidor (cash_sales = cash_sales + delta) para no perder actualizaciones
concurrentes.
"""
import logging
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mostrador.common.exceptions import InvalidStateError, NotFoundError, TransientIOError, ValidationError
from mostrador.common.money import ZERO, to_decimal, to_money, utcnow
from mostrador.common.realtime import ChangeFeed
from mostrador.core.config import settings
from mostrador.modules.cash_registers.close_requests import CloseRequestStore
from mostrador.modules.cash_registers.models import CashRegister, CashRegisterExpense
from mostrador.modules.cash_registers.schemas import CashDifference, CloseSummary, ExpenseCreate, RegisterState
from mostrador.modules.payments.models import PaymentMethod

logger = logging.getLogger(__name__)

# Columna de ventas que acumula cada medio de pago
SALES_COLUMN_BY_METHOD = {
    PaymentMethod.CASH: "cash_sales",
    PaymentMethod.CREDIT: "card_sales",
    PaymentMethod.TRANSFER: "transfer_sales",
}


class CashRegisterService:
    """Máquina de estados de la caja del cajero"""

    def __init__(self, db: Session, close_requests: CloseRequestStore, change_feed: Optional[ChangeFeed] = None):
        self.db = db
        self.close_requests = close_requests
        self.change_feed = change_feed

    # ===== CONSULTAS =====

    def get_active_register(self, cashier_id: UUID) -> Optional[CashRegister]:
        """Caja abierta del cajero, o None"""
        register = self.db.query(CashRegister).filter(
            CashRegister.cashier_id == cashier_id,
            CashRegister.closed_at.is_(None)
        ).first()
        # Solicitudes de cajas que ya no están abiertas
        for stale in self.close_requests.discard_stale(cashier_id, register.id if register else None):
            logger.info(f"Dropped pending close for register {stale.register_id}: no longer open")
        return register

    def get_state(self, cashier_id: UUID) -> RegisterState:
        register = self.get_active_register(cashier_id)
        if register is None:
            return RegisterState.CLOSED
        if register.id in self.close_requests:
            return RegisterState.CLOSING
        return RegisterState.OPEN

    def require_active_register(self, cashier_id: UUID) -> CashRegister:
        """
        Caja abierta y operable (estado OPEN).

        Cobros y egresos solo se aceptan en este estado; durante CLOSING el
        cajero debe confirmar o cancelar el cierre primero.
        """
        register = self.get_active_register(cashier_id)
        if register is None:
            raise InvalidStateError("No hay una caja abierta para este cajero", state=RegisterState.CLOSED.value)
        if register.id in self.close_requests:
            raise InvalidStateError(
                "La caja está en proceso de cierre; confirme o cancele el cierre antes de operar",
                state=RegisterState.CLOSING.value,
                register_id=register.id,
            )
        return register

    def get_register(self, register_id: UUID) -> CashRegister:
        register = self.db.query(CashRegister).filter(CashRegister.id == register_id).first()
        if not register:
            raise NotFoundError("Caja registradora no encontrada", register_id=register_id)
        return register

    def get_current(self, cashier_id: UUID) -> dict:
        """Estado, caja y efectivo esperado en vivo del cajero"""
        register = self.get_active_register(cashier_id)
        if register is None:
            return {"state": RegisterState.CLOSED, "register": None}

        pending = self.close_requests.get(register.id)
        return {
            "state": RegisterState.CLOSING if pending else RegisterState.OPEN,
            "register": register,
            "expected_cash": self.compute_expected_cash(register),
            "declared_amount": pending.declared_amount if pending else None,
        }

    def list_expenses(self, register_id: UUID) -> Tuple[List[CashRegisterExpense], Decimal]:
        self.get_register(register_id)
        expenses = self.db.query(CashRegisterExpense).filter(
            CashRegisterExpense.register_id == register_id
        ).order_by(CashRegisterExpense.created_at).all()
        total = to_money(sum((to_decimal(e.amount) for e in expenses), ZERO))
        return expenses, total

    # ===== ARQUEO =====

    @staticmethod
    def compute_expected_cash(register: CashRegister) -> Decimal:
        """
        Efectivo esperado en el cajón.

        expected = opening_amount + cash_sales - expenses_total

        Tarjeta y transferencia no pasan por el cajón. Las señas en efectivo
        ya están incluidas en cash_sales; deposits_received es un subtotal
        informativo y no se suma aparte.
        """
        return to_money(
            to_decimal(register.opening_amount)
            + to_decimal(register.cash_sales)
            - to_decimal(register.expenses_total)
        )

    @staticmethod
    def classify_difference(difference: Decimal) -> CashDifference:
        if difference > 0:
            return CashDifference.SURPLUS
        if difference < 0:
            return CashDifference.SHORTAGE
        return CashDifference.BALANCED

    def build_summary(self, register: CashRegister, declared_amount: Decimal) -> CloseSummary:
        expected = self.compute_expected_cash(register)
        declared = to_money(declared_amount)
        difference = to_money(declared - expected)
        return CloseSummary(
            register_id=register.id,
            opening_amount=to_money(register.opening_amount),
            cash_sales=to_money(register.cash_sales),
            expenses_total=to_money(register.expenses_total),
            expected_cash=expected,
            declared_amount=declared,
            difference=difference,
            classification=self.classify_difference(difference),
        )

    # ===== TRANSICIONES =====

    def open_register(self, cashier_id: UUID, opening_amount: Decimal) -> CashRegister:
        """CLOSED -> OPEN. Crea la caja con todos los totales en cero."""
        opening_amount = to_money(opening_amount)
        if opening_amount <= 0:
            raise ValidationError(
                "El monto de apertura debe ser mayor a cero",
                opening_amount=opening_amount,
            )

        existing = self.get_active_register(cashier_id)
        if existing:
            raise InvalidStateError(
                "Ya existe una caja abierta para este cajero",
                register_id=existing.id,
            )

        register = CashRegister(
            cashier_id=cashier_id,
            opening_amount=opening_amount,
            cash_sales=ZERO,
            card_sales=ZERO,
            transfer_sales=ZERO,
            deposits_received=ZERO,
            expenses_total=ZERO,
            started_at=utcnow(),
        )
        try:
            self.db.add(register)
            self.db.commit()
            self.db.refresh(register)
        except IntegrityError:
            # Otra apertura concurrente ganó el índice único parcial
            self.db.rollback()
            raise InvalidStateError("Ya existe una caja abierta para este cajero")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error opening cash register for cashier {cashier_id}: {e}")
            raise TransientIOError("No se pudo abrir la caja, intente nuevamente")

        logger.info(f"Cash register {register.id} opened by {cashier_id} with {opening_amount}")
        self._publish(register.id, "opened")
        return register

    def record_sale(self, register_id: UUID, payment_method: PaymentMethod, amount: Decimal,
                    is_deposit: bool = False) -> None:
        """
        Sumar un cobro a los totales de la caja.

        Solo lo invoca el motor de cobros, dentro de su transacción: hace
        flush pero no commit.
        """
        amount = to_money(amount)
        column_name = SALES_COLUMN_BY_METHOD[PaymentMethod(payment_method)]
        column = getattr(CashRegister, column_name)
        values = {column_name: column + amount}
        if is_deposit:
            values["deposits_received"] = CashRegister.deposits_received + amount

        result = self.db.execute(
            update(CashRegister)
            .where(CashRegister.id == register_id, CashRegister.closed_at.is_(None))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateError("La caja fue cerrada durante el cobro", register_id=register_id)

    def record_expense(self, cashier_id: UUID, data: ExpenseCreate) -> CashRegisterExpense:
        """Registrar un egreso del cajón (requiere caja OPEN)"""
        amount = to_money(data.amount)
        if amount <= 0:
            raise ValidationError("El monto del egreso debe ser mayor a cero", amount=amount)
        description = (data.description or "").strip()
        if not description:
            raise ValidationError("La descripción del egreso es obligatoria")
        if data.party_id is None:
            party = "el proveedor" if data.type.value == "supplier_payment" else "el empleado"
            raise ValidationError(f"Debe indicar {party} del egreso", expense_type=data.type.value)

        register = self.require_active_register(cashier_id)
        register_id = register.id

        expense = CashRegisterExpense(
            register_id=register_id,
            amount=amount,
            type=data.type,
            description=description,
            party_id=data.party_id,
            party_name=data.party_name,
        )
        try:
            self.db.add(expense)
            result = self.db.execute(
                update(CashRegister)
                .where(CashRegister.id == register_id, CashRegister.closed_at.is_(None))
                .values(expenses_total=CashRegister.expenses_total + amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                raise InvalidStateError("La caja fue cerrada antes de registrar el egreso", register_id=register_id)
            self.db.commit()
            self.db.refresh(expense)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error recording expense on register {register_id}: {e}")
            raise TransientIOError("No se pudo registrar el egreso, intente nuevamente")

        logger.info(f"Expense {expense.id} of {amount} recorded on register {register_id}")
        self._publish(register_id, "updated")
        return expense

    def request_close(self, cashier_id: UUID, declared_amount: Decimal) -> CloseSummary:
        """
        OPEN -> CLOSING. Prueba en seco: calcula la diferencia sin tocar la
        caja. Repetirlo en CLOSING reemplaza el monto declarado (recuento).
        """
        declared = to_money(declared_amount)
        if declared < 0:
            raise ValidationError("El monto declarado no puede ser negativo", declared_amount=declared)

        register = self.get_active_register(cashier_id)
        if register is None:
            raise InvalidStateError("No hay una caja abierta para cerrar", state=RegisterState.CLOSED.value)

        self.close_requests.put(register.id, declared, cashier_id=cashier_id)
        summary = self.build_summary(register, declared)
        logger.info(
            f"Close requested for register {register.id}: expected {summary.expected_cash}, "
            f"declared {declared} ({summary.classification.value})"
        )
        return summary

    def confirm_close(self, cashier_id: UUID, declared_amount: Optional[Decimal] = None) -> Tuple[CashRegister, CloseSummary]:
        """
        CLOSING -> CLOSED. Fija closing_amount y closed_at una sola vez.

        El UPDATE es condicional (closed_at IS NULL): si otra sesión cerró la
        caja primero no se pisa su cierre.
        """
        register = self.get_active_register(cashier_id)
        if register is None:
            raise InvalidStateError("La caja ya está cerrada", state=RegisterState.CLOSED.value)

        pending = self.close_requests.get(register.id)
        if pending is None:
            raise InvalidStateError(
                "Debe solicitar el cierre antes de confirmarlo",
                state=RegisterState.OPEN.value,
                register_id=register.id,
            )

        declared = to_money(declared_amount) if declared_amount is not None else pending.declared_amount
        if declared < 0:
            raise ValidationError("El monto declarado no puede ser negativo", declared_amount=declared)

        register_id = register.id
        try:
            result = self.db.execute(
                update(CashRegister)
                .where(CashRegister.id == register_id, CashRegister.closed_at.is_(None))
                .values(closing_amount=declared, closed_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                self.close_requests.discard(register_id)
                raise InvalidStateError("La caja fue cerrada en otra sesión", register_id=register_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error closing register {register_id}: {e}")
            raise TransientIOError("No se pudo cerrar la caja, intente nuevamente")

        self.close_requests.discard(register_id)
        self.db.refresh(register)
        summary = self.build_summary(register, declared)

        logger.info(
            f"Cash register {register_id} closed by {cashier_id}: "
            f"difference {summary.difference} ({summary.classification.value})"
        )
        self._dispatch_closing_report(register_id)
        self._publish(register_id, "closed")
        return register, summary

    def cancel_close(self, cashier_id: UUID) -> CashRegister:
        """CLOSING -> OPEN, descartando el monto declarado"""
        register = self.get_active_register(cashier_id)
        if register is None or self.close_requests.discard(register.id) is None:
            raise InvalidStateError("No hay un cierre pendiente para cancelar")
        logger.info(f"Close cancelled for register {register.id}")
        self._publish(register.id, "updated")
        return register

    # ===== HELPERS =====

    def _dispatch_closing_report(self, register_id: UUID) -> None:
        if not settings.PRINT_CLOSING_REPORTS:
            return
        try:
            from mostrador.modules.reports.tasks import print_closing_report
            print_closing_report.delay(str(register_id))
        except Exception as e:
            logger.warning(f"Could not dispatch closing report for register {register_id}: {e}")

    def _publish(self, register_id: UUID, action: str) -> None:
        if self.change_feed is not None:
            self.change_feed.publish("cash_registers", register_id, action)
