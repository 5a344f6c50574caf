from fastapi import APIRouter, status
from uuid import UUID

from mostrador.dependencies.dbDependencies import db_dependency
from mostrador.dependencies.stateDependencies import change_feed_dependency, close_requests_dependency
from mostrador.dependencies.userDependencies import cashier_dependency
from mostrador.modules.cash_registers.service import CashRegisterService
from mostrador.modules.cash_registers.schemas import (
    CashRegisterOpen, CashRegisterCloseRequest, CashRegisterOut, CurrentRegisterOut,
    CloseSummary, CashRegisterClosed, ExpenseCreate, ExpenseOut, ExpenseList
)

cash_registers_router = APIRouter(prefix="/cash-registers", tags=["Cash Registers"])


@cash_registers_router.post("/open", response_model=CashRegisterOut, status_code=status.HTTP_201_CREATED)
def open_cash_register(
    register_data: CashRegisterOpen,
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
    change_feed: change_feed_dependency,
):
    """
    Abrir la caja del cajero autenticado.

    - **opening_amount**: efectivo inicial en el cajón (> 0)

    Solo puede haber una caja abierta por cajero (409 si ya existe).
    """
    service = CashRegisterService(db, close_requests, change_feed)
    return service.open_register(auth_context.user_id, register_data.opening_amount)


@cash_registers_router.get("/current", response_model=CurrentRegisterOut)
def get_current_cash_register(
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
):
    """Estado de la caja del cajero (closed / open / closing) y efectivo esperado"""
    service = CashRegisterService(db, close_requests)
    current = service.get_current(auth_context.user_id)
    if current["register"] is not None:
        current["register"] = CashRegisterOut.model_validate(current["register"])
    return CurrentRegisterOut(**current)


@cash_registers_router.post("/current/expenses", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
def create_expense(
    expense_data: ExpenseCreate,
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
    change_feed: change_feed_dependency,
):
    """
    Registrar un egreso pagado desde el cajón.

    - **supplier_payment**: pago a proveedor (party_id = proveedor)
    - **employee_advance**: adelanto a empleado (party_id = empleado)
    """
    service = CashRegisterService(db, close_requests, change_feed)
    return service.record_expense(auth_context.user_id, expense_data)


@cash_registers_router.get("/current/expenses", response_model=ExpenseList)
def list_current_expenses(
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
):
    service = CashRegisterService(db, close_requests)
    register = service.require_active_register(auth_context.user_id)
    expenses, total = service.list_expenses(register.id)
    return ExpenseList(expenses=[ExpenseOut.model_validate(e) for e in expenses], total=total)


@cash_registers_router.post("/current/close/request", response_model=CloseSummary)
def request_close(
    close_data: CashRegisterCloseRequest,
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
):
    """
    Declarar el efectivo contado y ver el arqueo sin cerrar la caja.

    La diferencia se clasifica como balanced, surplus o shortage; el cierre
    se permite en los tres casos.
    """
    service = CashRegisterService(db, close_requests)
    return service.request_close(auth_context.user_id, close_data.declared_amount)


@cash_registers_router.post("/current/close/confirm", response_model=CashRegisterClosed)
def confirm_close(
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
    change_feed: change_feed_dependency,
):
    """Confirmar el cierre con el monto declarado en la solicitud"""
    service = CashRegisterService(db, close_requests, change_feed)
    register, summary = service.confirm_close(auth_context.user_id)
    return CashRegisterClosed(register=CashRegisterOut.model_validate(register), summary=summary)


@cash_registers_router.post("/current/close/cancel", response_model=CashRegisterOut)
def cancel_close(
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
):
    service = CashRegisterService(db, close_requests)
    return service.cancel_close(auth_context.user_id)


@cash_registers_router.get("/{register_id}", response_model=CashRegisterOut)
def get_cash_register(
    register_id: UUID,
    db: db_dependency,
    auth_context: cashier_dependency,
    close_requests: close_requests_dependency,
):
    service = CashRegisterService(db, close_requests)
    return service.get_register(register_id)
