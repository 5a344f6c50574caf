"""
Cash Register Reports Router

Closing report per register, its printable text version and the history
of closed registers.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query
from fastapi.responses import PlainTextResponse

from mostrador.common.exceptions import ValidationError
from mostrador.dependencies.dbDependencies import db_dependency
from mostrador.dependencies.userDependencies import cashier_dependency, manager_dependency
from ..services.cash_registers import CashRegisterReportService, CashRegisterReport
from ..schemas import CashRegisterReportOut, CashRegisterHistoryOut, ProductSalesOut, RegisterSummaryOut
from ..utils import format_quantity, render_closing_report


router = APIRouter(prefix="/reports/cash-registers", tags=["Reports"])


def _report_out(report: CashRegisterReport) -> CashRegisterReportOut:
    return CashRegisterReportOut(
        summary=RegisterSummaryOut.model_validate(report.summary),
        products=[
            ProductSalesOut(
                product_id=p.product_id,
                product_name=p.product_name,
                is_weighable=p.is_weighable,
                unit_label=p.unit_label,
                quantity=p.quantity,
                quantity_display=format_quantity(p.quantity, p.is_weighable),
                total_price=p.total_price,
                cash_quantity=p.cash_quantity,
                credit_quantity=p.credit_quantity,
                transfer_quantity=p.transfer_quantity,
            )
            for p in report.products
        ],
        source=report.source,
    )


@router.get("", response_model=CashRegisterHistoryOut)
def get_cash_register_history(
    db: db_dependency,
    auth_context: manager_dependency,
    start_date: Optional[date] = Query(None, description="Closed on or after this date"),
    end_date: Optional[date] = Query(None, description="Closed on or before this date"),
    cashier_id: Optional[UUID] = Query(None, description="Filter by cashier"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Number of records per page"),
    offset: int = Query(0, ge=0, description="Number of records to skip"),
):
    """History of closed registers with column totals."""
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date debe ser mayor o igual a start_date")

    service = CashRegisterReportService(db)
    result = service.get_register_history(
        start_date=start_date,
        end_date=end_date,
        cashier_id=cashier_id,
        limit=limit,
        offset=offset,
    )
    return CashRegisterHistoryOut(
        registers=[RegisterSummaryOut.model_validate(s) for s in result["registers"]],
        totals=result["totals"],
        total=result["total"],
        limit=result["limit"],
        offset=result["offset"],
    )


@router.get("/{register_id}", response_model=CashRegisterReportOut)
def get_cash_register_report(
    register_id: UUID,
    db: db_dependency,
    auth_context: cashier_dependency,
    search: Optional[str] = Query(None, description="Filter products by name"),
    sort_by: str = Query("product_name", pattern="^(product_name|quantity|total_price)$"),
    direction: str = Query("asc", pattern="^(asc|desc)$"),
):
    """Closing report: summary figures and products sold in the register window."""
    service = CashRegisterReportService(db)
    report = service.get_register_report(register_id, search=search, sort_by=sort_by, direction=direction)
    return _report_out(report)


@router.get("/{register_id}/text", response_class=PlainTextResponse)
def get_cash_register_report_text(
    register_id: UUID,
    db: db_dependency,
    auth_context: cashier_dependency,
):
    """Printable closing report."""
    service = CashRegisterReportService(db)
    report = service.get_register_report(register_id)
    return render_closing_report(report)
