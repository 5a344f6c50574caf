"""
Utilities for Reports module

Quantity formatting and the plain-text closing report used by the print
job.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from mostrador.common.money import to_decimal

CLASSIFICATION_LABELS = {
    "balanced": "Cuadra",
    "surplus": "Sobrante",
    "shortage": "Faltante",
}

REPORT_WIDTH = 48


def format_quantity(quantity, is_weighable: bool) -> str:
    """
    Weighable products under 1 kg are shown in grams (250g), the rest
    with three decimals (1.250kg). Unit products as plain numbers.
    """
    value = to_decimal(quantity)
    if not is_weighable:
        return format(value.normalize(), "f")
    if value < 1:
        return f"{(value * 1000).quantize(Decimal('1'))}g"
    return f"{value.quantize(Decimal('0.001'))}kg"


def format_money(value) -> str:
    if value is None:
        return "-"
    return f"${to_decimal(value).quantize(Decimal('0.01')):,}"


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%d/%m/%Y %H:%M")


def _row(label: str, value: str) -> str:
    return f"{label}{value.rjust(REPORT_WIDTH - len(label))}"


def render_closing_report(report) -> str:
    """Plain-text closing report (Spanish headings) for the receipt printer"""
    summary = report.summary
    lines: List[str] = [
        "REPORTE DE CIERRE DE CAJA".center(REPORT_WIDTH),
        "=" * REPORT_WIDTH,
        _row("Caja:", str(summary.register_id)[:8]),
        _row("Apertura:", format_datetime(summary.started_at)),
        _row("Cierre:", format_datetime(summary.closed_at)),
        "-" * REPORT_WIDTH,
        _row("Monto inicial:", format_money(summary.opening_amount)),
        _row("Ventas efectivo:", format_money(summary.cash_sales)),
        _row("Ventas tarjeta:", format_money(summary.card_sales)),
        _row("Ventas transferencia:", format_money(summary.transfer_sales)),
        _row("Señas recibidas:", format_money(summary.deposits_received)),
        _row("Egresos:", format_money(summary.expenses_total)),
        _row("Total ventas:", format_money(summary.total_sales)),
        "-" * REPORT_WIDTH,
        _row("Efectivo esperado:", format_money(summary.expected_cash)),
        _row("Efectivo declarado:", format_money(summary.closing_amount)),
        _row("Diferencia:", format_money(summary.difference)),
    ]
    if summary.classification is not None:
        label = CLASSIFICATION_LABELS.get(summary.classification.value, summary.classification.value)
        lines.append(_row("Estado:", label))

    lines.append("=" * REPORT_WIDTH)
    lines.append("PRODUCTOS VENDIDOS")
    if not report.products:
        lines.append("Sin ventas registradas en el período")
    for product in report.products:
        quantity = format_quantity(product.quantity, product.is_weighable)
        if not product.is_weighable:
            quantity = f"{quantity} {product.unit_label}"
        lines.append(product.product_name[:REPORT_WIDTH])
        lines.append(_row(f"  {quantity}", format_money(product.total_price)))
    lines.append("=" * REPORT_WIDTH)
    return "\n".join(lines)
