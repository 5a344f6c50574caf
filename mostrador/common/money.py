"""
Utilidades de dinero y porcentajes.

Todos los montos se manejan como Decimal redondeados a centavos
(ROUND_HALF_UP). Los porcentajes se expresan de 0 a 100.
"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

Number = Union[int, float, str, Decimal, None]


def to_decimal(value: Number) -> Decimal:
    """Convertir a Decimal sin redondear (float vía str para evitar ruido binario)."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(amount: Number, percentage: Number) -> Decimal:
    """Monto correspondiente a `percentage` % de `amount`, en centavos."""
    return to_money(to_decimal(amount) * to_decimal(percentage) / HUNDRED)


def ratio_percentage(part: Number, whole: Number) -> Decimal:
    whole = to_decimal(whole)
    if whole == 0:
        return ZERO
    return to_money(to_decimal(part) * HUNDRED / whole)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite devuelve datetimes naive; se asumen en UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
