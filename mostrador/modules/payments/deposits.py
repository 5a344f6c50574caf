"""
Seña (depósito) de pedidos anticipados.

Cálculo y validación pura, sin persistencia:
- minimum_deposit = max(total * DEPOSIT_MIN_RATIO, DEPOSIT_MIN_AMOUNT)
- remaining = total - deposit
- rango sugerido entre DEPOSIT_RECOMMENDED_MIN y DEPOSIT_RECOMMENDED_MAX (%)
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from mostrador.common.exceptions import ValidationError
from mostrador.common.money import ZERO, to_decimal, to_money, percentage_of, ratio_percentage
from mostrador.core.config import settings

PRESET_PERCENTAGES = (30, 50, 70, 100)


def _percent_label(value: Decimal) -> str:
    return f"{format(value.normalize(), 'f')}%"


class DepositRange(str, Enum):
    BELOW_RECOMMENDED = "below_recommended"
    RECOMMENDED = "recommended"
    HIGH = "high"


@dataclass(frozen=True)
class DepositAssessment:
    deposit_amount: Decimal
    remaining_amount: Decimal
    percentage: Decimal
    minimum_deposit: Decimal
    range: DepositRange
    advisory: Optional[str] = None


class DepositManager:
    """Reglas de la seña; los umbrales salen de la configuración"""

    def __init__(self, min_ratio: Decimal = None, min_amount: Decimal = None,
                 recommended_min: Decimal = None, recommended_max: Decimal = None):
        self.min_ratio = to_decimal(settings.DEPOSIT_MIN_RATIO if min_ratio is None else min_ratio)
        self.min_amount = to_decimal(settings.DEPOSIT_MIN_AMOUNT if min_amount is None else min_amount)
        self.recommended_min = to_decimal(settings.DEPOSIT_RECOMMENDED_MIN if recommended_min is None else recommended_min)
        self.recommended_max = to_decimal(settings.DEPOSIT_RECOMMENDED_MAX if recommended_max is None else recommended_max)

    def minimum_deposit(self, total_amount) -> Decimal:
        return to_money(max(to_decimal(total_amount) * self.min_ratio, self.min_amount))

    def classify(self, percentage: Decimal) -> DepositRange:
        if percentage < self.recommended_min:
            return DepositRange.BELOW_RECOMMENDED
        if percentage > self.recommended_max:
            return DepositRange.HIGH
        return DepositRange.RECOMMENDED

    def validate(self, total_amount, deposit_amount) -> Decimal:
        """
        Validar el monto de la seña. Retorna la seña redondeada a centavos.

        El mínimo se verifica primero; un total menor al mínimo absoluto no
        admite seña.
        """
        total = to_money(total_amount)
        deposit = to_money(deposit_amount)
        minimum = self.minimum_deposit(total)

        if deposit <= 0 or deposit < minimum:
            raise ValidationError(
                f"La seña debe ser al menos ${minimum} ({_percent_label(self.min_ratio * 100)} del total)",
                minimum_deposit=minimum,
                deposit_amount=deposit,
            )
        if deposit > total:
            raise ValidationError(
                f"La seña no puede superar el monto total de ${total}",
                total_amount=total,
                deposit_amount=deposit,
            )
        return deposit

    def assess(self, total_amount, deposit_amount) -> DepositAssessment:
        """Validar y clasificar la seña (las advertencias no bloquean)"""
        total = to_money(total_amount)
        deposit = self.validate(total, deposit_amount)
        percentage = ratio_percentage(deposit, total)
        deposit_range = self.classify(percentage)

        advisory = None
        if deposit_range == DepositRange.BELOW_RECOMMENDED:
            advisory = f"Sugerencia: la seña es menor al {_percent_label(self.recommended_min)} recomendado"
        elif deposit_range == DepositRange.HIGH:
            advisory = f"La seña es mayor al {_percent_label(self.recommended_max)} del total"

        return DepositAssessment(
            deposit_amount=deposit,
            remaining_amount=to_money(total - deposit),
            percentage=percentage,
            minimum_deposit=self.minimum_deposit(total),
            range=deposit_range,
            advisory=advisory,
        )

    @staticmethod
    def presets(total_amount) -> Dict[int, Decimal]:
        """Atajos de seña: 30/50/70/100% del total"""
        total = to_money(total_amount)
        if total <= 0:
            return {p: ZERO for p in PRESET_PERCENTAGES}
        return {p: percentage_of(total, p) for p in PRESET_PERCENTAGES}
