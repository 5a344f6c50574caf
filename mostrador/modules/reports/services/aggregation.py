"""
Product sales aggregation for cash register reports.

Lines are typed join results (order item + order + product) built by the
report service; aggregation is a pure function so the same lines always
yield the same totals regardless of input order.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID

from mostrador.common.money import ZERO, to_decimal, to_money
from mostrador.modules.payments.models import PaymentMethod

DEFAULT_PRODUCT_NAME = "Producto sin nombre"
DEFAULT_UNIT_LABEL = "un"

SORT_FIELDS = ("product_name", "quantity", "total_price")


@dataclass(frozen=True)
class ProductSaleLine:
    """One sold order item inside the register window"""
    order_id: UUID
    product_id: Optional[UUID]
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    discounted_total: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH
    is_weighable: bool = False
    unit_label: str = DEFAULT_UNIT_LABEL


@dataclass
class ProductSalesSummary:
    """Aggregated sales of one product"""
    product_id: Optional[UUID]
    product_name: str
    is_weighable: bool
    unit_label: str
    quantity: Decimal = ZERO
    total_price: Decimal = ZERO
    cash_quantity: Decimal = ZERO
    credit_quantity: Decimal = ZERO
    transfer_quantity: Decimal = ZERO

    def add(self, line: ProductSaleLine) -> None:
        quantity = to_decimal(line.quantity)
        self.quantity += quantity
        self.total_price = to_money(self.total_price + to_decimal(line.discounted_total))
        if line.payment_method == PaymentMethod.CREDIT:
            self.credit_quantity += quantity
        elif line.payment_method == PaymentMethod.TRANSFER:
            self.transfer_quantity += quantity
        else:
            self.cash_quantity += quantity


def discount_ratio(total_amount, discount_total, total_amount_with_discount) -> Decimal:
    """
    Ratio applied to each line of an order to spread its discount.

    1 when the order had no discount.
    """
    total = to_decimal(total_amount)
    if not discount_total or to_decimal(discount_total) <= 0 or total <= 0:
        return Decimal("1")
    if total_amount_with_discount is None:
        return (total - to_decimal(discount_total)) / total
    return to_decimal(total_amount_with_discount) / total


def aggregate_product_sales(
    lines: Iterable[ProductSaleLine],
    search: Optional[str] = None,
    sort_by: str = "product_name",
    direction: str = "asc",
) -> List[ProductSalesSummary]:
    """
    Group lines by product (id + name) and sum quantity, total and the
    quantity sold per tender.

    `search` is a case-insensitive substring filter on the product name.
    """
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"sort_by must be one of {', '.join(SORT_FIELDS)}")

    needle = (search or "").strip().lower()
    groups = {}
    for line in lines:
        if needle and needle not in line.product_name.lower():
            continue
        key = (line.product_id, line.product_name)
        summary = groups.get(key)
        if summary is None:
            summary = ProductSalesSummary(
                product_id=line.product_id,
                product_name=line.product_name,
                is_weighable=line.is_weighable,
                unit_label=line.unit_label,
            )
            groups[key] = summary
        summary.add(line)

    reverse = direction == "desc"
    if sort_by == "product_name":
        # Name ties broken by product id so the output is stable
        sort_key = lambda s: (s.product_name.lower(), str(s.product_id or ""))
    else:
        sort_key = lambda s: (getattr(s, sort_by), s.product_name.lower(), str(s.product_id or ""))
    return sorted(groups.values(), key=sort_key, reverse=reverse)
