"""
Cash Register Reports Service

Rebuilds what was sold during a register shift and the closing figures
(expected cash, declared amount, difference). Read-only: never mutates
registers or orders, and degrades to empty product lines when the data
cannot be read.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mostrador.common.exceptions import NotFoundError
from mostrador.common.money import as_utc, to_decimal, to_money, utcnow
from mostrador.core.config import settings
from mostrador.modules.cash_registers.models import CashRegister
from mostrador.modules.cash_registers.schemas import CashDifference
from mostrador.modules.cash_registers.service import CashRegisterService
from mostrador.modules.orders.models import Order, OrderItem, OrderStatus
from mostrador.modules.payments.models import PaymentMethod
from mostrador.modules.products.models import Product
from .aggregation import (
    DEFAULT_PRODUCT_NAME, DEFAULT_UNIT_LABEL,
    ProductSaleLine, ProductSalesSummary, aggregate_product_sales, discount_ratio
)

logger = logging.getLogger(__name__)

# Line sources, tried in order until one returns data
SOURCE_ITEMS_IN_WINDOW = "items_in_window"
SOURCE_PAID_ORDERS = "paid_orders_in_window"
SOURCE_ALL_ORDERS = "all_orders_in_window"
SOURCE_NONE = "none"


@dataclass
class RegisterSummary:
    register_id: UUID
    cashier_id: UUID
    started_at: datetime
    closed_at: Optional[datetime]
    opening_amount: Decimal
    cash_sales: Decimal
    card_sales: Decimal
    transfer_sales: Decimal
    deposits_received: Decimal
    expenses_total: Decimal
    total_sales: Decimal
    expected_cash: Decimal
    closing_amount: Optional[Decimal] = None
    difference: Optional[Decimal] = None
    classification: Optional[CashDifference] = None


@dataclass
class CashRegisterReport:
    summary: RegisterSummary
    products: List[ProductSalesSummary] = field(default_factory=list)
    source: str = SOURCE_NONE


class CashRegisterReportService:
    """Service for generating cash register reports"""

    def __init__(self, db: Session):
        self.db = db

    def get_register_report(
        self,
        register_id: UUID,
        search: Optional[str] = None,
        sort_by: str = "product_name",
        direction: str = "asc",
    ) -> CashRegisterReport:
        """
        Closing report for one register.

        Product lines come from the register's [started_at, closed_at]
        window (now, while the register is still open).
        """
        register = self.db.query(CashRegister).filter(CashRegister.id == register_id).first()
        if not register:
            raise NotFoundError("Caja registradora no encontrada", register_id=register_id)

        summary = self.build_summary(register)
        lines, source = self.load_sale_lines(register)
        products = aggregate_product_sales(lines, search=search, sort_by=sort_by, direction=direction)
        return CashRegisterReport(summary=summary, products=products, source=source)

    @staticmethod
    def build_summary(register: CashRegister) -> RegisterSummary:
        expected = CashRegisterService.compute_expected_cash(register)
        cash_sales = to_money(register.cash_sales)
        card_sales = to_money(register.card_sales)
        transfer_sales = to_money(register.transfer_sales)

        closing_amount = None
        difference = None
        classification = None
        if register.closing_amount is not None:
            closing_amount = to_money(register.closing_amount)
            difference = to_money(closing_amount - expected)
            classification = CashRegisterService.classify_difference(difference)

        return RegisterSummary(
            register_id=register.id,
            cashier_id=register.cashier_id,
            started_at=as_utc(register.started_at),
            closed_at=as_utc(register.closed_at),
            opening_amount=to_money(register.opening_amount),
            cash_sales=cash_sales,
            card_sales=card_sales,
            transfer_sales=transfer_sales,
            deposits_received=to_money(register.deposits_received),
            expenses_total=to_money(register.expenses_total),
            total_sales=to_money(cash_sales + card_sales + transfer_sales),
            expected_cash=expected,
            closing_amount=closing_amount,
            difference=difference,
            classification=classification,
        )

    def load_sale_lines(self, register: CashRegister):
        """
        Sold lines for the register window and the source they came from.

        1. order items created inside the window (cancelled orders excluded)
        2. items of paid orders created inside the window
        3. items of any order created inside the window
        """
        start = as_utc(register.started_at)
        end = as_utc(register.closed_at) or utcnow()

        sources = (
            (SOURCE_ITEMS_IN_WINDOW, self._items_in_window),
            (SOURCE_PAID_ORDERS, self._paid_orders_in_window),
            (SOURCE_ALL_ORDERS, self._all_orders_in_window),
        )
        for source, loader in sources:
            try:
                rows = loader(start, end)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.warning(f"Could not read {source} for register {register.id}: {e}")
                return [], SOURCE_NONE
            if rows:
                if source != SOURCE_ITEMS_IN_WINDOW:
                    logger.warning(f"Register {register.id} report using fallback source {source}")
                return [self._to_line(*row) for row in rows], source

        return [], SOURCE_NONE

    def _base_line_query(self):
        return self.db.query(OrderItem, Order, Product).join(
            Order, OrderItem.order_id == Order.id
        ).outerjoin(
            Product, OrderItem.product_id == Product.id
        )

    def _items_in_window(self, start: datetime, end: datetime):
        return self._base_line_query().filter(
            OrderItem.created_at >= start,
            OrderItem.created_at <= end,
            Order.status != OrderStatus.CANCELLED
        ).all()

    def _paid_orders_in_window(self, start: datetime, end: datetime):
        return self._base_line_query().filter(
            Order.created_at >= start,
            Order.created_at <= end,
            Order.status == OrderStatus.PAID
        ).all()

    def _all_orders_in_window(self, start: datetime, end: datetime):
        return self._base_line_query().filter(
            Order.created_at >= start,
            Order.created_at <= end
        ).all()

    @staticmethod
    def _to_line(item: OrderItem, order: Order, product: Optional[Product]) -> ProductSaleLine:
        total_price = to_money(item.total_price)
        ratio = discount_ratio(order.total_amount, order.discount_total, order.total_amount_with_discount)
        name = item.product_name or (product.name if product is not None else None) or DEFAULT_PRODUCT_NAME
        return ProductSaleLine(
            order_id=order.id,
            product_id=item.product_id,
            product_name=name,
            quantity=to_decimal(item.quantity),
            unit_price=to_money(item.unit_price),
            total_price=total_price,
            discounted_total=to_money(total_price * ratio),
            payment_method=order.payment_method or PaymentMethod.CASH,
            is_weighable=bool(product.is_weighable) if product is not None else False,
            unit_label=(product.unit_label if product is not None else None) or DEFAULT_UNIT_LABEL,
        )

    def get_register_history(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        cashier_id: Optional[UUID] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Dict:
        """
        Closed registers, newest first, with column totals over the whole
        filtered set (not only the current page).
        """
        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)

        filters = [CashRegister.closed_at.isnot(None)]
        if start_date:
            filters.append(CashRegister.closed_at >= datetime.combine(start_date, time.min, tzinfo=timezone.utc))
        if end_date:
            next_day = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
            filters.append(CashRegister.closed_at < next_day)
        if cashier_id:
            filters.append(CashRegister.cashier_id == cashier_id)

        query = self.db.query(CashRegister).filter(*filters)
        total = query.count()
        registers = query.order_by(CashRegister.closed_at.desc()).offset(offset).limit(limit).all()

        sums = self.db.query(
            func.coalesce(func.sum(CashRegister.cash_sales), 0),
            func.coalesce(func.sum(CashRegister.card_sales), 0),
            func.coalesce(func.sum(CashRegister.transfer_sales), 0),
            func.coalesce(func.sum(CashRegister.deposits_received), 0),
            func.coalesce(func.sum(CashRegister.expenses_total), 0),
        ).filter(*filters).one()

        return {
            "registers": [self.build_summary(r) for r in registers],
            "totals": {
                "cash_sales": to_money(sums[0]),
                "card_sales": to_money(sums[1]),
                "transfer_sales": to_money(sums[2]),
                "deposits_received": to_money(sums[3]),
                "expenses_total": to_money(sums[4]),
            },
            "total": total,
            "limit": limit,
            "offset": offset,
        }
