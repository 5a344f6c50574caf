"""
Pedidos: alta por el vendedor, cola de caja y cancelación.

El motor de cobros es el único que cambia el estado de un pedido a
processing o paid; aquí solo se crean y se cancelan.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from mostrador.common.exceptions import InvalidStateError, NotFoundError, TransientIOError, ValidationError
from mostrador.common.money import ZERO, as_utc, to_decimal, to_money
from mostrador.common.realtime import ChangeFeed
from mostrador.core.config import settings
from mostrador.modules.orders.models import (
    Order, OrderItem, OrderSequence, OrderStatus, OrderType, ORDER_NUMBER_PREFIXES
)
from mostrador.modules.orders.schemas import OrderCreate
from mostrador.modules.products.models import Product

logger = logging.getLogger(__name__)

QUEUE_STATUSES = (OrderStatus.PENDING, OrderStatus.PROCESSING)


class OrderService:
    def __init__(self, db: Session, change_feed: Optional[ChangeFeed] = None):
        self.db = db
        self.change_feed = change_feed

    def create_order(self, data: OrderCreate, seller_id: Optional[UUID]) -> Order:
        """Crear un pedido en estado pending"""
        if not data.customer_name:
            raise ValidationError("El nombre del cliente es obligatorio")
        if not data.items:
            raise ValidationError("El pedido debe incluir al menos un producto")

        is_preorder = data.order_type == OrderType.PRE_ORDER
        if is_preorder:
            missing = [
                label for label, value in (
                    ("email", data.customer_email),
                    ("teléfono", data.customer_phone),
                    ("fecha de entrega", data.delivery_date),
                ) if not value
            ]
            if missing:
                raise ValidationError(
                    f"Los pedidos anticipados requieren {', '.join(missing)} del cliente",
                    missing=", ".join(missing),
                )

        try:
            items = []
            for item_data in data.items:
                name = item_data.product_name
                if item_data.product_id is not None:
                    product = self.db.query(Product).filter(Product.id == item_data.product_id).first()
                    if not product:
                        raise NotFoundError("Producto no encontrado", product_id=item_data.product_id)
                    name = name or product.name
                items.append(OrderItem(
                    product_id=item_data.product_id,
                    product_name=name,
                    quantity=item_data.quantity,
                    unit_price=to_money(item_data.unit_price),
                    total_price=to_money(to_decimal(item_data.quantity) * to_decimal(item_data.unit_price)),
                ))

            total = to_money(sum((to_decimal(i.total_price) for i in items), ZERO))
            order = Order(
                order_number=self._next_order_number(data.order_type),
                order_type=data.order_type,
                is_preorder=is_preorder,
                customer_name=data.customer_name,
                customer_email=data.customer_email,
                customer_phone=data.customer_phone,
                delivery_date=data.delivery_date,
                notes=data.notes,
                status=OrderStatus.PENDING,
                total_amount=total,
                deposit_amount=ZERO,
                remaining_amount=total,
                seller_id=seller_id,
                items=items,
            )
            self.db.add(order)
            self.db.commit()
            self.db.refresh(order)
        except NotFoundError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating order: {e}")
            raise TransientIOError("No se pudo crear el pedido, intente nuevamente")

        logger.info(f"Order {order.order_number} created for {order.customer_name} ({total})")
        self._publish(order.id, "created")
        return order

    def get_order(self, order_id: UUID) -> Order:
        order = self.db.query(Order).options(
            selectinload(Order.items)
        ).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Pedido no encontrado", order_id=order_id)
        return order

    def list_cashier_queue(self) -> List[Order]:
        """
        Pedidos por cobrar: pending y processing.

        Primero los anticipados por fecha de entrega, después el resto por
        orden de llegada.
        """
        orders = self.db.query(Order).filter(Order.status.in_(QUEUE_STATUSES)).all()
        preorders = sorted(
            (o for o in orders if o.is_preorder),
            key=lambda o: (as_utc(o.delivery_date) or datetime.max.replace(tzinfo=timezone.utc), as_utc(o.created_at)),
        )
        others = sorted((o for o in orders if not o.is_preorder), key=lambda o: as_utc(o.created_at))
        return preorders + others

    def list_orders(self, status: Optional[OrderStatus] = None, seller_id: Optional[UUID] = None,
                    limit: int = None, offset: int = 0) -> dict:
        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)

        query = self.db.query(Order)
        if status:
            query = query.filter(Order.status == status)
        if seller_id:
            query = query.filter(Order.seller_id == seller_id)

        total = query.count()
        orders = query.order_by(Order.created_at.desc()).offset(offset).limit(limit).all()
        return {"orders": orders, "total": total, "limit": limit, "offset": offset}

    def cancel_order(self, order_id: UUID) -> Order:
        order = self.get_order(order_id)
        if order.status in (OrderStatus.PAID, OrderStatus.CANCELLED):
            raise InvalidStateError(
                f"No se puede cancelar un pedido en estado {order.status.value}",
                order_id=order.id,
                status=order.status.value,
            )

        try:
            order.status = OrderStatus.CANCELLED
            self.db.commit()
            self.db.refresh(order)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error cancelling order {order_id}: {e}")
            raise TransientIOError("No se pudo cancelar el pedido, intente nuevamente")

        logger.info(f"Order {order.order_number} cancelled")
        self._publish(order.id, "cancelled")
        return order

    def _next_order_number(self, order_type: OrderType) -> str:
        """Número correlativo por tipo: VTA-00001, ANT-00001, DEL-00001"""
        prefix = ORDER_NUMBER_PREFIXES[OrderType(order_type)]
        sequence = self.db.query(OrderSequence).filter(
            OrderSequence.prefix == prefix
        ).with_for_update().first()
        if sequence is None:
            sequence = OrderSequence(prefix=prefix, current_number=0)
            self.db.add(sequence)
        sequence.current_number = (sequence.current_number or 0) + 1
        self.db.flush()
        return f"{prefix}-{sequence.current_number:05d}"

    def _publish(self, order_id: UUID, action: str) -> None:
        if self.change_feed is not None:
            self.change_feed.publish("orders", order_id, action)
