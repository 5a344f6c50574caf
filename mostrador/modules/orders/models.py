"""
Modelos SQLAlchemy para pedidos.

Los pedidos los crea el vendedor (estado pending) y los modifica el motor
de cobros en cada pago. Estados terminales: paid y cancelled.

Invariante: deposit_amount + remaining_amount == total_amount mientras un
pedido anticipado no esté pagado por completo.
"""
from mostrador.database.database import Base
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Numeric, Enum, Integer, Text, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from mostrador.common.mixins import TimestampMixin, CreatedAtMixin
from mostrador.modules.payments.models import PaymentMethod
import enum


class OrderStatus(str, enum.Enum):
    PENDING = "pending"         # Creado, sin cobros
    PROCESSING = "processing"   # Anticipado con seña cobrada
    PAID = "paid"
    CANCELLED = "cancelled"


class OrderType(str, enum.Enum):
    REGULAR = "regular"
    PRE_ORDER = "pre_order"
    DELIVERY = "delivery"


ORDER_NUMBER_PREFIXES = {
    OrderType.REGULAR: "VTA",
    OrderType.PRE_ORDER: "ANT",
    OrderType.DELIVERY: "DEL",
}


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid4)
    order_number = Column(String(20), nullable=False, unique=True, index=True)
    order_type = Column(Enum(OrderType), nullable=False, default=OrderType.REGULAR)
    is_preorder = Column(Boolean, nullable=False, default=False, index=True)

    customer_name = Column(String(150), nullable=False)
    customer_email = Column(String(150), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    delivery_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)

    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    deposit_amount = Column(Numeric(12, 2), nullable=False, default=0)
    remaining_amount = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(Enum(PaymentMethod), nullable=True)

    # Resumen de descuentos aplicados
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    discount_total = Column(Numeric(12, 2), nullable=True)
    total_amount_with_discount = Column(Numeric(12, 2), nullable=True)

    seller_id = Column(Uuid, nullable=True, index=True)
    cashier_id = Column(Uuid, nullable=True, index=True)
    last_payment_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="order", order_by="Payment.created_at")


class OrderItem(Base, CreatedAtMixin):
    __tablename__ = "order_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=True, index=True)
    product_name = Column(String(150), nullable=True)  # Copia al momento de la venta
    quantity = Column(Numeric(12, 3), nullable=False, default=0)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)

    # Relationships
    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class OrderQueueEntry(Base, CreatedAtMixin):
    """Entrada en la cola de preparación; la consume el colaborador de despacho"""
    __tablename__ = "order_queue"

    id = Column(Uuid, primary_key=True, default=uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False, index=True)
    priority = Column(Integer, nullable=False, default=0)  # Anticipados = 1
    status = Column(String(20), nullable=False, default="waiting")


class OrderSequence(Base):
    """Numeración correlativa de pedidos por prefijo de tipo"""
    __tablename__ = "order_sequences"

    prefix = Column(String(10), primary_key=True)
    current_number = Column(Integer, nullable=False, default=0)
