"""
Modelos SQLAlchemy para cupones de descuento.

Los cupones son de solo lectura para la caja; cada uso queda registrado
en CouponUsage (auditoría, solo inserciones).
"""
from mostrador.database.database import Base
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Numeric, Integer, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from mostrador.common.mixins import TimestampMixin, CreatedAtMixin


class Coupon(Base, TimestampMixin):
    __tablename__ = "coupons"

    id = Column(Uuid, primary_key=True, default=uuid4)
    code = Column(String(50), nullable=False, unique=True, index=True)  # Siempre en mayúsculas
    discount_percentage = Column(Numeric(5, 2), nullable=False)
    min_order_amount = Column(Numeric(12, 2), nullable=True)
    usage_limit = Column(Integer, nullable=False, default=0)  # 0 = sin límite
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    usages = relationship("CouponUsage", back_populates="coupon")


class CouponUsage(Base, CreatedAtMixin):
    __tablename__ = "coupon_usages"

    id = Column(Uuid, primary_key=True, default=uuid4)
    coupon_id = Column(Uuid, ForeignKey("coupons.id"), nullable=False, index=True)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False, index=True)
    payment_id = Column(Uuid, ForeignKey("payments.id"), nullable=False, index=True)
    discount_amount = Column(Numeric(12, 2), nullable=False)

    # Relationships
    coupon = relationship("Coupon", back_populates="usages")
