"""
Registro de todos los modelos para que SQLAlchemy resuelva las
relaciones declaradas por nombre (main, worker de Celery y scripts).
"""
from mostrador.modules.products.models import Product
from mostrador.modules.payments.models import Payment, PaymentMethod
from mostrador.modules.orders.models import Order, OrderItem, OrderQueueEntry, OrderSequence
from mostrador.modules.cash_registers.models import CashRegister, CashRegisterExpense
from mostrador.modules.coupons.models import Coupon, CouponUsage

__all__ = [
    "Product", "Payment", "PaymentMethod",
    "Order", "OrderItem", "OrderQueueEntry", "OrderSequence",
    "CashRegister", "CashRegisterExpense",
    "Coupon", "CouponUsage",
]
