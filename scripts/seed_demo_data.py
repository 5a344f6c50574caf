"""
Seed script: Populate a demo bakery counter with realistic data.

What it creates:
- Products (panadería, fiambrería y cafetería), some sold by weight.
- Coupons: DESC10 (10%), BIENVENIDA (15%, un solo uso), VERANO (vencido).
- Orders: regulares, anticipados y envíos en estado pending.
- An open cash register for the demo cashier, with part of the orders
  already settled (cash / card / transfer) and one supplier expense.
- JWT tokens for a seller, the cashier and a manager.

Run inside the API container to use 'postgres' host and project PYTHONPATH:
    docker compose exec api python scripts/seed_demo_data.py \
        --orders 40 --settle 25 --opening-amount 20000

Note: This is intended for development environments only.
"""

# Add project root to sys.path so `mostrador.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import jwt

from mostrador.core.config import settings
from mostrador.common.exceptions import POSError
from mostrador.common.money import utcnow
from mostrador.database.database import Base, SessionLocal, engine
import mostrador.modules.models  # noqa: F401
from mostrador.modules.cash_registers.close_requests import CloseRequestStore
from mostrador.modules.cash_registers.models import ExpenseType
from mostrador.modules.cash_registers.schemas import ExpenseCreate
from mostrador.modules.cash_registers.service import CashRegisterService
from mostrador.modules.coupons.models import Coupon
from mostrador.modules.orders.models import OrderType
from mostrador.modules.orders.schemas import OrderCreate, OrderItemCreate
from mostrador.modules.orders.service import OrderService
from mostrador.modules.payments.deposits import DepositManager
from mostrador.modules.payments.models import PaymentMethod
from mostrador.modules.payments.schemas import SettleRequest
from mostrador.modules.payments.service import PaymentSettlementService
from mostrador.modules.products.models import Product

PRODUCTS = [
    # (name, price, weighable, unit)
    ("Pan francés", "2800.00", True, "kg"),
    ("Medialuna de manteca", "450.00", False, "un"),
    ("Factura surtida", "400.00", False, "un"),
    ("Torta selva negra", "18500.00", False, "un"),
    ("Queso de máquina", "9800.00", True, "kg"),
    ("Jamón cocido", "12400.00", True, "kg"),
    ("Alfajor de maicena", "650.00", False, "un"),
    ("Café con leche", "1900.00", False, "un"),
    ("Budín de limón", "4200.00", False, "un"),
    ("Prepizza", "1500.00", False, "un"),
]

CUSTOMERS = [
    "Lucía Fernández", "Martín Gómez", "Sofía Romero", "Juan Pérez", "Valentina Díaz",
    "Federico Álvarez", "Camila Torres", "Diego Ruiz", "Florencia Sosa", "Pablo Medina",
]


def pick(seq):
    return random.choice(seq)


def make_token(user_id, role: str) -> str:
    payload = {
        "sub": str(user_id),
        "user_role": role,
        "email": f"{role}@mostrador.demo",
        "exp": utcnow() + timedelta(days=7),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_products(db):
    products = []
    for name, price, weighable, unit in PRODUCTS:
        product = db.query(Product).filter(Product.name == name).first()
        if product is None:
            product = Product(name=name, price=Decimal(price), is_weighable=weighable, unit_label=unit)
            db.add(product)
        products.append(product)
    db.commit()
    for product in products:
        db.refresh(product)
    return products


def create_coupons(db):
    now = utcnow()
    coupons = [
        dict(code="DESC10", discount_percentage=Decimal("10")),
        dict(code="BIENVENIDA", discount_percentage=Decimal("15"), usage_limit=1),
        dict(code="VERANO", discount_percentage=Decimal("20"),
             valid_from=now - timedelta(days=120), valid_until=now - timedelta(days=30)),
        dict(code="MAYORISTA", discount_percentage=Decimal("12"), min_order_amount=Decimal("50000")),
    ]
    created = 0
    for data in coupons:
        if db.query(Coupon).filter(Coupon.code == data["code"]).first():
            continue
        db.add(Coupon(**data))
        created += 1
    db.commit()
    return created


def random_items(products):
    items = []
    for product in random.sample(products, k=random.randint(1, 4)):
        if product.is_weighable:
            quantity = Decimal(random.choice(["0.250", "0.500", "0.750", "1.000", "1.500"]))
        else:
            quantity = Decimal(random.randint(1, 12))
        items.append(OrderItemCreate(product_id=product.id, quantity=quantity, unit_price=product.price))
    return items


def create_orders(db, products, seller_id, count: int):
    service = OrderService(db)
    orders = []
    for _ in range(count):
        order_type = random.choices(
            [OrderType.REGULAR, OrderType.PRE_ORDER, OrderType.DELIVERY], weights=[70, 20, 10]
        )[0]
        customer = pick(CUSTOMERS)
        data = {
            "order_type": order_type,
            "customer_name": customer,
            "items": random_items(products),
        }
        if order_type == OrderType.PRE_ORDER:
            slug = customer.lower().replace(" ", ".")
            data.update({
                "customer_email": f"{slug}@example.com",
                "customer_phone": f"11-{random.randint(4000, 6999)}-{random.randint(1000, 9999)}",
                "delivery_date": utcnow() + timedelta(days=random.randint(1, 10)),
            })
        orders.append(service.create_order(OrderCreate(**data), seller_id))
    return orders


def settle_orders(db, close_requests, orders, cashier_id, count: int):
    service = PaymentSettlementService(db, close_requests)
    deposits = DepositManager()
    settled = 0
    for order in orders[:count]:
        method = random.choices(
            [PaymentMethod.CASH, PaymentMethod.CREDIT, PaymentMethod.TRANSFER], weights=[60, 25, 15]
        )[0]
        deposit = None
        if order.is_preorder:
            deposit = max(deposits.minimum_deposit(order.total_amount),
                          DepositManager.presets(order.total_amount)[pick([30, 50])])
        coupon = "DESC10" if method == PaymentMethod.CASH and random.random() < 0.2 else None
        request = SettleRequest(payment_method=method, deposit_amount=deposit, coupon_code=coupon)
        try:
            service.settle(order.id, request, cashier_id)
            settled += 1
        except POSError as e:
            print(f"  Skipped {order.order_number}: {e.message}")
    return settled


def main():
    parser = argparse.ArgumentParser(description="Seed bakery counter demo data")
    parser.add_argument("--orders", type=int, default=40)
    parser.add_argument("--settle", type=int, default=25)
    parser.add_argument("--opening-amount", type=Decimal, default=Decimal("20000"))
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)

    Base.metadata.create_all(bind=engine)

    seller_id, cashier_id, manager_id = uuid4(), uuid4(), uuid4()
    close_requests = CloseRequestStore()

    db = SessionLocal()
    try:
        print("Creating products...")
        products = create_products(db)
        print(f"Products: {len(products)}")

        print("Creating coupons...")
        print(f"Coupons created: {create_coupons(db)}")

        print("Creating orders...")
        orders = create_orders(db, products, seller_id, args.orders)
        print(f"Orders created: {len(orders)}")

        print("Opening cash register...")
        registers = CashRegisterService(db, close_requests)
        register = registers.open_register(cashier_id, args.opening_amount)

        print("Settling orders...")
        settled = settle_orders(db, close_requests, orders, cashier_id, args.settle)
        print(f"Orders settled: {settled}")

        registers.record_expense(cashier_id, ExpenseCreate(
            amount=Decimal("3500"),
            type=ExpenseType.SUPPLIER_PAYMENT,
            description="Pago a proveedor de harina",
            party_id=uuid4(),
            party_name="Molino San José",
        ))

        db.refresh(register)
        print("\nSeed completed.")
        print("Cash register:")
        print(f"  ID:             {register.id}")
        print(f"  Expected cash:  {registers.compute_expected_cash(register)}")
        print("Tokens (Authorization: Bearer ...):")
        print(f"  Seller:   {make_token(seller_id, 'seller')}")
        print(f"  Cashier:  {make_token(cashier_id, 'cashier')}")
        print(f"  Manager:  {make_token(manager_id, 'manager')}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
