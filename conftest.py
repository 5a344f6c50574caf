"""
Fixtures compartidos para los tests de cada módulo.

La configuración apunta a SQLite en memoria antes de importar la app; el
esquema se crea y se borra en cada test.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["PRINT_CLOSING_REPORTS"] = "false"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["JWT_SECRET"] = "test-secret"

import jwt
import pytest
from datetime import timedelta
from decimal import Decimal
from fastapi.testclient import TestClient
from uuid import uuid4

from mostrador.main import app
from mostrador.core.config import settings
from mostrador.common.money import utcnow
from mostrador.common.realtime import ChangeFeed
from mostrador.database.database import Base, SessionLocal, engine, get_db
from mostrador.modules.cash_registers.close_requests import CloseRequestStore
from mostrador.modules.cash_registers.service import CashRegisterService
from mostrador.modules.coupons.models import Coupon
from mostrador.modules.orders.models import OrderType
from mostrador.modules.orders.schemas import OrderCreate, OrderItemCreate
from mostrador.modules.orders.service import OrderService
from mostrador.modules.products.models import Product


def make_token(user_id, role: str) -> str:
    payload = {
        "sub": str(user_id),
        "user_role": role,
        "email": f"{role}@mostrador.test",
        "exp": utcnow() + timedelta(hours=1),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# ===== BASE DE DATOS Y APP =====

@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def change_feed():
    feed = ChangeFeed()
    app.state.change_feed = feed
    return feed


@pytest.fixture
def close_requests():
    store = CloseRequestStore()
    app.state.close_requests = store
    return store


@pytest.fixture
def client(db_session, change_feed, close_requests):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ===== USUARIOS =====

@pytest.fixture
def cashier_id():
    return uuid4()


@pytest.fixture
def seller_id():
    return uuid4()


@pytest.fixture
def cashier_headers(cashier_id):
    return {"Authorization": f"Bearer {make_token(cashier_id, 'cashier')}"}


@pytest.fixture
def seller_headers(seller_id):
    return {"Authorization": f"Bearer {make_token(seller_id, 'seller')}"}


@pytest.fixture
def manager_headers():
    return {"Authorization": f"Bearer {make_token(uuid4(), 'manager')}"}


# ===== FACTORIES =====

@pytest.fixture
def register_service(db_session, close_requests, change_feed):
    return CashRegisterService(db_session, close_requests, change_feed)


@pytest.fixture
def open_register(register_service, cashier_id):
    """Abre una caja para el cajero del test"""
    def _open(amount="100.00", cashier=None):
        return register_service.open_register(cashier or cashier_id, Decimal(amount))
    return _open


@pytest.fixture
def make_product(db_session):
    def _make(name="Pan francés", price="10.00", is_weighable=False, unit_label="un"):
        product = Product(name=name, price=Decimal(price), is_weighable=is_weighable, unit_label=unit_label)
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product
    return _make


@pytest.fixture
def make_order(db_session, seller_id):
    """
    Crea un pedido pending. `items` es una lista de
    (nombre, cantidad, precio unitario) o de OrderItemCreate.
    """
    def _make(total="100.00", order_type=OrderType.REGULAR, items=None, **fields):
        if items is None:
            items = [("Producto de prueba", "1", total)]
        item_models = [
            i if isinstance(i, OrderItemCreate)
            else OrderItemCreate(product_name=i[0], quantity=Decimal(i[1]), unit_price=Decimal(i[2]))
            for i in items
        ]
        data = {
            "order_type": order_type,
            "customer_name": "Cliente de prueba",
            "items": item_models,
        }
        if order_type == OrderType.PRE_ORDER:
            data.update({
                "customer_email": "cliente@mostrador.test",
                "customer_phone": "11-5555-0000",
                "delivery_date": utcnow() + timedelta(days=2),
            })
        data.update(fields)
        return OrderService(db_session).create_order(OrderCreate(**data), seller_id)
    return _make


@pytest.fixture
def make_coupon(db_session):
    def _make(code="DESC10", discount_percentage="10", **fields):
        coupon = Coupon(code=code, discount_percentage=Decimal(discount_percentage), **fields)
        db_session.add(coupon)
        db_session.commit()
        db_session.refresh(coupon)
        return coupon
    return _make
