"""
Tests para el módulo de Pedidos

Cubren numeración por tipo, validaciones de anticipados, cola de caja y
cancelación.
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

from mostrador.common.exceptions import InvalidStateError, NotFoundError, ValidationError
from mostrador.common.money import utcnow
from mostrador.modules.orders.models import OrderStatus, OrderType
from mostrador.modules.orders.schemas import OrderCreate, OrderItemCreate
from mostrador.modules.orders.service import OrderService


@pytest.fixture
def orders(db_session, change_feed):
    return OrderService(db_session, change_feed)


class TestCreateOrder:

    def test_totals_from_items(self, make_order):
        order = make_order(items=[
            ("Medialunas", "6", "150.00"),
            ("Queso", "0.350", "8200.00"),
        ])

        assert order.status == OrderStatus.PENDING
        assert order.total_amount == Decimal("3770.00")
        assert order.remaining_amount == Decimal("3770.00")
        assert order.deposit_amount == Decimal("0.00")
        assert len(order.items) == 2

    def test_numbering_per_type(self, make_order):
        first = make_order()
        second = make_order()
        preorder = make_order(order_type=OrderType.PRE_ORDER)
        delivery = make_order(order_type=OrderType.DELIVERY)

        assert first.order_number == "VTA-00001"
        assert second.order_number == "VTA-00002"
        assert preorder.order_number == "ANT-00001"
        assert delivery.order_number == "DEL-00001"
        assert preorder.is_preorder is True

    def test_product_name_resolved_from_catalog(self, make_order, make_product):
        product = make_product("Pan de campo", price="900.00")
        order = make_order(items=[
            OrderItemCreate(product_id=product.id, quantity=Decimal("2"), unit_price=Decimal("900.00")),
        ])
        assert order.items[0].product_name == "Pan de campo"

    def test_unknown_product(self, make_order):
        with pytest.raises(NotFoundError):
            make_order(items=[OrderItemCreate(product_id=uuid4(), quantity=Decimal("1"), unit_price=Decimal("1"))])

    def test_preorder_requires_contact_and_delivery_date(self, make_order):
        with pytest.raises(ValidationError) as exc:
            make_order(order_type=OrderType.PRE_ORDER, customer_email=None, delivery_date=None)
        assert "email" in exc.value.message
        assert "fecha de entrega" in exc.value.message

    def test_requires_items_and_name(self, orders, seller_id):
        with pytest.raises(ValidationError):
            orders.create_order(OrderCreate(customer_name="Ana"), seller_id)
        with pytest.raises(ValidationError):
            orders.create_order(
                OrderCreate(customer_name="  ", items=[
                    OrderItemCreate(product_name="Pan", quantity=Decimal("1"), unit_price=Decimal("1"))
                ]),
                seller_id,
            )

    def test_create_publishes_change(self, orders, seller_id, change_feed):
        events = []
        change_feed.subscribe("orders", events.append)

        order = orders.create_order(
            OrderCreate(customer_name="Ana", items=[
                OrderItemCreate(product_name="Pan", quantity=Decimal("1"), unit_price=Decimal("10"))
            ]),
            seller_id,
        )

        assert [(e.entity_id, e.action) for e in events] == [(order.id, "created")]


class TestCashierQueue:

    def test_preorders_first_by_delivery_date(self, orders, make_order):
        regular_first = make_order()
        late_preorder = make_order(order_type=OrderType.PRE_ORDER, delivery_date=utcnow() + timedelta(days=5))
        regular_second = make_order()
        early_preorder = make_order(order_type=OrderType.PRE_ORDER, delivery_date=utcnow() + timedelta(days=1))
        cancelled = make_order()
        orders.cancel_order(cancelled.id)

        queue = orders.list_cashier_queue()

        assert [o.id for o in queue] == [
            early_preorder.id, late_preorder.id, regular_first.id, regular_second.id,
        ]

    def test_list_orders_filters(self, orders, make_order, seller_id):
        make_order()
        cancelled = make_order()
        orders.cancel_order(cancelled.id)

        pending = orders.list_orders(status=OrderStatus.PENDING)
        assert pending["total"] == 1
        assert orders.list_orders(seller_id=seller_id)["total"] == 2
        assert orders.list_orders(seller_id=uuid4())["total"] == 0


class TestCancelOrder:

    def test_cancel_pending(self, orders, make_order):
        order = make_order()
        assert orders.cancel_order(order.id).status == OrderStatus.CANCELLED

    def test_cancel_twice_fails(self, orders, make_order):
        order = make_order()
        orders.cancel_order(order.id)
        with pytest.raises(InvalidStateError):
            orders.cancel_order(order.id)


class TestOrderEndpoints:

    def test_create_and_get(self, client, seller_headers):
        response = client.post(
            "/api/v1/orders",
            json={
                "customer_name": "Marta",
                "items": [{"product_name": "Torta", "quantity": "1", "unit_price": "5400"}],
            },
            headers=seller_headers,
        )
        assert response.status_code == 201
        order = response.json()
        assert order["order_number"] == "VTA-00001"
        assert Decimal(order["total_amount"]) == Decimal("5400")

        response = client.get(f"/api/v1/orders/{order['id']}", headers=seller_headers)
        assert response.status_code == 200
        assert response.json()["items"][0]["product_name"] == "Torta"

    def test_queue_requires_cashier(self, client, seller_headers, cashier_headers, make_order):
        make_order()
        assert client.get("/api/v1/orders/queue", headers=seller_headers).status_code == 403
        response = client.get("/api/v1/orders/queue", headers=cashier_headers)
        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_unknown_order_returns_404(self, client, seller_headers):
        response = client.get(f"/api/v1/orders/{uuid4()}", headers=seller_headers)
        assert response.status_code == 404
