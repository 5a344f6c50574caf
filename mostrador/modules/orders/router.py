from fastapi import APIRouter, Query, status
from typing import List, Optional
from uuid import UUID

from mostrador.dependencies.dbDependencies import db_dependency
from mostrador.dependencies.stateDependencies import change_feed_dependency
from mostrador.dependencies.userDependencies import user_dependency, cashier_dependency
from mostrador.modules.orders.models import OrderStatus
from mostrador.modules.orders.service import OrderService
from mostrador.modules.orders.schemas import OrderCreate, OrderOut, OrderDetail, OrderList

orders_router = APIRouter(prefix="/orders", tags=["Orders"])


@orders_router.post("", response_model=OrderDetail, status_code=status.HTTP_201_CREATED)
def create_order(
    order_data: OrderCreate,
    db: db_dependency,
    auth_context: user_dependency,
    change_feed: change_feed_dependency,
):
    """
    Crear un pedido (vendedor).

    - **regular**: venta en mostrador (VTA-)
    - **pre_order**: anticipado con seña; requiere email, teléfono y fecha de entrega (ANT-)
    - **delivery**: envío a domicilio (DEL-)
    """
    service = OrderService(db, change_feed)
    return service.create_order(order_data, auth_context.user_id)


@orders_router.get("", response_model=OrderList)
def list_orders(
    db: db_dependency,
    auth_context: user_dependency,
    status: Optional[OrderStatus] = Query(None, description="Filtrar por estado"),
    seller_id: Optional[UUID] = Query(None, description="Filtrar por vendedor"),
    limit: Optional[int] = Query(None, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    service = OrderService(db)
    result = service.list_orders(status=status, seller_id=seller_id, limit=limit, offset=offset)
    return OrderList(
        orders=[OrderOut.model_validate(o) for o in result["orders"]],
        total=result["total"],
        limit=result["limit"],
        offset=result["offset"],
    )


@orders_router.get("/queue", response_model=List[OrderOut])
def get_cashier_queue(
    db: db_dependency,
    auth_context: cashier_dependency,
):
    """Pedidos por cobrar: anticipados por fecha de entrega, luego el resto por llegada"""
    service = OrderService(db)
    return service.list_cashier_queue()


@orders_router.get("/{order_id}", response_model=OrderDetail)
def get_order(
    order_id: UUID,
    db: db_dependency,
    auth_context: user_dependency,
):
    service = OrderService(db)
    return service.get_order(order_id)


@orders_router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: UUID,
    db: db_dependency,
    auth_context: user_dependency,
    change_feed: change_feed_dependency,
):
    service = OrderService(db, change_feed)
    return service.cancel_order(order_id)
