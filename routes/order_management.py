from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging
from typing import List

from utils.database import get_db
from utils.auth import get_current_user, get_floor_staff
from utils.validators import to_http_exception
from models.order_management import OrderStatus
from schemas.order_management import (
    OrderCreate,
    OrderItemsReplace,
    OrderResponse,
    OrderStatusUpdate,
    TableTabResponse,
)
from schemas.user import CurrentUser
from services import order_lifecycle
from services.exceptions import OrderServiceError
from services.notifications import view_cache, VIEW_ORDERS
from services.order_lifecycle import OrderLine, KITCHEN_QUEUE_STATUSES

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


def _lines(items) -> List[OrderLine]:
    return [OrderLine(i.product_id, i.quantity, i.unit_price, i.notes) for i in items]


def _active_orders_view(db: Session) -> List[dict]:
    # Cached until a change on orders, order_items or tables is committed
    return view_cache.get(
        VIEW_ORDERS,
        lambda: [
            OrderResponse.model_validate(order).model_dump(mode="json")
            for order in order_lifecycle.list_active_orders(db)
        ],
    )


# Order Endpoints
@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order: OrderCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_floor_staff)
):
    try:
        db_order = order_lifecycle.create_order(db, order.table_id, current_user.id, _lines(order.items))
        return db_order
    except OrderServiceError as e:
        db.rollback()
        logger.warning(f"Order creation on table {order.table_id} by user {current_user.id} rejected: {e.message}")
        raise to_http_exception(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating order by user {current_user.id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create order")


@router.get("/active", response_model=List[OrderResponse])
async def list_active_orders(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    orders = _active_orders_view(db)
    logger.debug(f"Retrieved {len(orders)} active orders for user {current_user.id}")
    return orders


@router.get("/kitchen", response_model=List[OrderResponse])
async def list_kitchen_orders(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    queue = {s.value for s in KITCHEN_QUEUE_STATUSES}
    return [o for o in _active_orders_view(db) if o["status"] in queue]


@router.get("/tables/{table_id}", response_model=TableTabResponse)
async def get_table_tab(
    table_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    try:
        table, orders, total = order_lifecycle.table_tab(db, table_id)
    except OrderServiceError as e:
        raise to_http_exception(e)
    return TableTabResponse(
        table_id=table.id,
        table_number=table.number,
        orders=[OrderResponse.model_validate(o) for o in orders],
        total_amount=total,
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    try:
        return order_lifecycle.get_order(db, order_id)
    except OrderServiceError as e:
        raise to_http_exception(e)


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    status_update: OrderStatusUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    try:
        return order_lifecycle.transition_order(db, order_id, status_update.status, current_user)
    except OrderServiceError as e:
        db.rollback()
        logger.warning(
            f"Status change of order {order_id} to {status_update.status.value} by user {current_user.id} rejected: {e.message}"
        )
        raise to_http_exception(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating order {order_id} status: {str(e)}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update order status")


@router.put("/{order_id}/items", response_model=OrderResponse)
async def replace_order_items(
    order_id: int,
    payload: OrderItemsReplace,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_floor_staff)
):
    try:
        return order_lifecycle.replace_order_items(db, order_id, _lines(payload.items), current_user)
    except OrderServiceError as e:
        db.rollback()
        logger.warning(f"Item replacement on order {order_id} by user {current_user.id} rejected: {e.message}")
        raise to_http_exception(e)
    except Exception as e:
        db.rollback()
        logger.error(f"Error replacing items of order {order_id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update order items")


@router.get("/statuses/{order_status}/next", response_model=List[OrderStatus])
async def next_statuses(
    order_status: OrderStatus,
    current_user: CurrentUser = Depends(get_current_user)
):
    """Statuses the caller's role may move an order in ``order_status`` to."""
    return [
        s for s in order_lifecycle.allowed_transitions(order_status)
        if order_lifecycle.can_transition(current_user.role, order_status, s)
    ]
