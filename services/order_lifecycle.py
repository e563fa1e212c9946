"""Order status state machine and the table occupancy derived from it.

Every public operation here runs as a single database transaction: the order
row, its items and the owning table are written together or not at all.
Table occupancy is always re-derived from the current set of non-terminal
orders, never adjusted incrementally, so concurrent terminals converge on the
same state whichever transition commits last.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from models.menu_management import Product
from models.order_management import Order, OrderItem, OrderStatus, ACTIVE_STATUSES, TERMINAL_STATUSES
from models.table_management import Table, TableStatus
from schemas.user import CurrentUser, UserRole
from services.exceptions import (
    AuthorizationDenied,
    EmptyOrder,
    InvalidQuantity,
    InvalidTransition,
    NotFound,
    OrderClosed,
    OrderServiceError,
    PersistenceError,
)

logger = logging.getLogger(__name__)

ALL_ROLES: FrozenSet[UserRole] = frozenset(UserRole)
KITCHEN_ROLES: FrozenSet[UserRole] = frozenset({UserRole.KITCHEN, UserRole.ADMIN})
SERVICE_ROLES: FrozenSet[UserRole] = frozenset({UserRole.WAITER, UserRole.ADMIN})

# current status -> {next status: roles allowed to make the move}
TRANSITIONS: Dict[OrderStatus, Dict[OrderStatus, FrozenSet[UserRole]]] = {
    OrderStatus.PENDING: {OrderStatus.COOKING: KITCHEN_ROLES, OrderStatus.CANCELLED: ALL_ROLES},
    OrderStatus.COOKING: {OrderStatus.READY: KITCHEN_ROLES, OrderStatus.CANCELLED: ALL_ROLES},
    OrderStatus.READY: {OrderStatus.DELIVERED: SERVICE_ROLES, OrderStatus.CANCELLED: ALL_ROLES},
    OrderStatus.DELIVERED: {OrderStatus.COMPLETED: SERVICE_ROLES},
    OrderStatus.COMPLETED: {},
    OrderStatus.CANCELLED: {},
}

KITCHEN_QUEUE_STATUSES = (OrderStatus.PENDING, OrderStatus.COOKING, OrderStatus.READY)


class OrderLine(NamedTuple):
    product_id: int
    quantity: int
    unit_price: float
    notes: Optional[str] = None


def is_terminal(status) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def allowed_transitions(status) -> List[OrderStatus]:
    return list(TRANSITIONS[OrderStatus(status)])


def can_transition(role, current, new) -> bool:
    roles = TRANSITIONS[OrderStatus(current)].get(OrderStatus(new))
    return roles is not None and UserRole(role) in roles


@contextmanager
def transaction(db: Session, action: str):
    """Commit on success; roll back and re-raise on any failure.

    Store errors are reported as PersistenceError so callers can keep their
    local state and retry.
    """
    try:
        yield
        db.commit()
    except OrderServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Store failure while trying to {action}: {str(e)}")
        raise PersistenceError(f"Failed to {action}, nothing was saved") from e


# Queries

def get_order(db: Session, order_id: int) -> Order:
    order = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.id == order_id)
        .first()
    )
    if not order:
        raise NotFound(f"Order {order_id} not found")
    return order


def list_active_orders(db: Session) -> List[Order]:
    return (
        db.query(Order)
        .options(selectinload(Order.items), selectinload(Order.table))
        .filter(Order.status.in_(ACTIVE_STATUSES))
        .order_by(Order.created_at, Order.id)
        .all()
    )


def list_kitchen_orders(db: Session) -> List[Order]:
    return (
        db.query(Order)
        .options(selectinload(Order.items), selectinload(Order.table))
        .filter(Order.status.in_(KITCHEN_QUEUE_STATUSES))
        .order_by(Order.created_at, Order.id)
        .all()
    )


def active_orders_for_table(db: Session, table_id: int, exclude_order_id: Optional[int] = None,
                            lock: bool = False) -> List[Order]:
    query = db.query(Order).populate_existing()
    if lock:
        query = query.with_for_update()
    query = (
        query
        .filter(Order.table_id == table_id, Order.status.in_(ACTIVE_STATUSES))
    )
    if exclude_order_id is not None:
        query = query.filter(Order.id != exclude_order_id)
    return query.order_by(Order.created_at, Order.id).all()


def _table_id_of(db: Session, order_id: int) -> int:
    table_id = db.query(Order.table_id).filter(Order.id == order_id).scalar()
    if table_id is None:
        raise NotFound(f"Order {order_id} not found")
    return table_id


def _lock_order(db: Session, order_id: int) -> Order:
    # Re-read the stored row: the persisted status is authoritative, not the caller's copy
    order = (
        db.query(Order)
        .populate_existing()
        .with_for_update()
        .filter(Order.id == order_id)
        .first()
    )
    if not order:
        raise NotFound(f"Order {order_id} not found")
    return order


def lock_table(db: Session, table_id: int) -> Table:
    table = (
        db.query(Table)
        .populate_existing()
        .with_for_update()
        .filter(Table.id == table_id)
        .first()
    )
    if not table:
        raise NotFound(f"Table {table_id} not found")
    return table


# Table occupancy

def recompute_table_state(db: Session, table: Table) -> Table:
    """Derive status and current order of ``table`` from its open orders."""
    db.flush()
    active = active_orders_for_table(db, table.id)
    if not active:
        table.status = TableStatus.AVAILABLE
        table.current_order_id = None
    else:
        table.status = TableStatus.OCCUPIED
        if table.current_order_id not in {o.id for o in active}:
            table.current_order_id = active[-1].id
    return table


def _free_table(table: Table):
    table.status = TableStatus.AVAILABLE
    table.current_order_id = None


# Validation

def _validate_lines(lines: Sequence[OrderLine]) -> List[OrderLine]:
    lines = [OrderLine(*line) if not isinstance(line, OrderLine) else line for line in lines or []]
    if not lines:
        raise EmptyOrder()
    for line in lines:
        if line.quantity is None or int(line.quantity) <= 0:
            raise InvalidQuantity(f"Quantity for product {line.product_id} must be positive, got {line.quantity}")
        if line.unit_price is None or line.unit_price < 0:
            raise InvalidQuantity(f"Unit price for product {line.product_id} cannot be negative")
    return lines


def _check_products_exist(db: Session, lines: Sequence[OrderLine]):
    product_ids = {line.product_id for line in lines}
    found = {pid for (pid,) in db.query(Product.id).filter(Product.id.in_(product_ids)).all()}
    missing = sorted(product_ids - found)
    if missing:
        raise NotFound(f"Products not found: {missing}")


def _build_items(lines: Sequence[OrderLine]) -> List[OrderItem]:
    return [
        OrderItem(
            product_id=line.product_id,
            quantity=int(line.quantity),
            unit_price=float(line.unit_price),
            notes=line.notes,
        )
        for line in lines
    ]


# Commands

def create_order(db: Session, table_id: int, server_id: str, lines: Sequence[OrderLine]) -> Order:
    """Open a new pending ticket on ``table_id`` and mark the table occupied."""
    lines = _validate_lines(lines)

    with transaction(db, f"create order for table {table_id}"):
        table = lock_table(db, table_id)
        _check_products_exist(db, lines)

        order = Order(
            table_id=table.id,
            server_id=server_id,
            status=OrderStatus.PENDING,
            created_at=datetime.utcnow(),
        )
        order.items = _build_items(lines)
        order.total_amount = order.compute_total()
        db.add(order)
        db.flush()

        table.status = TableStatus.OCCUPIED
        table.current_order_id = order.id

    logger.info(f"Order {order.id} created on table {table_id} by user {server_id} total={order.total_amount:.2f}")
    return order


def _check_can_replace(order: Order, actor: CurrentUser):
    # Same gate as the cart: an open ticket is read-only for everyone but admins
    if actor.role != UserRole.ADMIN:
        raise AuthorizationDenied(f"Only an admin can edit order {order.id} once it is open")


def replace_order_items(db: Session, order_id: int, lines: Sequence[OrderLine], actor: CurrentUser) -> Order:
    """Replace every item of an open order and recompute its total."""
    lines = _validate_lines(lines)

    with transaction(db, f"replace items of order {order_id}"):
        order = _lock_order(db, order_id)
        if not order.is_active:
            raise OrderClosed(order.id, order.status)
        _check_can_replace(order, actor)
        _check_products_exist(db, lines)

        # Delete everything first, then insert the new set
        order.items.clear()
        db.flush()
        order.items.extend(_build_items(lines))
        order.total_amount = order.compute_total()
        order.updated_at = datetime.utcnow()

    logger.info(f"Order {order_id} items replaced ({len(lines)} lines) by user {actor.id} total={order.total_amount:.2f}")
    return order


def transition_order(db: Session, order_id: int, new_status, actor: CurrentUser) -> Order:
    """Move an order along the status graph, applying table side effects."""
    new_status = OrderStatus(new_status)

    with transaction(db, f"update order {order_id} status"):
        # Lock order is always table, then orders
        table = lock_table(db, _table_id_of(db, order_id))
        order = _lock_order(db, order_id)
        current = order.status
        if is_terminal(current):
            raise OrderClosed(order.id, current)
        if new_status not in TRANSITIONS[current]:
            raise InvalidTransition(current, new_status)
        if not can_transition(actor.role, current, new_status):
            raise AuthorizationDenied(
                f"Role {actor.role.value} cannot move order {order.id} from {current.value} to {new_status.value}"
            )

        order.status = new_status
        order.updated_at = datetime.utcnow()

        if new_status == OrderStatus.COMPLETED:
            _settle_table(db, table, order)
        elif new_status == OrderStatus.CANCELLED:
            recompute_table_state(db, table)

    logger.info(f"Order {order_id} status updated from {current.value} to {new_status.value} by user {actor.id}")
    return order


def _settle_table(db: Session, table: Table, order: Order):
    # Paying one ticket closes the table's whole tab
    db.flush()
    others = active_orders_for_table(db, table.id, exclude_order_id=order.id, lock=True)
    for other in others:
        other.status = OrderStatus.COMPLETED
        other.updated_at = datetime.utcnow()
    if others:
        logger.info(f"Closing {len(others)} more order(s) on table {table.id} with order {order.id}: {[o.id for o in others]}")
    _free_table(table)


def table_tab(db: Session, table_id: int):
    """Open orders on a table and their combined total."""
    table = db.query(Table).filter(Table.id == table_id).first()
    if not table:
        raise NotFound(f"Table {table_id} not found")
    orders = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.table_id == table_id, Order.status.in_(ACTIVE_STATUSES))
        .order_by(Order.created_at, Order.id)
        .all()
    )
    total = round(sum(o.total_amount or 0 for o in orders), 2)
    return table, orders, total
