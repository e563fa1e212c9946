from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging

from utils.database import get_db
from utils.auth import get_floor_staff
from utils.validators import to_http_exception
from models.menu_management import Product
from schemas.cart import CartItemAdd, CartQuantityUpdate, CartResponse
from schemas.order_management import OrderResponse
from schemas.user import CurrentUser
from services.cart import Cart, cart_sessions, open_cart
from services.exceptions import OrderServiceError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/tables/{table_id}/cart", tags=["cart"])


def _get_cart_or_404(current_user: CurrentUser, table_id: int) -> Cart:
    cart = cart_sessions.get(current_user.id, table_id)
    if cart is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No cart open for table {table_id}"
        )
    return cart


@router.post("", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
async def start_cart(
    table_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_floor_staff)
):
    """Open a fresh editing session, seeded from the table's open order."""
    try:
        cart = cart_sessions.open(open_cart(db, table_id, current_user))
    except OrderServiceError as e:
        raise to_http_exception(e)
    logger.info(f"Cart opened on table {table_id} by user {current_user.id} (editing order {cart.active_order_id})")
    return CartResponse.from_cart(cart)


@router.get("", response_model=CartResponse)
async def get_cart(
    table_id: int,
    current_user: CurrentUser = Depends(get_floor_staff)
):
    return CartResponse.from_cart(_get_cart_or_404(current_user, table_id))


@router.post("/items", response_model=CartResponse)
async def add_to_cart(
    table_id: int,
    payload: CartItemAdd,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_floor_staff)
):
    cart = _get_cart_or_404(current_user, table_id)
    product = db.query(Product).filter(Product.id == payload.product_id, Product.is_active == True).first()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Product {payload.product_id} not found")
    try:
        cart.add(product)
    except OrderServiceError as e:
        logger.warning(f"User {current_user.id} blocked from editing cart on table {table_id}: {e.message}")
        raise to_http_exception(e)
    return CartResponse.from_cart(cart)


@router.patch("/items/{product_id}", response_model=CartResponse)
async def update_cart_quantity(
    table_id: int,
    product_id: int,
    payload: CartQuantityUpdate,
    current_user: CurrentUser = Depends(get_floor_staff)
):
    cart = _get_cart_or_404(current_user, table_id)
    try:
        cart.update_quantity(product_id, payload.delta)
    except OrderServiceError as e:
        raise to_http_exception(e)
    return CartResponse.from_cart(cart)


@router.post("/submit", response_model=OrderResponse)
async def submit_cart(
    table_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_floor_staff)
):
    cart = _get_cart_or_404(current_user, table_id)
    try:
        order = cart.submit(db)
    except OrderServiceError as e:
        db.rollback()
        logger.warning(f"Cart submit on table {table_id} by user {current_user.id} failed, cart kept: {e.message}")
        raise to_http_exception(e)
    cart_sessions.discard(current_user.id, table_id)
    return order


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def discard_cart(
    table_id: int,
    current_user: CurrentUser = Depends(get_floor_staff)
):
    if not cart_sessions.discard(current_user.id, table_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No cart open for table {table_id}")
