from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from utils.database import get_db
from utils.auth import get_current_user
from utils.validators import to_http_exception
from models.menu_management import Category, Product
from schemas.menu_management import CategoryResponse, ProductResponse
from schemas.user import CurrentUser
from services.exceptions import NotFound, OrderServiceError
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/menu", tags=["menu"])


def get_product(db: Session, product_id: int) -> Product:
    """Current catalog entry for display; order prices never come from here after the fact."""
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFound(f"Product {product_id} not found")
    return product


@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    return db.query(Category).filter(Category.is_active == True).order_by(Category.sort_order).all()


@router.get("/products", response_model=List[ProductResponse])
async def list_products(
    category_id: Optional[int] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    query = db.query(Product)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if not include_inactive:
        query = query.filter(Product.is_active == True)
    products = query.order_by(Product.name).all()
    logger.debug(f"Retrieved {len(products)} products for user {current_user.id}")
    return products


@router.get("/products/{product_id}", response_model=ProductResponse)
async def read_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    try:
        return get_product(db, product_id)
    except OrderServiceError as e:
        raise to_http_exception(e)
