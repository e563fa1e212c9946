from pydantic import BaseModel, Field
from typing import List, Optional

class CartItemAdd(BaseModel):
    product_id: int = Field(..., gt=0)

class CartQuantityUpdate(BaseModel):
    delta: int

class CartItemResponse(BaseModel):
    product_id: int
    name: str
    price: float
    quantity: int
    notes: Optional[str] = None

    class Config:
        from_attributes = True

class CartResponse(BaseModel):
    table_id: int
    active_order_id: Optional[int] = None
    can_edit: bool
    items: List[CartItemResponse]
    total: float
    total_items: int

    @classmethod
    def from_cart(cls, cart) -> "CartResponse":
        return cls(
            table_id=cart.table_id,
            active_order_id=cart.active_order_id,
            can_edit=cart.can_edit,
            items=[CartItemResponse.model_validate(item) for item in cart.items],
            total=cart.total,
            total_items=cart.total_items,
        )
