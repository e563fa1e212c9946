import logging
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from models.order_management import OrderStatus


# Configure logger
logger = logging.getLogger(__name__)


class OrderItemCreate(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0, description="Price captured when the order is taken")
    notes: Optional[str] = None

    @field_validator('quantity')
    @classmethod
    def validate_quantity(cls, v):
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v


class OrderCreate(BaseModel):
    table_id: int = Field(..., gt=0, description="Table the ticket is opened on")
    items: List[OrderItemCreate] = Field(default_factory=list, description="Order lines, must not be empty")


class OrderItemsReplace(BaseModel):
    items: List[OrderItemCreate] = Field(default_factory=list, description="Full replacement set of lines")


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemResponse(BaseModel):
    id: int
    order_id: int
    product_id: int
    quantity: int
    unit_price: float
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    table_id: int
    server_id: str
    status: OrderStatus
    total_amount: float
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse]

    class Config:
        from_attributes = True


class TableTabResponse(BaseModel):
    table_id: int
    table_number: str
    orders: List[OrderResponse]
    total_amount: float
