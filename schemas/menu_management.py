from pydantic import BaseModel
from typing import Optional

class CategoryResponse(BaseModel):
    id: int
    name: str
    type: str
    sort_order: int
    is_active: bool

    class Config:
        from_attributes = True

class ProductResponse(BaseModel):
    id: int
    category_id: int
    name: str
    description: Optional[str] = None
    price: float
    is_active: bool

    class Config:
        from_attributes = True
