from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from models.table_management import TableStatus

class TableBase(BaseModel):
    number: str = Field(..., min_length=1)
    capacity: int = Field(..., gt=0)

class TableCreate(TableBase):
    pass

# Occupancy is owned by the order lifecycle, the floor plan only edits layout fields
class TableUpdate(BaseModel):
    number: Optional[str] = Field(None, min_length=1)
    capacity: Optional[int] = Field(None, gt=0)

class TableResponse(TableBase):
    id: int
    status: TableStatus
    current_order_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
