from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from models.reservation import Shift, ReservationStatus

class ReservationCreate(BaseModel):
    customer_name: str = Field(..., min_length=1)
    pax: int = Field(..., gt=0)
    reservation_time: datetime
    shift: Shift
    notes: Optional[str] = None

class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus

class ReservationAssign(BaseModel):
    table_id: int = Field(..., gt=0)

class ReservationResponse(BaseModel):
    id: int
    table_id: Optional[int] = None
    customer_name: str
    pax: int
    reservation_time: datetime
    shift: Shift
    status: ReservationStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
