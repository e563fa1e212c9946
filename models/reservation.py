from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from utils.database import Base
import enum

class Shift(str, enum.Enum):
    LUNCH = "lunch"
    DINNER = "dinner"

class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    table_id = Column(Integer, ForeignKey("tables.id", ondelete="SET NULL"), nullable=True)
    customer_name = Column(String, nullable=False)
    pax = Column(Integer, nullable=False)
    reservation_time = Column(DateTime(timezone=True), nullable=False, index=True)
    shift = Column(Enum(Shift, name="shift", values_callable=lambda e: [m.value for m in e]), nullable=False)
    status = Column(
        Enum(ReservationStatus, name="reservationstatus", values_callable=lambda e: [m.value for m in e]),
        default=ReservationStatus.CONFIRMED,
        nullable=False,
    )
    notes = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    table = relationship("Table")
