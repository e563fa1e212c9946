from sqlalchemy import Column, Integer, String, Enum, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from utils.database import Base
import enum

class TableStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"

class Table(Base):
    __tablename__ = "tables"
    __table_args__ = (CheckConstraint("capacity > 0", name="ck_tables_capacity_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String, unique=True, nullable=False)
    capacity = Column(Integer, nullable=False)
    status = Column(
        Enum(TableStatus, name="tablestatus", values_callable=lambda e: [m.value for m in e]),
        default=TableStatus.AVAILABLE,
        nullable=False,
    )
    # Plain reference, not a foreign key: orders already point back at tables
    current_order_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    orders = relationship("Order", back_populates="table")

    @property
    def is_occupied(self) -> bool:
        return self.status == TableStatus.OCCUPIED
