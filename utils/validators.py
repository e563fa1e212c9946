from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from services.exceptions import OrderServiceError


def validate_number_uniqueness(db: Session, model, number: str, exclude_id: Optional[int] = None):
    """Validate that the display number is not already used by another row"""
    query = db.query(model).filter(model.number == number)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{model.__name__} with number {number} already exists"
        )


def to_http_exception(error: OrderServiceError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)
