from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime
import logging

from utils.database import get_db
from utils.auth import get_floor_staff
from utils.validators import to_http_exception
from models.reservation import Reservation, ReservationStatus, Shift
from schemas.reservation import ReservationAssign, ReservationCreate, ReservationResponse, ReservationStatusUpdate
from schemas.user import CurrentUser
from services import table_state
from services.exceptions import OrderServiceError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/reservations", tags=["reservations"])

# Statuses staff may set by hand; completion only happens through table assignment
MANUAL_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.ARRIVED, ReservationStatus.CANCELLED)


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    reservation: ReservationCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_floor_staff)
):
    try:
        db_reservation = Reservation(**reservation.model_dump(), status=ReservationStatus.CONFIRMED, table_id=None)
        db.add(db_reservation)
        db.commit()
        db.refresh(db_reservation)
        logger.info(f"Reservation {db_reservation.id} for {db_reservation.customer_name} created by user {current_user.id}")
        return db_reservation
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create reservation: {str(e)}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create reservation")


@router.get("", response_model=List[ReservationResponse])
async def list_reservations(
    shift: Optional[Shift] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_floor_staff)
):
    query = db.query(Reservation)
    if shift:
        query = query.filter(Reservation.shift == shift)
    if start:
        query = query.filter(Reservation.reservation_time >= start)
    if end:
        query = query.filter(Reservation.reservation_time <= end)
    return query.order_by(Reservation.reservation_time).all()


@router.put("/{reservation_id}/status", response_model=ReservationResponse)
async def update_reservation_status(
    reservation_id: int,
    status_update: ReservationStatusUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_floor_staff)
):
    if status_update.status not in MANUAL_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Reservations are completed by assigning them to a table"
        )
    db_reservation = db.query(Reservation).filter(Reservation.id == reservation_id).first()
    if not db_reservation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found")
    if db_reservation.status in table_state.CLOSED_RESERVATION_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Reservation is already {db_reservation.status.value}"
        )

    try:
        db_reservation.status = status_update.status
        db.commit()
        db.refresh(db_reservation)
        logger.info(f"Reservation {reservation_id} marked {status_update.status.value} by user {current_user.id}")
        return db_reservation
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to update reservation {reservation_id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update reservation")


@router.post("/{reservation_id}/assign", response_model=ReservationResponse)
async def assign_reservation(
    reservation_id: int,
    payload: ReservationAssign,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_floor_staff)
):
    try:
        return table_state.assign_reservation_to_table(db, reservation_id, payload.table_id)
    except OrderServiceError as e:
        db.rollback()
        logger.warning(f"Assigning reservation {reservation_id} to table {payload.table_id} rejected: {e.message}")
        raise to_http_exception(e)
