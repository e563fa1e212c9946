from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from utils.database import get_db
from models.table_management import Table
from schemas.table_management import TableCreate, TableUpdate, TableResponse
from schemas.user import CurrentUser
from services import table_state
from services.exceptions import OrderServiceError
from services.notifications import view_cache, VIEW_TABLES
from services.order_lifecycle import active_orders_for_table
from utils.auth import get_current_user, get_current_admin, get_floor_staff
from utils.validators import validate_number_uniqueness, to_http_exception
import logging


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/tables", tags=["tables"])


def _get_table_or_404(db: Session, table_id: int) -> Table:
    db_table = db.query(Table).filter(Table.id == table_id).first()
    if not db_table:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Table not found"
        )
    return db_table


@router.get("", response_model=List[TableResponse])
async def list_tables(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    tables = view_cache.get(
        VIEW_TABLES,
        lambda: [
            TableResponse.model_validate(t).model_dump(mode="json")
            for t in db.query(Table).order_by(Table.number).all()
        ],
    )
    logger.debug(f"Retrieved {len(tables)} tables for user {current_user.id}")
    return tables


@router.get("/{table_id}", response_model=TableResponse)
async def get_table(
    table_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    return _get_table_or_404(db, table_id)


# Floor plan management
@router.post("", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
async def create_table(
    table: TableCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_admin)
):
    validate_number_uniqueness(db, Table, table.number)
    try:
        db_table = Table(**table.model_dump())
        db.add(db_table)
        db.commit()
        db.refresh(db_table)
        logger.info(f"Table {db_table.id} ({db_table.number}) created by user {current_user.id}")
        return db_table
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create table: {str(e)}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create table")


@router.put("/{table_id}", response_model=TableResponse)
async def update_table(
    table_id: int,
    table_update: TableUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_admin)
):
    db_table = _get_table_or_404(db, table_id)
    changes = table_update.model_dump(exclude_unset=True, exclude_none=True)
    if "number" in changes:
        validate_number_uniqueness(db, Table, changes["number"], exclude_id=table_id)

    try:
        for field, value in changes.items():
            setattr(db_table, field, value)
        db.commit()
        db.refresh(db_table)
        logger.info(f"Table {table_id} updated by user {current_user.id}")
        return db_table
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to update table {table_id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update table")


@router.delete("/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_table(
    table_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_admin)
):
    db_table = _get_table_or_404(db, table_id)
    if active_orders_for_table(db, table_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Table {db_table.number} has open orders"
        )
    if db_table.orders:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Table {db_table.number} has order history and cannot be deleted"
        )

    try:
        db.delete(db_table)
        db.commit()
        logger.info(f"Table {table_id} deleted by user {current_user.id}")
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to delete table {table_id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete table")


@router.post("/{table_id}/release", response_model=TableResponse)
async def release_table(
    table_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_floor_staff)
):
    """Free a table left occupied without any open order."""
    try:
        table = table_state.release_table(db, table_id)
        logger.info(f"Table {table_id} released by user {current_user.id}")
        return table
    except OrderServiceError as e:
        db.rollback()
        logger.warning(f"Release of table {table_id} by user {current_user.id} rejected: {e.message}")
        raise to_http_exception(e)
