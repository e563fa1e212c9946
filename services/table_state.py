"""Table occupancy changes that happen without an order.

Assigning a reservation seats guests before any ticket exists, so the table
is occupied with no active order until a waiter opens one. Such a table is
never freed automatically; staff release it by hand when the visit is
aborted.
"""
import logging

from sqlalchemy.orm import Session

from models.reservation import Reservation, ReservationStatus
from models.table_management import Table, TableStatus
from services.exceptions import InvalidTransition, NotFound, TableInUse, TableUnavailable
from services.order_lifecycle import active_orders_for_table, transaction, lock_table

logger = logging.getLogger(__name__)

CLOSED_RESERVATION_STATUSES = (ReservationStatus.COMPLETED, ReservationStatus.CANCELLED)


def assign_reservation_to_table(db: Session, reservation_id: int, table_id: int) -> Reservation:
    with transaction(db, f"assign reservation {reservation_id} to table {table_id}"):
        reservation = (
            db.query(Reservation)
            .populate_existing()
            .with_for_update()
            .filter(Reservation.id == reservation_id)
            .first()
        )
        if not reservation:
            raise NotFound(f"Reservation {reservation_id} not found")
        if reservation.status in CLOSED_RESERVATION_STATUSES:
            raise InvalidTransition(
                reservation.status, ReservationStatus.COMPLETED,
                f"Reservation {reservation_id} is already {reservation.status.value}",
            )

        table = lock_table(db, table_id)
        if table.status != TableStatus.AVAILABLE:
            raise TableUnavailable(f"Table {table.number} is occupied, choose a free table")

        table.status = TableStatus.OCCUPIED
        reservation.status = ReservationStatus.COMPLETED
        reservation.table_id = table.id

    logger.info(f"Reservation {reservation_id} ({reservation.customer_name}) seated at table {table_id}")
    return reservation


def release_table(db: Session, table_id: int) -> Table:
    """Free a table marked occupied that has no open orders."""
    with transaction(db, f"release table {table_id}"):
        table = lock_table(db, table_id)
        active = active_orders_for_table(db, table_id)
        if active:
            raise TableInUse(f"Table {table.number} still has {len(active)} open order(s)")
        table.status = TableStatus.AVAILABLE
        table.current_order_id = None

    logger.info(f"Table {table_id} released manually")
    return table
