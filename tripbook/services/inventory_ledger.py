"""Seat inventory per departure.

``reserve`` and ``release`` are the only writers of ``departures.booked_seats``.
Each is one conditional UPDATE, so concurrent bookings for the same departure
cannot oversell: the capacity check and the increment happen in the database
in a single statement.
"""
import logging

from sqlalchemy import case, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tripbook.core.errors import CapacityExceeded, NotFound, PersistenceError, ValidationError
from tripbook.models.departure import Departure

logger = logging.getLogger(__name__)


def _check_count(count: int) -> int:
    if not isinstance(count, int) or isinstance(count, bool) or count < 1:
        raise ValidationError("Seat count must be a positive integer")
    return count


def reserve(db: Session, departure_id: str, count: int) -> None:
    """Add ``count`` booked seats if they fit; raise CapacityExceeded otherwise. Commits."""
    count = _check_count(count)
    stmt = (
        update(Departure)
        .where(
            Departure.id == departure_id,
            Departure.booked_seats + count <= Departure.total_capacity,
        )
        .values(booked_seats=Departure.booked_seats + count)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("reserve failed for departure %s", departure_id)
        raise PersistenceError("Failed to reserve seats") from e

    if result.rowcount == 1:
        logger.info("reserved %s seat(s) on departure %s", count, departure_id)
        return

    if db.get(Departure, departure_id) is None:
        raise NotFound("Departure not found")
    raise CapacityExceeded(
        "Unable to reserve seats. This departure may be fully booked.",
        extra={"requested": count},
    )


def release(db: Session, departure_id: str, count: int) -> bool:
    """Give back ``count`` seats, clamped at zero. Returns False if the departure is unknown. Commits."""
    count = _check_count(count)
    stmt = (
        update(Departure)
        .where(Departure.id == departure_id)
        .values(booked_seats=case(
            (Departure.booked_seats - count < 0, 0),
            else_=Departure.booked_seats - count,
        ))
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("release failed for departure %s", departure_id)
        raise PersistenceError("Failed to release seats") from e

    released = result.rowcount == 1
    if released:
        logger.info("released %s seat(s) on departure %s", count, departure_id)
    else:
        logger.warning("release of %s seat(s) skipped: departure %s not found", count, departure_id)
    return released


def available_seats(db: Session, departure_id: str) -> int:
    dep = db.get(Departure, departure_id)
    if dep is None:
        raise NotFound("Departure not found")
    db.refresh(dep)
    return dep.available_seats
