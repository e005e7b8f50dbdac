"""Persistence for booking records.

The store does not enforce business rules. ``transition`` is the
compare-and-set primitive the engine builds its idempotent state changes on:
the expected column values go into the UPDATE's WHERE clause, so two racing
writers cannot both win.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tripbook.core.errors import DuplicateId, PersistenceError
from tripbook.core.timeutils import utcnow
from tripbook.models.booking import Booking

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Exclude:
    """Expected-value marker: the column must NOT hold any of ``values``."""
    values: tuple

    def __init__(self, *values):
        object.__setattr__(self, "values", tuple(values))


def _condition(column_name: str, expected):
    col = getattr(Booking, column_name)
    if isinstance(expected, Exclude):
        # NULL never equals anything, so it is "not in" the excluded set.
        return col.is_(None) | col.not_in(expected.values)
    if expected is None:
        return col.is_(None)
    if isinstance(expected, (tuple, list, set, frozenset)):
        return col.in_(tuple(expected))
    return col == expected


def create(db: Session, booking: Booking) -> Booking:
    db.add(booking)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if db.get(Booking, booking.id) is not None:
            raise DuplicateId(f"Booking {booking.id} already exists") from e
        raise PersistenceError("Failed to create booking") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Failed to create booking") from e
    db.refresh(booking)
    return booking


def get_by_id(db: Session, booking_id: str) -> Booking | None:
    if not booking_id:
        return None
    b = db.get(Booking, booking_id)
    if b is not None:
        db.refresh(b)
    return b


def get_by_user(db: Session, user_id: str) -> list[Booking]:
    stmt = select(Booking).where(Booking.user_id == user_id).order_by(Booking.created_at.desc())
    return list(db.execute(stmt).scalars().all())


def get_by_payment_id(db: Session, payment_id: str) -> Booking | None:
    if not payment_id:
        return None
    stmt = select(Booking).where(Booking.razorpay_payment_id == payment_id)
    return db.execute(stmt).scalars().first()


def get_by_order_id(db: Session, order_id: str) -> Booking | None:
    if not order_id:
        return None
    stmt = select(Booking).where(Booking.razorpay_order_id == order_id)
    return db.execute(stmt).scalars().first()


def _apply(db: Session, booking_id: str, expected: dict | None, fields: dict) -> bool:
    conditions = [Booking.id == booking_id]
    for name, value in (expected or {}).items():
        conditions.append(_condition(name, value))
    values = dict(fields)
    values["updated_at"] = utcnow()
    stmt = update(Booking).where(*conditions).values(**values).execution_options(synchronize_session=False)
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("booking %s update failed", booking_id)
        raise PersistenceError("Failed to update booking") from e
    return result.rowcount == 1


def update_fields(db: Session, booking_id: str, **fields) -> bool:
    """Unconditional partial update. Callers own idempotency."""
    return _apply(db, booking_id, None, fields)


def transition(db: Session, booking_id: str, expected: dict, **fields) -> bool:
    """Apply ``fields`` only if every column in ``expected`` matches. True when the row changed."""
    changed = _apply(db, booking_id, expected, fields)
    if not changed:
        logger.debug("booking %s transition skipped; expected %s", booking_id, expected)
    return changed
