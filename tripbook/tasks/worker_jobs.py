import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError, ProgrammingError

from tripbook.core.logging import configure_logging
from tripbook.db.session import SessionLocal
from tripbook.services.booking_service import expire_stale_bookings

logger = logging.getLogger(__name__)


def expire_pending_bookings(db: Session | None = None):
    """Fail unpaid bookings past the checkout window and give their seats back."""
    configure_logging()
    own = db is None
    if own:
        db = SessionLocal()
    try:
        try:
            expired = expire_stale_bookings(db)
        except (ProgrammingError, OperationalError):
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            logger.warning("bookings table not ready; skipping expiry run")
            return {"skipped": True, "reason": "missing_tables"}
        return {"expired": expired}
    finally:
        if own:
            db.close()
