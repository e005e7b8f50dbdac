import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from tripbook.core.config import settings
from tripbook.core.errors import Forbidden, NotFound, ValidationError
from tripbook.core.timeutils import as_utc, utcnow
from tripbook.models.departure import Departure
from tripbook.models.plan import Plan
from tripbook.models.user import User
from tripbook.services.audit_service import log_audit


def create_plan(db: Session, vendor: User, name: str, price: int, description: str = "",
                vendor_cut: int | None = None) -> Plan:
    # The default cut is resolved here once; bookings copy whatever the plan holds.
    cut = settings.DEFAULT_VENDOR_CUT_PERCENT if vendor_cut is None else int(vendor_cut)
    if not 0 <= cut <= 100:
        raise ValidationError("vendorCut must be between 0 and 100")
    if price <= 0:
        raise ValidationError("price must be positive")
    p = Plan(
        id=str(uuid.uuid4()),
        vendor_id=vendor.id,
        name=name.strip(),
        description=description or "",
        price=int(price),
        vendor_cut_percent=cut,
        is_active=True,
    )
    db.add(p)
    log_audit(db, vendor.id, "plan.created", "plan", p.id, {"price": p.price, "vendorCut": cut})
    db.commit()
    db.refresh(p)
    return p


def get_plan(db: Session, plan_id: str) -> Plan:
    p = db.get(Plan, plan_id)
    if not p:
        raise NotFound("Plan not found")
    return p


def add_departure(db: Session, actor: User, plan_id: str, departure_date: datetime, total_capacity: int,
                  pickup_time: str = "", pickup_location: str = "") -> Departure:
    p = get_plan(db, plan_id)
    if actor.role != "admin" and p.vendor_id != actor.id:
        raise Forbidden("Unauthorized to schedule departures for this plan")
    if as_utc(departure_date) <= utcnow():
        raise ValidationError("Departure date must be in the future")
    d = Departure(
        id=str(uuid.uuid4()),
        plan_id=p.id,
        departure_date=as_utc(departure_date),
        pickup_time=pickup_time or "",
        pickup_location=pickup_location or "",
        total_capacity=int(total_capacity),
        booked_seats=0,
        status="scheduled",
        is_active=True,
    )
    db.add(d)
    log_audit(db, actor.id, "departure.created", "departure", d.id, {"planId": p.id, "capacity": d.total_capacity})
    db.commit()
    db.refresh(d)
    return d


def list_bookable_departures(db: Session, plan_id: str) -> list[Departure]:
    """Future, active, not cancelled/completed departures of a plan, soonest first."""
    now = utcnow()
    stmt = (
        select(Departure)
        .where(
            Departure.plan_id == plan_id,
            Departure.is_active.is_(True),
            Departure.status.not_in(("cancelled", "completed")),
        )
        .order_by(Departure.departure_date.asc())
    )
    return [d for d in db.execute(stmt).scalars().all() if as_utc(d.departure_date) > now]
