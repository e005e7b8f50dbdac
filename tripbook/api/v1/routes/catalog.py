from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tripbook.db.session import get_db
from tripbook.api.deps import require_roles
from tripbook.models.departure import Departure
from tripbook.models.plan import Plan
from tripbook.models.user import User
from tripbook.schemas.catalog import DepartureCreate, DepartureOut, PlanCreate, PlanOut
from tripbook.services import catalog_service

router = APIRouter(tags=["catalog"])


def plan_out(p: Plan) -> PlanOut:
    return PlanOut(
        id=p.id,
        vendorId=p.vendor_id,
        name=p.name,
        description=p.description or "",
        price=p.price,
        vendorCut=p.vendor_cut_percent,
        isActive=p.is_active,
    )


def departure_out(d: Departure) -> DepartureOut:
    return DepartureOut(
        id=d.id,
        planId=d.plan_id,
        departureDate=d.departure_date.isoformat(),
        pickupTime=d.pickup_time or "",
        pickupLocation=d.pickup_location or "",
        totalCapacity=d.total_capacity,
        bookedSeats=d.booked_seats,
        availableSeats=d.available_seats,
        status=d.status,
    )


@router.get("/plans/{plan_id}", response_model=PlanOut)
def get_plan(plan_id: str, db: Session = Depends(get_db)):
    return plan_out(catalog_service.get_plan(db, plan_id))


@router.get("/departures", response_model=list[DepartureOut])
def list_departures(planId: str, db: Session = Depends(get_db)):
    return [departure_out(d) for d in catalog_service.list_bookable_departures(db, planId)]


@router.post("/vendor/plans", response_model=PlanOut, status_code=201)
def create_plan(body: PlanCreate, db: Session = Depends(get_db),
                me: User = Depends(require_roles("vendor", "admin"))):
    p = catalog_service.create_plan(db, me, body.name, body.price, body.description, body.vendorCut)
    return plan_out(p)


@router.post("/vendor/plans/{plan_id}/departures", response_model=DepartureOut, status_code=201)
def create_departure(plan_id: str, body: DepartureCreate, db: Session = Depends(get_db),
                     me: User = Depends(require_roles("vendor", "admin"))):
    d = catalog_service.add_departure(
        db, me, plan_id, body.departureDate, body.totalCapacity, body.pickupTime, body.pickupLocation,
    )
    return departure_out(d)
