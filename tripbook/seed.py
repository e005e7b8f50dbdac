import uuid
from datetime import timedelta

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError

from tripbook.db.session import SessionLocal
from tripbook.core.security import hash_password
from tripbook.core.timeutils import utcnow
from tripbook.models.user import User
from tripbook.models.plan import Plan
from tripbook.models.departure import Departure


def ensure_user(db: Session, email: str, password: str, role: str, name: str, account_id: str | None = None) -> User:
    u = db.query(User).filter(User.email == email).first()
    if u:
        return u
    u = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=name,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
        razorpay_account_id=account_id,
    )
    db.add(u)
    db.commit()
    return u


def run(db=None):
    own = db is None
    if own:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            print("[seed] users table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        ensure_user(db, "admin@tripbook.local", "admin12345", "admin", "Admin")
        vendor = ensure_user(db, "vendor@tripbook.local", "vendor12345", "vendor", "Demo Vendor", "acc_demo_vendor")
        ensure_user(db, "user@tripbook.local", "user12345", "user", "Demo User")

        if db.query(Plan).filter(Plan.vendor_id == vendor.id).first():
            return
        plan = Plan(
            id=str(uuid.uuid4()),
            vendor_id=vendor.id,
            name="Rishikesh Weekend Rafting",
            description="Two days on the Ganges with camp stay.",
            price=5000,
            vendor_cut_percent=85,
            is_active=True,
        )
        db.add(plan)
        start = utcnow().replace(hour=6, minute=0, second=0, microsecond=0)
        for weeks in (2, 3, 5):
            db.add(Departure(
                id=str(uuid.uuid4()),
                plan_id=plan.id,
                departure_date=start + timedelta(weeks=weeks),
                pickup_time="06:00",
                pickup_location="Haridwar Railway Station",
                total_capacity=12,
                booked_seats=0,
                status="scheduled",
                is_active=True,
            ))
        db.commit()
        print(f"[seed] demo plan {plan.id} with 3 departures")
    finally:
        if own:
            db.close()


if __name__ == "__main__":
    run()
