from sqlalchemy import String, Integer, DateTime, Boolean, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from tripbook.db.session import Base


class Departure(Base):
    __tablename__ = "departures"
    __table_args__ = (
        CheckConstraint("booked_seats >= 0", name="ck_departures_booked_non_negative"),
        CheckConstraint("booked_seats <= total_capacity", name="ck_departures_booked_within_capacity"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    plan_id: Mapped[str] = mapped_column(String(36), index=True)

    departure_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    pickup_time: Mapped[str] = mapped_column(String(5), default="")  # HH:MM
    pickup_location: Mapped[str] = mapped_column(String(200), default="")

    # Only the inventory ledger writes booked_seats.
    total_capacity: Mapped[int] = mapped_column(Integer)
    booked_seats: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(String(12), default="scheduled")  # scheduled|confirmed|completed|cancelled
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def available_seats(self) -> int:
        return max(int(self.total_capacity) - int(self.booked_seats or 0), 0)
