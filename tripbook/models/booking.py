from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from tripbook.db.session import Base


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    plan_id: Mapped[str] = mapped_column(String(36), index=True)
    departure_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)  # booker

    trip_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    num_people: Mapped[int] = mapped_column(Integer, default=1)

    # Money in rupees. Customer pays trip_cost; platform_fee stays 0.
    trip_cost: Mapped[int] = mapped_column(Integer, default=0)
    platform_fee: Mapped[int] = mapped_column(Integer, default=0)
    total_amount: Mapped[int] = mapped_column(Integer, default=0)
    vendor_cut_percent: Mapped[int] = mapped_column(Integer, default=85)
    platform_cut: Mapped[int] = mapped_column(Integer, default=0)
    vendor_payout_amount: Mapped[int] = mapped_column(Integer, nullable=True)

    booking_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending, confirmed, cancelled, failed
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, completed, failed

    refund_status: Mapped[str] = mapped_column(String(20), default="none")  # none, requested, processing, completed, rejected
    refund_amount: Mapped[int] = mapped_column(Integer, nullable=True)
    refund_percentage: Mapped[int] = mapped_column(Integer, nullable=True)
    refund_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_id: Mapped[str] = mapped_column(String(64), nullable=True)

    vendor_payout_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, processing, completed, failed
    vendor_payout_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    vendor_transfer_id: Mapped[str] = mapped_column(String(64), nullable=True)

    razorpay_order_id: Mapped[str] = mapped_column(String(64), nullable=True, index=True)
    razorpay_payment_id: Mapped[str] = mapped_column(String(64), nullable=True, index=True)
    razorpay_signature: Mapped[str] = mapped_column(String(128), nullable=True)

    cancellation_reason: Mapped[str] = mapped_column(String(500), nullable=True)
    cancelled_by: Mapped[str] = mapped_column(String(12), nullable=True)  # user|vendor|admin|system
    cancelled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
