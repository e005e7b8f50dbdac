"""Cancellation and refund sequence.

Ordering matters here: the booking is claimed (``refund_status =
processing``, amounts recorded) before the gateway is called, so a crash
mid-call leaves an auditable record instead of a silent loss.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from tripbook.core.errors import Forbidden, GatewayError, NotFound, PersistenceError, StateConflict, ValidationError
from tripbook.core.timeutils import as_utc, utcnow
from tripbook.models.booking import Booking
from tripbook.models.plan import Plan
from tripbook.models.user import User
from tripbook.services import booking_store, inventory_ledger
from tripbook.services.audit_service import log_audit
from tripbook.services.booking_store import Exclude
from tripbook.services.gateway import PaymentGateway, RefundNotes
from tripbook.services.refund_policy import RefundQuote, compute_refund, days_until_trip, unrefunded_split

logger = logging.getLogger(__name__)

PAYOUT_LOCKED = ("processing", "completed")


def _audit(db: Session, actor_id: str, action: str, booking_id: str, details: dict) -> None:
    log_audit(db, actor_id, action, "booking", booking_id, details)
    db.commit()


def _load(db: Session, booking_id: str) -> Booking:
    if not booking_id:
        raise ValidationError("bookingId is required")
    b = booking_store.get_by_id(db, booking_id)
    if not b:
        raise NotFound("Booking not found")
    return b


def _authorize(db: Session, booking: Booking, actor: User, vendor_cancellation: bool) -> None:
    if actor.role == "admin":
        return
    if vendor_cancellation:
        plan = db.get(Plan, booking.plan_id)
        if actor.role != "vendor" or not plan or plan.vendor_id != actor.id:
            raise Forbidden("Only the vendor of this trip can cancel it on the vendor's behalf")
        return
    if booking.user_id != actor.id:
        raise Forbidden("Unauthorized to access this booking")


def _cancelled_by(actor: User, vendor_cancellation: bool) -> str:
    if actor.role == "admin":
        return "admin"
    return "vendor" if vendor_cancellation else "user"


def rejected_split(booking: Booking) -> dict:
    """Split to store once a refund is rejected: the customer still holds the whole trip cost."""
    payout, cut = unrefunded_split(booking.trip_cost, booking.vendor_cut_percent)
    return {"vendor_payout_amount": payout, "platform_cut": cut}


def quote_for(booking: Booking, now: datetime, vendor_cancellation: bool = False) -> RefundQuote:
    return compute_refund(
        booking.trip_cost,
        booking.vendor_cut_percent,
        days_until_trip(booking.trip_date, now),
        vendor_cancellation,
    )


def cancel_booking(db: Session, gateway: PaymentGateway, booking_id: str, actor: User,
                   vendor_cancellation: bool = False, reason: str | None = None,
                   now: datetime | None = None) -> tuple[Booking, RefundQuote]:
    now = now or utcnow()
    b = _load(db, booking_id)
    _authorize(db, b, actor, vendor_cancellation)

    if b.booking_status == "cancelled":
        raise StateConflict("Booking is already cancelled")
    if b.booking_status != "confirmed":
        raise StateConflict(f"Cannot cancel a {b.booking_status} booking")
    if b.vendor_payout_status in PAYOUT_LOCKED:
        raise StateConflict("Cannot cancel after the vendor payout has been made")
    if as_utc(b.trip_date) <= now:
        raise ValidationError("Cannot cancel a trip that has already started")

    quote = quote_for(b, now, vendor_cancellation)
    fields = dict(
        booking_status="cancelled",
        cancelled_at=now,
        cancelled_by=_cancelled_by(actor, vendor_cancellation),
        cancellation_reason=reason or ("Cancelled by vendor" if vendor_cancellation else "Cancelled by user"),
    )
    if quote.refund_amount > 0:
        fields["refund_status"] = "requested"

    changed = booking_store.transition(
        db, b.id,
        {"booking_status": "confirmed", "vendor_payout_status": Exclude(*PAYOUT_LOCKED)},
        **fields,
    )
    if not changed:
        current = booking_store.get_by_id(db, b.id)
        if current.booking_status == "cancelled":
            raise StateConflict("Booking is already cancelled")
        raise StateConflict("Booking can no longer be cancelled")

    # Seats go back regardless of what happens to the money.
    try:
        inventory_ledger.release(db, b.departure_id, b.num_people)
    except PersistenceError:
        logger.error("seat release failed for cancelled booking %s (%s seat(s) on %s)", b.id, b.num_people, b.departure_id)

    _audit(db, actor.id, "booking.cancelled", b.id, {
        "vendorCancellation": vendor_cancellation, "refundPercentage": quote.percentage, "reason": fields["cancellation_reason"],
    })

    try:
        return _run_refund(db, gateway, booking_store.get_by_id(db, b.id), actor, vendor_cancellation, now)
    except GatewayError as e:
        raise GatewayError(
            f"Booking cancelled but the refund failed: {e.message}",
            hint="The refund was marked rejected; retry it from the refund endpoint or process it manually",
            extra={"bookingId": b.id, "cancelled": True},
        ) from e


def process_refund(db: Session, gateway: PaymentGateway, booking_id: str, actor: User,
                   vendor_cancellation: bool = False, now: datetime | None = None) -> tuple[Booking, RefundQuote]:
    now = now or utcnow()
    b = _load(db, booking_id)
    _authorize(db, b, actor, vendor_cancellation)
    return _run_refund(db, gateway, b, actor, vendor_cancellation, now)


def _run_refund(db: Session, gateway: PaymentGateway, b: Booking, actor: User,
                vendor_cancellation: bool, now: datetime) -> tuple[Booking, RefundQuote]:
    if b.payment_status != "completed":
        raise StateConflict("Payment not completed")
    if b.refund_status == "completed":
        raise StateConflict("Refund already processed")
    if b.refund_status == "processing":
        raise StateConflict("Refund already in progress")
    if b.vendor_payout_status in PAYOUT_LOCKED:
        raise StateConflict("Cannot refund after the vendor payout has been made")
    # A retry on a cancelled booking is judged as of the cancellation.
    if b.booking_status == "cancelled" and b.cancelled_at is not None:
        now = as_utc(b.cancelled_at)
        vendor_cancellation = vendor_cancellation or b.cancelled_by == "vendor"
    if as_utc(b.trip_date) <= now:
        raise ValidationError("Cannot refund a trip that has already started")
    if not b.razorpay_payment_id:
        raise StateConflict("No payment recorded for this booking")

    quote = quote_for(b, now, vendor_cancellation)

    if quote.refund_amount <= 0:
        if b.booking_status != "cancelled":
            raise ValidationError(quote.message, details={"refundPercentage": quote.percentage})
        # Finalise the cancellation record; nothing goes to the gateway.
        booking_store.update_fields(
            db, b.id,
            refund_amount=0,
            refund_percentage=0,
            vendor_payout_amount=quote.vendor_payout_amount,
            platform_cut=quote.platform_cut,
        )
        _audit(db, actor.id, "booking.refund_not_applicable", b.id, {"refundPercentage": 0})
        return booking_store.get_by_id(db, b.id), quote

    claimed = booking_store.transition(
        db, b.id,
        {
            "payment_status": "completed",
            "refund_status": Exclude("processing", "completed"),
            "vendor_payout_status": Exclude(*PAYOUT_LOCKED),
        },
        refund_status="processing",
        refund_amount=quote.refund_amount,
        refund_percentage=quote.percentage,
        vendor_payout_amount=quote.vendor_payout_amount,
        platform_cut=quote.platform_cut,
    )
    if not claimed:
        raise StateConflict("Refund already in progress or payout under way")

    notes = RefundNotes(
        bookingId=b.id,
        reason="Vendor cancellation" if vendor_cancellation else "Customer cancellation",
        refundPercentage=quote.percentage,
    )
    try:
        result = gateway.refund(b.razorpay_payment_id, quote.refund_amount, notes)
    except GatewayError as e:
        booking_store.update_fields(db, b.id, refund_status="rejected", **rejected_split(b))
        _audit(db, actor.id, "booking.refund_failed", b.id, {"amount": quote.refund_amount, "error": e.message})
        logger.error("refund of %s for booking %s failed: %s", quote.refund_amount, b.id, e.message)
        raise GatewayError(
            f"Failed to process refund: {e.message}",
            hint="Refund marked rejected; retry or refund manually with payment ID " + b.razorpay_payment_id,
            extra={"paymentId": b.razorpay_payment_id},
        ) from e

    completed = result.status == "processed"
    # The webhook may have finished it already; never regress a completed refund.
    booking_store.transition(
        db, b.id, {"refund_status": "processing"},
        refund_status="completed" if completed else "processing",
        refund_id=result.refund_id,
        refund_date=utcnow() if completed else None,
    )
    _audit(db, actor.id, "booking.refund_initiated", b.id, {
        "refundId": result.refund_id, "amount": quote.refund_amount,
        "percentage": quote.percentage, "status": result.status,
    })
    return booking_store.get_by_id(db, b.id), quote
