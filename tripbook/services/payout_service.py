import logging
from datetime import datetime

from sqlalchemy.orm import Session

from tripbook.core.config import settings
from tripbook.core.errors import Forbidden, GatewayError, NotFound, StateConflict, ValidationError
from tripbook.core.timeutils import as_utc, utcnow
from tripbook.models.booking import Booking
from tripbook.models.plan import Plan
from tripbook.models.user import User
from tripbook.services import booking_store
from tripbook.services.audit_service import log_audit
from tripbook.services.booking_store import Exclude
from tripbook.services.gateway import PaymentGateway, TransferNotes
from tripbook.services.refund_policy import round_amount

logger = logging.getLogger(__name__)

# A rejected refund is still owed to the customer; only a retry or manual
# settlement clears it.
REFUND_BLOCKS_PAYOUT = ("requested", "processing", "completed", "rejected")


def payout_amount(booking: Booking) -> int:
    if booking.vendor_payout_amount is not None:
        return int(booking.vendor_payout_amount)
    return round_amount(booking.trip_cost * settings.DEFAULT_VENDOR_CUT_PERCENT / 100)


def process_vendor_payout(db: Session, gateway: PaymentGateway, booking_id: str, actor: User,
                          now: datetime | None = None) -> Booking:
    """Transfer the vendor's share of a paid booking to their linked account.

    Vendors can only pay themselves out once the trip has started; admins can
    trigger it at any time. A ``failed`` payout is retried by calling this
    again, never automatically.
    """
    now = now or utcnow()
    if not booking_id:
        raise ValidationError("bookingId is required")
    b = booking_store.get_by_id(db, booking_id)
    if not b:
        raise NotFound("Booking not found")
    plan = db.get(Plan, b.plan_id)
    if not plan:
        raise NotFound("Plan not found")

    if actor.role == "vendor":
        if plan.vendor_id != actor.id:
            raise Forbidden("Unauthorized to process payout for this booking")
        if as_utc(b.trip_date) > now:
            raise ValidationError("Payout is available once the trip has started")
    elif actor.role != "admin":
        raise Forbidden("Only admins or the trip's vendor can process payouts")

    if b.payment_status != "completed":
        raise StateConflict("Payment not completed")
    if b.vendor_payout_status == "completed":
        raise StateConflict("Payout already completed")
    if b.vendor_payout_status == "processing":
        raise StateConflict("Payout already in progress")
    if b.refund_status in REFUND_BLOCKS_PAYOUT:
        raise StateConflict("Cannot process payout while a refund is outstanding or completed")

    vendor = db.get(User, plan.vendor_id)
    if not vendor or not vendor.razorpay_account_id:
        raise ValidationError("Vendor has no linked payout account")

    amount = payout_amount(b)
    if amount <= 0:
        raise ValidationError("Nothing to pay out for this booking")

    claimed = booking_store.transition(
        db, b.id,
        {
            "payment_status": "completed",
            "vendor_payout_status": Exclude("processing", "completed"),
            "refund_status": Exclude(*REFUND_BLOCKS_PAYOUT),
        },
        vendor_payout_status="processing",
    )
    if not claimed:
        raise StateConflict("Payout already in progress or a refund is under way")

    try:
        result = gateway.transfer_to_vendor(
            vendor.razorpay_account_id, amount, gateway.currency,
            TransferNotes(bookingId=b.id, planId=plan.id, vendorId=vendor.id),
        )
    except GatewayError as e:
        booking_store.update_fields(db, b.id, vendor_payout_status="failed")
        log_audit(db, actor.id, "booking.payout_failed", "booking", b.id, {"amount": amount, "error": e.message})
        db.commit()
        logger.error("vendor payout of %s for booking %s failed: %s", amount, b.id, e.message)
        raise GatewayError(f"Failed to process payout: {e.message}", hint="Payout marked failed; retry when the issue is resolved") from e

    booking_store.update_fields(
        db, b.id,
        vendor_payout_status="completed",
        vendor_payout_date=utcnow(),
        vendor_transfer_id=result.transfer_id,
        vendor_payout_amount=amount,
    )
    log_audit(db, actor.id, "booking.payout_completed", "booking", b.id, {"amount": amount, "transferId": result.transfer_id})
    db.commit()
    return booking_store.get_by_id(db, b.id)
