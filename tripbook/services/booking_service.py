"""Booking lifecycle: reserve, order, verify, confirm, abandon, expire.

State machine per booking::

    pending -> confirmed -> cancelled
    pending -> failed

Every transition is a compare-and-set on the stored status (see
``booking_store.transition``), so the client's verify call, the gateway
webhook and the expiry job can race without double-applying anything.
"""
import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from tripbook.core.config import settings
from tripbook.core.errors import (
    BookingError,
    CapacityExceeded,
    DuplicateId,
    Forbidden,
    GatewayError,
    NotFound,
    PersistenceError,
    StateConflict,
    ValidationError,
)
from tripbook.core.timeutils import as_utc, utcnow
from tripbook.models.booking import Booking
from tripbook.models.departure import Departure
from tripbook.models.plan import Plan
from tripbook.models.user import User
from tripbook.services import booking_store, inventory_ledger
from tripbook.services.booking_store import Exclude
from tripbook.services.audit_service import log_audit
from tripbook.services.gateway import OrderMetadata, PaymentGateway, RefundNotes, to_minor
from tripbook.services.refund_policy import round_amount

logger = logging.getLogger(__name__)

PAID_PAYMENT_STATES = ("captured", "authorized")
CREATE_ATTEMPTS = 3


def _audit(db: Session, actor_id: str, action: str, booking_id: str, details: dict | None = None, source: str = "api") -> None:
    log_audit(db, actor_id, action, "booking", booking_id, details, source=source)
    db.commit()


def compute_split(price: int, num_people: int, vendor_cut_percent: int) -> tuple[int, int, int]:
    """Return (trip_cost, vendor_payout_amount, platform_cut); payout + cut == trip_cost."""
    trip_cost = int(price) * int(num_people)
    vendor_payout = round_amount(trip_cost * vendor_cut_percent / 100)
    return trip_cost, vendor_payout, trip_cost - vendor_payout


def _get_owned(db: Session, user: User, booking_id: str, allow_admin: bool = True) -> Booking:
    b = booking_store.get_by_id(db, booking_id)
    if not b:
        raise NotFound("Booking not found")
    if b.user_id != user.id and not (allow_admin and user.role == "admin"):
        raise Forbidden("Unauthorized to access this booking")
    return b


def get_booking_for_user(db: Session, user: User, booking_id: str) -> Booking:
    return _get_owned(db, user, booking_id)


def list_user_bookings(db: Session, user: User) -> list[Booking]:
    return booking_store.get_by_user(db, user.id)


# -------------------------
# CREATE
# -------------------------
def create_booking(db: Session, user: User, plan_id: str, departure_id: str, num_people: int,
                   now: datetime | None = None) -> Booking:
    now = now or utcnow()
    if not plan_id or not departure_id or num_people is None:
        raise ValidationError("Missing required fields")
    if not isinstance(num_people, int) or isinstance(num_people, bool) \
            or num_people < 1 or num_people > settings.MAX_PEOPLE_PER_BOOKING:
        raise ValidationError(f"Number of people must be between 1 and {settings.MAX_PEOPLE_PER_BOOKING}")

    plan = db.get(Plan, plan_id)
    if not plan:
        raise NotFound("Plan not found")
    if not plan.is_active:
        raise ValidationError("This trip is no longer available")

    dep = db.get(Departure, departure_id)
    if not dep:
        raise NotFound("Departure not found")
    if dep.plan_id != plan_id:
        raise ValidationError("Departure does not match plan")
    if dep.status == "cancelled" or not dep.is_active:
        raise ValidationError("This departure has been cancelled")
    if dep.status == "completed":
        raise ValidationError("This departure has already been completed")
    if as_utc(dep.departure_date) <= now:
        raise ValidationError("This departure is in the past")

    available = dep.available_seats
    if available < num_people:
        raise CapacityExceeded("Not enough seats available", extra={"availableSeats": available, "requested": num_people})

    trip_cost, vendor_payout, platform_cut = compute_split(plan.price, num_people, plan.vendor_cut_percent)

    # Seats first: if we lose the race nothing has been written yet.
    inventory_ledger.reserve(db, departure_id, num_people)

    try:
        booking = _insert_pending(db, user, plan, dep, num_people, trip_cost, vendor_payout, platform_cut)
    except PersistenceError:
        logger.exception("booking insert failed after reserving %s seat(s) on %s; releasing", num_people, departure_id)
        try:
            inventory_ledger.release(db, departure_id, num_people)
        except PersistenceError:
            logger.error("seat release failed for departure %s (%s seat(s) leaked)", departure_id, num_people)
        raise PersistenceError("Failed to create booking")

    _audit(db, user.id, "booking.created", booking.id, {
        "departureId": departure_id, "numPeople": num_people, "totalAmount": booking.total_amount,
    })
    return booking


def _insert_pending(db: Session, user: User, plan: Plan, dep: Departure, num_people: int,
                    trip_cost: int, vendor_payout: int, platform_cut: int) -> Booking:
    for _ in range(CREATE_ATTEMPTS):
        booking = Booking(
            id=str(uuid.uuid4()),
            plan_id=plan.id,
            departure_id=dep.id,
            user_id=user.id,
            trip_date=dep.departure_date,
            num_people=num_people,
            trip_cost=trip_cost,
            platform_fee=0,  # customer pays trip cost only
            total_amount=trip_cost,
            vendor_cut_percent=plan.vendor_cut_percent,
            platform_cut=platform_cut,
            vendor_payout_amount=vendor_payout,
            booking_status="pending",
            payment_status="pending",
            refund_status="none",
            vendor_payout_status="pending",
        )
        try:
            return booking_store.create(db, booking)
        except DuplicateId:
            logger.warning("booking id collision on %s; retrying", booking.id)
    raise PersistenceError("could not allocate booking id")


# -------------------------
# ORDER
# -------------------------
def _order_response(gateway: PaymentGateway, order_id: str, amount_minor: int, currency: str) -> dict:
    return {"orderId": order_id, "amount": amount_minor, "currency": currency, "key": gateway.key_id}


def create_payment_order(db: Session, gateway: PaymentGateway, user: User, booking_id: str) -> dict:
    if not booking_id:
        raise ValidationError("bookingId is required")
    b = _get_owned(db, user, booking_id, allow_admin=False)
    if b.booking_status != "pending":
        raise StateConflict(f"Booking is already {b.booking_status}")

    if b.razorpay_order_id:
        return _order_response(gateway, b.razorpay_order_id, to_minor(b.total_amount), gateway.currency)

    # Razorpay receipts are capped at 40 chars.
    receipt = f"booking_{b.id.replace('-', '')}"
    order = gateway.create_order(b.total_amount, gateway.currency, receipt, OrderMetadata(
        bookingId=b.id,
        planId=b.plan_id,
        departureId=b.departure_id,
        userId=b.user_id,
        numPeople=b.num_people,
        tripDate=as_utc(b.trip_date).isoformat(),
        tripCost=b.trip_cost,
    ))

    stored = booking_store.transition(
        db, b.id, {"razorpay_order_id": None, "booking_status": "pending"},
        razorpay_order_id=order.order_id,
    )
    if not stored:
        current = booking_store.get_by_id(db, b.id)
        if current and current.razorpay_order_id:
            # A concurrent call stored its order first; hand that one out.
            return _order_response(gateway, current.razorpay_order_id, to_minor(current.total_amount), gateway.currency)
        raise StateConflict(f"Booking is already {current.booking_status if current else 'gone'}")

    _audit(db, user.id, "booking.order_created", b.id, {"orderId": order.order_id, "amount": order.amount_minor})
    return _order_response(gateway, order.order_id, order.amount_minor, order.currency)


# -------------------------
# CONFIRM (shared by verify and webhook)
# -------------------------
def amount_matches(booking: Booking, amount_minor: int | None) -> bool:
    if amount_minor is None:
        return False
    return abs(int(amount_minor) - to_minor(booking.total_amount)) <= to_minor(settings.AMOUNT_TOLERANCE)


def confirm_paid_booking(db: Session, booking_id: str, payment_id: str, *, signature: str | None = None,
                         actor_id: str = "system", source: str = "api") -> bool:
    """pending -> confirmed/completed. False if the booking was not pending (someone else got there)."""
    fields = {"booking_status": "confirmed", "payment_status": "completed", "razorpay_payment_id": payment_id}
    if signature:
        fields["razorpay_signature"] = signature
    changed = booking_store.transition(db, booking_id, {"booking_status": "pending"}, **fields)
    if changed:
        _audit(db, actor_id, "booking.confirmed", booking_id, {"paymentId": payment_id}, source=source)
    return changed


def refund_orphaned_payment(db: Session, gateway: PaymentGateway, booking: Booking, payment_id: str,
                            amount: int, reason: str, source: str = "api"):
    """Give back a captured payment whose booking can no longer be confirmed.

    Claims the refund with a CAS first so the verify call and the webhook
    cannot both refund the same payment. If the gateway refund fails the
    raised error carries the payment id for manual follow-up.
    """
    claimed = booking_store.transition(
        db, booking.id,
        {
            "booking_status": ("failed", "cancelled"),
            "payment_status": Exclude("completed"),
            "refund_status": ("none", "rejected"),
        },
        razorpay_payment_id=payment_id,
        refund_status="processing",
        refund_amount=amount,
        refund_percentage=100,
    )
    if not claimed:
        raise StateConflict(
            "Payment for this booking has already been refunded",
            extra={"paymentId": payment_id, "refunded": True},
        )

    logger.warning("refunding orphaned payment %s for booking %s: %s", payment_id, booking.id, reason)
    try:
        result = gateway.refund(payment_id, amount, RefundNotes(
            bookingId=booking.id, reason=reason, refundPercentage=100, bookingFailure=True,
        ))
    except GatewayError as e:
        booking_store.update_fields(db, booking.id, refund_status="rejected")
        _audit(db, "system", "booking.compensating_refund_failed", booking.id,
               {"paymentId": payment_id, "amount": amount, "error": e.message}, source=source)
        logger.error("compensating refund failed for payment %s (booking %s): %s", payment_id, booking.id, e.message)
        raise BookingError(
            "Booking failed and refund initiation failed. Please contact support immediately with payment ID: " + payment_id,
            extra={"paymentId": payment_id},
            hint="Manual refund required",
        ) from e

    completed = result.status == "processed"
    booking_store.update_fields(
        db, booking.id,
        refund_status="completed" if completed else "processing",
        refund_id=result.refund_id,
        refund_date=utcnow() if completed else None,
    )
    _audit(db, "system", "booking.compensating_refund", booking.id,
           {"paymentId": payment_id, "refundId": result.refund_id, "amount": amount, "status": result.status}, source=source)
    return result


# -------------------------
# VERIFY (client, right after checkout)
# -------------------------
def verify_payment(db: Session, gateway: PaymentGateway, user: User, booking_id: str,
                   payment_id: str, order_id: str, signature: str) -> Booking:
    if not (booking_id and payment_id and order_id and signature):
        raise ValidationError("All payment fields are required")
    b = _get_owned(db, user, booking_id, allow_admin=False)

    if b.booking_status == "confirmed" and b.payment_status == "completed":
        return b

    if b.razorpay_order_id and b.razorpay_order_id != order_id:
        raise ValidationError("Order does not match booking")
    if not gateway.verify_signature(order_id, payment_id, signature):
        logger.warning("invalid checkout signature for booking %s", b.id)
        raise ValidationError("Invalid payment signature")

    payment = gateway.get_payment_details(payment_id)
    if payment.status not in PAID_PAYMENT_STATES:
        raise ValidationError("Payment not successful", details={"status": payment.status})
    if payment.order_id and payment.order_id != order_id:
        raise ValidationError("Order does not match payment")
    if not amount_matches(b, payment.amount_minor):
        logger.warning("amount mismatch for booking %s: paid %s paise, expected %s rupees", b.id, payment.amount_minor, b.total_amount)
        raise ValidationError("Amount mismatch")

    paid = payment.amount if payment.amount is not None else b.total_amount

    if b.booking_status != "pending":
        if b.payment_status == "completed":
            raise StateConflict(f"Booking is already {b.booking_status}")
        _refund_and_reject(db, gateway, b, payment_id, paid, "Booking no longer available at payment verification")

    try:
        changed = confirm_paid_booking(db, b.id, payment_id, signature=signature, actor_id=user.id)
    except PersistenceError:
        logger.exception("confirming booking %s failed after payment %s", b.id, payment_id)
        _mark_failed_after_error(db, b.id)
        _refund_and_reject(db, gateway, b, payment_id, paid, "Booking creation failed due to system error")

    current = booking_store.get_by_id(db, b.id)
    if changed or current.booking_status == "confirmed":
        return current
    # Lost the race to something that moved it off pending (expiry, abandon, payment.failed).
    _refund_and_reject(db, gateway, current, payment_id, paid, "Booking no longer available at payment verification")


def _mark_failed_after_error(db: Session, booking_id: str) -> None:
    """Best-effort pending -> failed so the compensating refund can claim the booking."""
    try:
        if booking_store.transition(db, booking_id, {"booking_status": "pending"},
                                    booking_status="failed", payment_status="failed",
                                    cancellation_reason="Booking confirmation failed", cancelled_by="system",
                                    cancelled_at=utcnow()):
            b = booking_store.get_by_id(db, booking_id)
            inventory_ledger.release(db, b.departure_id, b.num_people)
    except PersistenceError:
        logger.exception("could not mark booking %s failed", booking_id)


def _refund_and_reject(db: Session, gateway: PaymentGateway, booking: Booking, payment_id: str, amount: int, reason: str):
    refund_orphaned_payment(db, gateway, booking, payment_id, amount, reason)
    raise CapacityExceeded(
        "This booking is no longer available. Your payment has been automatically refunded "
        "and will reflect in 5-7 business days.",
        extra={"refunded": True, "bookingId": booking.id},
    )


# -------------------------
# ABANDON / EXPIRE
# -------------------------
def _fail_pending(db: Session, booking: Booking, reason: str, cancelled_by: str, actor_id: str, source: str) -> bool:
    changed = booking_store.transition(
        db, booking.id, {"booking_status": "pending"},
        booking_status="failed",
        payment_status="failed",
        cancellation_reason=reason,
        cancelled_by=cancelled_by,
        cancelled_at=utcnow(),
    )
    if not changed:
        return False
    try:
        inventory_ledger.release(db, booking.departure_id, booking.num_people)
    except PersistenceError:
        logger.error("seat release failed for booking %s (%s seat(s) on %s)", booking.id, booking.num_people, booking.departure_id)
    _audit(db, actor_id, "booking.failed", booking.id, {"reason": reason}, source=source)
    return True


def abandon_booking(db: Session, user: User, booking_id: str, reason: str | None = None) -> Booking:
    """Customer dismissed checkout: release the hold now instead of waiting for expiry."""
    b = _get_owned(db, user, booking_id)
    if b.booking_status == "failed":
        return b
    if b.booking_status != "pending":
        raise StateConflict(f"Booking is already {b.booking_status}")
    by = "admin" if user.role == "admin" and b.user_id != user.id else "user"
    if not _fail_pending(db, b, reason or "Checkout dismissed", by, user.id, "api"):
        current = booking_store.get_by_id(db, b.id)
        if current.booking_status != "failed":
            raise StateConflict(f"Booking is already {current.booking_status}")
    return booking_store.get_by_id(db, b.id)


def fail_pending_booking(db: Session, booking: Booking, reason: str, source: str = "webhook") -> bool:
    return _fail_pending(db, booking, reason, "system", "system", source)


def expire_stale_bookings(db: Session, now: datetime | None = None) -> int:
    now = now or utcnow()
    cutoff = now - timedelta(minutes=settings.PENDING_BOOKING_TTL_MINUTES)
    stale = db.execute(
        select(Booking).where(Booking.booking_status == "pending", Booking.created_at < cutoff)
    ).scalars().all()
    expired = 0
    for b in stale:
        if _fail_pending(db, b, "Payment window expired", "system", "system", "job"):
            expired += 1
    if expired:
        logger.info("expired %s pending booking(s)", expired)
    return expired
