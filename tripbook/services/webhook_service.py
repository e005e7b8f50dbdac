"""Razorpay webhook reconciliation.

Webhooks race the client's verify call, so every handler is a guarded
transition that turns into a no-op when the booking already reached the
target state. Once the signature checks out the endpoint always answers
``{"received": true}``; anything we cannot apply is logged instead of
bounced back to the provider.
"""
import json
import logging

from sqlalchemy.orm import Session

from tripbook.core.errors import BookingError, ValidationError
from tripbook.core.timeutils import utcnow
from tripbook.models.booking import Booking
from tripbook.services import booking_service, booking_store
from tripbook.services.refund_service import rejected_split
from tripbook.services.audit_service import log_audit
from tripbook.services.booking_store import Exclude
from tripbook.services.gateway import PaymentGateway, from_minor

logger = logging.getLogger(__name__)

RECEIVED = {"received": True}

REFUND_EVENT_STATUS = {
    "refund.created": "processing",
    "refund.processed": "completed",
    "refund.failed": "rejected",
}


def _entity(payload: dict, kind: str) -> dict:
    return ((payload or {}).get(kind) or {}).get("entity") or {}


def _find_for_payment(db: Session, payment_id: str | None, order_id: str | None) -> Booking | None:
    return booking_store.get_by_payment_id(db, payment_id) or booking_store.get_by_order_id(db, order_id)


def handle_webhook(db: Session, gateway: PaymentGateway, body: bytes, signature: str | None) -> dict:
    if not gateway.has_webhook_secret:
        raise BookingError("Webhook secret not configured")
    if not signature:
        raise ValidationError("Missing signature")
    if not gateway.verify_webhook(body, signature):
        logger.warning("rejected webhook with invalid signature")
        raise ValidationError("Invalid signature")
    try:
        event = json.loads(body)
    except ValueError:
        raise ValidationError("Invalid JSON payload")
    if not isinstance(event, dict):
        raise ValidationError("Invalid JSON payload")

    name = event.get("event")
    payload = event.get("payload") or {}
    if name == "payment.captured":
        on_payment_captured(db, gateway, _entity(payload, "payment"))
    elif name == "payment.failed":
        on_payment_failed(db, _entity(payload, "payment"))
    elif name in REFUND_EVENT_STATUS:
        on_refund_event(db, name, _entity(payload, "refund"))
    else:
        logger.info("ignoring webhook event %s", name)
    return RECEIVED


def on_payment_captured(db: Session, gateway: PaymentGateway, entity: dict) -> None:
    payment_id = entity.get("id")
    b = _find_for_payment(db, payment_id, entity.get("order_id"))
    if not b:
        logger.warning("payment.captured for unknown payment %s", payment_id)
        return

    if b.booking_status == "confirmed":
        if b.razorpay_payment_id != payment_id:
            logger.warning("booking %s already confirmed with payment %s; captured %s needs review",
                           b.id, b.razorpay_payment_id, payment_id)
        return

    if b.booking_status == "pending":
        if not booking_service.amount_matches(b, entity.get("amount")):
            logger.warning("payment.captured amount %s does not match booking %s (%s); not confirming",
                           entity.get("amount"), b.id, b.total_amount)
            return
        if booking_service.confirm_paid_booking(db, b.id, payment_id, source="webhook"):
            return
        b = booking_store.get_by_id(db, b.id)
        if b.booking_status == "confirmed":
            return

    # Cancelled after a completed payment with this same id: the refund flow owns it.
    if b.payment_status == "completed" and b.razorpay_payment_id == payment_id:
        return

    amount = from_minor(entity.get("amount"))
    try:
        booking_service.refund_orphaned_payment(
            db, gateway, b, payment_id, amount if amount is not None else b.total_amount,
            "Payment captured after booking was released", source="webhook",
        )
    except BookingError as e:
        # Already refunded, or the refund failed and was recorded for manual follow-up.
        logger.error("compensating refund for payment %s on booking %s not applied: %s", payment_id, b.id, e.message)


def on_payment_failed(db: Session, entity: dict) -> None:
    payment_id = entity.get("id")
    b = _find_for_payment(db, payment_id, entity.get("order_id"))
    if not b:
        logger.warning("payment.failed for unknown payment %s", payment_id)
        return
    if b.booking_status != "pending":
        return
    booking_service.fail_pending_booking(db, b, "Payment failed", source="webhook")


def on_refund_event(db: Session, name: str, entity: dict) -> None:
    payment_id = entity.get("payment_id")
    b = booking_store.get_by_payment_id(db, payment_id)
    if not b:
        logger.warning("%s for unknown payment %s", name, payment_id)
        return

    status = REFUND_EVENT_STATUS[name]
    fields = {"refund_status": status}
    if entity.get("id"):
        fields["refund_id"] = entity["id"]
    amount = from_minor(entity.get("amount"))
    if amount is not None:
        fields["refund_amount"] = amount
    if status == "completed":
        fields["refund_date"] = utcnow()
    elif status == "rejected":
        fields.update(rejected_split(b))

    expected = {"refund_status": Exclude("completed")}
    if status == "processing":
        # A late refund.created must not drag a rejected refund back.
        expected = {"refund_status": Exclude("completed", "rejected")}
    if booking_store.transition(db, b.id, expected, **fields):
        log_audit(db, "system", name, "booking", b.id, {"refundId": entity.get("id"), "amount": amount}, source="webhook")
        db.commit()
