from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tripbook.db.session import get_db
from tripbook.api.deps import get_current_user, get_gateway
from tripbook.models.booking import Booking
from tripbook.models.user import User
from tripbook.schemas.booking import AbandonRequest, BookingCreate, BookingCreated, BookingOut, CancelRequest
from tripbook.schemas.payments import RefundOut
from tripbook.services import booking_service, refund_service
from tripbook.services.gateway import PaymentGateway

router = APIRouter(tags=["bookings"])


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def booking_out(b: Booking) -> BookingOut:
    return BookingOut(
        id=b.id,
        planId=b.plan_id,
        departureId=b.departure_id,
        userId=b.user_id,
        tripDate=_iso(b.trip_date),
        numPeople=b.num_people,
        tripCost=b.trip_cost,
        platformFee=b.platform_fee or 0,
        totalAmount=b.total_amount,
        vendorCutPercent=b.vendor_cut_percent,
        platformCut=b.platform_cut,
        vendorPayoutAmount=b.vendor_payout_amount,
        bookingStatus=b.booking_status,
        paymentStatus=b.payment_status,
        refundStatus=b.refund_status,
        refundAmount=b.refund_amount,
        refundPercentage=b.refund_percentage,
        refundDate=_iso(b.refund_date),
        vendorPayoutStatus=b.vendor_payout_status,
        vendorPayoutDate=_iso(b.vendor_payout_date),
        razorpayOrderId=b.razorpay_order_id,
        razorpayPaymentId=b.razorpay_payment_id,
        cancellationReason=b.cancellation_reason,
        cancelledBy=b.cancelled_by,
        cancelledAt=_iso(b.cancelled_at),
        createdAt=_iso(b.created_at),
    )


@router.post("/bookings", response_model=BookingCreated, status_code=201)
def create_booking(body: BookingCreate, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    b = booking_service.create_booking(db, me, body.planId, body.departureId, body.numPeople)
    return BookingCreated(bookingId=b.id, totalAmount=b.total_amount)


@router.get("/bookings", response_model=list[BookingOut])
def list_bookings(db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return [booking_out(b) for b in booking_service.list_user_bookings(db, me)]


@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return booking_out(booking_service.get_booking_for_user(db, me, booking_id))


@router.post("/bookings/{booking_id}/abandon")
def abandon_booking(booking_id: str, body: AbandonRequest | None = None,
                    db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    """Checkout was dismissed: give the seats back now."""
    b = booking_service.abandon_booking(db, me, booking_id, body.reason if body else None)
    return {"success": True, "bookingId": b.id, "bookingStatus": b.booking_status}


@router.post("/bookings/{booking_id}/cancel", response_model=RefundOut)
def cancel_booking(booking_id: str, body: CancelRequest | None = None,
                   db: Session = Depends(get_db),
                   me: User = Depends(get_current_user),
                   gateway: PaymentGateway = Depends(get_gateway)):
    body = body or CancelRequest()
    b, quote = refund_service.cancel_booking(
        db, gateway, booking_id, me,
        vendor_cancellation=body.vendorCancellation, reason=body.reason,
    )
    return RefundOut(
        bookingId=b.id,
        refundId=b.refund_id,
        refundAmount=quote.refund_amount,
        refundPercentage=quote.percentage,
        refundStatus=b.refund_status,
        vendorPayoutAmount=b.vendor_payout_amount,
        message=quote.message,
    )
