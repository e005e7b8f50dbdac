from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tripbook.db.session import get_db
from tripbook.api.deps import get_current_user, get_gateway, require_roles
from tripbook.models.user import User
from tripbook.schemas.payments import (
    CreateOrderRequest, OrderOut, PayoutOut, PayoutRequest, RefundOut, RefundRequest, VerifyPaymentRequest,
)
from tripbook.services import booking_service, payout_service, refund_service
from tripbook.services.gateway import PaymentGateway

router = APIRouter(tags=["payments"])


@router.post("/payments/create-order", response_model=OrderOut)
def create_order(body: CreateOrderRequest, db: Session = Depends(get_db),
                 me: User = Depends(get_current_user),
                 gateway: PaymentGateway = Depends(get_gateway)):
    return booking_service.create_payment_order(db, gateway, me, body.bookingId)


@router.post("/payments/verify")
def verify_payment(body: VerifyPaymentRequest, db: Session = Depends(get_db),
                   me: User = Depends(get_current_user),
                   gateway: PaymentGateway = Depends(get_gateway)):
    b = booking_service.verify_payment(
        db, gateway, me, body.bookingId,
        body.razorpay_payment_id, body.razorpay_order_id, body.razorpay_signature,
    )
    return {"success": True, "bookingId": b.id, "message": "Payment verified and booking confirmed"}


@router.post("/payments/refund", response_model=RefundOut)
def refund(body: RefundRequest, db: Session = Depends(get_db),
           me: User = Depends(get_current_user),
           gateway: PaymentGateway = Depends(get_gateway)):
    b, quote = refund_service.process_refund(db, gateway, body.bookingId, me, vendor_cancellation=body.vendorCancellation)
    status_msg = "Refund processed" if b.refund_status == "completed" else "Refund initiated"
    return RefundOut(
        bookingId=b.id,
        refundId=b.refund_id,
        refundAmount=quote.refund_amount,
        refundPercentage=quote.percentage,
        refundStatus=b.refund_status,
        vendorPayoutAmount=b.vendor_payout_amount,
        message=f"{status_msg}: {quote.message}" if quote.refund_amount > 0 else quote.message,
    )


@router.post("/payments/vendor-payout", response_model=PayoutOut)
def vendor_payout(body: PayoutRequest, db: Session = Depends(get_db),
                  me: User = Depends(require_roles("vendor", "admin")),
                  gateway: PaymentGateway = Depends(get_gateway)):
    b = payout_service.process_vendor_payout(db, gateway, body.bookingId, me)
    return PayoutOut(
        bookingId=b.id,
        transferId=b.vendor_transfer_id,
        payoutAmount=b.vendor_payout_amount,
        message="Vendor payout processed successfully",
    )
