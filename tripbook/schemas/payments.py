from typing import Optional

from pydantic import BaseModel


class CreateOrderRequest(BaseModel):
    bookingId: str


class OrderOut(BaseModel):
    orderId: str
    amount: int  # paise
    currency: str = "INR"
    key: str


class VerifyPaymentRequest(BaseModel):
    bookingId: str
    razorpay_payment_id: str
    razorpay_order_id: str
    razorpay_signature: str


class RefundRequest(BaseModel):
    bookingId: str
    vendorCancellation: bool = False


class RefundOut(BaseModel):
    success: bool = True
    bookingId: str
    refundId: Optional[str] = None
    refundAmount: int
    refundPercentage: int
    refundStatus: str
    vendorPayoutAmount: Optional[int] = None
    message: str


class PayoutRequest(BaseModel):
    bookingId: str


class PayoutOut(BaseModel):
    success: bool = True
    bookingId: str
    transferId: Optional[str] = None
    payoutAmount: int
    message: str
