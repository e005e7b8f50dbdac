from typing import Optional

from pydantic import BaseModel


class BookingCreate(BaseModel):
    planId: str
    departureId: str
    numPeople: int


class BookingCreated(BaseModel):
    success: bool = True
    bookingId: str
    totalAmount: int


class AbandonRequest(BaseModel):
    reason: Optional[str] = None


class CancelRequest(BaseModel):
    vendorCancellation: bool = False
    vendorId: Optional[str] = None  # informational; the caller's token decides
    reason: Optional[str] = None


class BookingOut(BaseModel):
    id: str
    planId: str
    departureId: str
    userId: str
    tripDate: str
    numPeople: int
    tripCost: int
    platformFee: int = 0
    totalAmount: int
    vendorCutPercent: int
    platformCut: int
    vendorPayoutAmount: Optional[int] = None
    bookingStatus: str
    paymentStatus: str
    refundStatus: str
    refundAmount: Optional[int] = None
    refundPercentage: Optional[int] = None
    refundDate: Optional[str] = None
    vendorPayoutStatus: str
    vendorPayoutDate: Optional[str] = None
    razorpayOrderId: Optional[str] = None
    razorpayPaymentId: Optional[str] = None
    cancellationReason: Optional[str] = None
    cancelledBy: Optional[str] = None
    cancelledAt: Optional[str] = None
    createdAt: str
