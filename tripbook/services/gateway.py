"""Payment gateway boundary.

The engine works in whole rupees and typed notes records; this module is the
only place that converts to paise and flattens notes into Razorpay's
string-valued ``notes`` map.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from tripbook.core.config import settings
from tripbook.core.errors import BookingError, GatewayError
from tripbook.services.razorpay_client import RazorpayClient, RazorpayConfig


PAISE_PER_RUPEE = 100


def to_minor(amount_rupees: int | float | Decimal) -> int:
    return int((Decimal(str(amount_rupees)) * PAISE_PER_RUPEE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor(amount_paise: int | None) -> int | None:
    if amount_paise is None:
        return None
    return int((Decimal(int(amount_paise)) / PAISE_PER_RUPEE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _notes(record) -> dict[str, str]:
    out = {}
    for k, v in asdict(record).items():
        if v is None:
            continue
        if isinstance(v, bool):
            v = "true" if v else "false"
        out[k] = str(v)
    return out


@dataclass(frozen=True)
class OrderMetadata:
    bookingId: str
    planId: str
    departureId: str
    userId: str
    numPeople: int
    tripDate: str
    tripCost: int


@dataclass(frozen=True)
class RefundNotes:
    bookingId: str
    reason: str
    refundPercentage: int | None = None
    bookingFailure: bool = False


@dataclass(frozen=True)
class TransferNotes:
    bookingId: str
    planId: str
    vendorId: str


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    amount_minor: int
    currency: str


@dataclass(frozen=True)
class PaymentDetails:
    payment_id: str
    status: str              # created|authorized|captured|refunded|failed
    amount_minor: int | None
    order_id: str | None
    currency: str | None = None

    @property
    def amount(self) -> int | None:
        return from_minor(self.amount_minor)


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    status: str              # pending|processed|failed
    amount: int | None


@dataclass(frozen=True)
class TransferResult:
    transfer_id: str


class PaymentGateway:
    def __init__(self, client: RazorpayClient, currency: str = "INR"):
        self.client = client
        self.currency = currency

    @property
    def key_id(self) -> str:
        return self.client.cfg.key_id

    @property
    def has_webhook_secret(self) -> bool:
        return bool(self.client.cfg.webhook_secret)

    def create_order(self, amount: int, currency: str, receipt: str, metadata: OrderMetadata) -> OrderResult:
        resp = self.client.create_order(amount=to_minor(amount), currency=currency, receipt=receipt, notes=_notes(metadata))
        order_id = str(resp.get("id") or "")
        if not order_id:
            raise GatewayError("Razorpay returned an order without an id")
        return OrderResult(order_id=order_id, amount_minor=int(resp.get("amount") or to_minor(amount)),
                           currency=str(resp.get("currency") or currency))

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return self.client.verify_payment_signature(order_id, payment_id, signature)

    def verify_webhook(self, body: bytes, signature: str) -> bool:
        return self.client.verify_webhook_signature(body, signature)

    def get_payment_details(self, payment_id: str) -> PaymentDetails:
        resp = self.client.fetch_payment(payment_id)
        amount = resp.get("amount")
        return PaymentDetails(
            payment_id=str(resp.get("id") or payment_id),
            status=str(resp.get("status") or "").lower(),
            amount_minor=int(amount) if amount is not None else None,
            order_id=resp.get("order_id"),
            currency=resp.get("currency"),
        )

    def refund(self, payment_id: str, amount: int, notes: RefundNotes) -> RefundResult:
        resp = self.client.refund_payment(payment_id=payment_id, amount=to_minor(amount), notes=_notes(notes))
        refund_id = str(resp.get("id") or "")
        if not refund_id:
            raise GatewayError("Razorpay returned a refund without an id")
        return RefundResult(refund_id=refund_id, status=str(resp.get("status") or "pending").lower(),
                            amount=from_minor(resp.get("amount")))

    def transfer_to_vendor(self, account_id: str, amount: int, currency: str, notes: TransferNotes) -> TransferResult:
        resp = self.client.create_transfer(account=account_id, amount=to_minor(amount), currency=currency, notes=_notes(notes))
        transfer_id = str(resp.get("id") or "")
        if not transfer_id:
            raise GatewayError("Razorpay returned a transfer without an id")
        return TransferResult(transfer_id=transfer_id)


def build_gateway() -> PaymentGateway:
    if not (settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET):
        raise BookingError("Razorpay is not configured (missing env vars)")
    return PaymentGateway(RazorpayClient(RazorpayConfig(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET,
        api_base=settings.RAZORPAY_API_BASE,
        timeout=settings.RAZORPAY_TIMEOUT,
    )), currency=settings.CURRENCY)
