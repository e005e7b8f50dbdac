"""Tiered cancellation refund policy.

| Days until trip | Refund of trip cost |
|-----------------|---------------------|
| 15 or more      | 100%                |
| 8 to 14         | 50%                 |
| 7 or fewer      | 0%                  |

A vendor-initiated cancellation always refunds 100% and zeroes the vendor
payout. Only trip cost is refundable; the platform fee never is.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from tripbook.core.timeutils import as_utc

FULL_REFUND_DAYS = 15
PARTIAL_REFUND_DAYS = 8
PARTIAL_REFUND_PERCENT = 50

SECONDS_PER_DAY = 24 * 60 * 60


def round_amount(value) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def days_until_trip(trip_date: datetime, now: datetime) -> int:
    """Ceiling of the day difference, so 10 days and 1 hour counts as 11."""
    delta = (as_utc(trip_date) - as_utc(now)).total_seconds()
    return math.ceil(delta / SECONDS_PER_DAY)


def refund_percentage(days: int, vendor_cancellation: bool = False) -> int:
    if vendor_cancellation:
        return 100
    if days >= FULL_REFUND_DAYS:
        return 100
    if days >= PARTIAL_REFUND_DAYS:
        return PARTIAL_REFUND_PERCENT
    return 0


def refund_message(percentage: int, vendor_cancellation: bool = False) -> str:
    if vendor_cancellation:
        return "Cancelled by the vendor. Full refund (100% of trip cost)"
    if percentage == 100:
        return "Full refund (100% of trip cost)"
    if percentage > 0:
        return f"Partial refund ({percentage}% of trip cost)"
    return "No refund available"


@dataclass(frozen=True)
class RefundQuote:
    percentage: int
    refund_amount: int
    remaining_trip_cost: int
    vendor_payout_amount: int
    platform_cut: int
    message: str


def compute_refund(trip_cost: int, vendor_cut_percent: int, days: int, vendor_cancellation: bool = False) -> RefundQuote:
    pct = refund_percentage(days, vendor_cancellation)
    refund = round_amount(Decimal(trip_cost) * pct / 100)
    remaining = int(trip_cost) - refund
    if vendor_cancellation:
        payout = 0
    else:
        payout = round_amount(Decimal(remaining) * Decimal(vendor_cut_percent) / 100)
    return RefundQuote(
        percentage=pct,
        refund_amount=refund,
        remaining_trip_cost=remaining,
        vendor_payout_amount=payout,
        platform_cut=remaining - payout,
        message=refund_message(pct, vendor_cancellation),
    )


def unrefunded_split(trip_cost: int, vendor_cut_percent: int) -> tuple[int, int]:
    """(vendor_payout_amount, platform_cut) on the whole trip cost, as booked."""
    payout = round_amount(Decimal(trip_cost) * Decimal(vendor_cut_percent) / 100)
    return payout, int(trip_cost) - payout
