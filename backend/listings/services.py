from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from django.db.models import Q, QuerySet

from .models import Listing

SECONDS_PER_HOUR = Decimal("3600")
CENT = Decimal("0.01")


def search_listings(
    qs: QuerySet[Listing],
    q: str | None,
    price_min: Decimal | None,
    price_max: Decimal | None,
    city: str | None = None,
    owner_id: int | None = None,
) -> QuerySet[Listing]:
    if q:
        qs = qs.filter(
            Q(title__icontains=q) | Q(description__icontains=q) | Q(address__icontains=q)
        )
    if price_min is not None:
        qs = qs.filter(price_per_hour__gte=price_min)
    if price_max is not None:
        qs = qs.filter(price_per_hour__lte=price_max)
    if city:
        qs = qs.filter(city__iexact=city)
    if owner_id is not None:
        qs = qs.filter(owner_id=owner_id)
    return qs.filter(is_active=True).order_by("-created_at")


def booked_hours(start_at: datetime, end_at: datetime) -> Decimal:
    """Return the exact number of hours in [start_at, end_at) as a Decimal."""
    if end_at <= start_at:
        raise ValueError("end_at must be after start_at")
    delta = end_at - start_at
    seconds = Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(
        1_000_000
    )
    return seconds / SECONDS_PER_HOUR


def compute_booking_total(
    *,
    listing: Listing,
    start_at: datetime,
    end_at: datetime,
) -> Decimal:
    """
    Price a booking at the listing's hourly rate.

    Hours are computed in Decimal from the exact duration so fractional slots
    (e.g. 2.5 hours) carry no float drift; the result is quantized to cents.
    """
    hours = booked_hours(start_at, end_at)
    price: Decimal = Decimal(listing.price_per_hour)
    return (hours * price).quantize(CENT, rounding=ROUND_HALF_UP)
