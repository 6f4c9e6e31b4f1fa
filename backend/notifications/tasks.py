from __future__ import annotations

import logging
from typing import Optional

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import EmailMultiAlternatives
from django.utils import timezone

from notifications.models import NotificationLog

logger = logging.getLogger(__name__)
User = get_user_model()

STATUS_WORDS = {
    "pending": "requested",
    "confirmed": "confirmed",
    "cancelled": "cancelled",
    "completed": "completed",
}


def _get_user(user_id: int) -> Optional[User]:
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        logger.warning("notifications: user %s no longer exists", user_id)
        return None


def _get_booking(booking_id: int):
    from bookings.models import Booking

    try:
        return Booking.objects.select_related("listing", "host", "driver").get(pk=booking_id)
    except Booking.DoesNotExist:
        logger.warning("notifications: booking %s no longer exists", booking_id)
        return None


def _display_name(user: Optional[User]) -> str:
    if not user:
        return "Unknown"
    full_name = (user.get_full_name() or "").strip()
    return full_name or user.username or f"user-{user.id}"


def _format_slot(booking) -> str:
    start = timezone.localtime(booking.start_at)
    end = timezone.localtime(booking.end_at)
    return f"{start:%b %d, %Y %H:%M}-{end:%H:%M}"


def _frontend_url(path: str) -> str:
    frontend_origin = (getattr(settings, "FRONTEND_ORIGIN", "") or "").rstrip("/")
    return f"{frontend_origin}{path}" if frontend_origin else ""


def _log_notification(
    type_: str,
    status: str,
    *,
    recipient: str | None = None,
    user_id: int | None = None,
    booking_id: int | None = None,
    error: str | None = None,
) -> None:
    try:
        NotificationLog.objects.create(
            channel=NotificationLog.Channel.EMAIL,
            type=type_,
            status=status,
            recipient=recipient or "",
            user_id=user_id,
            booking_id=booking_id,
            error=error or "",
        )
    except Exception:
        logger.exception(
            "notifications: failed to persist notification log",
            extra={"type": type_, "status": status},
        )


def _send_email_logged(
    type_: str,
    *,
    to_email: str | None,
    subject: str,
    lines: list[str],
    user_id: int | None = None,
    booking_id: int | None = None,
) -> bool:
    if not to_email:
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            user_id=user_id,
            booking_id=booking_id,
            error="missing recipient email",
        )
        logger.warning("notifications: cannot send email without recipient")
        return False

    site_name = getattr(settings, "SITE_NAME", "ParkSpot")
    body = "\n".join([*lines, "", f"- The {site_name} team"])
    message = EmailMultiAlternatives(
        subject=subject,
        body=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[to_email],
    )
    try:
        message.send(fail_silently=False)
    except Exception as exc:
        logger.exception(
            "notifications: email send failed",
            extra={"type": type_, "booking_id": booking_id, "user_id": user_id},
        )
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            recipient=to_email,
            user_id=user_id,
            booking_id=booking_id,
            error=str(exc) or exc.__class__.__name__,
        )
        return False

    _log_notification(
        type_,
        NotificationLog.Status.SENT,
        recipient=to_email,
        user_id=user_id,
        booking_id=booking_id,
    )
    return True


@shared_task(queue="emails")
def send_booking_request_email(host_id: int, booking_id: int):
    """Notify the host that a driver requested one of their spaces."""
    host = _get_user(host_id)
    booking = _get_booking(booking_id)
    if not host or not booking:
        return

    listing_title = booking.listing.title
    lines = [
        f"Hi {_display_name(host)},",
        "",
        f"{_display_name(booking.driver)} requested {listing_title} for {_format_slot(booking)}.",
        f"Vehicle: {booking.license_plate} ({booking.license_plate_state})",
        f"Total: ${booking.total_price}",
    ]
    cta_url = _frontend_url("/host/bookings")
    if cta_url:
        lines.append(f"Review it at {cta_url}")
    _send_email_logged(
        "booking_request",
        to_email=host.email,
        subject=f"New booking request for {listing_title}",
        lines=lines,
        user_id=host_id,
        booking_id=booking_id,
    )


@shared_task(queue="emails")
def send_booking_status_email(driver_id: int, booking_id: int, new_status: str):
    """Notify the driver that their booking moved to a new status."""
    driver = _get_user(driver_id)
    booking = _get_booking(booking_id)
    if not driver or not booking:
        return

    listing_title = booking.listing.title
    status_word = STATUS_WORDS.get(new_status, "updated")
    lines = [
        f"Hi {_display_name(driver)},",
        "",
        f"Your booking for {listing_title} on {_format_slot(booking)} was {status_word}.",
    ]
    if booking.cancelled_reason and new_status == "cancelled":
        lines.append(f"Reason: {booking.cancelled_reason}")
    _send_email_logged(
        "booking_status_update",
        to_email=driver.email,
        subject=f"Your booking for {listing_title} was {status_word}",
        lines=lines,
        user_id=driver_id,
        booking_id=booking_id,
    )


@shared_task(queue="emails")
def send_payment_receipt_email(user_id: int, payment_id: int):
    """Email the driver a receipt after their payment succeeds."""
    from payments.models import Payment

    user = _get_user(user_id)
    if not user:
        return
    try:
        payment = Payment.objects.select_related("booking", "booking__listing").get(pk=payment_id)
    except Payment.DoesNotExist:
        logger.warning("notifications: payment %s no longer exists", payment_id)
        return

    booking = payment.booking
    amount = f"{payment.amount_cents / 100:.2f} {payment.currency.upper()}"
    _send_email_logged(
        "receipt",
        to_email=user.email,
        subject="Your parking payment receipt",
        lines=[
            f"Hi {_display_name(user)},",
            "",
            f"We received {amount} for {booking.listing.title} on {_format_slot(booking)}.",
            f"Booking #{booking.id}, payment #{payment.id}.",
        ],
        user_id=user_id,
        booking_id=booking.id,
    )
