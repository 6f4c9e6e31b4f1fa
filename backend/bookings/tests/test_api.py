"""Integration tests for the bookings API endpoints."""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.core import mail
from django.db import DatabaseError
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking
from conftest import slot
from notifications import tasks as notification_tasks

pytestmark = pytest.mark.django_db


def auth(user):
    client = APIClient()
    token_resp = client.post(
        "/api/users/token/",
        {"username": user.username, "password": "testpass"},
        format="json",
    )
    token = token_resp.data["access"]
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
    return client


def booking_payload(listing, start, end, **extra):
    return {
        "listing": listing.id,
        "start_at": start.isoformat(),
        "end_at": end.isoformat(),
        **extra,
    }


def test_create_booking_success(driver_user, listing):
    resp = auth(driver_user).post(
        "/api/bookings/",
        booking_payload(listing, slot(9), slot(11, 30)),
        format="json",
    )

    assert resp.status_code == 201, resp.data
    assert resp.data["status"] == Booking.Status.PENDING
    assert resp.data["host"] == listing.owner_id
    assert resp.data["driver"] == driver_user.id
    assert resp.data["total_price"] == "25.00"
    assert resp.data["license_plate"] == "ABC123"


def test_create_booking_emails_host(driver_user, listing):
    auth(driver_user).post(
        "/api/bookings/", booking_payload(listing, slot(9), slot(10)), format="json"
    )

    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == ["host@example.com"]
    assert "New booking request" in mail.outbox[0].subject


def test_notification_failure_does_not_fail_request(driver_user, listing, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("broker down")

    monkeypatch.setattr(notification_tasks.send_booking_request_email, "delay", _boom)

    resp = auth(driver_user).post(
        "/api/bookings/", booking_payload(listing, slot(9), slot(10)), format="json"
    )

    assert resp.status_code == 201


def test_overlapping_booking_returns_400(driver_user, other_driver, listing):
    first = auth(driver_user).post(
        "/api/bookings/", booking_payload(listing, slot(9), slot(10)), format="json"
    )
    assert first.status_code == 201

    clash = auth(other_driver).post(
        "/api/bookings/", booking_payload(listing, slot(9, 30), slot(10, 30)), format="json"
    )
    assert clash.status_code == 400
    assert "non_field_errors" in clash.data

    adjacent = auth(other_driver).post(
        "/api/bookings/", booking_payload(listing, slot(10), slot(11)), format="json"
    )
    assert adjacent.status_code == 201


def test_unknown_plate_id_rejected(driver_user, other_driver, listing):
    foreign_plate = other_driver.license_plates.get()

    resp = auth(driver_user).post(
        "/api/bookings/",
        booking_payload(listing, slot(9), slot(10), license_plate_id=foreign_plate.id),
        format="json",
    )

    assert resp.status_code == 400
    assert "license_plate_id" in resp.data


def test_availability_check_failure_fails_closed(driver_user, listing, monkeypatch):
    def _broken(*args, **kwargs):
        raise DatabaseError("connection lost")

    monkeypatch.setattr("bookings.domain.ensure_no_conflict", _broken)

    resp = auth(driver_user).post(
        "/api/bookings/", booking_payload(listing, slot(9), slot(10)), format="json"
    )

    assert resp.status_code == 503
    assert not Booking.objects.exists()


def test_list_is_scoped_to_participants(driver_user, other_driver, host_user, booking_factory):
    mine = booking_factory()
    booking_factory(driver=other_driver, start_at=slot(12), end_at=slot(13))

    driver_resp = auth(driver_user).get("/api/bookings/")
    host_resp = auth(host_user).get("/api/bookings/", {"role": "host"})

    driver_ids = [item["id"] for item in driver_resp.data["results"]]
    assert driver_ids == [mine.id]
    assert len(host_resp.data["results"]) == 2


def test_outsider_cannot_view_booking(booking_factory, other_driver):
    booking = booking_factory()

    resp = auth(other_driver).get(f"/api/bookings/{booking.id}/")

    assert resp.status_code == 403


def test_availability_lists_blocking_ranges(api_client, listing, booking_factory):
    booking_factory()
    booking_factory(start_at=slot(12), end_at=slot(13), status=Booking.Status.CANCELLED)
    booking_factory(start_at=slot(14), end_at=slot(15), status=Booking.Status.CONFIRMED)

    day = timezone.localdate() + timedelta(days=1)
    resp = api_client.get(
        "/api/bookings/availability/", {"listing": listing.id, "date": day.isoformat()}
    )

    assert resp.status_code == 200
    assert resp.data["available_from"] == "06:00"
    assert [item["start_at"] for item in resp.data["booked"]] == [
        slot(9).isoformat(),
        slot(14).isoformat(),
    ]


@pytest.mark.parametrize(
    "params",
    [{}, {"listing": "abc", "date": "2030-01-01"}, {"listing": "1", "date": "tomorrow"}],
)
def test_availability_validates_params(api_client, params):
    resp = api_client.get("/api/bookings/availability/", params)

    assert resp.status_code == 400


def test_cancel_endpoint(driver_user, booking_factory):
    booking = booking_factory()

    resp = auth(driver_user).post(
        f"/api/bookings/{booking.id}/cancel/", {"reason": "No longer needed"}, format="json"
    )

    assert resp.status_code == 200, resp.data
    assert resp.data["status"] == Booking.Status.CANCELLED
    assert resp.data["cancelled_by"] == "driver"


def test_cancel_twice_returns_400(driver_user, booking_factory):
    booking = booking_factory(status=Booking.Status.CANCELLED)

    resp = auth(driver_user).post(f"/api/bookings/{booking.id}/cancel/")

    assert resp.status_code == 400
    assert "status" in resp.data


def test_complete_endpoint_host_only(driver_user, host_user, booking_factory):
    now = timezone.now()
    booking = booking_factory(
        start_at=now - timedelta(hours=2),
        end_at=now - timedelta(hours=1),
        status=Booking.Status.CONFIRMED,
    )

    denied = auth(driver_user).post(f"/api/bookings/{booking.id}/complete/")
    assert denied.status_code == 403

    resp = auth(host_user).post(f"/api/bookings/{booking.id}/complete/")
    assert resp.status_code == 200
    assert resp.data["status"] == Booking.Status.COMPLETED
