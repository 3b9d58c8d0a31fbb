# tests/unit/test_schemas_and_config.py

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from ferry_booking.api.schemas.schemas import BookingRequest, PaymentRequest
from ferry_booking.config import WorkflowSettings
from ferry_booking.domain.enums import PaymentMethod


DEPARTURE = datetime(2026, 7, 15, 9, 30, tzinfo=timezone.utc)


def _booking_payload(**overrides):
    payload = {
        "customer_id": "customer-1",
        "route_id": "route-north",
        "ferry_id": "ferry-1",
        "departure_time": DEPARTURE,
        "vehicle_count": 1,
        "passenger_count": 2,
        "total_amount_cents": 12_500,
    }
    payload.update(overrides)
    return payload


def test_booking_request_accepts_valid_payload():
    request = BookingRequest(**_booking_payload())

    assert request.vehicle_count == 1
    assert request.note is None


def test_booking_request_requires_some_load():
    with pytest.raises(ValidationError):
        BookingRequest(**_booking_payload(vehicle_count=0, passenger_count=0))


def test_booking_request_rejects_negative_counts():
    with pytest.raises(ValidationError):
        BookingRequest(**_booking_payload(vehicle_count=-1))


def test_payment_request_amount_must_be_positive():
    with pytest.raises(ValidationError):
        PaymentRequest(booking_id="b", method=PaymentMethod.CASH, amount_cents=0)

    request = PaymentRequest(booking_id="b", method="DEBIT_CARD")
    assert request.method is PaymentMethod.DEBIT_CARD
    assert request.amount_cents is None


def test_settings_defaults():
    settings = WorkflowSettings()

    assert settings.review_window == timedelta(minutes=30)
    assert settings.payment_window == timedelta(minutes=60)
    assert settings.payment_success_rate == 0.90
    assert settings.notification_success_rate == 0.95


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("REVIEW_WINDOW_MINUTES", "45")
    monkeypatch.setenv("PAYMENT_SUCCESS_RATE", "0.5")

    settings = WorkflowSettings.from_env()

    assert settings.review_window == timedelta(minutes=45)
    assert settings.payment_success_rate == 0.5
    assert settings.payment_max_delay_seconds == 3.0
