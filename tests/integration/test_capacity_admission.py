# tests/integration/test_capacity_admission.py

import random
import threading
from datetime import datetime, timedelta, timezone

import pytest

from ferry_booking.api.schemas.schemas import BookingRequest
from ferry_booking.application.capacity_ledger import CapacityLedger
from ferry_booking.domain.capacity import Admitted, Denied, VEHICLE
from ferry_booking.domain.enums import FerryStatus
from ferry_booking.domain.exceptions import (
    AdmissionDeniedError,
    CapacityExceededError,
    FerryUnavailableError,
    ResourceNotFoundError,
)
from ferry_booking.domain.state_machine import BookingStatus


DEPARTURE = datetime(2026, 7, 15, 9, 30, tzinfo=timezone.utc)


def test_second_booking_is_rejected_when_vehicles_run_out(core, create_ferry, booking_request):
    ferry = create_ferry(capacity_vehicles=2, capacity_passengers=10)

    first = core.bookings.create_booking(booking_request(ferry.id, vehicle_count=1))
    assert first.status == BookingStatus.CONFIRMED
    assert first.holds_capacity

    with pytest.raises(CapacityExceededError) as exc_info:
        core.bookings.create_booking(booking_request(ferry.id, vehicle_count=2))

    error = exc_info.value
    assert error.dimension == VEHICLE
    assert (error.current, error.maximum, error.requested) == (1, 2, 2)

    rejected = core.bookings.get_booking(error.booking_id)
    assert rejected.status == BookingStatus.REJECTED
    assert not rejected.holds_capacity
    assert "cannot add 2 more" in rejected.rejection_reason
    assert not core.approvals.has_approval(rejected.id)


def test_passenger_capacity_is_checked(core, create_ferry, booking_request):
    ferry = create_ferry(capacity_vehicles=5, capacity_passengers=3)
    core.bookings.create_booking(booking_request(ferry.id, vehicle_count=0, passenger_count=3))

    with pytest.raises(CapacityExceededError) as exc_info:
        core.bookings.create_booking(
            booking_request(ferry.id, vehicle_count=0, passenger_count=1)
        )

    assert exc_info.value.dimension == "passenger"


def test_ferry_out_of_service_rejects_intake(core, create_ferry, booking_request):
    ferry = create_ferry(status=FerryStatus.MAINTENANCE)

    with pytest.raises(FerryUnavailableError) as exc_info:
        core.bookings.create_booking(booking_request(ferry.id))

    assert core.bookings.get_booking(exc_info.value.booking_id).status == BookingStatus.REJECTED


def test_unknown_ferry_is_not_found(core, booking_request):
    with pytest.raises(ResourceNotFoundError):
        core.bookings.create_booking(booking_request("no-such-ferry"))


def test_other_dates_do_not_share_capacity(core, create_ferry, booking_request):
    ferry = create_ferry(capacity_vehicles=1)

    core.bookings.create_booking(booking_request(ferry.id, vehicle_count=1))
    next_day = core.bookings.create_booking(
        booking_request(
            ferry.id, vehicle_count=1, departure_time=DEPARTURE + timedelta(days=1)
        )
    )

    assert next_day.status == BookingStatus.CONFIRMED


def test_cancellation_releases_capacity(core, create_ferry, booking_request):
    ferry = create_ferry(capacity_vehicles=1)
    first = core.bookings.create_booking(booking_request(ferry.id, vehicle_count=1))

    core.bookings.cancel_booking(first.id, reason="No longer travelling", actor="customer-1")
    second = core.bookings.create_booking(booking_request(ferry.id, vehicle_count=1))

    assert second.status == BookingStatus.CONFIRMED


def test_utilization_counts_committed_bookings_only(core, create_ferry, booking_request):
    ferry = create_ferry(capacity_vehicles=4, capacity_passengers=10)
    core.bookings.create_booking(booking_request(ferry.id, vehicle_count=1, passenger_count=2))
    cancelled = core.bookings.create_booking(
        booking_request(ferry.id, vehicle_count=2, passenger_count=3)
    )
    core.bookings.cancel_booking(cancelled.id, reason="x", actor=None)

    info = core.bookings.get_capacity_info(ferry.id, DEPARTURE.date())

    assert (info.current_vehicles, info.max_vehicles) == (1, 4)
    assert (info.current_passengers, info.max_passengers) == (2, 10)
    assert info.vehicle_utilization_percent == 25.0


def test_ledger_admit_decisions(db, create_ferry, locks):
    ferry = create_ferry(capacity_vehicles=2, capacity_passengers=4)
    ledger = CapacityLedger(db, locks=locks)
    day = DEPARTURE.date()

    assert isinstance(ledger.admit(ferry.id, day, 2, 4), Admitted)
    assert isinstance(ledger.admit(ferry.id, day, 3, 0), Denied)
    # Zero vehicles never trips the vehicle check.
    assert isinstance(ledger.admit(ferry.id, day, 0, 1), Admitted)

    with pytest.raises(ValueError):
        ledger.admit(ferry.id, day, -1, 0)


def test_concurrent_admission_never_overbooks(session_factory, build_core, create_ferry):
    ferry = create_ferry(capacity_vehicles=5, capacity_passengers=12)
    unexpected = []
    admitted = []
    denied = []

    def worker(seed):
        rng = random.Random(seed)
        session = session_factory()
        core = build_core(session)
        try:
            for _ in range(5):
                vehicles = rng.randint(0, 2)
                passengers = rng.randint(1, 4)
                request = BookingRequest(
                    customer_id=f"customer-{seed}",
                    route_id="route-north",
                    ferry_id=ferry.id,
                    departure_time=DEPARTURE,
                    vehicle_count=vehicles,
                    passenger_count=passengers,
                    total_amount_cents=1_000,
                )
                try:
                    booking = core.bookings.create_booking(request)
                    admitted.append((booking.vehicle_count, booking.passenger_count))
                except AdmissionDeniedError:
                    denied.append(seed)
        except Exception as exc:  # surfaced by the assertion below
            unexpected.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert unexpected == []
    assert len(admitted) + len(denied) == 40

    verify = session_factory()
    try:
        info = CapacityLedger(verify).utilization(ferry.id, DEPARTURE.date())
    finally:
        verify.close()

    assert info.current_vehicles <= 5
    assert info.current_passengers <= 12
    assert info.current_vehicles == sum(v for v, _ in admitted)
    assert info.current_passengers == sum(p for _, p in admitted)
