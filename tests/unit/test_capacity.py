# tests/unit/test_capacity.py

from datetime import date

import pytest

from ferry_booking.domain.capacity import (
    FERRY,
    PASSENGER,
    VEHICLE,
    CapacityInfo,
    Denied,
)
from ferry_booking.domain.exceptions import (
    CapacityExceededError,
    FerryUnavailableError,
)


DAY = date(2026, 7, 15)


def _info(current_vehicles=0, max_vehicles=2, current_passengers=0, max_passengers=10):
    return CapacityInfo(
        ferry_id="ferry-1",
        ferry_name="MV Test Ferry",
        day=DAY,
        current_vehicles=current_vehicles,
        max_vehicles=max_vehicles,
        current_passengers=current_passengers,
        max_passengers=max_passengers,
    )


def test_utilization_percent():
    info = _info(current_vehicles=1, max_vehicles=4, current_passengers=5, max_passengers=10)

    assert info.vehicle_utilization_percent == 25.0
    assert info.passenger_utilization_percent == 50.0


def test_utilization_percent_with_zero_capacity():
    info = _info(max_vehicles=0, max_passengers=0)

    assert info.vehicle_utilization_percent == 0.0
    assert info.passenger_utilization_percent == 0.0


def test_capacity_available_is_inclusive():
    info = _info(current_vehicles=1, max_vehicles=2)

    assert info.is_vehicle_capacity_available(1)
    assert not info.is_vehicle_capacity_available(2)
    assert info.is_passenger_capacity_available(10)


@pytest.mark.parametrize("dimension", [VEHICLE, PASSENGER])
def test_denied_capacity_maps_to_capacity_exceeded(dimension):
    denied = Denied(
        ferry_id="ferry-1",
        day=DAY,
        dimension=dimension,
        reason="full",
        current=1,
        maximum=2,
        requested=2,
    )

    error = denied.to_error(booking_id="booking-1")

    assert isinstance(error, CapacityExceededError)
    assert error.dimension == dimension
    assert (error.current, error.maximum, error.requested) == (1, 2, 2)
    assert error.booking_id == "booking-1"


def test_denied_ferry_maps_to_unavailable():
    denied = Denied(ferry_id="ferry-1", day=DAY, dimension=FERRY, reason="in maintenance")

    error = denied.to_error()

    assert isinstance(error, FerryUnavailableError)
    assert str(error) == "in maintenance"
