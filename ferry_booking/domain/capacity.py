from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from ferry_booking.domain.exceptions import (
    AdmissionDeniedError,
    CapacityExceededError,
    FerryUnavailableError,
)


VEHICLE = "vehicle"
PASSENGER = "passenger"
FERRY = "ferry"


@dataclass(frozen=True)
class Admitted:
    ferry_id: str
    day: date
    vehicles: int
    passengers: int


@dataclass(frozen=True)
class Denied:
    """
    Admission refusal. For the vehicle and passenger dimensions the
    current/maximum/requested figures are filled in for diagnostics.
    """

    ferry_id: str
    day: date
    dimension: str
    reason: str
    current: Optional[int] = None
    maximum: Optional[int] = None
    requested: Optional[int] = None

    def to_error(self, booking_id: Optional[str] = None) -> AdmissionDeniedError:
        if self.dimension in (VEHICLE, PASSENGER):
            return CapacityExceededError(
                dimension=self.dimension,
                current=self.current,
                maximum=self.maximum,
                requested=self.requested,
                booking_id=booking_id,
            )
        return FerryUnavailableError(self.reason, booking_id=booking_id)


AdmissionDecision = Union[Admitted, Denied]


@dataclass(frozen=True)
class CapacityInfo:
    ferry_id: str
    ferry_name: str
    day: date
    current_vehicles: int
    max_vehicles: int
    current_passengers: int
    max_passengers: int

    @property
    def vehicle_utilization_percent(self) -> float:
        return _percent(self.current_vehicles, self.max_vehicles)

    @property
    def passenger_utilization_percent(self) -> float:
        return _percent(self.current_passengers, self.max_passengers)

    def is_vehicle_capacity_available(self, requested_vehicles: int) -> bool:
        return self.current_vehicles + requested_vehicles <= self.max_vehicles

    def is_passenger_capacity_available(self, requested_passengers: int) -> bool:
        return self.current_passengers + requested_passengers <= self.max_passengers


def _percent(current: int, maximum: int) -> float:
    if maximum <= 0:
        return 0.0
    return current / maximum * 100
