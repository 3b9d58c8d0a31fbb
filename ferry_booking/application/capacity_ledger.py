# ferry_booking/application/capacity_ledger.py

import logging
from contextlib import contextmanager
from datetime import date

from sqlalchemy.orm import Session

from ferry_booking.domain.capacity import (
    FERRY,
    PASSENGER,
    VEHICLE,
    AdmissionDecision,
    Admitted,
    CapacityInfo,
    Denied,
)
from ferry_booking.domain.exceptions import ResourceNotFoundError
from ferry_booking.infrastructure.db.models import Ferry
from ferry_booking.infrastructure.locks import KeyedLock, admission_locks
from ferry_booking.infrastructure.repositories.booking_repository import BookingRepository
from ferry_booking.infrastructure.repositories.ferry_repository import FerryRepository

logger = logging.getLogger(__name__)


class CapacityLedger:
    """
    Committed vehicle/passenger load per ferry and departure date.

    ``admit`` reads the committed load and decides. To make the decision
    and the booking write a single atomic step, callers run ``admit`` and
    commit the resulting booking status inside ``admission_scope`` for the
    same (ferry, date).
    """

    def __init__(self, db: Session, locks: KeyedLock | None = None):
        self.db = db
        self.locks = locks or admission_locks
        self.ferry_repository = FerryRepository(db)
        self.booking_repository = BookingRepository(db)

    @contextmanager
    def admission_scope(self, ferry_id: str, day: date):
        with self.locks.hold((ferry_id, day)):
            yield

    def admit(
        self,
        ferry_id: str,
        day: date,
        vehicle_delta: int,
        passenger_delta: int,
    ) -> AdmissionDecision:
        if vehicle_delta < 0 or passenger_delta < 0:
            raise ValueError("Admission deltas must not be negative")

        ferry = self.get_ferry(ferry_id)
        self.ferry_repository.lock_sailing(ferry_id, day)

        if not ferry.is_operating:
            reason = f"Ferry '{ferry.name}' is not operating ({ferry.status.value})"
            logger.warning(reason)
            return Denied(ferry_id=ferry_id, day=day, dimension=FERRY, reason=reason)

        current_vehicles, current_passengers = self.booking_repository.committed_load(
            ferry_id, day
        )

        logger.debug(
            "Ferry %s on %s - vehicles %s/%s (+%s), passengers %s/%s (+%s)",
            ferry_id,
            day,
            current_vehicles,
            ferry.capacity_vehicles,
            vehicle_delta,
            current_passengers,
            ferry.capacity_passengers,
            passenger_delta,
        )

        if vehicle_delta > 0 and current_vehicles + vehicle_delta > ferry.capacity_vehicles:
            return self._deny(
                ferry, day, VEHICLE, current_vehicles, ferry.capacity_vehicles, vehicle_delta
            )

        if (
            passenger_delta > 0
            and current_passengers + passenger_delta > ferry.capacity_passengers
        ):
            return self._deny(
                ferry,
                day,
                PASSENGER,
                current_passengers,
                ferry.capacity_passengers,
                passenger_delta,
            )

        return Admitted(
            ferry_id=ferry_id,
            day=day,
            vehicles=vehicle_delta,
            passengers=passenger_delta,
        )

    def utilization(self, ferry_id: str, day: date) -> CapacityInfo:
        ferry = self.get_ferry(ferry_id)
        current_vehicles, current_passengers = self.booking_repository.committed_load(
            ferry_id, day
        )
        return CapacityInfo(
            ferry_id=ferry.id,
            ferry_name=ferry.name,
            day=day,
            current_vehicles=current_vehicles,
            max_vehicles=ferry.capacity_vehicles,
            current_passengers=current_passengers,
            max_passengers=ferry.capacity_passengers,
        )

    def get_ferry(self, ferry_id: str) -> Ferry:
        ferry = self.ferry_repository.get_by_id(ferry_id)
        if not ferry:
            raise ResourceNotFoundError("Ferry", ferry_id)
        return ferry

    @staticmethod
    def _deny(
        ferry: Ferry,
        day: date,
        dimension: str,
        current: int,
        maximum: int,
        requested: int,
    ) -> Denied:
        reason = (
            f"Ferry '{ferry.name}' can carry {maximum} {dimension}s, "
            f"currently has {current}, cannot add {requested} more"
        )
        logger.warning(reason)
        return Denied(
            ferry_id=ferry.id,
            day=day,
            dimension=dimension,
            reason=reason,
            current=current,
            maximum=maximum,
            requested=requested,
        )
