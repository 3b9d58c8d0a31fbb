# ferry_booking/infrastructure/repositories/booking_repository.py

from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import func, select

from ferry_booking.domain.enums import BookingAction
from ferry_booking.domain.state_machine import (
    BookingStatus,
    CAPACITY_COMMITTED_STATUSES,
)
from ferry_booking.infrastructure.db.models import Booking, BookingRecord
from ferry_booking.infrastructure.repositories.base import StatusRepository


class BookingRepository(StatusRepository):

    model = Booking

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_code(
        self,
        booking_code: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.booking_code == booking_code)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_booking(
        self,
        customer_id: str,
        route_id: str,
        ferry_id: str,
        departure_time: datetime,
        vehicle_count: int,
        passenger_count: int,
        total_amount_cents: int,
        created_at: datetime,
        note: str | None = None,
    ) -> Booking:

        booking = Booking(
            booking_code=self._generate_booking_code(),
            customer_id=customer_id,
            route_id=route_id,
            ferry_id=ferry_id,
            departure_time=departure_time,
            departure_date=departure_time.date(),
            vehicle_count=vehicle_count,
            passenger_count=passenger_count,
            total_amount_cents=total_amount_cents,
            note=note,
            status=BookingStatus.PENDING,
            created_at=created_at,
            updated_at=created_at,
        )

        self.db.add(booking)
        self.db.flush()
        return booking

    def committed_load(self, ferry_id: str, day: date) -> tuple[int, int]:
        """
        Vehicles and passengers held by capacity-committed bookings
        for one ferry on one departure date.
        """
        stmt = select(
            func.coalesce(func.sum(Booking.vehicle_count), 0),
            func.coalesce(func.sum(Booking.passenger_count), 0),
        ).where(
            Booking.ferry_id == ferry_id,
            Booking.departure_date == day,
            Booking.status.in_(CAPACITY_COMMITTED_STATUSES),
        )
        vehicles, passengers = self.db.execute(stmt).one()
        return int(vehicles), int(passengers)

    def list_by_customer(self, customer_id: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.customer_id == customer_id)
            .order_by(Booking.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_awaiting_payment_since(self, cutoff: datetime) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.status == BookingStatus.WAITING_FOR_PAYMENT)
            .where(Booking.payment_requested_at < cutoff)
            .order_by(Booking.payment_requested_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def add_record(
        self,
        booking: Booking,
        action: BookingAction,
        performed_by: str | None,
        description: str,
        previous_status: BookingStatus | None,
        created_at: datetime,
    ) -> BookingRecord:

        record = BookingRecord(
            booking_id=booking.id,
            action=action,
            performed_by=performed_by,
            description=description,
            previous_status=previous_status.value if previous_status else None,
            new_status=booking.status.value,
            created_at=created_at,
        )
        self.db.add(record)
        return record

    def list_records(self, booking_id: str) -> list[BookingRecord]:
        stmt = (
            select(BookingRecord)
            .where(BookingRecord.booking_id == booking_id)
            .order_by(BookingRecord.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    @staticmethod
    def _generate_booking_code() -> str:
        return f"BK-{uuid4().hex[:8].upper()}"
