import logging
from datetime import date

from sqlalchemy.orm import Session

from ferry_booking.api.schemas.schemas import BookingRequest
from ferry_booking.application.approval_service import ApprovalService
from ferry_booking.application.booking_lifecycle import BookingLifecycle
from ferry_booking.application.capacity_ledger import CapacityLedger
from ferry_booking.config import WorkflowSettings
from ferry_booking.domain.capacity import CapacityInfo, Denied
from ferry_booking.domain.clock import Clock
from ferry_booking.domain.enums import BookingAction, NotificationType
from ferry_booking.domain.exceptions import (
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from ferry_booking.domain.state_machine import BookingStatus
from ferry_booking.infrastructure.db.models import Booking, BookingRecord
from ferry_booking.infrastructure.locks import KeyedLock
from ferry_booking.infrastructure.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

PAYMENT_DEADLINE_REASON = "Payment deadline elapsed"


class BookingService:
    """Application service coordinating booking workflow."""

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
        settings: WorkflowSettings | None = None,
        lifecycle: BookingLifecycle | None = None,
        locks: KeyedLock | None = None,
    ):
        self.db = db
        self.lifecycle = lifecycle or BookingLifecycle(db, clock, notifier)
        self.clock = self.lifecycle.clock
        self.settings = settings or WorkflowSettings()
        self.booking_repository = self.lifecycle.booking_repository
        self.ledger = CapacityLedger(db, locks=locks)
        self.approvals = ApprovalService(
            db, settings=self.settings, lifecycle=self.lifecycle
        )

    def create_booking(self, request: BookingRequest) -> Booking:
        """
        Intake. The booking is stored PENDING, admitted against the ferry's
        committed load and left CONFIRMED (with a PENDING approval) or
        REJECTED. Admission and the status commit happen under the
        (ferry, date) admission lock.

        Raises CapacityExceededError / FerryUnavailableError after the
        rejected booking has been committed.
        """
        day = request.departure_time.date()
        decision = None

        with self.ledger.admission_scope(request.ferry_id, day):
            self.ledger.get_ferry(request.ferry_id)

            with self.lifecycle.atomic():
                now = self.clock.now()
                booking = self.booking_repository.create_booking(
                    customer_id=request.customer_id,
                    route_id=request.route_id,
                    ferry_id=request.ferry_id,
                    departure_time=request.departure_time,
                    vehicle_count=request.vehicle_count,
                    passenger_count=request.passenger_count,
                    total_amount_cents=request.total_amount_cents,
                    created_at=now,
                    note=request.note,
                )
                self.booking_repository.add_record(
                    booking,
                    action=BookingAction.BOOKING_CREATED,
                    performed_by=request.customer_id,
                    description=f"Booking {booking.booking_code} created",
                    previous_status=None,
                    created_at=now,
                )
                self.lifecycle.queue(
                    NotificationType.BOOKING_CREATED,
                    booking.id,
                    booking_code=booking.booking_code,
                    customer_id=booking.customer_id,
                )

                decision = self.ledger.admit(
                    request.ferry_id,
                    day,
                    request.vehicle_count,
                    request.passenger_count,
                )

                if isinstance(decision, Denied):
                    self.lifecycle.transition(
                        booking, BookingStatus.REJECTED, reason=decision.reason
                    )
                else:
                    self.lifecycle.transition(
                        booking,
                        BookingStatus.CONFIRMED,
                        description=(
                            f"Admitted {request.vehicle_count} vehicle(s) and "
                            f"{request.passenger_count} passenger(s)"
                        ),
                    )
                    self.approvals.open_approval(booking)

        if isinstance(decision, Denied):
            logger.warning(
                "Booking %s rejected at intake: %s",
                booking.booking_code,
                decision.reason,
            )
            raise decision.to_error(booking_id=booking.id)

        return booking

    def request_payment(self, booking_id: str, actor: str | None = None) -> Booking:
        with self.lifecycle.atomic():
            booking = self.lifecycle.get_booking(booking_id)
            return self.lifecycle.transition(
                booking, BookingStatus.WAITING_FOR_PAYMENT, actor=actor
            )

    def cancel_booking(self, booking_id: str, reason: str, actor: str | None) -> Booking:
        with self.lifecycle.atomic():
            booking = self.lifecycle.get_booking(booking_id)
            return self._cancel(booking, reason, actor)

    def request_refund(self, booking_id: str, reason: str, actor: str | None) -> Booking:
        with self.lifecycle.atomic():
            booking = self.lifecycle.get_booking(booking_id)
            return self.lifecycle.transition(
                booking, BookingStatus.IN_REFUND, actor=actor, reason=reason
            )

    def confirm_arrival(self, booking_id: str, actor: str | None) -> Booking:
        with self.lifecycle.atomic():
            booking = self.lifecycle.get_booking(booking_id)
            return self.lifecycle.transition(
                booking,
                BookingStatus.COMPLETED,
                actor=actor,
                description="Arrival confirmed",
            )

    def expire_unpaid_bookings(self) -> list[Booking]:
        """
        Cancels WAITING_FOR_PAYMENT bookings whose payment window has
        elapsed. A booking paid or cancelled concurrently is skipped.
        """
        cutoff = self.clock.now() - self.settings.payment_window
        expired = []

        for booking in self.booking_repository.list_awaiting_payment_since(cutoff):
            try:
                with self.lifecycle.atomic():
                    self._cancel(booking, PAYMENT_DEADLINE_REASON, actor=None)
            except InvalidStateTransitionError as exc:
                logger.info("Skipped expiry of %s: %s", booking.booking_code, exc)
                continue
            expired.append(booking)

        if expired:
            logger.info("Expired %s unpaid booking(s)", len(expired))
        return expired

    def get_booking(self, booking_id: str) -> Booking:
        return self.lifecycle.get_booking(booking_id)

    def get_booking_by_code(self, booking_code: str) -> Booking:
        booking = self.booking_repository.get_by_code(booking_code)
        if not booking:
            raise ResourceNotFoundError("Booking", booking_code)
        return booking

    def get_customer_bookings(self, customer_id: str) -> list[Booking]:
        return self.booking_repository.list_by_customer(customer_id)

    def get_history(self, booking_id: str) -> list[BookingRecord]:
        self.lifecycle.get_booking(booking_id)
        return self.booking_repository.list_records(booking_id)

    def get_capacity_info(self, ferry_id: str, day: date) -> CapacityInfo:
        return self.ledger.utilization(ferry_id, day)

    def _cancel(self, booking: Booking, reason: str, actor: str | None) -> Booking:
        self.lifecycle.transition(
            booking, BookingStatus.CANCELLED, actor=actor, reason=reason
        )
        self.approvals.withdraw(booking.id, actor, reason)
        return booking
