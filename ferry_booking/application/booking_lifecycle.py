# ferry_booking/application/booking_lifecycle.py

import logging
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.orm import Session

from ferry_booking.domain.clock import Clock, SystemClock
from ferry_booking.domain.enums import BookingAction, NotificationType
from ferry_booking.domain.exceptions import (
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from ferry_booking.domain.state_machine import BookingStateMachine, BookingStatus
from ferry_booking.infrastructure.db.models import Booking
from ferry_booking.infrastructure.db.session import transaction
from ferry_booking.infrastructure.notifications import (
    NotificationDispatcher,
    NotificationEvent,
)
from ferry_booking.infrastructure.repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)


_TIMESTAMP_FIELDS = {
    BookingStatus.CONFIRMED: "confirmed_at",
    BookingStatus.REJECTED: "rejected_at",
    BookingStatus.WAITING_FOR_PAYMENT: "payment_requested_at",
    BookingStatus.PAID: "paid_at",
    BookingStatus.IN_REVIEW: "review_started_at",
    BookingStatus.IN_PROGRESS: "approved_at",
    BookingStatus.COMPLETED: "completed_at",
    BookingStatus.CANCELLED: "cancelled_at",
    BookingStatus.IN_REFUND: "refund_requested_at",
    BookingStatus.REFUNDED: "refunded_at",
}

_ACTOR_FIELDS = {
    BookingStatus.WAITING_FOR_PAYMENT: "payment_requested_by",
    BookingStatus.COMPLETED: "completed_by",
    BookingStatus.CANCELLED: "cancelled_by",
    BookingStatus.IN_REFUND: "refund_requested_by",
    BookingStatus.REFUNDED: "refunded_by",
}

_REASON_FIELDS = {
    BookingStatus.REJECTED: "rejection_reason",
    BookingStatus.CANCELLED: "cancellation_reason",
    BookingStatus.IN_REFUND: "refund_reason",
}

_ACTIONS = {
    BookingStatus.CONFIRMED: BookingAction.BOOKING_CONFIRMED,
    BookingStatus.REJECTED: BookingAction.BOOKING_REJECTED,
    BookingStatus.CANCELLED: BookingAction.BOOKING_CANCELLED,
    BookingStatus.COMPLETED: BookingAction.BOOKING_COMPLETED,
    BookingStatus.REFUNDED: BookingAction.PAYMENT_REFUNDED,
}


class BookingLifecycle:
    """
    Single entry point for booking status writes.

    Every transition is validated against BookingStateMachine and then
    written as a compare-and-set on the stored status, so of two racing
    writers only the first to commit succeeds. Notifications queued during
    a unit of work are published only after it commits.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.notifier = notifier or NotificationDispatcher()
        self.booking_repository = BookingRepository(db)
        self._outbox: list[NotificationEvent] = []

    @contextmanager
    def atomic(self):
        try:
            with transaction(self.db):
                yield
        except Exception:
            self._outbox.clear()
            raise

        events, self._outbox = self._outbox, []
        self.notifier.publish(events)

    def queue(
        self,
        event_type: NotificationType,
        booking_id: str,
        **payload,
    ) -> None:
        self._outbox.append(
            NotificationEvent(
                type=event_type,
                booking_id=booking_id,
                occurred_at=self.clock.now(),
                payload=payload,
            )
        )

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise ResourceNotFoundError("Booking", booking_id)
        return booking

    def transition(
        self,
        booking: Booking,
        to_status: BookingStatus,
        actor: str | None = None,
        reason: str | None = None,
        description: str | None = None,
        at: datetime | None = None,
        **extra,
    ) -> Booking:
        from_status = booking.status
        BookingStateMachine.validate_transition(from_status, to_status)

        now = at or self.clock.now()
        stamps = dict(extra)
        stamps[_TIMESTAMP_FIELDS[to_status]] = now
        if to_status in _ACTOR_FIELDS and actor is not None:
            stamps[_ACTOR_FIELDS[to_status]] = actor
        if to_status in _REASON_FIELDS and reason is not None:
            stamps[_REASON_FIELDS[to_status]] = reason

        # Audit fields are write-once.
        values = {
            name: value
            for name, value in stamps.items()
            if getattr(booking, name) is None
        }
        values["updated_at"] = now

        if not self.booking_repository.compare_and_set_status(
            booking, from_status, to_status, **values
        ):
            raise InvalidStateTransitionError(
                from_state=booking.status.value,
                to_state=to_status.value,
                rule=(
                    f"booking left {from_status.value} before this "
                    f"transition committed"
                ),
            )

        self.booking_repository.add_record(
            booking,
            action=_ACTIONS.get(to_status, BookingAction.BOOKING_UPDATED),
            performed_by=actor,
            description=description
            or _describe(from_status, to_status, reason),
            previous_status=from_status,
            created_at=now,
        )
        self.queue(
            NotificationType.BOOKING_STATUS_CHANGED,
            booking.id,
            booking_code=booking.booking_code,
            customer_id=booking.customer_id,
            previous_status=from_status.value,
            status=to_status.value,
            actor=actor,
        )
        logger.info(
            "Booking %s: %s -> %s (actor=%s)",
            booking.booking_code,
            from_status.value,
            to_status.value,
            actor or "SYSTEM",
        )
        return booking


def _describe(
    from_status: BookingStatus,
    to_status: BookingStatus,
    reason: str | None,
) -> str:
    text = f"Status changed from {from_status.value} to {to_status.value}"
    if reason:
        text = f"{text}: {reason}"
    return text
