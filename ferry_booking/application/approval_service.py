# ferry_booking/application/approval_service.py

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ferry_booking.application.booking_lifecycle import BookingLifecycle
from ferry_booking.config import WorkflowSettings
from ferry_booking.domain.clock import Clock
from ferry_booking.domain.enums import NotificationType
from ferry_booking.domain.exceptions import (
    DuplicateResourceError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from ferry_booking.domain.state_machine import (
    ApprovalStateMachine,
    ApprovalStatus,
    BookingStatus,
)
from ferry_booking.infrastructure.db.models import Approval, Booking
from ferry_booking.infrastructure.notifications import (
    NotificationDispatcher,
    NotificationEvent,
)
from ferry_booking.infrastructure.repositories.approval_repository import ApprovalRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalStatistics:
    pending: int
    in_review: int
    approved: int
    rejected: int
    overdue: int


@dataclass(frozen=True)
class ReviewStatistics:
    total_in_review: int
    overdue_count: int
    within_deadline: int
    check_time: datetime


class ApprovalService:
    """
    Review workflow attached one-to-one to a booking.

    Overdue reviews are derived on read from the stored deadline and the
    injected clock. Being overdue never blocks a decision.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
        settings: WorkflowSettings | None = None,
        lifecycle: BookingLifecycle | None = None,
    ):
        self.db = db
        self.lifecycle = lifecycle or BookingLifecycle(db, clock, notifier)
        self.clock = self.lifecycle.clock
        self.settings = settings or WorkflowSettings()
        self.approval_repository = ApprovalRepository(db)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_approval(self, booking: Booking) -> Approval:
        with self.lifecycle.atomic():
            return self.open_approval(booking)

    def open_approval(self, booking: Booking) -> Approval:
        """Creates the approval inside the caller's unit of work."""
        if self.approval_repository.get_by_booking_id(booking.id):
            raise DuplicateResourceError(
                f"Approval already exists for booking: {booking.id}"
            )

        try:
            return self.approval_repository.create_approval(
                booking.id, created_at=self.clock.now()
            )
        except IntegrityError as exc:
            raise DuplicateResourceError(
                f"Approval already exists for booking: {booking.id}"
            ) from exc

    def start_review(self, approval_id: str, actor: str | None = None) -> Approval:
        with self.lifecycle.atomic():
            approval = self.get_approval(approval_id)
            return self._start_review(approval, actor)

    def start_review_by_booking(self, booking_id: str, actor: str | None = None) -> Approval:
        with self.lifecycle.atomic():
            approval = self.get_approval_by_booking(booking_id)
            return self._start_review(approval, actor)

    def approve(self, approval_id: str, approver: str, notes: str | None = None) -> Approval:
        with self.lifecycle.atomic():
            approval = self.get_approval(approval_id)
            return self._approve(approval, approver, notes)

    def approve_by_booking(
        self, booking_id: str, approver: str, notes: str | None = None
    ) -> Approval:
        with self.lifecycle.atomic():
            approval = self.get_approval_by_booking(booking_id)
            return self._approve(approval, approver, notes)

    def reject(self, approval_id: str, rejector: str, reason: str) -> Approval:
        with self.lifecycle.atomic():
            approval = self.get_approval(approval_id)
            return self._reject(approval, rejector, reason)

    def reject_by_booking(self, booking_id: str, rejector: str, reason: str) -> Approval:
        with self.lifecycle.atomic():
            approval = self.get_approval_by_booking(booking_id)
            return self._reject(approval, rejector, reason)

    def withdraw(self, booking_id: str, actor: str | None, reason: str) -> Approval | None:
        """
        Rejects an undecided approval because its booking was cancelled.
        Runs inside the caller's unit of work.
        """
        approval = self.approval_repository.get_by_booking_id(booking_id)
        if approval is None or ApprovalStateMachine.is_terminal(approval.status):
            return approval

        now = self.clock.now()
        self._move(
            approval,
            ApprovalStatus.REJECTED,
            reviewer_id=actor,
            decision_notes=f"Booking cancelled: {reason}",
            decided_at=now,
            updated_at=now,
        )
        return approval

    def escalate_overdue_reviews(self) -> int:
        """
        Emits one REVIEW_OVERDUE notification per overdue approval.
        Intended for an external periodic sweep; changes no state.
        """
        now = self.clock.now()
        overdue = self.approval_repository.list_overdue(now)
        events = [
            NotificationEvent(
                type=NotificationType.REVIEW_OVERDUE,
                booking_id=approval.booking_id,
                occurred_at=now,
                payload={
                    "approval_id": approval.id,
                    "review_deadline": approval.review_deadline.isoformat(),
                },
            )
            for approval in overdue
        ]

        if events:
            logger.info("Escalating %s overdue review(s)", len(events))
        self.lifecycle.notifier.publish(events)
        return len(events)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_approval(self, approval_id: str) -> Approval:
        approval = self.approval_repository.get_by_id(approval_id)
        if not approval:
            raise ResourceNotFoundError("Approval", approval_id)
        return approval

    def get_approval_by_booking(self, booking_id: str) -> Approval:
        approval = self.approval_repository.get_by_booking_id(booking_id)
        if not approval:
            raise ResourceNotFoundError("Approval for booking", booking_id)
        return approval

    def has_approval(self, booking_id: str) -> bool:
        return self.approval_repository.get_by_booking_id(booking_id) is not None

    def get_approvals_by_status(self, status: ApprovalStatus) -> list[Approval]:
        return self.approval_repository.list_by_status(status)

    def get_pending_approvals(self) -> list[Approval]:
        return self.approval_repository.list_by_status(ApprovalStatus.PENDING)

    def get_approvals_in_review(self) -> list[Approval]:
        return self.approval_repository.list_by_status(ApprovalStatus.IN_REVIEW)

    def get_overdue_approvals(self) -> list[Approval]:
        return self.approval_repository.list_overdue(self.clock.now())

    def get_active_reviews(self) -> list[Approval]:
        return self.approval_repository.list_active(self.clock.now())

    def get_approvals_by_reviewer(self, reviewer_id: str) -> list[Approval]:
        return self.approval_repository.list_by_reviewer(reviewer_id)

    def get_approvals_in_date_range(self, start: datetime, end: datetime) -> list[Approval]:
        return self.approval_repository.list_created_between(start, end)

    def count_approvals_by_status(self, status: ApprovalStatus) -> int:
        return self.approval_repository.count_by_status(status)

    def get_statistics(self) -> ApprovalStatistics:
        return ApprovalStatistics(
            pending=self.count_approvals_by_status(ApprovalStatus.PENDING),
            in_review=self.count_approvals_by_status(ApprovalStatus.IN_REVIEW),
            approved=self.count_approvals_by_status(ApprovalStatus.APPROVED),
            rejected=self.count_approvals_by_status(ApprovalStatus.REJECTED),
            overdue=self.approval_repository.count_overdue(self.clock.now()),
        )

    def get_review_statistics(self) -> ReviewStatistics:
        now = self.clock.now()
        total = self.count_approvals_by_status(ApprovalStatus.IN_REVIEW)
        overdue = self.approval_repository.count_overdue(now)
        return ReviewStatistics(
            total_in_review=total,
            overdue_count=overdue,
            within_deadline=total - overdue,
            check_time=now,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start_review(self, approval: Approval, actor: str | None) -> Approval:
        if approval.status != ApprovalStatus.PENDING:
            raise InvalidStateTransitionError(
                from_state=approval.status.value,
                to_state=ApprovalStatus.IN_REVIEW.value,
                rule="review can only start for PENDING approvals",
            )

        now = self.clock.now()
        deadline = now + self.settings.review_window

        booking = self.lifecycle.get_booking(approval.booking_id)
        self.lifecycle.transition(booking, BookingStatus.IN_REVIEW, actor=actor, at=now)
        self._move(
            approval,
            ApprovalStatus.IN_REVIEW,
            review_started_at=now,
            review_deadline=deadline,
            updated_at=now,
        )
        self.lifecycle.queue(
            NotificationType.REVIEW_REQUIRED,
            booking.id,
            approval_id=approval.id,
            review_deadline=deadline.isoformat(),
        )
        return approval

    def _approve(self, approval: Approval, approver: str, notes: str | None) -> Approval:
        self._ensure_in_review(approval, ApprovalStatus.APPROVED)
        now = self.clock.now()

        if approval.is_review_overdue(now):
            logger.info(
                "Approval %s decided after its deadline %s",
                approval.id,
                approval.review_deadline,
            )

        booking = self.lifecycle.get_booking(approval.booking_id)
        self.lifecycle.transition(
            booking, BookingStatus.IN_PROGRESS, actor=approver, at=now
        )
        self._move(
            approval,
            ApprovalStatus.APPROVED,
            reviewer_id=approver,
            decision_notes=notes,
            decided_at=now,
            updated_at=now,
        )
        return approval

    def _reject(self, approval: Approval, rejector: str, reason: str) -> Approval:
        self._ensure_in_review(approval, ApprovalStatus.REJECTED)
        now = self.clock.now()

        booking = self.lifecycle.get_booking(approval.booking_id)
        self.lifecycle.transition(
            booking, BookingStatus.REJECTED, actor=rejector, reason=reason, at=now
        )
        self._move(
            approval,
            ApprovalStatus.REJECTED,
            reviewer_id=rejector,
            decision_notes=reason,
            decided_at=now,
            updated_at=now,
        )
        return approval

    @staticmethod
    def _ensure_in_review(approval: Approval, to_status: ApprovalStatus) -> None:
        if approval.status != ApprovalStatus.IN_REVIEW:
            raise InvalidStateTransitionError(
                from_state=approval.status.value,
                to_state=to_status.value,
                rule="decisions require an approval IN_REVIEW",
            )

    def _move(self, approval: Approval, to_status: ApprovalStatus, **values) -> None:
        from_status = approval.status
        ApprovalStateMachine.validate_transition(from_status, to_status)
        if not self.approval_repository.compare_and_set_status(
            approval, from_status, to_status, **values
        ):
            raise InvalidStateTransitionError(
                from_state=approval.status.value,
                to_state=to_status.value,
                rule=f"approval left {from_status.value} before this change committed",
            )
