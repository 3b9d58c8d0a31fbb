# ferry_booking/infrastructure/repositories/approval_repository.py

from datetime import datetime

from sqlalchemy import func, select

from ferry_booking.domain.state_machine import ApprovalStatus
from ferry_booking.infrastructure.db.models import Approval
from ferry_booking.infrastructure.repositories.base import StatusRepository


class ApprovalRepository(StatusRepository):

    model = Approval

    def get_by_id(self, approval_id: str) -> Approval | None:
        stmt = select(Approval).where(Approval.id == approval_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_booking_id(self, booking_id: str) -> Approval | None:
        stmt = select(Approval).where(Approval.booking_id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_approval(self, booking_id: str, created_at: datetime) -> Approval:
        approval = Approval(
            booking_id=booking_id,
            status=ApprovalStatus.PENDING,
            created_at=created_at,
            updated_at=created_at,
        )
        self.db.add(approval)
        self.db.flush()
        return approval

    def list_by_status(self, status: ApprovalStatus) -> list[Approval]:
        stmt = (
            select(Approval)
            .where(Approval.status == status)
            .order_by(Approval.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_overdue(self, now: datetime) -> list[Approval]:
        stmt = (
            select(Approval)
            .where(Approval.status == ApprovalStatus.IN_REVIEW)
            .where(Approval.review_deadline < now)
            .order_by(Approval.review_deadline)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_active(self, now: datetime) -> list[Approval]:
        stmt = (
            select(Approval)
            .where(Approval.status == ApprovalStatus.IN_REVIEW)
            .where(Approval.review_deadline >= now)
            .order_by(Approval.review_deadline)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_by_reviewer(self, reviewer_id: str) -> list[Approval]:
        stmt = (
            select(Approval)
            .where(Approval.reviewer_id == reviewer_id)
            .order_by(Approval.decided_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_created_between(self, start: datetime, end: datetime) -> list[Approval]:
        stmt = (
            select(Approval)
            .where(Approval.created_at >= start)
            .where(Approval.created_at <= end)
            .order_by(Approval.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def count_by_status(self, status: ApprovalStatus) -> int:
        stmt = select(func.count()).select_from(Approval).where(Approval.status == status)
        return int(self.db.execute(stmt).scalar_one())

    def count_overdue(self, now: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(Approval)
            .where(Approval.status == ApprovalStatus.IN_REVIEW)
            .where(Approval.review_deadline < now)
        )
        return int(self.db.execute(stmt).scalar_one())
