# ferry_booking/infrastructure/db/models.py

from sqlalchemy import (
    Boolean,
    String,
    Integer,
    Date,
    DateTime,
    Enum,
    Text,
    Index,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator
from datetime import date, datetime, timezone
from uuid import uuid4

from ferry_booking.infrastructure.db.session import Base
from ferry_booking.domain.enums import BookingAction, FerryStatus, PaymentMethod
from ferry_booking.domain.state_machine import (
    ApprovalStatus,
    BookingStateMachine,
    BookingStatus,
    PaymentStatus,
)


class UTCDateTime(TypeDecorator):
    """
    Stores UTC and always hands back timezone-aware values,
    including on backends (SQLite) that drop the offset.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
            if dialect.name == "sqlite":
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def _uuid() -> str:
    return str(uuid4())


class Ferry(Base):
    __tablename__ = "ferries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    capacity_vehicles: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity_passengers: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[FerryStatus] = mapped_column(
        Enum(FerryStatus, name="ferry_status"),
        nullable=False,
        default=FerryStatus.ACTIVE,
    )

    __table_args__ = (
        CheckConstraint("capacity_vehicles >= 0", name="ck_ferry_vehicles_nonnegative"),
        CheckConstraint("capacity_passengers >= 0", name="ck_ferry_passengers_nonnegative"),
    )

    @property
    def is_operating(self) -> bool:
        return self.status == FerryStatus.ACTIVE


class Booking(Base):
    """
    Booking table reflecting domain state.
    Domain controls transitions.
    Lifecycle timestamps and actors are written once by the
    transition that owns them.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_code: Mapped[str] = mapped_column(String(32), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    route_id: Mapped[str] = mapped_column(String(64), nullable=False)
    ferry_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("ferries.id"),
        nullable=False,
    )
    departure_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    departure_date: Mapped[date] = mapped_column(Date, nullable=False)
    vehicle_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passenger_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_requested_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    payment_requested_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    review_started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_requested_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    refund_requested_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    refund_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    refunded_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    refund_amount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("booking_code", name="uq_booking_code"),
        CheckConstraint("vehicle_count >= 0", name="ck_vehicle_count_nonnegative"),
        CheckConstraint("passenger_count >= 0", name="ck_passenger_count_nonnegative"),
        CheckConstraint("total_amount_cents >= 0", name="ck_total_amount_nonnegative"),
        Index("ix_booking_ferry_day_status", "ferry_id", "departure_date", "status"),
    )

    @property
    def holds_capacity(self) -> bool:
        return BookingStateMachine.holds_capacity(self.status)


class Approval(Base):
    __tablename__ = "approvals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
    )
    status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus, name="approval_status"),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    review_started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    review_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reviewer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    decision_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("booking_id", name="uq_approval_booking"),
    )

    def is_review_overdue(self, now: datetime) -> bool:
        return (
            self.status == ApprovalStatus.IN_REVIEW
            and self.review_deadline is not None
            and now > self.review_deadline
        )


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    payment_number: Mapped[str] = mapped_column(String(32), nullable=False)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, name="payment_method"),
        nullable=False,
    )
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # True once this payment moved its booking to PAID.
    applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    gateway_response: Mapped[str | None] = mapped_column(String(255), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    refund_amount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refund_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("payment_number", name="uq_payment_number"),
        CheckConstraint("amount_cents > 0", name="ck_payment_amount_positive"),
        CheckConstraint(
            "refund_amount_cents IS NULL OR refund_amount_cents <= amount_cents",
            name="ck_refund_lte_amount",
        ),
    )

    @property
    def is_successful(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    @property
    def can_be_refunded(self) -> bool:
        return self.status == PaymentStatus.COMPLETED and (
            self.refund_amount_cents is None
            or self.refund_amount_cents < self.amount_cents
        )

    @property
    def refundable_amount_cents(self) -> int:
        return self.amount_cents - (self.refund_amount_cents or 0)


class BookingRecord(Base):
    """Append-only audit trail of booking lifecycle actions."""

    __tablename__ = "booking_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
    )
    action: Mapped[BookingAction] = mapped_column(
        Enum(BookingAction, name="booking_action"),
        nullable=False,
    )
    performed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    @property
    def is_system_generated(self) -> bool:
        return self.performed_by is None

    @property
    def performer_label(self) -> str:
        return self.performed_by or "SYSTEM"
