# ferry_booking/domain/state_machine.py

from enum import Enum
from typing import Dict, FrozenSet, Set, Type

from ferry_booking.domain.exceptions import InvalidStateTransitionError


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    WAITING_FOR_PAYMENT = "WAITING_FOR_PAYMENT"
    PAID = "PAID"
    IN_REVIEW = "IN_REVIEW"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    IN_REFUND = "IN_REFUND"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


# Statuses that still hold a slot on the ferry.
CAPACITY_COMMITTED_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {
        BookingStatus.CONFIRMED,
        BookingStatus.WAITING_FOR_PAYMENT,
        BookingStatus.PAID,
        BookingStatus.IN_REVIEW,
        BookingStatus.IN_PROGRESS,
    }
)

REFUNDABLE_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {
        BookingStatus.PAID,
        BookingStatus.IN_PROGRESS,
    }
)


class StateMachine:
    """
    Table-driven transition validator.
    Subclasses declare the status enum and the legal transitions.
    """

    _STATUS_TYPE: Type[Enum] = Enum
    _ALLOWED_TRANSITIONS: Dict[Enum, Set[Enum]] = {}

    @classmethod
    def can_transition(cls, from_status, to_status) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(cls, from_status, to_status) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
                rule=cls.describe_rule(from_status),
            )

    @classmethod
    def describe_rule(cls, status) -> str:
        allowed = cls.get_allowed_transitions(status)
        if not allowed:
            return f"{status.value} is terminal"
        names = ", ".join(sorted(s.value for s in allowed))
        return f"allowed from {status.value}: {names}"

    @classmethod
    def is_terminal(cls, status) -> bool:
        """
        Returns True if the state is terminal (no further transitions allowed).
        """
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def get_allowed_transitions(cls, status) -> Set:
        """
        Returns allowed next states from current state.
        """
        cls._ensure_valid_status(status)
        return cls._ALLOWED_TRANSITIONS.get(status, set())

    @classmethod
    def _ensure_valid_status(cls, status) -> None:
        if not isinstance(status, cls._STATUS_TYPE):
            raise TypeError(
                f"Expected {cls._STATUS_TYPE.__name__}, got {type(status)}"
            )


class BookingStateMachine(StateMachine):
    """
    Central lifecycle controller for booking transitions.
    Defines the legal state transitions.
    """

    _STATUS_TYPE = BookingStatus
    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.PENDING: {
            BookingStatus.CONFIRMED,
            BookingStatus.REJECTED,
        },
        BookingStatus.CONFIRMED: {
            BookingStatus.WAITING_FOR_PAYMENT,
            BookingStatus.CANCELLED,
        },
        BookingStatus.WAITING_FOR_PAYMENT: {
            BookingStatus.PAID,
            BookingStatus.CANCELLED,
        },
        BookingStatus.PAID: {
            BookingStatus.IN_REVIEW,
            BookingStatus.CANCELLED,
            BookingStatus.IN_REFUND,
        },
        BookingStatus.IN_REVIEW: {
            BookingStatus.IN_PROGRESS,
            BookingStatus.REJECTED,
            BookingStatus.CANCELLED,
        },
        BookingStatus.IN_PROGRESS: {
            BookingStatus.COMPLETED,
            BookingStatus.IN_REFUND,
        },
        BookingStatus.IN_REFUND: {
            BookingStatus.REFUNDED,
        },
        BookingStatus.COMPLETED: set(),
        BookingStatus.REJECTED: set(),
        BookingStatus.CANCELLED: set(),
        BookingStatus.REFUNDED: set(),
    }

    @staticmethod
    def holds_capacity(status: BookingStatus) -> bool:
        return status in CAPACITY_COMMITTED_STATUSES


class ApprovalStateMachine(StateMachine):
    """
    Review lifecycle. PENDING -> REJECTED is only used when the
    owning booking is cancelled before review starts.
    """

    _STATUS_TYPE = ApprovalStatus
    _ALLOWED_TRANSITIONS: Dict[ApprovalStatus, Set[ApprovalStatus]] = {
        ApprovalStatus.PENDING: {
            ApprovalStatus.IN_REVIEW,
            ApprovalStatus.REJECTED,
        },
        ApprovalStatus.IN_REVIEW: {
            ApprovalStatus.APPROVED,
            ApprovalStatus.REJECTED,
        },
        ApprovalStatus.APPROVED: set(),
        ApprovalStatus.REJECTED: set(),
    }


class PaymentStateMachine(StateMachine):
    _STATUS_TYPE = PaymentStatus
    _ALLOWED_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
        PaymentStatus.PENDING: {
            PaymentStatus.PROCESSING,
            PaymentStatus.CANCELLED,
        },
        PaymentStatus.PROCESSING: {
            PaymentStatus.COMPLETED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
        },
        PaymentStatus.COMPLETED: {
            PaymentStatus.REFUNDED,
            PaymentStatus.PARTIALLY_REFUNDED,
        },
        PaymentStatus.PARTIALLY_REFUNDED: {
            PaymentStatus.REFUNDED,
        },
        PaymentStatus.FAILED: set(),
        PaymentStatus.CANCELLED: set(),
        PaymentStatus.REFUNDED: set(),
    }
