class FerryReservationError(Exception):
    """
    Base exception for all domain-level errors
    inside the ferry reservation core.
    """


class ResourceNotFoundError(FerryReservationError):
    """Raised when a booking, approval, payment or ferry does not exist."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class InvalidStateTransitionError(FerryReservationError):
    """
    Raised when an illegal state transition is attempted.
    The entity is left unchanged.
    """

    def __init__(self, from_state: str, to_state: str, rule: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.rule = rule

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        if rule:
            message = f"{message} ({rule})"
        super().__init__(message)


class AdmissionDeniedError(FerryReservationError):
    """
    Raised when intake rejects a booking.
    The rejected booking is persisted with status REJECTED.
    """

    def __init__(self, message: str, booking_id: str | None = None):
        self.booking_id = booking_id
        super().__init__(message)


class CapacityExceededError(AdmissionDeniedError):
    """Raised when vehicle or passenger capacity would be exceeded."""

    def __init__(
        self,
        dimension: str,
        current: int,
        maximum: int,
        requested: int,
        booking_id: str | None = None,
    ):
        self.dimension = dimension
        self.current = current
        self.maximum = maximum
        self.requested = requested

        message = (
            f"Ferry {dimension} capacity exceeded: "
            f"current={current}, max={maximum}, requested={requested}"
        )
        super().__init__(message, booking_id=booking_id)


class FerryUnavailableError(AdmissionDeniedError):
    """Raised when the ferry is not operating."""


class DuplicateResourceError(FerryReservationError):
    """Raised when a resource that must be unique already exists."""


class RefundNotAllowedError(FerryReservationError):
    """Raised when a payment is not eligible for refund."""
