# ferry_booking/application/payment_service.py

import logging

from sqlalchemy.orm import Session

from ferry_booking.api.schemas.schemas import PaymentRequest
from ferry_booking.application.booking_lifecycle import BookingLifecycle
from ferry_booking.config import WorkflowSettings
from ferry_booking.domain.clock import Clock
from ferry_booking.domain.enums import BookingAction, NotificationType, PaymentMethod
from ferry_booking.domain.exceptions import (
    InvalidStateTransitionError,
    RefundNotAllowedError,
    ResourceNotFoundError,
)
from ferry_booking.domain.state_machine import (
    BookingStatus,
    PaymentStateMachine,
    PaymentStatus,
    REFUNDABLE_STATUSES,
)
from ferry_booking.infrastructure.db.models import Booking, Payment
from ferry_booking.infrastructure.gateways.payment_gateway import (
    GatewayResult,
    PaymentGateway,
    SimulatedPaymentGateway,
)
from ferry_booking.infrastructure.notifications import NotificationDispatcher
from ferry_booking.infrastructure.repositories.payment_repository import PaymentRepository

logger = logging.getLogger(__name__)

SIMULATION_NOTE = "Simulated payment for demo purposes"


class PaymentService:
    """
    Payment attempts and refunds for a booking.

    An attempt is committed as PROCESSING before the gateway is called, and
    the gateway call runs outside any transaction or lock. The outcome is
    settled in a second unit of work. A failed charge is recorded on the
    payment and returned. A captured charge whose booking moved away while
    it was in flight is kept COMPLETED but not applied, and the caller gets
    InvalidStateTransitionError.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None = None,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
        settings: WorkflowSettings | None = None,
        lifecycle: BookingLifecycle | None = None,
    ):
        self.db = db
        self.lifecycle = lifecycle or BookingLifecycle(db, clock, notifier)
        self.clock = self.lifecycle.clock
        self.settings = settings or WorkflowSettings()
        self.gateway = gateway or SimulatedPaymentGateway(
            success_rate=self.settings.payment_success_rate,
            min_delay_seconds=self.settings.payment_min_delay_seconds,
            max_delay_seconds=self.settings.payment_max_delay_seconds,
        )
        self.payment_repository = PaymentRepository(db)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def process_payment(
        self,
        booking_id: str,
        amount_cents: int,
        method: PaymentMethod,
        actor: str | None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> Payment:
        if amount_cents <= 0:
            raise ValueError("Payment amount must be positive")

        payment = self._open_attempt(
            booking_id, amount_cents, method, actor, reference_number, notes
        )

        result = self.gateway.charge(payment.payment_number, amount_cents, method)

        return self._settle(payment, result, actor)

    def simulate_payment(
        self,
        booking_id: str,
        method: PaymentMethod,
        actor: str | None,
    ) -> Payment:
        booking = self.lifecycle.get_booking(booking_id)
        millis = int(self.clock.now().timestamp() * 1000)
        return self.process_payment(
            booking_id,
            booking.total_amount_cents,
            method,
            actor,
            reference_number=f"SIM-{millis}",
            notes=SIMULATION_NOTE,
        )

    def handle_payment_request(self, request: PaymentRequest, actor: str | None) -> Payment:
        if request.simulation:
            return self.simulate_payment(request.booking_id, request.method, actor)

        amount_cents = request.amount_cents
        if amount_cents is None:
            amount_cents = self.lifecycle.get_booking(request.booking_id).total_amount_cents

        return self.process_payment(
            request.booking_id,
            amount_cents,
            request.method,
            actor,
            reference_number=request.reference_number,
            notes=request.notes,
        )

    def refund(self, payment_id: str, reason: str, actor: str | None) -> Payment:
        """
        Refunds the whole refundable amount of a COMPLETED payment.

        Only the payment that moved its booking to PAID drives the booking
        through IN_REFUND to REFUNDED, and only while the booking is still
        PAID, IN_PROGRESS or IN_REFUND. Any other eligible payment (a
        partial, a surplus charge, or one on a booking that was cancelled
        or rejected) is refunded on its own and the booking keeps its
        status.
        """
        with self.lifecycle.atomic():
            payment = self.get_payment(payment_id)
            if not payment.can_be_refunded:
                raise RefundNotAllowedError(
                    f"Payment {payment.payment_number} cannot be refunded "
                    f"(status={payment.status.value})"
                )

            booking = self._current_booking(payment.booking_id)
            closes_booking = payment.applied and (
                booking.status in REFUNDABLE_STATUSES
                or booking.status == BookingStatus.IN_REFUND
            )
            if closes_booking and booking.status != BookingStatus.IN_REFUND:
                self.lifecycle.transition(
                    booking, BookingStatus.IN_REFUND, actor=actor, reason=reason
                )

            now = self.clock.now()
            refund_amount = payment.refundable_amount_cents
            self._move(
                payment,
                PaymentStatus.REFUNDED,
                refund_amount_cents=refund_amount,
                refund_date=now,
                notes=_append_note(payment.notes, f"Refund reason: {reason}"),
                updated_at=now,
            )

            description = (
                f"Refunded {refund_amount} cents of payment {payment.payment_number}"
            )
            if closes_booking:
                self.lifecycle.transition(
                    booking,
                    BookingStatus.REFUNDED,
                    actor=actor,
                    description=description,
                    refund_amount_cents=refund_amount,
                )
            else:
                self.lifecycle.booking_repository.add_record(
                    booking,
                    action=BookingAction.PAYMENT_REFUNDED,
                    performed_by=actor,
                    description=f"{description}; booking stays {booking.status.value}",
                    previous_status=booking.status,
                    created_at=now,
                )

        logger.info(
            "Refunded %s cents on payment %s", refund_amount, payment.payment_number
        )
        return payment

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.payment_repository.get_by_id(payment_id)
        if not payment:
            raise ResourceNotFoundError("Payment", payment_id)
        return payment

    def get_by_number(self, payment_number: str) -> Payment:
        payment = self.payment_repository.get_by_number(payment_number)
        if not payment:
            raise ResourceNotFoundError("Payment", payment_number)
        return payment

    def payments_for_booking(self, booking_id: str) -> list[Payment]:
        return self.payment_repository.list_by_booking(booking_id)

    def payment_history(self, customer_id: str) -> list[Payment]:
        return self.payment_repository.list_by_customer(customer_id)

    def unapplied_payments(self) -> list[Payment]:
        """COMPLETED payments that never moved their booking to PAID."""
        return self.payment_repository.list_unapplied()

    def is_payment_valid(self, transaction_id: str) -> bool:
        payment = self.payment_repository.get_by_transaction_id(transaction_id)
        return payment is not None and payment.is_successful

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open_attempt(
        self,
        booking_id: str,
        amount_cents: int,
        method: PaymentMethod,
        actor: str | None,
        reference_number: str | None,
        notes: str | None,
    ) -> Payment:
        with self.lifecycle.atomic():
            booking = self.lifecycle.get_booking(booking_id)

            if booking.status == BookingStatus.CONFIRMED:
                self.lifecycle.transition(
                    booking, BookingStatus.WAITING_FOR_PAYMENT, actor=actor
                )
            elif booking.status != BookingStatus.WAITING_FOR_PAYMENT:
                raise InvalidStateTransitionError(
                    from_state=booking.status.value,
                    to_state=BookingStatus.PAID.value,
                    rule=(
                        "payments are accepted only for CONFIRMED or "
                        "WAITING_FOR_PAYMENT bookings"
                    ),
                )

            payment = self.payment_repository.create_payment(
                booking_id=booking.id,
                amount_cents=amount_cents,
                method=method,
                processed_by=actor,
                created_at=self.clock.now(),
                reference_number=reference_number,
                notes=notes,
                status=PaymentStatus.PROCESSING,
            )

        logger.info(
            "Payment %s opened for booking %s (%s cents)",
            payment.payment_number,
            booking.booking_code,
            amount_cents,
        )
        return payment

    def _settle(self, payment: Payment, result: GatewayResult, actor: str | None) -> Payment:
        if not result.success:
            with self.lifecycle.atomic():
                booking = self.lifecycle.get_booking(payment.booking_id)
                now = self.clock.now()
                self._move(
                    payment,
                    PaymentStatus.FAILED,
                    failure_reason=result.failure_reason,
                    gateway_response=result.gateway_response,
                    updated_at=now,
                )
                self._record_attempt(booking, payment, actor)

            logger.warning(
                "Payment %s failed: %s", payment.payment_number, result.failure_reason
            )
            return payment

        try:
            with self.lifecycle.atomic():
                booking = self._current_booking(payment.booking_id)
                now = self.clock.now()

                if booking.status != BookingStatus.WAITING_FOR_PAYMENT:
                    raise InvalidStateTransitionError(
                        from_state=booking.status.value,
                        to_state=BookingStatus.PAID.value,
                        rule=(
                            "booking left WAITING_FOR_PAYMENT while the "
                            "charge was in flight"
                        ),
                    )

                applied = payment.amount_cents >= booking.total_amount_cents
                if applied:
                    self.lifecycle.transition(
                        booking,
                        BookingStatus.PAID,
                        actor=actor,
                        description=f"Paid by {payment.payment_number}",
                    )
                    self.lifecycle.queue(
                        NotificationType.PAYMENT_CONFIRMED,
                        booking.id,
                        payment_number=payment.payment_number,
                        amount_cents=payment.amount_cents,
                        transaction_id=result.transaction_id,
                    )

                self._move(
                    payment,
                    PaymentStatus.COMPLETED,
                    transaction_id=result.transaction_id,
                    payment_date=now,
                    gateway_response=result.gateway_response,
                    applied=applied,
                    updated_at=now,
                )
                self._record_attempt(booking, payment, actor)
        except InvalidStateTransitionError:
            self._keep_unapplied(payment, result, actor)
            raise

        logger.info(
            "Payment %s completed (%s)", payment.payment_number, result.transaction_id
        )
        return payment

    def _keep_unapplied(
        self, payment: Payment, result: GatewayResult, actor: str | None
    ) -> None:
        """
        Stores a captured charge whose booking can no longer take it. The
        payment stays COMPLETED with its transaction id so it can be refunded.
        """
        with self.lifecycle.atomic():
            booking = self.lifecycle.get_booking(payment.booking_id)
            now = self.clock.now()
            self._move(
                payment,
                PaymentStatus.COMPLETED,
                transaction_id=result.transaction_id,
                payment_date=now,
                gateway_response=result.gateway_response,
                notes=_append_note(
                    payment.notes,
                    f"Not applied: booking was {booking.status.value} "
                    f"when the charge completed",
                ),
                updated_at=now,
            )
            self._record_attempt(booking, payment, actor)

        logger.warning(
            "Payment %s captured but not applied; booking %s is %s",
            payment.payment_number,
            booking.booking_code,
            booking.status.value,
        )

    def _current_booking(self, booking_id: str) -> Booking:
        booking = self.lifecycle.get_booking(booking_id)
        # Another session may have moved it since this one last looked.
        self.db.refresh(booking)
        return booking

    def _record_attempt(self, booking: Booking, payment: Payment, actor: str | None) -> None:
        self.lifecycle.booking_repository.add_record(
            booking,
            action=BookingAction.PAYMENT_PROCESSED,
            performed_by=actor,
            description=(
                f"Payment {payment.payment_number} of {payment.amount_cents} "
                f"cents {payment.status.value}"
            ),
            previous_status=booking.status,
            created_at=self.clock.now(),
        )

    def _move(self, payment: Payment, to_status: PaymentStatus, **values) -> None:
        from_status = payment.status
        PaymentStateMachine.validate_transition(from_status, to_status)
        if not self.payment_repository.compare_and_set_status(
            payment, from_status, to_status, **values
        ):
            raise InvalidStateTransitionError(
                from_state=payment.status.value,
                to_state=to_status.value,
                rule=f"payment left {from_status.value} before this change committed",
            )


def _append_note(notes: str | None, addition: str) -> str:
    return f"{notes}; {addition}" if notes else addition
