# ferry_booking/infrastructure/repositories/payment_repository.py

from datetime import datetime
from uuid import uuid4

from sqlalchemy import select

from ferry_booking.domain.enums import PaymentMethod
from ferry_booking.domain.state_machine import PaymentStatus
from ferry_booking.infrastructure.db.models import Booking, Payment
from ferry_booking.infrastructure.repositories.base import StatusRepository


class PaymentRepository(StatusRepository):

    model = Payment

    def get_by_id(self, payment_id: str) -> Payment | None:
        stmt = select(Payment).where(Payment.id == payment_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_number(self, payment_number: str) -> Payment | None:
        stmt = select(Payment).where(Payment.payment_number == payment_number)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_transaction_id(self, transaction_id: str) -> Payment | None:
        stmt = select(Payment).where(Payment.transaction_id == transaction_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_by_booking(self, booking_id: str) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.booking_id == booking_id)
            .order_by(Payment.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_unapplied(self) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(
                Payment.status == PaymentStatus.COMPLETED,
                Payment.applied.is_(False),
            )
            .order_by(Payment.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_by_customer(self, customer_id: str) -> list[Payment]:
        stmt = (
            select(Payment)
            .join(Booking, Booking.id == Payment.booking_id)
            .where(Booking.customer_id == customer_id)
            .order_by(Payment.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def create_payment(
        self,
        booking_id: str,
        amount_cents: int,
        method: PaymentMethod,
        processed_by: str | None,
        created_at: datetime,
        reference_number: str | None = None,
        notes: str | None = None,
        status: PaymentStatus = PaymentStatus.PENDING,
    ) -> Payment:

        payment = Payment(
            payment_number=self._generate_payment_number(created_at),
            booking_id=booking_id,
            amount_cents=amount_cents,
            method=method,
            status=status,
            applied=False,
            reference_number=reference_number,
            notes=notes,
            processed_by=processed_by,
            created_at=created_at,
            updated_at=created_at,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    @staticmethod
    def _generate_payment_number(created_at: datetime) -> str:
        return f"PAY-{created_at:%Y%m%d}-{uuid4().hex[:16].upper()}"
