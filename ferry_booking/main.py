import logging
import os
import time
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ferry_booking.application.approval_service import ApprovalService
from ferry_booking.application.booking_lifecycle import BookingLifecycle
from ferry_booking.application.booking_service import BookingService
from ferry_booking.application.payment_service import PaymentService
from ferry_booking.config import WorkflowSettings, configure_logging
from ferry_booking.domain.clock import Clock
from ferry_booking.infrastructure.db.models import Base
from ferry_booking.infrastructure.db.session import get_engine
from ferry_booking.infrastructure.gateways.payment_gateway import PaymentGateway
from ferry_booking.infrastructure.locks import KeyedLock
from ferry_booking.infrastructure.notifications import (
    NotificationDispatcher,
    SimulatedNotificationSink,
)

logger = logging.getLogger(__name__)


def wait_for_db(
    engine: Engine,
    max_retries: int | None = None,
    retry_delay_seconds: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Polls ``SELECT 1`` until the database answers or the retries run out."""
    if max_retries is None:
        max_retries = int(os.getenv("DB_CONNECT_MAX_RETRIES", "30"))
    if retry_delay_seconds is None:
        retry_delay_seconds = float(os.getenv("DB_CONNECT_RETRY_DELAY", "1.5"))

    for attempt in range(1, max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError:
            if attempt == max_retries:
                logger.exception(
                    "Database unreachable after %s attempts; check DATABASE_URL",
                    max_retries,
                )
                raise
            logger.warning(
                "Database not ready (%s/%s), retrying in %.1fs",
                attempt,
                max_retries,
                retry_delay_seconds,
            )
            sleep(retry_delay_seconds)
        else:
            logger.info("Database reachable after %s attempt(s)", attempt)
            return


def init_db(engine: Engine | None = None) -> Engine:
    engine = engine or get_engine()
    wait_for_db(engine)
    Base.metadata.create_all(bind=engine)
    return engine


@dataclass
class ReservationCore:
    """The three services wired onto one session and one unit of work."""

    bookings: BookingService
    approvals: ApprovalService
    payments: PaymentService

    @classmethod
    def build(
        cls,
        db: Session,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
        gateway: PaymentGateway | None = None,
        settings: WorkflowSettings | None = None,
        locks: KeyedLock | None = None,
    ) -> "ReservationCore":
        settings = settings or WorkflowSettings.from_env()
        notifier = notifier or NotificationDispatcher(
            SimulatedNotificationSink(settings.notification_success_rate)
        )
        lifecycle = BookingLifecycle(db, clock, notifier)

        bookings = BookingService(
            db, settings=settings, lifecycle=lifecycle, locks=locks
        )
        payments = PaymentService(
            db, gateway=gateway, settings=settings, lifecycle=lifecycle
        )
        return cls(bookings=bookings, approvals=bookings.approvals, payments=payments)


def main() -> None:
    configure_logging()
    init_db()
    logger.info("Ferry reservation schema is ready.")


if __name__ == "__main__":
    main()
