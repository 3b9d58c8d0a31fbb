# tests/integration/test_maintenance_tasks.py

from contextlib import contextmanager
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from ferry_booking.domain.enums import FerryStatus, NotificationType, PaymentMethod
from ferry_booking.domain.state_machine import ApprovalStatus, BookingStatus
from ferry_booking.infrastructure.repositories.ferry_repository import FerryRepository
from ferry_booking.main import ReservationCore, init_db, wait_for_db
from scripts.seed_demo_data import seed_ferries


def test_unpaid_bookings_expire_after_payment_window(core, create_ferry, booking_request, clock, sink):
    ferry = create_ferry(capacity_vehicles=1)
    stale = core.bookings.create_booking(booking_request(ferry.id, vehicle_count=1))
    core.bookings.request_payment(stale.id, actor="agent-1")

    clock.advance(minutes=30)
    fresh = core.bookings.create_booking(
        booking_request(ferry.id, vehicle_count=0, passenger_count=1)
    )
    core.bookings.request_payment(fresh.id, actor="agent-1")

    clock.advance(minutes=31)
    expired = core.bookings.expire_unpaid_bookings()

    assert [b.id for b in expired] == [stale.id]
    assert stale.status == BookingStatus.CANCELLED
    assert stale.cancellation_reason == "Payment deadline elapsed"
    assert stale.cancelled_by is None
    assert fresh.status == BookingStatus.WAITING_FOR_PAYMENT
    assert core.approvals.get_approval_by_booking(stale.id).status == ApprovalStatus.REJECTED

    history = core.bookings.get_history(stale.id)
    assert history[-1].performer_label == "SYSTEM"
    assert sink.types()[-1] == NotificationType.BOOKING_STATUS_CHANGED

    # The vehicle slot is free again.
    info = core.bookings.get_capacity_info(ferry.id, stale.departure_date)
    assert info.current_vehicles == 0


def test_paid_bookings_are_not_expired(core, paid_booking, clock):
    clock.advance(hours=5)

    assert core.bookings.expire_unpaid_bookings() == []
    assert paid_booking.status == BookingStatus.PAID


def test_expiry_skips_booking_paid_meanwhile(
    db, session_factory, build_core, create_ferry, booking_request, clock, settings, monkeypatch
):
    ferry = create_ferry()
    core = build_core(db)
    booking = core.bookings.create_booking(booking_request(ferry.id))
    core.bookings.request_payment(booking.id, actor="agent-1")
    clock.advance(minutes=90)

    # Load the candidates, then let another session pay before the sweep writes.
    repository = core.bookings.booking_repository
    candidates = repository.list_awaiting_payment_since(clock.now() - settings.payment_window)
    db.commit()
    assert [b.id for b in candidates] == [booking.id]

    other = session_factory()
    try:
        build_core(other).payments.simulate_payment(booking.id, PaymentMethod.CASH, actor="c-1")
    finally:
        other.close()

    monkeypatch.setattr(repository, "list_awaiting_payment_since", lambda cutoff: candidates)

    assert core.bookings.expire_unpaid_bookings() == []
    assert booking.status == BookingStatus.PAID


def test_reservation_core_shares_one_unit_of_work(db, clock, notifier, make_gateway):
    core = ReservationCore.build(db, clock=clock, notifier=notifier, gateway=make_gateway())

    assert core.approvals is core.bookings.approvals
    assert core.payments.lifecycle is core.bookings.lifecycle
    assert core.payments.gateway is not None


def test_init_db_and_seed_are_idempotent(engine, db):
    init_db(engine)

    first = seed_ferries(db)
    db.commit()
    second = seed_ferries(db)
    db.commit()

    assert [f.id for f in first] == [f.id for f in second]
    pelican = FerryRepository(db).get_by_name("MV Old Pelican")
    assert pelican.status == FerryStatus.MAINTENANCE
    assert not pelican.is_operating


class FlakyEngine:
    """Refuses the first ``failures`` connections."""

    def __init__(self, failures):
        self.failures = failures
        self.attempts = 0

    def connect(self):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))
        return self._connection()

    @contextmanager
    def _connection(self):
        yield SimpleNamespace(execute=lambda statement: None)


def test_wait_for_db_retries_until_reachable():
    engine = FlakyEngine(failures=2)
    sleeps = []

    wait_for_db(engine, max_retries=5, retry_delay_seconds=0.5, sleep=sleeps.append)

    assert engine.attempts == 3
    assert sleeps == [0.5, 0.5]


def test_wait_for_db_gives_up_after_max_retries():
    engine = FlakyEngine(failures=3)
    sleeps = []

    with pytest.raises(OperationalError):
        wait_for_db(engine, max_retries=3, retry_delay_seconds=0.1, sleep=sleeps.append)

    assert engine.attempts == 3
    assert len(sleeps) == 2
