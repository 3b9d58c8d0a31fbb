import random
from datetime import datetime, timezone

import pytest

from ferry_booking.api.schemas.schemas import BookingRequest
from ferry_booking.config import WorkflowSettings
from ferry_booking.domain.clock import FixedClock
from ferry_booking.domain.enums import FerryStatus, PaymentMethod
from ferry_booking.infrastructure.db.models import Base
from ferry_booking.infrastructure.db.session import build_engine, create_session_factory
from ferry_booking.infrastructure.gateways.payment_gateway import SimulatedPaymentGateway
from ferry_booking.infrastructure.locks import KeyedLock
from ferry_booking.infrastructure.notifications import NotificationDispatcher
from ferry_booking.infrastructure.repositories.ferry_repository import FerryRepository
from ferry_booking.main import ReservationCore


START = datetime(2026, 7, 1, 8, 0, tzinfo=timezone.utc)
DEPARTURE = datetime(2026, 7, 15, 9, 30, tzinfo=timezone.utc)


class RecordingSink:
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def types(self):
        return [event.type for event in self.events]


# ---------------------
# DATABASE
# ---------------------

@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ferry.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# ---------------------
# COLLABORATORS
# ---------------------

@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def notifier(sink):
    return NotificationDispatcher(sink)


@pytest.fixture
def settings():
    return WorkflowSettings()


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def make_gateway():
    """Factory for a gateway with no delay and a fixed outcome."""

    def _factory(success_rate: float = 1.0, seed: int = 7) -> SimulatedPaymentGateway:
        return SimulatedPaymentGateway(
            success_rate=success_rate,
            min_delay_seconds=0.0,
            max_delay_seconds=0.0,
            rng=random.Random(seed),
            wait=lambda seconds: False,
        )

    return _factory


@pytest.fixture
def build_core(clock, notifier, settings, locks, make_gateway):
    def _factory(session, gateway=None) -> ReservationCore:
        return ReservationCore.build(
            session,
            clock=clock,
            notifier=notifier,
            gateway=gateway or make_gateway(1.0),
            settings=settings,
            locks=locks,
        )

    return _factory


@pytest.fixture
def core(db, build_core):
    return build_core(db)


# ---------------------
# FACTORIES
# ---------------------

@pytest.fixture
def create_ferry(db):
    def _factory(
        name: str = "MV Test Ferry",
        capacity_vehicles: int = 2,
        capacity_passengers: int = 10,
        status: FerryStatus = FerryStatus.ACTIVE,
    ):
        ferry = FerryRepository(db).create_ferry(
            name=name,
            capacity_vehicles=capacity_vehicles,
            capacity_passengers=capacity_passengers,
            status=status,
        )
        db.commit()
        return ferry

    return _factory


@pytest.fixture
def booking_request():
    def _factory(
        ferry_id: str,
        vehicle_count: int = 1,
        passenger_count: int = 2,
        total_amount_cents: int = 12_500,
        customer_id: str = "customer-1",
        departure_time: datetime = DEPARTURE,
    ) -> BookingRequest:
        return BookingRequest(
            customer_id=customer_id,
            route_id="route-north",
            ferry_id=ferry_id,
            departure_time=departure_time,
            vehicle_count=vehicle_count,
            passenger_count=passenger_count,
            total_amount_cents=total_amount_cents,
        )

    return _factory


@pytest.fixture
def paid_booking(core, create_ferry, booking_request):
    """A booking that reached PAID through a successful payment."""
    ferry = create_ferry(capacity_vehicles=5, capacity_passengers=20)
    booking = core.bookings.create_booking(booking_request(ferry.id))
    core.payments.simulate_payment(booking.id, method=PaymentMethod.CREDIT_CARD, actor="customer-1")
    return booking
