# backend/tests/conftest.py
"""
Pytest configuration for the tutorbook test suite.

Every test gets its own in-memory SQLite database, a pinned clock, the mock
payment gateway and a notification gateway that records what it was asked
to send.
"""

from datetime import date, datetime, time, timedelta, timezone
import os
import sys

# Settings are read at import time, so the environment goes first.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("PAYMENT_PROVIDER", "mock")
os.environ.setdefault("NOTIFICATION_PROVIDER", "log")
os.environ.setdefault("HOLD_SWEEP_IN_PROCESS", "false")

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tutorbook.api.dependencies.database import get_db
from tutorbook.api.dependencies.services import get_notification_gateway, get_payment_gateway
from tutorbook.core.ulid_helper import generate_ulid
from tutorbook.database import Base
from tutorbook.integrations.notifications import NotificationGateway
from tutorbook.integrations.payments import MockPaymentGateway
from tutorbook.main import app
import tutorbook.models  # noqa: F401  registers tables on Base.metadata
from tutorbook.services.booking_checkout_service import BookingCheckoutService
from tutorbook.services.booking_lifecycle_service import BookingLifecycleService
from tutorbook.services.reservation_service import ReservationService
from tutorbook.services.slot_service import SlotService
from tutorbook.services.tutor_rating_service import TutorRatingService

HOLD_TTL_MINUTES = 10
START_INSTANT = datetime(2025, 11, 1, 9, 0, tzinfo=timezone.utc)
SESSION_DATE = date(2025, 11, 10)


class FrozenClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingNotificationGateway(NotificationGateway):
    def __init__(self) -> None:
        self.sent: List[Tuple[str, List[str], Dict[str, Any]]] = []

    def notify(self, event_type: str, participants: Sequence[str], payload: Dict[str, Any]) -> None:
        self.sent.append((event_type, list(participants), dict(payload)))

    @property
    def events(self) -> List[str]:
        return [event for event, _, _ in self.sent]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed database for tests that need real concurrent connections."""
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'tutorbook_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START_INSTANT)


@pytest.fixture
def tutor_id() -> str:
    return generate_ulid()


@pytest.fixture
def student_id() -> str:
    return generate_ulid()


@pytest.fixture
def other_student_id() -> str:
    return generate_ulid()


@pytest.fixture
def admin_id() -> str:
    return generate_ulid()


@pytest.fixture
def payment_gateway() -> MockPaymentGateway:
    return MockPaymentGateway(decline_methods=["decline"])


@pytest.fixture
def notification_gateway() -> RecordingNotificationGateway:
    return RecordingNotificationGateway()


@pytest.fixture
def slot_service(db, clock) -> SlotService:
    return SlotService(db, clock=clock, reject_past_slots=True)


@pytest.fixture
def reservation_service(db, clock) -> ReservationService:
    return ReservationService(db, clock=clock, hold_ttl_minutes=HOLD_TTL_MINUTES)


@pytest.fixture
def rating_service(db, clock) -> TutorRatingService:
    return TutorRatingService(db, clock=clock)


@pytest.fixture
def checkout_service(
    db, clock, payment_gateway, notification_gateway, reservation_service
) -> BookingCheckoutService:
    return BookingCheckoutService(
        db,
        payment_gateway=payment_gateway,
        notification_gateway=notification_gateway,
        reservation_service=reservation_service,
        clock=clock,
    )


@pytest.fixture
def lifecycle_service(db, clock, notification_gateway, rating_service) -> BookingLifecycleService:
    return BookingLifecycleService(
        db,
        notification_gateway=notification_gateway,
        rating_service=rating_service,
        clock=clock,
    )


@pytest.fixture
def make_slot(slot_service, tutor_id):
    """Create a free slot for the default tutor (or another one)."""

    def _make_slot(
        start: str = "10:00",
        end: str = "11:00",
        slot_date: date = SESSION_DATE,
        tutor: Optional[str] = None,
    ):
        return slot_service.create_slot(
            tutor or tutor_id,
            slot_date,
            time.fromisoformat(start),
            time.fromisoformat(end),
        )

    return _make_slot


@pytest.fixture
def confirmed_booking(make_slot, reservation_service, checkout_service, tutor_id, student_id):
    """A paid booking on a fresh 10:00-11:00 slot."""
    slot = make_slot()
    reservation_service.reserve(tutor_id, slot.id, student_id)
    return checkout_service.finalize(
        tutor_id, slot.id, student_id, "Algebra", "card", Decimal("40.00")
    )


@pytest.fixture
def completed_booking(confirmed_booking, lifecycle_service, tutor_id):
    return lifecycle_service.mark_completed(confirmed_booking.id, tutor_id)


@pytest.fixture
def client(session_factory, payment_gateway, notification_gateway):
    """TestClient wired to the per-test database and fake gateways."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    app.dependency_overrides[get_notification_gateway] = lambda: notification_gateway
    try:
        # Not used as a context manager: the lifespan would create tables on the app engine.
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
