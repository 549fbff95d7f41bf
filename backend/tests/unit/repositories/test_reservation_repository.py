from datetime import date, datetime, time, timedelta, timezone

import pytest

from tutorbook.core.exceptions import RepositoryException
from tutorbook.core.ulid_helper import generate_ulid
from tutorbook.models.reservation import SlotReservation
from tutorbook.models.slot import SlotState
from tutorbook.repositories.reservation_repository import ReservationRepository
from tutorbook.repositories.slot_repository import SlotRepository

NOW = datetime(2025, 11, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def repository(db):
    return ReservationRepository(db)


@pytest.fixture
def held_slot(db, tutor_id):
    slot = SlotRepository(db).create(
        tutor_id=tutor_id,
        slot_date=date(2025, 11, 10),
        start_time=time(10, 0),
        end_time=time(11, 0),
        state=SlotState.HELD.value,
    )
    db.commit()
    return slot


@pytest.fixture
def reservation(db, repository, held_slot, tutor_id, student_id):
    reservation = repository.create(
        tutor_id=tutor_id,
        slot_id=held_slot.id,
        student_id=student_id,
        held_at=NOW,
        expires_at=NOW + timedelta(minutes=10),
    )
    db.commit()
    return reservation


class TestReservationLookups:
    def test_get_live_until_expiry_instant(self, repository, reservation, tutor_id, held_slot):
        assert repository.get_live(tutor_id, held_slot.id, NOW) is not None
        assert repository.get_live(tutor_id, held_slot.id, NOW + timedelta(minutes=10)) is not None
        assert (
            repository.get_live(tutor_id, held_slot.id, NOW + timedelta(minutes=10, seconds=1))
            is None
        )

    def test_get_for_slot_returns_lapsed_rows(self, repository, reservation, held_slot):
        assert repository.get_for_slot(held_slot.id).id == reservation.id

    def test_find_expired(self, repository, reservation, held_slot, tutor_id):
        later = NOW + timedelta(minutes=11)
        assert repository.find_expired(NOW) == []
        assert repository.find_expired(later) == [(reservation.id, held_slot.id)]
        assert repository.find_expired(later, tutor_id=generate_ulid()) == []
        assert repository.find_expired(later, tutor_id=tutor_id, limit=1) == [
            (reservation.id, held_slot.id)
        ]

    def test_unique_hold_per_slot(self, repository, reservation, held_slot, tutor_id):
        with pytest.raises(RepositoryException):
            repository.create(
                tutor_id=tutor_id,
                slot_id=held_slot.id,
                student_id=generate_ulid(),
                held_at=NOW,
                expires_at=NOW + timedelta(minutes=10),
            )


class TestConditionalDeletes:
    def test_live_delete_requires_owner_and_live_hold(
        self, db, repository, reservation, held_slot, student_id
    ):
        assert repository.delete_live_for_student(held_slot.id, generate_ulid(), NOW) is False
        assert (
            repository.delete_live_for_student(
                held_slot.id, student_id, NOW + timedelta(minutes=11)
            )
            is False
        )
        assert repository.delete_live_for_student(held_slot.id, student_id, NOW) is True
        assert db.query(SlotReservation).count() == 0

    def test_expired_delete_ignores_live_hold(self, db, repository, reservation, held_slot):
        assert repository.delete_expired_for_slot(held_slot.id, NOW) is False
        assert repository.delete_expired_by_id(reservation.id, NOW) is False
        assert db.query(SlotReservation).count() == 1

    def test_expired_delete_wins_once(self, repository, reservation, held_slot):
        later = NOW + timedelta(minutes=11)
        assert repository.delete_expired_for_slot(held_slot.id, later) is True
        assert repository.delete_expired_for_slot(held_slot.id, later) is False
        assert repository.delete_expired_by_id(reservation.id, later) is False
