from datetime import date, time

import pytest

from sqlalchemy.exc import IntegrityError, OperationalError

from tutorbook.core.exceptions import (
    InvalidRangeException,
    InvalidStateException,
    NotFoundException,
    RepositoryException,
    ServiceException,
    SlotOverlapException,
    ValidationException,
)
from tutorbook.core.ulid_helper import generate_ulid
from tutorbook.models.reservation import SlotReservation
from tutorbook.models.slot import SlotState
from tutorbook.services.slot_service import SlotService

SESSION_DATE = date(2025, 11, 10)


class TestCreateSlot:
    def test_creates_free_slot(self, slot_service, tutor_id):
        slot = slot_service.create_slot(tutor_id, SESSION_DATE, time(10, 0), time(11, 0))

        assert slot.id
        assert slot.tutor_id == tutor_id
        assert slot.state == SlotState.FREE.value
        assert slot.to_dict()["start_time"] == "10:00"

    @pytest.mark.parametrize("start,end", [(time(11, 0), time(10, 0)), (time(10, 0), time(10, 0))])
    def test_rejects_empty_or_inverted_range(self, slot_service, tutor_id, start, end):
        with pytest.raises(InvalidRangeException) as exc_info:
            slot_service.create_slot(tutor_id, SESSION_DATE, start, end)
        assert exc_info.value.code == "INVALID_RANGE"

    def test_rejects_overlap(self, slot_service, make_slot, tutor_id):
        make_slot("10:00", "11:00")

        with pytest.raises(SlotOverlapException) as exc_info:
            slot_service.create_slot(tutor_id, SESSION_DATE, time(10, 30), time(11, 30))

        assert exc_info.value.details["conflicting_slot"] == "10:00-11:00"

    def test_touching_slots_do_not_overlap(self, slot_service, make_slot, tutor_id):
        make_slot("10:00", "11:00")

        slot = slot_service.create_slot(tutor_id, SESSION_DATE, time(11, 0), time(12, 0))
        assert slot.start_time == time(11, 0)

    def test_other_tutor_may_use_same_time(self, slot_service, make_slot):
        make_slot("10:00", "11:00")
        other = slot_service.create_slot(generate_ulid(), SESSION_DATE, time(10, 0), time(11, 0))
        assert other.state == SlotState.FREE.value

    def test_rejects_past_date(self, slot_service, tutor_id):
        with pytest.raises(ValidationException) as exc_info:
            slot_service.create_slot(tutor_id, date(2025, 10, 31), time(10, 0), time(11, 0))
        assert exc_info.value.code == "PAST_DATE"

    def test_today_is_allowed(self, slot_service, tutor_id):
        slot = slot_service.create_slot(tutor_id, date(2025, 11, 1), time(18, 0), time(19, 0))
        assert slot.slot_date == date(2025, 11, 1)

    def test_unique_violation_on_insert_is_overlap(self, slot_service, tutor_id, monkeypatch):
        def racing_create(**kwargs):
            cause = IntegrityError("INSERT INTO tutor_slots", {}, Exception("UNIQUE constraint failed"))
            raise RepositoryException("Integrity constraint violated") from cause

        monkeypatch.setattr(slot_service.repository, "create", racing_create)

        with pytest.raises(SlotOverlapException):
            slot_service.create_slot(tutor_id, SESSION_DATE, time(10, 0), time(11, 0))

    def test_other_storage_errors_are_not_overlap(self, slot_service, tutor_id, monkeypatch):
        def locked_create(**kwargs):
            cause = OperationalError("INSERT INTO tutor_slots", {}, Exception("database is locked"))
            raise RepositoryException("Failed to create TutorSlot") from cause

        monkeypatch.setattr(slot_service.repository, "create", locked_create)

        with pytest.raises(ServiceException) as exc_info:
            slot_service.create_slot(tutor_id, SESSION_DATE, time(10, 0), time(11, 0))

        assert not isinstance(exc_info.value, SlotOverlapException)
        assert exc_info.value.status_code == 500

    def test_past_dates_allowed_when_policy_disabled(self, db, clock, tutor_id):
        service = SlotService(db, clock=clock, reject_past_slots=False)
        slot = service.create_slot(tutor_id, date(2025, 1, 1), time(10, 0), time(11, 0))
        assert slot.slot_date == date(2025, 1, 1)


class TestUpdateSlot:
    def test_moves_free_slot(self, slot_service, make_slot, tutor_id):
        slot = make_slot("10:00", "11:00")

        updated = slot_service.update_slot(
            tutor_id, slot.id, date(2025, 11, 12), time(14, 0), time(15, 30)
        )

        assert updated.id == slot.id
        assert updated.slot_date == date(2025, 11, 12)
        assert updated.end_time == time(15, 30)

    def test_edit_does_not_conflict_with_itself(self, slot_service, make_slot, tutor_id):
        slot = make_slot("10:00", "11:00")
        updated = slot_service.update_slot(tutor_id, slot.id, SESSION_DATE, time(10, 30), time(11, 30))
        assert updated.start_time == time(10, 30)

    def test_edit_into_neighbour_is_overlap(self, slot_service, make_slot, tutor_id):
        make_slot("10:00", "11:00")
        slot = make_slot("12:00", "13:00")

        with pytest.raises(SlotOverlapException):
            slot_service.update_slot(tutor_id, slot.id, SESSION_DATE, time(10, 30), time(12, 30))

    def test_held_slot_cannot_be_edited(
        self, slot_service, reservation_service, make_slot, tutor_id, student_id
    ):
        slot = make_slot()
        reservation_service.reserve(tutor_id, slot.id, student_id)

        with pytest.raises(InvalidStateException) as exc_info:
            slot_service.update_slot(tutor_id, slot.id, SESSION_DATE, time(12, 0), time(13, 0))

        assert exc_info.value.details["current_state"] == SlotState.HELD.value

    def test_slot_with_lapsed_hold_can_be_edited(
        self, db, clock, slot_service, reservation_service, make_slot, tutor_id, student_id
    ):
        slot = make_slot()
        reservation_service.reserve(tutor_id, slot.id, student_id)
        clock.advance(minutes=30)
        assert reservation_service.get_live_reservation(tutor_id, slot.id) is None

        moved = slot_service.update_slot(tutor_id, slot.id, SESSION_DATE, time(12, 0), time(13, 0))

        assert moved.state == SlotState.FREE.value
        assert moved.start_time == time(12, 0)
        assert db.query(SlotReservation).count() == 0

    def test_lost_conditional_write_reports_current_state(
        self, slot_service, make_slot, tutor_id, monkeypatch
    ):
        slot = make_slot()
        # Simulate a reservation landing between the state check and the write.
        repo = slot_service.repository
        original = repo.update_times_if_free

        def reserve_then_update(*args, **kwargs):
            repo.transition(slot.id, SlotState.FREE, SlotState.HELD)
            return original(*args, **kwargs)

        monkeypatch.setattr(repo, "update_times_if_free", reserve_then_update)

        with pytest.raises(InvalidStateException):
            slot_service.update_slot(tutor_id, slot.id, SESSION_DATE, time(12, 0), time(13, 0))

        # The whole transaction rolled back, including the simulated reservation.
        assert slot_service.get_slot(tutor_id, slot.id).state == SlotState.FREE.value

    def test_unknown_or_foreign_slot(self, slot_service, make_slot):
        slot = make_slot()
        with pytest.raises(NotFoundException):
            slot_service.update_slot(generate_ulid(), slot.id, SESSION_DATE, time(12, 0), time(13, 0))


class TestDeleteSlot:
    def test_deletes_free_slot(self, slot_service, make_slot, tutor_id):
        slot = make_slot()
        slot_service.delete_slot(tutor_id, slot.id)

        with pytest.raises(NotFoundException):
            slot_service.get_slot(tutor_id, slot.id)

    def test_booked_slot_cannot_be_deleted(self, slot_service, confirmed_booking, tutor_id):
        with pytest.raises(InvalidStateException) as exc_info:
            slot_service.delete_slot(tutor_id, confirmed_booking.slot_id)
        assert exc_info.value.details["current_state"] == SlotState.BOOKED.value

    def test_slot_with_lapsed_hold_can_be_deleted(
        self, db, clock, slot_service, reservation_service, make_slot, tutor_id, student_id
    ):
        slot = make_slot()
        reservation_service.reserve(tutor_id, slot.id, student_id)
        clock.advance(minutes=30)

        slot_service.delete_slot(tutor_id, slot.id)

        with pytest.raises(NotFoundException):
            slot_service.get_slot(tutor_id, slot.id)
        assert db.query(SlotReservation).count() == 0

    def test_live_hold_still_blocks_delete(
        self, clock, slot_service, reservation_service, make_slot, tutor_id, student_id
    ):
        slot = make_slot()
        reservation_service.reserve(tutor_id, slot.id, student_id)
        clock.advance(minutes=10)

        with pytest.raises(InvalidStateException):
            slot_service.delete_slot(tutor_id, slot.id)

    def test_other_tutor_cannot_delete(self, slot_service, make_slot):
        slot = make_slot()
        with pytest.raises(NotFoundException):
            slot_service.delete_slot(generate_ulid(), slot.id)


class TestListSlots:
    def test_listing_order_and_state_filter(
        self, slot_service, reservation_service, make_slot, tutor_id, student_id
    ):
        a = make_slot("14:00", "15:00", slot_date=date(2025, 11, 10))
        b = make_slot("09:00", "10:00", slot_date=date(2025, 11, 12))
        c = make_slot("08:00", "09:00", slot_date=date(2025, 11, 10))
        reservation_service.reserve(tutor_id, c.id, student_id)

        assert [s.id for s in slot_service.get_by_tutor(tutor_id)] == [b.id, c.id, a.id]
        assert [s.id for s in slot_service.get_by_tutor(tutor_id, SlotState.HELD)] == [c.id]

    def test_listing_can_be_iterated_twice(self, slot_service, make_slot, tutor_id):
        make_slot("10:00", "11:00")
        make_slot("12:00", "13:00")

        listing = slot_service.get_by_tutor(tutor_id)
        assert [s.id for s in listing] == [s.id for s in listing]
        assert listing.count() == 2

    def test_listing_for_unknown_tutor_is_empty(self, slot_service):
        assert list(slot_service.get_by_tutor(generate_ulid())) == []
