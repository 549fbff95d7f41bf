from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from tutorbook.core.ulid_helper import generate_ulid

SESSION_DAY = (date.today() + timedelta(days=7)).isoformat()


def slots_url(tutor_id, *parts):
    return "/".join([f"/api/v1/tutors/{tutor_id}/slots", *parts])


@pytest.fixture
def create_slot(client, tutor_id):
    def _create(start="10:00", end="11:00", day=SESSION_DAY):
        resp = client.post(
            slots_url(tutor_id), json={"date": day, "start_time": start, "end_time": end}
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _create


@pytest.fixture
def held_slot(client, create_slot, tutor_id, student_id):
    slot = create_slot()
    resp = client.post(slots_url(tutor_id, slot["id"], "reserve"), json={"student_id": student_id})
    assert resp.status_code == 201
    return slot


class TestSlotCalendarRoutes:
    def test_create_slot(self, create_slot, tutor_id):
        slot = create_slot()

        assert slot["tutor_id"] == tutor_id
        assert slot["date"] == SESSION_DAY
        assert slot["start_time"] == "10:00:00"
        assert slot["state"] == "free"

    def test_invalid_range(self, client, tutor_id):
        resp = client.post(
            slots_url(tutor_id),
            json={"date": SESSION_DAY, "start_time": "11:00", "end_time": "10:00"},
        )

        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "INVALID_RANGE"
        assert body["status"] == 400
        assert body["instance"] == slots_url(tutor_id)

    def test_overlap(self, client, create_slot, tutor_id):
        create_slot("10:00", "11:00")

        resp = client.post(
            slots_url(tutor_id),
            json={"date": SESSION_DAY, "start_time": "10:30", "end_time": "11:30"},
        )

        assert resp.status_code == 409
        assert resp.json()["code"] == "SLOT_OVERLAP"

    def test_past_date(self, client, tutor_id):
        yesterday = (date.today() - timedelta(days=2)).isoformat()
        resp = client.post(
            slots_url(tutor_id),
            json={"date": yesterday, "start_time": "10:00", "end_time": "11:00"},
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "PAST_DATE"

    def test_malformed_body(self, client, tutor_id):
        resp = client.post(slots_url(tutor_id), json={"date": "tomorrow", "start_time": "10:00"})

        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["errors"]

    def test_list_orders_and_filters(self, client, create_slot, tutor_id, student_id):
        later_day = (date.today() + timedelta(days=9)).isoformat()
        afternoon = create_slot("14:00", "15:00")
        morning = create_slot("08:00", "09:00")
        next_day = create_slot("09:00", "10:00", day=later_day)
        client.post(slots_url(tutor_id, morning["id"], "reserve"), json={"student_id": student_id})

        listing = client.get(slots_url(tutor_id)).json()
        assert listing["total"] == 3
        assert [s["id"] for s in listing["slots"]] == [next_day["id"], morning["id"], afternoon["id"]]

        held = client.get(slots_url(tutor_id), params={"state": "held"}).json()
        assert [s["id"] for s in held["slots"]] == [morning["id"]]

    def test_list_releases_lapsed_holds(self, client, held_slot, tutor_id):
        later = datetime.now(timezone.utc) + timedelta(minutes=30)
        with patch("tutorbook.services.base.utc_now", return_value=later):
            listing = client.get(slots_url(tutor_id)).json()

        assert listing["slots"][0]["state"] == "free"

    def test_update_and_delete(self, client, create_slot, tutor_id):
        slot = create_slot()

        resp = client.put(
            slots_url(tutor_id, slot["id"]),
            json={"date": SESSION_DAY, "start_time": "12:00", "end_time": "13:30"},
        )
        assert resp.status_code == 200
        assert resp.json()["end_time"] == "13:30:00"

        resp = client.delete(slots_url(tutor_id, slot["id"]))
        assert resp.status_code == 204
        assert client.get(slots_url(tutor_id)).json()["total"] == 0

    def test_held_slot_cannot_be_deleted(self, client, held_slot, tutor_id):
        resp = client.delete(slots_url(tutor_id, held_slot["id"]))

        assert resp.status_code == 409
        body = resp.json()
        assert body["code"] == "INVALID_STATE"
        assert body["errors"]["current_state"] == "held"

    def test_unknown_slot(self, client, tutor_id):
        resp = client.delete(slots_url(tutor_id, generate_ulid()))
        assert resp.status_code == 404


class TestReservationRoutes:
    def test_reserve(self, client, create_slot, tutor_id, student_id):
        slot = create_slot()

        resp = client.post(slots_url(tutor_id, slot["id"], "reserve"), json={"student_id": student_id})

        assert resp.status_code == 201
        body = resp.json()
        assert body["reservation_id"]
        assert body["slot_id"] == slot["id"]
        assert body["student_id"] == student_id
        assert body["expires_at"]

    def test_reserve_taken_slot(self, client, held_slot, tutor_id, other_student_id):
        resp = client.post(
            slots_url(tutor_id, held_slot["id"], "reserve"), json={"student_id": other_student_id}
        )

        assert resp.status_code == 409
        assert resp.json()["code"] == "SLOT_UNAVAILABLE"

    def test_reserve_unknown_slot(self, client, tutor_id, student_id):
        resp = client.post(
            slots_url(tutor_id, generate_ulid(), "reserve"), json={"student_id": student_id}
        )
        assert resp.status_code == 404

    def test_release(self, client, held_slot, tutor_id, student_id, other_student_id):
        url = slots_url(tutor_id, held_slot["id"], "release")

        resp = client.post(url, json={"student_id": other_student_id})
        assert resp.status_code == 403
        assert resp.json()["code"] == "NOT_HELD_BY_CALLER"

        assert client.post(url, json={"student_id": student_id}).json() == {"released": True}
        assert client.post(url, json={"student_id": student_id}).json() == {"released": False}


class TestFinalizeRoute:
    def test_finalize(self, client, held_slot, notification_gateway, tutor_id, student_id):
        resp = client.post(
            slots_url(tutor_id, held_slot["id"], "finalize"),
            json={
                "student_id": student_id,
                "subject": "  Geometry ",
                "payment_method": "card",
                "amount": "40.00",
            },
        )

        assert resp.status_code == 201, resp.text
        booking = resp.json()
        assert booking["status"] == "CONFIRMED"
        assert booking["subject"] == "Geometry"
        assert booking["amount"] == 40.0
        assert booking["slot_id"] == held_slot["id"]
        assert booking["payment_reference"].startswith("mock_")
        assert notification_gateway.events == ["booking.confirmed"]

        listing = client.get(slots_url(tutor_id)).json()
        assert listing["slots"][0]["state"] == "booked"

    def test_declined_payment(self, client, held_slot, tutor_id, student_id):
        resp = client.post(
            slots_url(tutor_id, held_slot["id"], "finalize"),
            json={"student_id": student_id, "subject": "Geometry", "payment_method": "decline", "amount": 40},
        )

        assert resp.status_code == 402
        assert resp.json()["code"] == "PAYMENT_FAILED"
        listing = client.get(slots_url(tutor_id)).json()
        assert listing["slots"][0]["state"] == "held"

    def test_finalize_without_hold(self, client, create_slot, tutor_id, student_id):
        slot = create_slot()

        resp = client.post(
            slots_url(tutor_id, slot["id"], "finalize"),
            json={"student_id": student_id, "subject": "Geometry", "payment_method": "card", "amount": 40},
        )

        assert resp.status_code == 410
        assert resp.json()["code"] == "RESERVATION_EXPIRED_OR_MISSING"

    @pytest.mark.parametrize("amount,status,code", [(0, 400, "INVALID_AMOUNT"), ("lots", 422, "VALIDATION_ERROR")])
    def test_bad_amount(self, client, held_slot, tutor_id, student_id, amount, status, code):
        resp = client.post(
            slots_url(tutor_id, held_slot["id"], "finalize"),
            json={"student_id": student_id, "subject": "Geometry", "payment_method": "card", "amount": amount},
        )

        assert resp.status_code == status
        assert resp.json()["code"] == code
