from tutorbook.core.ulid_helper import generate_ulid


class TestTutorRatingService:
    def test_unrated_tutor(self, rating_service):
        tutor_id = generate_ulid()
        assert rating_service.get_summary(tutor_id) == {
            "tutor_id": tutor_id,
            "average": None,
            "count": 0,
        }

    def test_recompute_accumulates(self, rating_service, tutor_id):
        for rating in (5, 4, 4):
            rating_service.recompute(tutor_id, rating)

        summary = rating_service.get_summary(tutor_id)
        assert summary["count"] == 3
        assert summary["average"] == 4.33

    def test_tutors_are_independent(self, rating_service, tutor_id):
        other = generate_ulid()
        rating_service.recompute(tutor_id, 5)
        rating_service.recompute(other, 1)

        assert rating_service.get_summary(tutor_id)["average"] == 5.0
        assert rating_service.get_summary(other)["average"] == 1.0
