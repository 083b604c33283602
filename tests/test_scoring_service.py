"""
Tests for the scoring adapter and the scoring task.
"""

import pytest

from staff_verify.db.models import Store, VerificationRequest
from staff_verify.exceptions import RequestNotFoundError
from staff_verify.services.scoring_service import scoring_service
from staff_verify.worker import tasks
from tests.conftest import STORE_LAT, STORE_LNG, point_north

NOW_MS = 1_760_000_000_000


class TestScoreRequest:
    """Test scoring of stored requests."""

    def test_writes_score_fields(self, db, make_request):
        lat, lng = point_north(STORE_LAT, STORE_LNG, 150)
        request = make_request(device_latitude=lat, device_longitude=lng,
                               device_captured_at_ms=NOW_MS - 60_000)

        outcome = scoring_service.score_request(db, request.id, now_ms=NOW_MS)

        assert outcome["written"] is True
        db.refresh(request)
        assert request.auto_score == 100
        assert request.reasons == ["GEO_DEVICE_MATCH(150m)", "ROSTER_EMAIL_MATCH", "FRESH_CAPTURE"]
        assert request.distance_meters == 150
        assert request.location_source == "device"
        assert request.scored_at is not None

    def test_duplicate_delivery_skips_write(self, db, make_request):
        lat, lng = point_north(STORE_LAT, STORE_LNG, 600)
        request = make_request(exif_has_gps=True, exif_latitude=lat, exif_longitude=lng)

        first = scoring_service.score_request(db, request.id, now_ms=NOW_MS)
        db.refresh(request)
        scored_at = request.scored_at
        second = scoring_service.score_request(db, request.id, now_ms=NOW_MS)

        assert first["written"] is True
        assert second["written"] is False
        assert {k: v for k, v in first.items() if k != "written"} == \
            {k: v for k, v in second.items() if k != "written"}
        db.refresh(request)
        assert request.scored_at == scored_at

    def test_evidence_update_rescores(self, db, make_request):
        request = make_request()
        scoring_service.score_request(db, request.id, now_ms=NOW_MS)
        db.refresh(request)
        assert request.reasons[0] == "NO_GPS"

        lat, lng = point_north(STORE_LAT, STORE_LNG, 100)
        request.exif_has_gps = True
        request.exif_latitude = lat
        request.exif_longitude = lng
        db.commit()

        outcome = scoring_service.score_request(db, request.id, now_ms=NOW_MS)
        assert outcome["written"] is True
        assert outcome["reasons"][0] == "GEO_EXIF_MATCH(100m)"

    def test_exif_without_gps_is_ignored(self, db, make_request):
        request = make_request(exif_has_gps=False, exif_latitude=1.0, exif_longitude=1.0)
        outcome = scoring_service.score_request(db, request.id, now_ms=NOW_MS)
        assert outcome["reasons"][0] == "NO_GPS"

    def test_missing_store_id(self, db, make_request):
        request = make_request(store_id=None)
        outcome = scoring_service.score_request(db, request.id, now_ms=NOW_MS)
        assert outcome["auto_score"] == 0
        assert outcome["reasons"] == ["NO_STORE_ID"]

    def test_store_without_coordinates(self, db, make_request):
        db.add(Store(id="store-2", name="Pop-up"))
        db.commit()
        lat, lng = point_north(STORE_LAT, STORE_LNG, 10)
        request = make_request(store_id="store-2", device_latitude=lat, device_longitude=lng)

        outcome = scoring_service.score_request(db, request.id, now_ms=NOW_MS)

        assert outcome["reasons"] == ["NO_STORE_COORDS", "NO_ROSTER_HIT"]
        assert outcome["distance_meters"] is None

    def test_scoring_does_not_touch_status(self, db, make_request):
        request = make_request(status="needs_info")
        scoring_service.score_request(db, request.id, now_ms=NOW_MS)
        db.refresh(request)
        assert request.status == "needs_info"

    def test_unknown_request(self, db):
        with pytest.raises(RequestNotFoundError):
            scoring_service.score_request(db, "missing")


class TestScoringTask:
    """Test the Celery trigger adapter."""

    def test_task_scores_request(self, db, session_factory, make_request, monkeypatch):
        monkeypatch.setattr(tasks, "get_db_session", session_factory)
        request = make_request()

        outcome = tasks.score_verification_request(request.id)

        assert outcome["written"] is True
        fresh = session_factory()
        try:
            stored = fresh.get(VerificationRequest, request.id)
            assert stored.reasons == ["NO_GPS", "ROSTER_EMAIL_MATCH"]
            assert stored.auto_score == 30
        finally:
            fresh.close()

    def test_task_skips_unknown_request(self, session_factory, monkeypatch):
        monkeypatch.setattr(tasks, "get_db_session", session_factory)
        outcome = tasks.score_verification_request("missing")
        assert outcome["written"] is False
        assert "missing" in outcome["error"]
