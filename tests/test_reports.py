from datetime import timedelta

import pytest
import requests

from civicseva.database.models import Notification, ReportMedia, utcnow
from civicseva.services.analytics import overview
from civicseva.services.geocoding import Geocoder, NominatimGeocoder, OfflineGeocoder, enrich_address
from civicseva.services.reports import (
    append_report_update, create_report, list_media, list_report_updates, query_reports, update_report,
)
from civicseva.utils.errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError


class BrokenGeocoder(Geocoder):
    name = "broken"

    def reverse(self, latitude, longitude):
        raise ExternalServiceError("service unavailable")


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.exceptions.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


def test_anonymous_report_starts_submitted_with_log(db):
    report = create_report(db, {
        "title": "  Streetlight flickering ",
        "category": "lighting",
        "reporter_name": "Meera",
        "reporter_email": "meera@example.com",
    })
    assert report.status == "submitted"
    assert report.title == "Streetlight flickering"
    assert report.department is None
    assert report.reporter_id is None

    updates = list_report_updates(db, report.id)
    assert len(updates) == 1
    assert updates[0].updated_by_name == "System"
    assert updates[0].status == "submitted"


def test_anonymous_report_needs_contact_details(db):
    with pytest.raises(ValidationError):
        create_report(db, {"title": "Noise at night", "category": "noise"})


def test_authenticated_reporter_fills_identity_and_is_notified(db, citizen):
    report = create_report(db, {"title": "Garbage pile", "category": "sanitation"}, reporter=citizen)
    assert report.reporter_id == "citizen-1"
    assert report.reporter_email == "asha@example.com"
    assert report.reporter_name == "Asha Rao"
    assert db.query(Notification).filter_by(report_id=report.id, type="report_submitted").count() == 1


@pytest.mark.parametrize("fields", [
    {"title": "   "},
    {"title": "Leak", "category": "parking"},
    {"title": "Leak", "priority": "critical"},
    {"title": "Leak", "location_lat": 91.0, "location_lng": 10.0},
    {"title": "Leak", "reporter_email": "not-an-email"},
])
def test_invalid_submissions(db, citizen, fields):
    with pytest.raises(ValidationError):
        create_report(db, fields, reporter=citizen)


def test_duplicate_title_from_same_email_is_refused(db, citizen):
    create_report(db, {"title": "Pothole near school", "category": "roads"}, reporter=citizen)
    with pytest.raises(ConflictError):
        create_report(db, {"title": "POTHOLE NEAR SCHOOL", "category": "roads"}, reporter=citizen)


def test_duplicate_window_expires(db, citizen, make_report):
    make_report(title="Pothole near school", created_at=utcnow() - timedelta(hours=13))
    report = create_report(db, {"title": "Pothole near school", "category": "roads"}, reporter=citizen)
    assert report.status == "submitted"


def test_coordinates_are_geocoded(db, citizen):
    report = create_report(
        db, {"title": "Fallen tree", "category": "parks", "location_lat": 12.9716, "location_lng": 77.5946},
        reporter=citizen, geocoder=OfflineGeocoder(),
    )
    assert report.location_address == "12.971600, 77.594600"


def test_geocoder_outage_falls_back_to_coordinates(db, citizen):
    report = create_report(
        db, {"title": "Fallen tree", "category": "parks", "location_lat": 12.5, "location_lng": 77.25},
        reporter=citizen, geocoder=BrokenGeocoder(),
    )
    assert report.location_address == "12.500000, 77.250000"


def test_given_address_is_not_overwritten(db, citizen):
    report = create_report(
        db, {"title": "Fallen tree", "category": "parks", "location_lat": 12.5, "location_lng": 77.25,
             "location_address": "MG Road"},
        reporter=citizen, geocoder=BrokenGeocoder(),
    )
    assert report.location_address == "MG Road"


def test_nominatim_geocoder_reads_display_name():
    session = FakeSession(FakeResponse({"display_name": "MG Road, Bengaluru"}))
    geocoder = NominatimGeocoder("https://geo.example/reverse", session=session)
    assert geocoder.reverse(12.97, 77.59) == "MG Road, Bengaluru"
    assert session.calls[0][1]["params"]["lat"] == 12.97


@pytest.mark.parametrize("session", [
    FakeSession(error=requests.exceptions.ConnectionError("offline")),
    FakeSession(FakeResponse({}, status=503)),
    FakeSession(FakeResponse({})),
])
def test_nominatim_failures_degrade(session):
    geocoder = NominatimGeocoder("https://geo.example/reverse", session=session)
    with pytest.raises(ExternalServiceError):
        geocoder.reverse(1.0, 2.0)
    assert enrich_address(1.0, 2.0, geocoder) == "1.000000, 2.000000"


def test_updates_are_listed_newest_first_and_filtered(db, make_report):
    report = make_report()
    append_report_update(db, report.id, "submitted", "first", "System")
    append_report_update(db, report.id, "submitted", "internal note", "Officer", is_public=False)
    append_report_update(db, report.id, "submitted", "third", "System")

    assert [u.message for u in list_report_updates(db, report.id)] == ["third", "first"]
    assert [u.message for u in list_report_updates(db, report.id, public_only=False)] == [
        "third", "internal note", "first",
    ]


def test_update_report_rejects_status_changes(db, make_report):
    report = make_report()
    with pytest.raises(ValidationError):
        update_report(db, report.id, {"status": "closed"})
    updated = update_report(db, report.id, {"description": "Two lights out"})
    assert updated.description == "Two lights out"


def test_update_missing_report(db):
    with pytest.raises(NotFoundError):
        update_report(db, "00000000-0000-0000-0000-000000000000", {"title": "x"})


def test_query_reports_filters(db, make_report):
    make_report(category="roads", title="Pothole on 5th", department="Public Works")
    make_report(category="water", title="Pipe burst", status="in_progress")
    make_report(category="roads", title="Broken signal", age_days=3)

    assert len(query_reports(db, category="roads")) == 2
    assert [r.title for r in query_reports(db, search="pothole")] == ["Pothole on 5th"]
    assert [r.title for r in query_reports(db, status="in_progress")] == ["Pipe burst"]
    assert len(query_reports(db, department="Public Works")) == 1
    assert query_reports(db, category="roads")[0].title == "Pothole on 5th"
    recent = query_reports(db, date_range=(utcnow() - timedelta(days=1), None))
    assert {r.title for r in recent} == {"Pothole on 5th", "Pipe burst"}


def test_report_ids_may_be_given_as_strings(db, make_report):
    report = make_report()
    append_report_update(db, str(report.id), "submitted", "logged", "System")
    db.add(ReportMedia(report_id=report.id, media_type="image", file_url="https://cdn.example/p.jpg"))
    db.commit()

    assert [u.message for u in list_report_updates(db, str(report.id))] == ["logged"]
    assert len(list_media(db, str(report.id))) == 1


def test_editing_fields_keeps_resolution_time(db, make_report):
    created = utcnow() - timedelta(days=20)
    report = make_report(status="resolved", created_at=created, updated_at=created + timedelta(days=2))
    assert overview(db)["avg_resolution_days"] == 2.0

    update_report(db, report.id, {"description": "typo fix"})

    assert report.updated_at == created + timedelta(days=2)
    assert overview(db)["avg_resolution_days"] == 2.0
