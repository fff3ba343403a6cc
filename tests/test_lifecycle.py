import pytest

from civicseva.config.db import SessionLocal
from civicseva.database.models import Notification, ReportUpdate
from civicseva.services.lifecycle import can_transition, submit_feedback, transition_report
from civicseva.services.notifications import send_notification
from civicseva.services.reports import get_report, list_report_updates
from civicseva.utils.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError


def test_transition_updates_report_and_logs_once(db, make_report):
    report = make_report(status="acknowledged")
    before = report.updated_at

    updated = transition_report(db, report.id, "in_progress", message="Crew dispatched", author_name="Ward Officer")

    assert updated.status == "in_progress"
    assert updated.updated_at >= before
    updates = list_report_updates(db, report.id)
    assert len(updates) == 1
    assert updates[0].status == "in_progress"
    assert updates[0].message == "Crew dispatched"
    assert updates[0].updated_by_name == "Ward Officer"


def test_default_message(db, make_report):
    report = make_report()
    transition_report(db, report.id, "acknowledged")
    assert list_report_updates(db, report.id)[0].message == "Status updated to acknowledged"


def test_assignee_is_kept_unless_given(db, make_report):
    report = make_report(status="acknowledged", assigned_to="Sarah Johnson - Utilities")
    transition_report(db, report.id, "in_progress")
    assert report.assigned_to == "Sarah Johnson - Utilities"
    transition_report(db, report.id, "in_progress", assigned_to="Night Crew")
    assert report.assigned_to == "Night Crew"


def test_repeating_a_status_logs_every_time(db, make_report):
    report = make_report(status="acknowledged")
    transition_report(db, report.id, "in_progress")
    transition_report(db, report.id, "in_progress", message="Still on it")
    updates = list_report_updates(db, report.id)
    assert [u.message for u in updates] == ["Still on it", "Status updated to in_progress"]


@pytest.mark.parametrize("terminal", ["closed", "rejected"])
@pytest.mark.parametrize("target", ["acknowledged", "in_progress", "resolved"])
def test_terminal_states_cannot_be_left(db, make_report, terminal, target):
    report = make_report(status=terminal)
    with pytest.raises(InvalidTransitionError):
        transition_report(db, report.id, target)
    assert db.query(ReportUpdate).filter_by(report_id=report.id).count() == 0


@pytest.mark.parametrize("current", ["submitted", "acknowledged", "resolved", "closed"])
def test_submitted_is_never_reentered(db, make_report, current):
    report = make_report(status=current)
    with pytest.raises(InvalidTransitionError):
        transition_report(db, report.id, "submitted")


def test_resolved_can_be_reopened_or_closed():
    assert can_transition("resolved", "in_progress")
    assert can_transition("resolved", "closed")
    assert can_transition("submitted", "rejected")
    assert not can_transition("rejected", "closed")


def test_unknown_status(db, make_report):
    report = make_report()
    with pytest.raises(ValidationError):
        transition_report(db, report.id, "archived")


def test_missing_report(db):
    with pytest.raises(NotFoundError):
        transition_report(db, "not-a-uuid", "acknowledged")


def test_reporter_is_notified(db, make_report):
    report = make_report(status="in_progress", reporter_id="citizen-1")
    transition_report(db, report.id, "resolved")

    notification = db.query(Notification).filter_by(report_id=report.id).one()
    assert notification.type == "resolution"
    assert notification.user_id == "citizen-1"
    assert notification.email_sent is True


def test_assignment_notification(db, make_report):
    report = make_report(status="acknowledged", reporter_id="citizen-1")
    transition_report(db, report.id, "in_progress", assigned_to="Tom Wilson - Parks")
    assert db.query(Notification).filter_by(report_id=report.id).one().type == "assignment"


def test_notification_failure_does_not_undo_transition(db, make_report, monkeypatch):
    from civicseva.services import notifications

    def broken(*args, **kwargs):
        raise RuntimeError("mail server down")

    monkeypatch.setattr(notifications, "send_notification", broken)
    report = make_report(status="acknowledged")
    transition_report(db, report.id, "in_progress")
    assert report.status == "in_progress"


def test_feedback_after_resolution(db, make_report):
    report = make_report(status="resolved")
    updated_at = report.updated_at
    submit_feedback(db, report.id, 4, "Fixed quickly")
    assert report.citizen_rating == 4
    assert report.citizen_feedback == "Fixed quickly"
    assert report.updated_at == updated_at


def test_feedback_before_resolution_is_refused(db, make_report):
    report = make_report(status="in_progress")
    with pytest.raises(InvalidTransitionError):
        submit_feedback(db, report.id, 5)


@pytest.mark.parametrize("rating", [0, 6])
def test_feedback_rating_range(db, make_report, rating):
    report = make_report(status="closed")
    with pytest.raises(ValidationError):
        submit_feedback(db, report.id, rating)


def test_stale_writer_gets_a_conflict(db, make_report):
    report = make_report(status="acknowledged")
    assert report.version == 1

    other = SessionLocal()
    try:
        transition_report(other, report.id, "in_progress", notify=False)
    finally:
        other.close()

    with pytest.raises(ConflictError):
        transition_report(db, report.id, "resolved", notify=False)

    db.expire_all()
    current = get_report(db, report.id)
    assert current.status == "in_progress"
    assert current.version == 2
    assert [u.status for u in list_report_updates(db, report.id)] == ["in_progress"]


def test_notifications_accept_string_report_ids(db, make_report):
    report = make_report(reporter_id="citizen-1")
    result = send_notification(db, str(report.id), "status_update", "Update", "Crew on site")
    assert result["push_sent"] is True
    with pytest.raises(NotFoundError):
        send_notification(db, "not-a-report", "status_update", "Update", "Crew on site")
