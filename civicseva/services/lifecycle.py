"""
Report lifecycle.

    submitted -> acknowledged -> in_progress -> resolved/rejected -> closed

Once a report leaves ``submitted`` it may move freely among acknowledged,
in_progress, resolved, closed and rejected, with two exceptions: ``submitted``
is never re-entered and ``closed``/``rejected`` are terminal. Re-applying the
current status is allowed and logs another update row each time.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from civicseva.database.models import Report, STATUSES, utcnow
from civicseva.services.events import ChangeFeed, publish, row_of
from civicseva.services.notifications import notify_quietly
from civicseva.services.reports import add_report_update, commit, get_report
from civicseva.utils.errors import InvalidTransitionError, ValidationError

logger = logging.getLogger(__name__)

INITIAL_STATUS = "submitted"
RESOLVED_STATUSES = frozenset({"resolved", "closed"})
WORKING_STATUSES = frozenset({"acknowledged", "in_progress", "resolved", "closed", "rejected"})

TRANSITIONS = {
    "submitted": WORKING_STATUSES,
    "acknowledged": WORKING_STATUSES,
    "in_progress": WORKING_STATUSES,
    "resolved": WORKING_STATUSES,
    "closed": frozenset({"closed"}),
    "rejected": frozenset({"rejected"}),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def check_transition(current: str, target: str):
    if target not in STATUSES:
        raise ValidationError(f"Unknown status: {target}")
    if target == INITIAL_STATUS:
        raise InvalidTransitionError("A report cannot return to submitted")
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot move a {current} report to {target}")


def default_message(status: str) -> str:
    return f"Status updated to {status}"


def notification_for(report: Report, status: str, assignee_changed: bool):
    if status in RESOLVED_STATUSES:
        return "resolution", "Report resolved", f"Your report '{report.title}' has been marked {status}."
    if assignee_changed:
        return "assignment", "Report assigned", f"Your report '{report.title}' is now handled by {report.assigned_to}."
    return "status_update", "Report status updated", f"Your report '{report.title}' is now {status}."


def transition_report(
    db: Session,
    report_id,
    status: str,
    message: Optional[str] = None,
    assigned_to: Optional[str] = None,
    author_name: str = "Admin User",
    is_public: bool = True,
    feed: Optional[ChangeFeed] = None,
    notify: bool = True,
) -> Report:
    """Move a report to ``status`` and log exactly one update row.

    The report change and the log row commit together.
    """
    report = get_report(db, report_id)
    previous = report.status
    check_transition(previous, status)

    assignee_changed = bool(assigned_to) and assigned_to != report.assigned_to
    report.status = status
    if assigned_to:
        report.assigned_to = assigned_to
    report.updated_at = utcnow()
    update = add_report_update(db, report, status, message or default_message(status), author_name, is_public)
    commit(db, "update report status")
    db.refresh(report)

    logger.info(f"Report {report.id} moved {previous} -> {status} by {author_name}")
    publish(feed, "reports", "update", row_of(report))
    publish(feed, "report_updates", "insert", row_of(update))

    if notify:
        kind, title, body = notification_for(report, status, assignee_changed)
        notify_quietly(db, report.id, kind, title, body)
    return report


def submit_feedback(db: Session, report_id, rating: int, comment: Optional[str] = None,
                    feed: Optional[ChangeFeed] = None) -> Report:
    """Record the citizen's rating of how their report was handled."""
    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")

    report = get_report(db, report_id)
    if report.status not in RESOLVED_STATUSES:
        raise InvalidTransitionError("Feedback can only be given once a report is resolved or closed")

    report.citizen_rating = rating
    report.citizen_feedback = comment
    commit(db, "save feedback")
    db.refresh(report)
    publish(feed, "reports", "update", row_of(report))
    return report
