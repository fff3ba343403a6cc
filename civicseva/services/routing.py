import logging
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from civicseva.config.routing_rules import RoutingRule, load_routing_rules
from civicseva.config.settings import settings
from civicseva.database.models import AnalyticsEvent, utcnow
from civicseva.services.events import ChangeEvent, ChangeFeed, Subscription, publish, row_of
from civicseva.services.lifecycle import check_transition
from civicseva.services.reports import add_report_update, commit, get_report
from civicseva.utils.errors import CivicSevaError, InvalidTransitionError

logger = logging.getLogger(__name__)

PRIORITY_SCORES = {
    "low": 1,
    "medium": 2,
    "high": 3,
    "urgent": 4,
}
URGENT_KEYWORDS = ("emergency", "urgent", "immediate", "danger", "hazard", "accident")
KEYWORD_BOOST = 1.5
MAX_SCORE = 10.0

ROUTER_NAME = "Automated Routing System"
ROUTABLE_STATUSES = frozenset({"submitted", "acknowledged"})

_rules: Optional[Dict[str, RoutingRule]] = None


def get_routing_rules() -> Dict[str, RoutingRule]:
    global _rules
    if _rules is None:
        _rules = load_routing_rules(settings.ROUTING_RULES_PATH)
    return _rules


def priority_score(report, rules: Optional[Dict[str, RoutingRule]] = None) -> float:
    """Urgency score in [0, 10] for a report-like object.

    Reads ``category``, ``priority``, ``title`` and ``description``.
    """
    rules = get_routing_rules() if rules is None else rules
    rule = rules.get(report.category)
    base = PRIORITY_SCORES.get(report.priority, 2)
    multiplier = rule.priority_multiplier if rule else 1

    text = f"{report.title or ''} {report.description or ''}".lower()
    score = base * multiplier
    if any(keyword in text for keyword in URGENT_KEYWORDS):
        score *= KEYWORD_BOOST

    return max(0.0, min(float(score), MAX_SCORE))


def tier_for_score(score: float) -> str:
    if score >= 8:
        return "urgent"
    if score >= 6:
        return "high"
    if score >= 4:
        return "medium"
    return "low"


def determine_assignment(report, rules: Optional[Dict[str, RoutingRule]] = None) -> dict:
    rules = get_routing_rules() if rules is None else rules
    rule = rules.get(report.category)
    if rule is None:
        return {
            "department": "General",
            "assignee": "General Admin",
            "priority": report.priority,
        }

    score = priority_score(report, rules)
    return {
        "department": rule.department,
        "assignee": rule.default_assignee or f"{rule.department} Team",
        "priority": tier_for_score(score),
    }


def route_report(db: Session, report_id, rules: Optional[Dict[str, RoutingRule]] = None,
                 feed: Optional[ChangeFeed] = None) -> dict:
    """Assign department, assignee and priority, and acknowledge the report.

    The report row, its status log entry and the routing audit event are
    committed together; on failure nothing is written and the report keeps
    its previous state.
    """
    rules = get_routing_rules() if rules is None else rules
    report = get_report(db, report_id)
    if report.status not in ROUTABLE_STATUSES:
        raise InvalidTransitionError(f"Cannot route a report that is {report.status}")
    check_transition(report.status, "acknowledged")

    assignment = determine_assignment(report, rules)
    score = priority_score(report, rules)
    original_priority = report.priority

    report.department = assignment["department"]
    report.assigned_to = assignment["assignee"]
    report.priority = assignment["priority"]
    report.status = "acknowledged"
    report.updated_at = utcnow()
    update = add_report_update(
        db, report, "acknowledged",
        f"Report has been acknowledged and assigned to {assignment['department']}. "
        f"Priority level: {assignment['priority']}.",
        ROUTER_NAME,
    )
    db.add(AnalyticsEvent(
        event_type="report_routed",
        report_id=report.id,
        department=assignment["department"],
        category=report.category,
        event_metadata={
            "original_priority": original_priority,
            "assigned_priority": assignment["priority"],
            "assignee": assignment["assignee"],
            "routing_score": score,
        },
    ))
    commit(db, "route report")
    db.refresh(report)

    logger.info(
        f"Routed report {report.id} to {assignment['department']} "
        f"({assignment['assignee']}), priority {original_priority} -> {assignment['priority']}, score {score:.2f}"
    )
    publish(feed, "reports", "update", row_of(report))
    publish(feed, "report_updates", "insert", row_of(update))
    return assignment


def register_auto_routing(feed: ChangeFeed, session_factory: Callable[[], Session]) -> Subscription:
    """Route every newly inserted report.

    A failed routing is logged and leaves the report submitted for manual follow-up.
    """

    def on_report_created(event: ChangeEvent):
        db = session_factory()
        try:
            route_report(db, event.row["id"], feed=feed)
        except CivicSevaError as e:
            logger.warning(f"Automatic routing failed for report {event.row.get('id')}: {e.message}")
        finally:
            db.close()

    return feed.subscribe(on_report_created, table="reports", event_types=["insert"])
