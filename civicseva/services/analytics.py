"""
Dashboard rollups over the reports table.

Every function here only reads, except that each query run through
``run_query`` is recorded as an ``analytics_query`` event.
"""
import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from civicseva.config.settings import settings
from civicseva.database.models import AnalyticsEvent, Report, utcnow
from civicseva.utils.errors import ValidationError

logger = logging.getLogger(__name__)

DateRange = Tuple[Optional[datetime], Optional[datetime]]

RESOLVED_STATUSES = ("resolved", "closed")
SECONDS_PER_DAY = 60 * 60 * 24
TRENDING_SAMPLE_SIZE = 5
TRENDING_TOP_CATEGORIES = 10


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def normalize_range(date_range: Optional[DateRange]) -> Optional[DateRange]:
    if not date_range:
        return None
    start, end = (_naive_utc(value) for value in date_range)
    if start and end and start > end:
        raise ValidationError("Date range start must not be after its end")
    return start, end


def fetch_reports(db: Session, date_range: Optional[DateRange] = None) -> List[Report]:
    query = db.query(Report)
    date_range = normalize_range(date_range)
    if date_range:
        start, end = date_range
        if start is not None:
            query = query.filter(Report.created_at >= start)
        if end is not None:
            query = query.filter(Report.created_at <= end)
    return query.all()


def percentage(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0


def resolution_days(report: Report) -> float:
    return (report.updated_at - report.created_at).total_seconds() / SECONDS_PER_DAY


def average_resolution_days(reports: Iterable[Report]) -> float:
    durations = [resolution_days(r) for r in reports if r.status in RESOLVED_STATUSES]
    if not durations:
        return 0
    return round(sum(durations) / len(durations), 1)


def overview(db: Session, date_range: Optional[DateRange] = None) -> dict:
    reports = fetch_reports(db, date_range)
    total = len(reports)
    status_counts = Counter(r.status for r in reports)
    resolved = sum(status_counts[s] for s in RESOLVED_STATUSES)

    return {
        "total_reports": total,
        "status_counts": dict(status_counts),
        "priority_counts": dict(Counter(r.priority for r in reports)),
        "category_counts": dict(Counter(r.category for r in reports)),
        "resolution_rate": percentage(resolved, total),
        "avg_resolution_days": average_resolution_days(reports),
    }


def department_performance(db: Session, date_range: Optional[DateRange] = None) -> Dict[str, dict]:
    by_department = defaultdict(list)
    for report in fetch_reports(db, date_range):
        by_department[report.department or "Unknown"].append(report)

    stats = {}
    for department, reports in by_department.items():
        resolved = sum(1 for r in reports if r.status in RESOLVED_STATUSES)
        stats[department] = {
            "total": len(reports),
            "resolved": resolved,
            "resolution_rate": percentage(resolved, len(reports)),
            "avg_response_time": average_resolution_days(reports),
        }
    return stats


def citizen_satisfaction(db: Session, date_range: Optional[DateRange] = None) -> Optional[dict]:
    rated = [r for r in fetch_reports(db, date_range) if r.citizen_rating is not None]
    if not rated:
        return None

    by_department = defaultdict(list)
    for report in rated:
        by_department[report.department or "Unknown"].append(report.citizen_rating)

    return {
        "total_ratings": len(rated),
        "avg_rating": round(sum(r.citizen_rating for r in rated) / len(rated), 1),
        "rating_distribution": dict(Counter(r.citizen_rating for r in rated)),
        "department_ratings": {
            department: {
                "avg_rating": round(sum(ratings) / len(ratings), 1),
                "total_ratings": len(ratings),
            }
            for department, ratings in by_department.items()
        },
    }


def trending_issues(db: Session, date_range: Optional[DateRange] = None,
                    days: Optional[int] = None) -> Dict[str, dict]:
    """Categories ranked by report count, each with its newest sample reports.

    Without an explicit range the window is the last ``days`` days.
    """
    if not date_range:
        now = utcnow()
        date_range = (now - timedelta(days=days or settings.TRENDING_DAYS), now)

    by_category = defaultdict(list)
    for report in fetch_reports(db, date_range):
        by_category[report.category or "other"].append(report)

    ranked = sorted(by_category.items(), key=lambda item: len(item[1]), reverse=True)
    trends = {}
    for category, reports in ranked[:TRENDING_TOP_CATEGORIES]:
        newest = sorted(reports, key=lambda r: r.created_at, reverse=True)[:TRENDING_SAMPLE_SIZE]
        trends[category] = {
            "count": len(reports),
            "recent_reports": [
                {"title": r.title, "location": r.location_address, "date": r.created_at}
                for r in newest
            ],
        }
    return trends


QUERY_TYPES: Dict[str, Callable] = {
    "overview": overview,
    "department_performance": department_performance,
    "citizen_satisfaction": citizen_satisfaction,
    "trending_issues": trending_issues,
}


def record_query(db: Session, query_type: str, date_range: Optional[DateRange], **extra):
    """Audit trail for analytics reads; losing an audit row never fails the query."""
    metadata = {
        "query_type": query_type,
        "date_range": [value.isoformat() if value else None for value in date_range] if date_range else None,
        **extra,
    }
    try:
        db.add(AnalyticsEvent(event_type="analytics_query", event_metadata=metadata))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to record analytics query '{query_type}'")


def run_query(db: Session, query_type: str, date_range: Optional[DateRange] = None) -> dict:
    handler = QUERY_TYPES.get(query_type)
    if handler is None:
        raise ValidationError(f"Invalid analytics type: {query_type}")

    date_range = normalize_range(date_range)
    data = handler(db, date_range)
    record_query(db, query_type, date_range)
    return {
        "type": query_type,
        "data": data,
        "generated_at": datetime.now(timezone.utc),
    }


def dashboard(db: Session, date_range: Optional[DateRange] = None) -> dict:
    """All rollups at once. A failing section comes back as None."""
    date_range = normalize_range(date_range)
    sections = {}
    for name, handler in QUERY_TYPES.items():
        try:
            sections[name] = handler(db, date_range)
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Analytics section '{name}' failed")
            sections[name] = None

    record_query(db, "dashboard", date_range)
    return {
        **sections,
        "generated_at": datetime.now(timezone.utc),
    }
