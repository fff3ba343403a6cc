import base64
import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from civicseva.config.settings import settings
from civicseva.database.models import (
    Report, ReportUpdate, ReportMedia, CATEGORIES, PRIORITIES, STATUSES, MEDIA_TYPES, TERMINAL_STATUSES, utcnow,
)
from civicseva.services.events import ChangeFeed, publish, row_of
from civicseva.services.geocoding import Geocoder, enrich_address
from civicseva.services.notifications import notify_quietly
from civicseva.services.storage import upload_media_file
from civicseva.utils.errors import (
    ConflictError, InvalidTransitionError, NotFoundError, StoreError, ValidationError,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"\S+@\S+\.\S+")
SUBMITTED_MESSAGE = "Report submitted successfully. We will review and acknowledge within 24 hours."

# Columns a generic update may touch; status goes through the lifecycle module
UPDATABLE_FIELDS = {
    "title", "description", "category", "priority", "location_lat", "location_lng",
    "location_address", "reporter_name", "reporter_email", "reporter_phone",
    "department", "assigned_to",
}


def commit(db: Session, action: str):
    """Commit the session, translating store failures into service errors."""
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConflictError(f"Report was modified concurrently while trying to {action}") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Store failure while trying to {action}")
        raise StoreError(f"Failed to {action}: {e.__class__.__name__}") from e


def validate_fields(fields: dict):
    if "title" in fields and not (fields["title"] or "").strip():
        raise ValidationError("Title is required")
    if "category" in fields and fields["category"] not in CATEGORIES:
        raise ValidationError(f"Unknown category: {fields['category']}")
    if "priority" in fields and fields["priority"] not in PRIORITIES:
        raise ValidationError(f"Unknown priority: {fields['priority']}")
    lat = fields.get("location_lat")
    lng = fields.get("location_lng")
    if lat is not None and not -90 <= lat <= 90:
        raise ValidationError("Latitude must be between -90 and 90")
    if lng is not None and not -180 <= lng <= 180:
        raise ValidationError("Longitude must be between -180 and 180")
    email = fields.get("reporter_email")
    if email and not EMAIL_RE.fullmatch(email):
        raise ValidationError("Valid email is required")


def find_recent_duplicate(db: Session, reporter_email: str, title: str, since: datetime) -> Optional[Report]:
    return (
        db.query(Report)
        .filter(func.lower(Report.reporter_email) == reporter_email.lower())
        .filter(func.lower(Report.title) == title.strip().lower())
        .filter(Report.created_at >= since)
        .first()
    )


def create_report(
    db: Session,
    fields: dict,
    reporter=None,
    feed: Optional[ChangeFeed] = None,
    geocoder: Optional[Geocoder] = None,
) -> Report:
    """Insert a citizen submission with status submitted.

    ``reporter`` is the authenticated Principal, if any; its identity fills in
    missing reporter fields. Anonymous submissions need a name and e-mail.
    """
    fields = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS - {"department", "assigned_to"}}
    fields.setdefault("category", "other")
    fields.setdefault("priority", "medium")
    if "title" not in fields:
        raise ValidationError("Title is required")

    if reporter is not None:
        fields["reporter_email"] = fields.get("reporter_email") or reporter.email
        fields["reporter_name"] = fields.get("reporter_name") or reporter.display_name
    elif not fields.get("reporter_name") or not fields.get("reporter_email"):
        raise ValidationError("Name and email are required for anonymous reports")
    validate_fields(fields)
    fields["title"] = fields["title"].strip()

    if fields.get("reporter_email"):
        since = utcnow() - timedelta(hours=settings.DUPLICATE_WINDOW_HOURS)
        if find_recent_duplicate(db, fields["reporter_email"], fields["title"], since):
            raise ConflictError("Similar report recently submitted. Please avoid duplicate/spam submissions.")

    lat, lng = fields.get("location_lat"), fields.get("location_lng")
    if lat is not None and lng is not None and not fields.get("location_address"):
        fields["location_address"] = enrich_address(lat, lng, geocoder)

    report = Report(
        **fields,
        status="submitted",
        reporter_id=reporter.user_id if reporter is not None else None,
    )
    db.add(report)
    db.flush()
    update = ReportUpdate(
        report_id=report.id,
        status="submitted",
        message=SUBMITTED_MESSAGE,
        updated_by_name="System",
        is_public=True,
    )
    db.add(update)
    commit(db, "create report")
    db.refresh(report)
    logger.info(f"Report {report.id} submitted in category '{report.category}'")

    if report.reporter_id:
        notify_quietly(
            db, report.id, "report_submitted",
            "Report received",
            f"Your report '{report.title}' was submitted.",
        )

    publish(feed, "report_updates", "insert", row_of(update))
    publish(feed, "reports", "insert", row_of(report))
    # Insert subscribers (routing) may already have moved the row on
    db.refresh(report)
    return report


def as_uuid(value) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError("Report not found")


def get_report(db: Session, report_id) -> Report:
    report = db.get(Report, as_uuid(report_id))
    if report is None:
        raise NotFoundError("Report not found")
    return report


def update_report(db: Session, report_id, fields: dict, feed: Optional[ChangeFeed] = None) -> Report:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated directly: {', '.join(sorted(unknown))}")
    validate_fields(fields)

    report = get_report(db, report_id)
    # updated_at only moves with routing and status changes; resolution time is measured from it
    for key, value in fields.items():
        setattr(report, key, value)
    commit(db, "update report")
    db.refresh(report)
    publish(feed, "reports", "update", row_of(report))
    return report


def add_report_update(db: Session, report: Report, status: str, message: str,
                      author_name: str, is_public: bool = True) -> ReportUpdate:
    """Stage a status-log row in the caller's transaction."""
    if status not in STATUSES:
        raise ValidationError(f"Unknown status: {status}")
    update = ReportUpdate(
        report_id=report.id,
        status=status,
        message=message,
        updated_by_name=author_name,
        is_public=is_public,
    )
    db.add(update)
    return update


def append_report_update(db: Session, report_id, status: str, message: str, author_name: str,
                         is_public: bool = True, feed: Optional[ChangeFeed] = None) -> ReportUpdate:
    report = get_report(db, report_id)
    update = add_report_update(db, report, status, message, author_name, is_public)
    commit(db, "append report update")
    db.refresh(update)
    publish(feed, "report_updates", "insert", row_of(update))
    return update


def list_report_updates(db: Session, report_id, public_only: bool = True) -> List[ReportUpdate]:
    report = get_report(db, report_id)
    query = db.query(ReportUpdate).filter(ReportUpdate.report_id == report.id)
    if public_only:
        query = query.filter(ReportUpdate.is_public.is_(True))
    return query.order_by(ReportUpdate.created_at.desc()).all()


def query_reports(
    db: Session,
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    department: Optional[str] = None,
    reporter_id: Optional[str] = None,
    search: Optional[str] = None,
    date_range: Optional[Tuple[Optional[datetime], Optional[datetime]]] = None,
    skip: int = 0,
    limit: Optional[int] = 100,
) -> List[Report]:
    query = db.query(Report)
    if status:
        query = query.filter(Report.status == status)
    if category:
        query = query.filter(Report.category == category)
    if priority:
        query = query.filter(Report.priority == priority)
    if department:
        query = query.filter(Report.department == department)
    if reporter_id:
        query = query.filter(Report.reporter_id == reporter_id)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(
            func.lower(Report.title).like(pattern),
            func.lower(Report.description).like(pattern),
            func.lower(Report.location_address).like(pattern),
        ))
    if date_range:
        start, end = date_range
        if start is not None:
            query = query.filter(Report.created_at >= start)
        if end is not None:
            query = query.filter(Report.created_at <= end)

    query = query.order_by(Report.created_at.desc()).offset(skip)
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def list_media(db: Session, report_id) -> List[ReportMedia]:
    return (
        db.query(ReportMedia)
        .filter(ReportMedia.report_id == as_uuid(report_id))
        .order_by(ReportMedia.created_at)
        .all()
    )


def media_type_for(content_type: Optional[str]) -> str:
    kind = (content_type or "").split("/", 1)[0]
    if kind in MEDIA_TYPES:
        return kind
    raise ValidationError(f"Unsupported media type: {content_type}")


async def attach_media(db: Session, report_id, file, feed: Optional[ChangeFeed] = None) -> ReportMedia:
    """Store an uploaded photo or voice note and link it to the report.

    When storage is unavailable the content is embedded as a data URL so the
    evidence is never lost. Closed and rejected reports take no new media.
    """
    report = get_report(db, report_id)
    if report.status in TERMINAL_STATUSES:
        raise InvalidTransitionError(f"Cannot attach media to a {report.status} report")
    media_type = media_type_for(file.content_type)

    contents = await file.read()
    if len(contents) > settings.MAX_UPLOAD_BYTES:
        raise ValidationError(f"{file.filename} exceeds the {settings.MAX_UPLOAD_BYTES} byte upload limit")
    await file.seek(0)

    file_url = await upload_media_file(file, str(report.id))
    if not file_url:
        encoded = base64.b64encode(contents).decode("ascii")
        file_url = f"data:{file.content_type};base64,{encoded}"
        logger.warning(f"Storage upload failed for report {report.id}, embedded {file.filename} inline")

    media = ReportMedia(
        report_id=report.id,
        media_type=media_type,
        file_url=file_url,
        file_name=file.filename,
    )
    db.add(media)
    commit(db, "attach media")
    db.refresh(media)
    publish(feed, "report_media", "insert", row_of(media))
    return media

