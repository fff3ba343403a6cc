"""
Notification dispatch.

Every notification is stored as a row; push and e-mail delivery are stubs that
log what would be sent; real providers plug in behind the same functions.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from civicseva.database.models import Notification, Report, AnalyticsEvent, NOTIFICATION_TYPES
from civicseva.utils.errors import NotFoundError, StoreError, ValidationError

logger = logging.getLogger(__name__)


def send_push_notification(title: str, message: str, user_id: str) -> bool:
    logger.info(f"Push notification to user {user_id}: {title} - {message}")
    return True


def send_email_notification(email: str, title: str, message: str, report_id) -> bool:
    logger.info(f"Email to {email}: {title} - {message} (Report: {report_id})")
    return True


def send_notification(
    db: Session,
    report_id,
    type: str,
    title: str,
    message: str,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
    push: bool = True,
    send_email: bool = True,
) -> dict:
    """Record a notification and attempt push/e-mail delivery.

    The reporter's e-mail on the report is used when no address is given.
    Delivery failures are logged and reported in the result, never raised.
    """
    if type not in NOTIFICATION_TYPES:
        raise ValidationError(f"Unknown notification type: {type}")
    if not title or not message:
        raise ValidationError("Notification title and message are required")

    try:
        report = db.get(Report, uuid.UUID(str(report_id)))
    except ValueError:
        report = None
    if report is None:
        raise NotFoundError("Report not found")

    target_email = email or report.reporter_email
    target_user = user_id or report.reporter_id

    notification = Notification(
        user_id=target_user,
        report_id=report.id,
        type=type,
        title=title,
        message=message,
    )
    db.add(notification)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Failed to create notification: {e}") from e
    db.refresh(notification)

    results = {"notification_created": True, "push_sent": False, "email_sent": False}

    if push and target_user:
        try:
            results["push_sent"] = send_push_notification(title, message, target_user)
        except Exception:
            logger.exception("Push notification failed")

    if send_email and target_email:
        try:
            results["email_sent"] = send_email_notification(target_email, title, message, report.id)
        except Exception:
            logger.exception("Email notification failed")

    notification.push_sent = results["push_sent"]
    notification.email_sent = results["email_sent"]
    db.add(AnalyticsEvent(
        event_type="notification_sent",
        report_id=report.id,
        event_metadata={
            "notification_type": type,
            "push_sent": results["push_sent"],
            "email_sent": results["email_sent"],
            "target_email": "provided" if target_email else "missing",
            "target_user_id": "provided" if target_user else "missing",
        },
    ))
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to record delivery state for notification {notification.id}")

    return {"notification_id": notification.id, **results}


def notify_quietly(db: Session, report_id, type: str, title: str, message: str, **kwargs) -> Optional[dict]:
    """Side-effect dispatch for workflows; a failure here must not undo the caller's write."""
    try:
        return send_notification(db, report_id, type, title, message, **kwargs)
    except Exception:
        logger.exception(f"Notification '{type}' for report {report_id} failed")
        return None


def list_notifications(db: Session, user_id: str, unread_only: bool = False, skip: int = 0, limit: int = 50):
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc()).offset(skip).limit(limit).all()


def mark_read(db: Session, notification_id, user_id: str) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Failed to update notification: {e}") from e
    db.refresh(notification)
    return notification
