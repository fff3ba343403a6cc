import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from civicseva.config.settings import settings
from civicseva.database.models import ReportVote
from civicseva.services.events import ChangeFeed, publish, row_of
from civicseva.services.reports import as_uuid, commit, get_report
from civicseva.utils.errors import StoreError

logger = logging.getLogger(__name__)


def is_community_verified(count: int) -> bool:
    return count >= settings.COMMUNITY_VERIFIED_THRESHOLD


def count_votes(db: Session, report_id) -> int:
    return db.query(func.count(ReportVote.id)).filter(ReportVote.report_id == as_uuid(report_id)).scalar() or 0


def vote_counts(db: Session, report_ids: Iterable) -> Dict[str, int]:
    """Vote totals for many reports in one query; reports without votes map to 0."""
    ids = [as_uuid(report_id) for report_id in report_ids]
    counts = {str(report_id): 0 for report_id in ids}
    if not ids:
        return counts
    rows = (
        db.query(ReportVote.report_id, func.count(ReportVote.id))
        .filter(ReportVote.report_id.in_(ids))
        .group_by(ReportVote.report_id)
        .all()
    )
    for report_id, count in rows:
        counts[str(report_id)] = count
    return counts


def has_voted(db: Session, report_id, voter_id: str) -> bool:
    return db.query(ReportVote.id).filter(
        ReportVote.report_id == as_uuid(report_id),
        ReportVote.voter_id == voter_id,
    ).first() is not None


def upvote(db: Session, report_id, voter_id: str, voter_email: Optional[str] = None,
           feed: Optional[ChangeFeed] = None) -> bool:
    """Add the voter's vote. Returns False when the vote already existed.

    The unique (report_id, voter_id) constraint is the source of truth, so two
    racing upvotes from one voter still leave a single row.
    """
    report = get_report(db, report_id)
    vote = ReportVote(report_id=report.id, voter_id=voter_id, voter_email=voter_email)
    db.add(vote)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.debug(f"Voter {voter_id} already voted on report {report.id}")
        return False
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Failed to record vote: {e.__class__.__name__}") from e
    publish(feed, "report_votes", "insert", row_of(vote))
    return True


def remove_vote(db: Session, report_id, voter_id: str, feed: Optional[ChangeFeed] = None) -> bool:
    """Withdraw the voter's vote. Returns False when there was nothing to remove."""
    report = get_report(db, report_id)
    vote = db.query(ReportVote).filter(
        ReportVote.report_id == report.id,
        ReportVote.voter_id == voter_id,
    ).first()
    if vote is None:
        return False

    row = row_of(vote)
    db.delete(vote)
    commit(db, "remove vote")
    publish(feed, "report_votes", "delete", row)
    return True


def vote_summary(db: Session, report_id, voter_id: Optional[str] = None) -> dict:
    report = get_report(db, report_id)
    count = count_votes(db, report.id)
    return {
        "report_id": report.id,
        "votes": count,
        "has_voted": bool(voter_id) and has_voted(db, report.id, voter_id),
        "community_verified": is_community_verified(count),
    }
