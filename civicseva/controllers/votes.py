import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from civicseva.config.db import get_db
from civicseva.database.schemas import VoteSummary
from civicseva.middleware.auth import Principal, get_current_user, get_optional_user
from civicseva.services import votes
from civicseva.services.events import ChangeFeed, get_feed

router = APIRouter()


@router.get("/{report_id}/vote", response_model=VoteSummary)
async def get_votes(
    report_id: uuid.UUID,
    current_user: Optional[Principal] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    return votes.vote_summary(db, report_id, current_user.user_id if current_user else None)


@router.post("/{report_id}/vote", response_model=VoteSummary)
async def upvote_report(
    report_id: uuid.UUID,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    votes.upvote(db, report_id, current_user.user_id, current_user.email, feed=feed)
    return votes.vote_summary(db, report_id, current_user.user_id)


@router.delete("/{report_id}/vote", response_model=VoteSummary)
async def remove_vote(
    report_id: uuid.UUID,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    votes.remove_vote(db, report_id, current_user.user_id, feed=feed)
    return votes.vote_summary(db, report_id, current_user.user_id)
