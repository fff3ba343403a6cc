import asyncio
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from civicseva.config.db import get_db
from civicseva.database.schemas import (
    ReportCreate, ReportOut, ReportDetail, ReportUpdateOut, ReportMediaOut, FeedbackIn,
    Category, Priority, Status,
)
from civicseva.middleware.auth import Principal, get_current_user, get_optional_user
from civicseva.services import reports as report_service
from civicseva.services.events import ChangeFeed, get_feed
from civicseva.services.lifecycle import submit_feedback
from civicseva.services.votes import vote_counts, vote_summary

router = APIRouter()
logger = logging.getLogger(__name__)


def report_out(report, votes: int = 0) -> ReportOut:
    return ReportOut.model_validate(report).model_copy(update={"vote_count": votes})


def with_votes(db: Session, reports) -> List[ReportOut]:
    counts = vote_counts(db, [r.id for r in reports])
    return [report_out(r, counts[str(r.id)]) for r in reports]


@router.post("", response_model=ReportOut, status_code=status.HTTP_201_CREATED)
async def create_report(
    request: ReportCreate,
    current_user: Optional[Principal] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    report = report_service.create_report(db, request.model_dump(exclude_none=True), reporter=current_user, feed=feed)
    return report_out(report)


@router.get("", response_model=List[ReportOut])
async def list_reports(
    status: Optional[Status] = None,
    category: Optional[Category] = None,
    priority: Optional[Priority] = None,
    department: Optional[str] = None,
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    reports = report_service.query_reports(
        db, status=status, category=category, priority=priority,
        department=department, search=search, skip=skip, limit=min(limit, 500),
    )
    return with_votes(db, reports)


@router.get("/mine", response_model=List[ReportOut])
async def get_user_reports(
    skip: int = 0,
    limit: int = 100,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    reports = report_service.query_reports(db, reporter_id=current_user.user_id, skip=skip, limit=limit)
    return with_votes(db, reports)


@router.get("/{report_id}", response_model=ReportDetail)
async def get_report(
    report_id: uuid.UUID,
    current_user: Optional[Principal] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    report = report_service.get_report(db, report_id)
    staff = current_user is not None and current_user.is_staff
    summary = vote_summary(db, report.id, current_user.user_id if current_user else None)
    return {
        "report": report_out(report, summary["votes"]),
        "updates": report_service.list_report_updates(db, report.id, public_only=not staff),
        "media": report_service.list_media(db, report.id),
        "votes": summary,
    }


@router.get("/{report_id}/updates", response_model=List[ReportUpdateOut])
async def get_report_updates(
    report_id: uuid.UUID,
    current_user: Optional[Principal] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    staff = current_user is not None and current_user.is_staff
    return report_service.list_report_updates(db, report_id, public_only=not staff)


@router.post("/{report_id}/media", response_model=List[ReportMediaOut], status_code=status.HTTP_201_CREATED)
async def upload_report_media(
    report_id: uuid.UUID,
    files: List[UploadFile] = File(...),
    current_user: Optional[Principal] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    if not files:
        raise HTTPException(status_code=400, detail="At least one file is required")

    report = report_service.get_report(db, report_id)
    if report.reporter_id and not (
        current_user is not None and (current_user.is_staff or current_user.user_id == report.reporter_id)
    ):
        raise HTTPException(status_code=403, detail="Only the reporter or staff can add media to this report")

    uploaded = []
    for file in files:
        uploaded.append(await report_service.attach_media(db, report_id, file, feed=feed))
    return uploaded


@router.post("/{report_id}/feedback", response_model=ReportOut)
async def give_feedback(
    report_id: uuid.UUID,
    request: FeedbackIn,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    report = report_service.get_report(db, report_id)
    if report.reporter_id and report.reporter_id != current_user.user_id:
        raise HTTPException(status_code=403, detail="Only the reporter can rate this report")

    report = submit_feedback(db, report.id, request.rating, request.comment, feed=feed)
    return report_out(report)


@router.websocket("/{report_id}/events")
async def report_events(websocket: WebSocket, report_id: uuid.UUID):
    """Stream changes to one report, its status log, media and votes."""
    feed: ChangeFeed = websocket.app.state.feed

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def forward(event):
        loop.call_soon_threadsafe(queue.put_nowait, event)

    with feed.subscribe(forward, report_id=str(report_id)):
        await websocket.accept()
        # Wait on the client too, so a disconnect ends the stream even when no events arrive
        receive_task = asyncio.create_task(websocket.receive())
        try:
            while True:
                event_task = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({receive_task, event_task}, return_when=asyncio.FIRST_COMPLETED)
                if receive_task in done:
                    if receive_task.result()["type"] == "websocket.disconnect":
                        event_task.cancel()
                        break
                    receive_task = asyncio.create_task(websocket.receive())
                if event_task not in done:
                    event_task.cancel()
                    continue

                event = event_task.result()
                await websocket.send_json(jsonable_encoder({
                    "table": event.table,
                    "event_type": event.event_type,
                    "row": event.row,
                }))
        except WebSocketDisconnect:
            pass
        finally:
            receive_task.cancel()
    logger.info(f"Event stream for report {report_id} closed")
