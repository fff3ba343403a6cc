import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from civicseva.config.db import get_db
from civicseva.database.schemas import ReportOut, RoutingOut, StatusChange
from civicseva.middleware.auth import Principal, get_current_staff
from civicseva.services.events import ChangeFeed, get_feed
from civicseva.services.lifecycle import transition_report
from civicseva.services.routing import route_report

router = APIRouter()
logger = logging.getLogger(__name__)


@router.put("/reports/{report_id}/status", response_model=ReportOut)
async def update_report_status(
    report_id: uuid.UUID,
    request: StatusChange,
    current_staff: Principal = Depends(get_current_staff),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    logger.info(f"{current_staff.email} requested {request.status} for report {report_id}")
    return transition_report(
        db,
        report_id,
        request.status,
        message=request.message,
        assigned_to=request.assigned_to,
        author_name=current_staff.display_name,
        is_public=request.is_public,
        feed=feed,
    )


@router.post("/reports/{report_id}/route", response_model=RoutingOut)
async def reroute_report(
    report_id: uuid.UUID,
    current_staff: Principal = Depends(get_current_staff),
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    logger.info(f"{current_staff.email} re-routing report {report_id}")
    return route_report(db, report_id, feed=feed)
