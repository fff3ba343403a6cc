from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from civicseva.config.db import get_db
from civicseva.database.schemas import AnalyticsQuery
from civicseva.middleware.auth import Principal, get_current_staff
from civicseva.services import analytics

router = APIRouter()


@router.post("")
async def query_analytics(
    request: AnalyticsQuery,
    current_staff: Principal = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    date_range = request.date_range.as_tuple() if request.date_range else None
    return {"success": True, **analytics.run_query(db, request.type, date_range)}


@router.get("/dashboard")
async def get_dashboard(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    current_staff: Principal = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    date_range = (start, end) if start or end else None
    return analytics.dashboard(db, date_range)
