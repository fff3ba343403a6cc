import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from civicseva.config.db import get_db
from civicseva.database.schemas import NotificationIn, NotificationOut
from civicseva.middleware.auth import Principal, get_current_staff, get_current_user
from civicseva.services import notifications

router = APIRouter()


@router.post("")
async def create_notification(
    request: NotificationIn,
    current_staff: Principal = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    result = notifications.send_notification(
        db,
        request.report_id,
        request.type,
        request.title,
        request.message,
        user_id=request.user_id,
        email=request.email,
        push=request.push_notification,
        send_email=request.email_notification,
    )
    return {"success": True, **result}


@router.get("", response_model=List[NotificationOut])
async def get_my_notifications(
    unread_only: bool = False,
    skip: int = 0,
    limit: int = 50,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return notifications.list_notifications(db, current_user.user_id, unread_only, skip, limit)


@router.patch("/{notification_id}/read", response_model=NotificationOut)
async def mark_notification_read(
    notification_id: uuid.UUID,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return notifications.mark_read(db, notification_id, current_user.user_id)
