"""
Notification APIs: the caller's own notification log.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.models import User, Notification
from auth.dependencies import get_db_session, get_current_user
from services.notification_service import NotificationService


router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _notification_dict(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "type": notification.type.value,
        "message": notification.message,
        "complaintId": notification.complaint_id,
        "isRead": notification.is_read,
        "createdAt": notification.created_at.isoformat()
    }


@router.get("", response_model=dict)
async def list_notifications(
    unread: Optional[bool] = Query(None, description="Only unread notifications"),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    notifications = NotificationService.list_for_user(
        db, current_user.id, unread_only=bool(unread), limit=limit
    )
    return {
        "data": [_notification_dict(n) for n in notifications],
        "unreadCount": NotificationService.unread_count(db, current_user.id)
    }


@router.get("/count", response_model=dict)
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return {"unreadCount": NotificationService.unread_count(db, current_user.id)}


@router.post("/read-all", response_model=dict)
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    updated = NotificationService.mark_all_read(db, current_user.id)
    return {"success": True, "updated": updated}


@router.post("/{notification_id}/read", response_model=dict)
async def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    notification = NotificationService.mark_read(db, current_user.id, notification_id)
    return _notification_dict(notification)
