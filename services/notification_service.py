"""
Notification sink: append-only per-user messages pointing at complaints.
"""
from typing import List, Optional
from sqlalchemy.orm import Session

from core.exceptions import NotFound
from database.models import Notification, NotificationType


class NotificationService:
    """Writes and reads the per-user notification log."""

    @staticmethod
    def notify(
        db: Session,
        user_id: str,
        notification_type: NotificationType,
        message: str,
        complaint_id: Optional[str] = None,
        commit: bool = True
    ) -> Notification:
        """
        Append a notification for user_id.

        With commit=False the row is only flushed, so it commits or rolls back
        with the caller's transaction.
        """
        notification = Notification(
            user_id=user_id,
            complaint_id=complaint_id,
            type=notification_type,
            message=message,
            is_read=False
        )
        db.add(notification)
        if commit:
            db.commit()
        else:
            db.flush()
        return notification

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50
    ) -> List[Notification]:
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)
        return query.order_by(Notification.created_at.desc()).limit(limit).all()

    @staticmethod
    def unread_count(db: Session, user_id: str) -> int:
        return db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).count()

    @staticmethod
    def mark_read(db: Session, user_id: str, notification_id: str) -> Notification:
        """Mark one of the user's notifications read. Other users' rows are NotFound."""
        notification = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if not notification:
            raise NotFound("Notification not found")
        notification.is_read = True
        db.commit()
        return notification

    @staticmethod
    def mark_all_read(db: Session, user_id: str) -> int:
        """Mark every unread notification read; returns how many changed."""
        updated = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).update({Notification.is_read: True}, synchronize_session=False)
        db.commit()
        return updated
