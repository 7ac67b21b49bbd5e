"""
Call-state store.

A call record is *live* when its status is active and expires_at is still in
the future. Every reader goes through live_condition() so expired rows that
the sweeper has not reached yet are never reported as active.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_
from sqlalchemy.orm import Session

from database.models import VideoCall, Complaint, CallStatus, CallProviderKind


def live_condition(now: datetime):
    return and_(VideoCall.status == CallStatus.ACTIVE, VideoCall.expires_at > now)


class CallStore:
    """Data access for VideoCall rows."""

    @staticmethod
    def get(db: Session, call_id: str) -> Optional[VideoCall]:
        return db.query(VideoCall).filter(VideoCall.id == call_id).first()

    @staticmethod
    def live_for_complaint(db: Session, complaint_id: str, now: datetime) -> Optional[VideoCall]:
        """Newest live call for a complaint, or None."""
        return db.query(VideoCall).filter(
            VideoCall.complaint_id == complaint_id,
            live_condition(now)
        ).order_by(VideoCall.created_at.desc()).first()

    @staticmethod
    def live_for_student(db: Session, student_id: str, now: datetime) -> Optional[Tuple[VideoCall, Complaint]]:
        """Newest live call across a student's complaints, with its complaint."""
        return db.query(VideoCall, Complaint).join(
            Complaint, VideoCall.complaint_id == Complaint.id
        ).filter(
            Complaint.student_id == student_id,
            live_condition(now)
        ).order_by(VideoCall.created_at.desc()).first()

    @staticmethod
    def all_live(db: Session, now: datetime) -> List[Tuple[VideoCall, Complaint]]:
        return db.query(VideoCall, Complaint).join(
            Complaint, VideoCall.complaint_id == Complaint.id
        ).filter(live_condition(now)).order_by(VideoCall.created_at.desc()).all()

    @staticmethod
    def count_active(db: Session, complaint_id: str) -> int:
        """Rows stored as active, expired or not."""
        return db.query(VideoCall).filter(
            VideoCall.complaint_id == complaint_id,
            VideoCall.status == CallStatus.ACTIVE
        ).count()

    @staticmethod
    def replace_active(
        db: Session,
        complaint_id: str,
        provider: CallProviderKind,
        room_id: str,
        room_url: Optional[str],
        expires_at: datetime,
        initiated_by_admin: bool,
        initiated_by: Optional[str],
        now: datetime
    ) -> VideoCall:
        """
        End every active row for the complaint and insert the new active one.

        Only flushes; the caller owns the transaction. The partial unique index
        raises IntegrityError at flush if a concurrent insert won.
        """
        db.query(VideoCall).filter(
            VideoCall.complaint_id == complaint_id,
            VideoCall.status == CallStatus.ACTIVE
        ).update(
            {VideoCall.status: CallStatus.ENDED, VideoCall.ended_at: now},
            synchronize_session=False
        )

        call = VideoCall(
            complaint_id=complaint_id,
            provider=provider,
            room_id=room_id,
            room_url=room_url,
            expires_at=expires_at,
            status=CallStatus.ACTIVE,
            initiated_by_admin=initiated_by_admin,
            initiated_by=initiated_by,
            created_at=now
        )
        db.add(call)
        db.flush()
        return call

    @staticmethod
    def end(db: Session, call: VideoCall, now: datetime) -> bool:
        """active -> ended. Returns False if the call had already ended."""
        if call.status == CallStatus.ENDED:
            return False
        call.status = CallStatus.ENDED
        call.ended_at = now
        db.flush()
        return True

    @staticmethod
    def sweep_expired(db: Session, now: datetime) -> int:
        """Turn active rows past expires_at into ended ones. Returns the count."""
        return db.query(VideoCall).filter(
            VideoCall.status == CallStatus.ACTIVE,
            VideoCall.expires_at <= now
        ).update(
            {VideoCall.status: CallStatus.ENDED, VideoCall.ended_at: now},
            synchronize_session=False
        )
