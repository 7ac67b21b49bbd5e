"""
Room provisioning and call lifecycle.

Provisioning creates the external room first; the database work that follows
(end prior active calls, insert the new call, notify the student) happens in
one transaction guarded by the one-active-call-per-complaint index. If that
transaction fails the external room is left to expire on its own, and its id
is logged.
"""
import secrets
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from fastapi import Request

from core.exceptions import Unauthenticated, Forbidden, NotFound, InvalidInput, InternalError
from core.logger import logger
from database.models import User, Complaint, VideoCall, NotificationType, utcnow
from services.audit_service import AuditService
from services.call_providers import CallProvider, ProvisionedRoom
from services.call_store import CallStore
from services.notification_service import NotificationService

ROOM_NAME_PREFIX = "brotodesk"


def generate_room_name(complaint_id: str, now: datetime) -> str:
    """brotodesk-<complaint id>-<epoch ms>-<random hex>"""
    millis = int((now - datetime(1970, 1, 1)).total_seconds() * 1000)
    return f"{ROOM_NAME_PREFIX}-{complaint_id}-{millis}-{secrets.token_hex(4)}"


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


def serialize_call(call: VideoCall, complaint: Optional[Complaint] = None) -> Dict[str, Any]:
    """API shape of a call record."""
    data = {
        "id": call.id,
        "complaintId": call.complaint_id,
        "provider": call.provider.value,
        "roomId": call.room_id,
        "roomUrl": call.room_url,
        "status": call.status.value,
        "initiatedByAdmin": call.initiated_by_admin,
        "expiresAt": _isoformat(call.expires_at),
        "createdAt": _isoformat(call.created_at),
        "endedAt": _isoformat(call.ended_at),
    }
    if complaint is not None:
        data["complaintTitle"] = complaint.title
    return data


def _ensure_caller(caller: Optional[User]) -> User:
    if caller is None or caller.role is None:
        raise Unauthenticated()
    return caller


def _ensure_can_access(caller: User, complaint: Complaint):
    if not caller.is_admin and complaint.student_id != caller.id:
        raise Forbidden("Access denied to this complaint")


class RoomProvisioningService:
    """Creates a call room for a complaint, records it and notifies the student."""

    def __init__(self, db: Session, provider: CallProvider, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.provider = provider
        self.clock = clock

    async def provision(
        self,
        complaint_id: str,
        caller: Optional[User],
        request: Optional[Request] = None
    ) -> Dict[str, Any]:
        """
        Returns the provider-specific join response.

        Raises:
            Unauthenticated, Forbidden, InvalidInput, NotFound, UpstreamError, InternalError
        """
        caller = _ensure_caller(caller)
        is_admin = caller.is_admin
        if self.provider.requires_admin and not is_admin:
            raise Forbidden("Only admins can start this call")

        if not complaint_id:
            raise InvalidInput("Complaint ID is required")

        complaint = self.db.query(Complaint).filter(Complaint.id == complaint_id).first()
        if not complaint:
            raise NotFound("Complaint not found")
        _ensure_can_access(caller, complaint)

        now = self.clock()
        expires_at = now + self.provider.room_ttl
        room_name = generate_room_name(complaint.id, now)

        room = await self.provider.create_room(room_name, expires_at)
        logger.info(
            f"Created {self.provider.kind.value} room {room.room_id} for complaint {complaint.id}"
        )

        call = self._store(complaint, room, expires_at, caller, is_admin, now, request)
        return self.provider.join_response(room, call)

    def _store(
        self,
        complaint: Complaint,
        room: ProvisionedRoom,
        expires_at: datetime,
        caller: User,
        is_admin: bool,
        now: datetime,
        request: Optional[Request]
    ) -> VideoCall:
        # Read before any rollback expires the instance
        complaint_id = complaint.id
        student_id = complaint.student_id
        title = complaint.title

        for attempt in (1, 2):
            try:
                call = CallStore.replace_active(
                    self.db,
                    complaint_id=complaint_id,
                    provider=self.provider.kind,
                    room_id=room.room_id,
                    room_url=room.room_url,
                    expires_at=expires_at,
                    initiated_by_admin=is_admin,
                    initiated_by=caller.id,
                    now=now
                )
                if is_admin:
                    NotificationService.notify(
                        self.db,
                        user_id=student_id,
                        notification_type=NotificationType.CALL_REQUEST,
                        message=self.provider.notification_message.format(title=title),
                        complaint_id=complaint_id,
                        commit=False
                    )
                AuditService.record(
                    self.db,
                    action="call_start",
                    user_id=caller.id,
                    request=request,
                    resource_type="video_call",
                    resource_id=call.id,
                    details={"complaint_id": complaint_id, "provider": self.provider.kind.value},
                    commit=False
                )
                self.db.commit()
                return call
            except IntegrityError:
                self.db.rollback()
                if attempt == 2:
                    logger.error(
                        f"Could not record call for complaint {complaint_id}; "
                        f"room {room.room_id} leaked until it expires"
                    )
                    raise InternalError("Failed to save video call record")
                logger.warning(f"Concurrent call start for complaint {complaint_id}, retrying")
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    f"Failed to save call for complaint {complaint_id}: {e}; "
                    f"room {room.room_id} leaked until it expires"
                )
                raise InternalError("Failed to save video call record")


class CallService:
    """Reads and explicit hangup for call records."""

    @staticmethod
    def live_for_complaint(db: Session, complaint_id: str, caller: User, now: datetime = None) -> Optional[VideoCall]:
        complaint = db.query(Complaint).filter(Complaint.id == complaint_id).first()
        if not complaint:
            raise NotFound("Complaint not found")
        _ensure_can_access(_ensure_caller(caller), complaint)
        return CallStore.live_for_complaint(db, complaint_id, now or utcnow())

    @staticmethod
    def live_for_caller(db: Session, caller: User, now: datetime = None) -> List[Dict[str, Any]]:
        """Students get their newest live call (or nothing); admins get every live call."""
        caller = _ensure_caller(caller)
        now = now or utcnow()
        if caller.is_admin:
            return [serialize_call(call, complaint) for call, complaint in CallStore.all_live(db, now)]
        row = CallStore.live_for_student(db, caller.id, now)
        return [serialize_call(row[0], row[1])] if row else []

    @staticmethod
    def end_call(db: Session, call_id: str, caller: User, request: Optional[Request] = None) -> VideoCall:
        """Explicit hangup. Ending an already-ended call is a no-op."""
        call = CallStore.get(db, call_id)
        if not call:
            raise NotFound("Call not found")
        _ensure_can_access(_ensure_caller(caller), call.complaint)

        if CallStore.end(db, call, utcnow()):
            AuditService.record(
                db,
                action="call_end",
                user_id=caller.id,
                request=request,
                resource_type="video_call",
                resource_id=call.id,
                commit=False
            )
            logger.info(f"Call {call.id} ended by {caller.id}")
        db.commit()
        return call


def sweep_expired_calls(db_manager) -> int:
    """One sweeper pass: mark active calls past expiry as ended."""
    with db_manager.get_session() as session:
        count = CallStore.sweep_expired(session, utcnow())
    if count:
        logger.info(f"Expired {count} call record(s)")
    return count
