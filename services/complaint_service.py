"""
Complaint CRUD.

Students create complaints and may edit or delete them only while they are
Pending; admins may change anything at any time.
"""
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request, UploadFile
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from core.exceptions import InvalidInput, Forbidden, NotFound
from core.logger import logger
from database.models import (
    User, Complaint, ComplaintMedia, ComplaintCategory, ComplaintUrgency,
    ComplaintStatus, MediaType, NotificationType, new_id
)
from services.audit_service import AuditService
from services.media_service import MediaService
from services.notification_service import NotificationService

MAX_TITLE_LENGTH = 200


def _parse_enum(enum_class, value: Optional[str], field: str):
    if value is None:
        return None
    try:
        return enum_class(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_class)
        raise InvalidInput(f"Invalid {field}. Allowed: {allowed}")


def _clean_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise InvalidInput("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise InvalidInput(f"Title must be at most {MAX_TITLE_LENGTH} characters")
    return title


def _clean_description(description: Optional[str]) -> str:
    description = (description or "").strip()
    if not description:
        raise InvalidInput("Description is required")
    return description


def _store_all(complaint_id: str, prepared) -> List[ComplaintMedia]:
    """Store every upload; on failure remove what was already written."""
    stored = []
    try:
        for item in prepared:
            stored.append(MediaService.store(complaint_id, item))
    except Exception:
        for media in stored:
            MediaService.delete_stored(media)
        raise
    return stored


class ComplaintService:
    """Service for complaint records and their attachments."""

    @staticmethod
    def get_for_caller(db: Session, complaint_id: str, caller: User) -> Complaint:
        """
        Load a complaint the caller may see.

        Raises:
            NotFound: no such complaint
            Forbidden: a student asking for someone else's complaint
        """
        complaint = db.query(Complaint).options(
            selectinload(Complaint.media)
        ).filter(Complaint.id == complaint_id).first()
        if not complaint:
            raise NotFound("Complaint not found")
        if not caller.is_admin and complaint.student_id != caller.id:
            raise Forbidden("Access denied to this complaint")
        return complaint

    @staticmethod
    def create(
        db: Session,
        student: User,
        title: str,
        category: str,
        description: str,
        urgency: Optional[str] = None,
        location: Optional[str] = None,
        images: Optional[List[UploadFile]] = None,
        video: Optional[UploadFile] = None,
        request: Optional[Request] = None
    ) -> Complaint:
        title = _clean_title(title)
        description = _clean_description(description)
        category_value = _parse_enum(ComplaintCategory, category, "category")
        if category_value is None:
            raise InvalidInput("Category is required")
        urgency_value = _parse_enum(ComplaintUrgency, urgency, "urgency") or ComplaintUrgency.MEDIUM

        prepared = MediaService.prepare_uploads(images, video)

        complaint = Complaint(
            id=new_id(),
            student_id=student.id,
            title=title,
            category=category_value,
            description=description,
            location=(location or "").strip() or None,
            urgency=urgency_value,
            status=ComplaintStatus.PENDING
        )
        stored = _store_all(complaint.id, prepared)
        try:
            db.add(complaint)
            complaint.media.extend(stored)
            db.flush()
            NotificationService.notify(
                db,
                user_id=student.id,
                notification_type=NotificationType.NEW_COMPLAINT,
                message=f"New complaint submitted: {title}",
                complaint_id=complaint.id,
                commit=False
            )
            AuditService.record(
                db, action="complaint_create", user_id=student.id, request=request,
                resource_type="complaint", resource_id=complaint.id,
                details={"media_count": len(stored)}, commit=False
            )
            db.commit()
        except Exception:
            db.rollback()
            for media in stored:
                MediaService.delete_stored(media)
            raise

        logger.info(f"Complaint {complaint.id} created by {student.id} with {len(stored)} attachment(s)")
        db.refresh(complaint)
        return complaint

    @staticmethod
    def list_for_caller(
        db: Session,
        caller: User,
        status: Optional[str] = None,
        category: Optional[str] = None,
        urgency: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Complaint], int]:
        """Students see their own complaints, admins see all. Newest first."""
        query = db.query(Complaint)
        if not caller.is_admin:
            query = query.filter(Complaint.student_id == caller.id)

        status_value = _parse_enum(ComplaintStatus, status, "status")
        if status_value is not None:
            query = query.filter(Complaint.status == status_value)
        category_value = _parse_enum(ComplaintCategory, category, "category")
        if category_value is not None:
            query = query.filter(Complaint.category == category_value)
        urgency_value = _parse_enum(ComplaintUrgency, urgency, "urgency")
        if urgency_value is not None:
            query = query.filter(Complaint.urgency == urgency_value)
        if search and search.strip():
            term = f"%{search.strip()}%"
            query = query.filter(or_(Complaint.title.ilike(term), Complaint.description.ilike(term)))

        total = query.count()
        complaints = query.options(selectinload(Complaint.media)).order_by(
            Complaint.created_at.desc()
        ).offset((page - 1) * limit).limit(limit).all()
        return complaints, total

    @staticmethod
    def update(
        db: Session,
        complaint_id: str,
        caller: User,
        fields: Dict[str, Any],
        remove_media_ids: Optional[List[str]] = None,
        images: Optional[List[UploadFile]] = None,
        video: Optional[UploadFile] = None,
        request: Optional[Request] = None
    ) -> Complaint:
        """
        Edit fields and attachments.

        fields may hold title, category, description, location, urgency; None
        values are left unchanged.
        """
        complaint = ComplaintService.get_for_caller(db, complaint_id, caller)
        if not caller.is_admin and complaint.status != ComplaintStatus.PENDING:
            raise Forbidden("Only pending complaints can be edited")

        if fields.get("title") is not None:
            complaint.title = _clean_title(fields["title"])
        if fields.get("description") is not None:
            complaint.description = _clean_description(fields["description"])
        if fields.get("category") is not None:
            complaint.category = _parse_enum(ComplaintCategory, fields["category"], "category")
        if fields.get("urgency") is not None:
            complaint.urgency = _parse_enum(ComplaintUrgency, fields["urgency"], "urgency")
        if fields.get("location") is not None:
            complaint.location = fields["location"].strip() or None

        remove_ids = set(remove_media_ids or [])
        unknown = remove_ids - {media.id for media in complaint.media}
        if unknown:
            raise InvalidInput("Media to remove does not belong to this complaint")
        removed = [media for media in complaint.media if media.id in remove_ids]
        kept = [media for media in complaint.media if media.id not in remove_ids]

        prepared = MediaService.prepare_uploads(
            images, video,
            existing_images=sum(1 for media in kept if media.file_type == MediaType.IMAGE),
            existing_videos=sum(1 for media in kept if media.file_type == MediaType.VIDEO)
        )
        stored = _store_all(complaint.id, prepared)
        try:
            for media in removed:
                complaint.media.remove(media)
            complaint.media.extend(stored)
            AuditService.record(
                db, action="complaint_update", user_id=caller.id, request=request,
                resource_type="complaint", resource_id=complaint.id,
                details={"removed_media": len(removed), "added_media": len(stored)}, commit=False
            )
            db.commit()
        except Exception:
            db.rollback()
            for media in stored:
                MediaService.delete_stored(media)
            raise

        for media in removed:
            MediaService.delete_stored(media)

        db.refresh(complaint)
        return complaint

    @staticmethod
    def update_status(
        db: Session,
        complaint_id: str,
        admin: User,
        status: str,
        resolution_notes: Optional[str] = None,
        request: Optional[Request] = None
    ) -> Complaint:
        """Admin status change; the student is notified when the status actually changes."""
        new_status = _parse_enum(ComplaintStatus, status, "status")
        if new_status is None:
            raise InvalidInput("Status is required")

        complaint = ComplaintService.get_for_caller(db, complaint_id, admin)
        previous = complaint.status
        complaint.status = new_status
        if resolution_notes is not None:
            complaint.resolution_notes = resolution_notes.strip() or None

        if previous != new_status:
            NotificationService.notify(
                db,
                user_id=complaint.student_id,
                notification_type=NotificationType.STATUS_UPDATE,
                message=f'Your complaint "{complaint.title}" is now {new_status.value}',
                complaint_id=complaint.id,
                commit=False
            )
        AuditService.record(
            db, action="complaint_status_update", user_id=admin.id, request=request,
            resource_type="complaint", resource_id=complaint.id,
            details={"from": previous.value, "to": new_status.value}, commit=False
        )
        db.commit()
        logger.info(f"Complaint {complaint.id} status {previous.value} -> {new_status.value}")
        db.refresh(complaint)
        return complaint

    @staticmethod
    def delete(db: Session, complaint_id: str, caller: User, request: Optional[Request] = None):
        """Remove stored objects, then the complaint (media, calls and notifications cascade)."""
        complaint = ComplaintService.get_for_caller(db, complaint_id, caller)
        if not caller.is_admin and complaint.status != ComplaintStatus.PENDING:
            raise Forbidden("Only pending complaints can be deleted")

        for media in complaint.media:
            MediaService.delete_stored(media)

        db.delete(complaint)
        AuditService.record(
            db, action="complaint_delete", user_id=caller.id, request=request,
            resource_type="complaint", resource_id=complaint_id, commit=False
        )
        db.commit()
        logger.info(f"Complaint {complaint_id} deleted by {caller.id}")
