"""
Complaint APIs.
Students submit and manage their own complaints; admins triage all of them.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from pydantic import BaseModel

from database.models import User, Complaint, ComplaintMedia
from auth.dependencies import get_db_session, get_current_user, require_admin, require_student
from core.exceptions import NotFound
from services.complaint_service import ComplaintService
from services.media_service import MediaService
from storage.presigned import media_display_url


router = APIRouter(prefix="/api/complaints", tags=["complaints"])


class StatusUpdate(BaseModel):
    """Admin status change."""
    status: str
    resolutionNotes: Optional[str] = None


class ComplaintListResponse(BaseModel):
    """Complaint list response."""
    data: List[dict]
    total: int
    page: int
    limit: int


def _media_dict(complaint: Complaint, media: ComplaintMedia) -> dict:
    return {
        "id": media.id,
        "fileType": media.file_type.value,
        "fileName": media.file_name,
        "fileSizeBytes": media.file_size_bytes,
        "url": media_display_url(media.file_url, complaint.id, media.id),
        "createdAt": media.created_at.isoformat()
    }


def _complaint_dict(complaint: Complaint, caller: User) -> dict:
    data = {
        "id": complaint.id,
        "studentId": complaint.student_id,
        "title": complaint.title,
        "category": complaint.category.value,
        "description": complaint.description,
        "location": complaint.location,
        "urgency": complaint.urgency.value,
        "status": complaint.status.value,
        "resolutionNotes": complaint.resolution_notes,
        "media": [_media_dict(complaint, media) for media in complaint.media],
        "createdAt": complaint.created_at.isoformat(),
        "updatedAt": complaint.updated_at.isoformat()
    }
    # Admins see who raised it
    if caller.is_admin and complaint.student and complaint.student.profile:
        profile = complaint.student.profile
        data["student"] = {
            "id": complaint.student_id,
            "email": complaint.student.email,
            "name": profile.name,
            "phone": profile.phone,
            "batch": profile.batch
        }
    return data


def _split_ids(values: Optional[List[str]]) -> List[str]:
    """Accept repeated form fields and comma-separated values."""
    ids = []
    for value in values or []:
        ids.extend(part.strip() for part in value.split(",") if part.strip())
    return ids


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_complaint(
    request: Request,
    title: str = Form(...),
    category: str = Form(...),
    description: str = Form(...),
    urgency: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    video: Optional[UploadFile] = File(None),
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    """
    Submit a complaint with up to 3 images and 1 video.
    The complaint starts as Pending.
    """
    complaint = ComplaintService.create(
        db,
        student=current_user,
        title=title,
        category=category,
        description=description,
        urgency=urgency,
        location=location,
        images=images,
        video=video,
        request=request
    )
    return _complaint_dict(complaint, current_user)


@router.get("", response_model=ComplaintListResponse)
async def list_complaints(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    urgency: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Students get their own complaints, admins get all."""
    complaints, total = ComplaintService.list_for_caller(
        db, current_user,
        status=status, category=category, urgency=urgency, search=search,
        page=page, limit=limit
    )
    return ComplaintListResponse(
        data=[_complaint_dict(c, current_user) for c in complaints],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/{complaint_id}", response_model=dict)
async def get_complaint(
    complaint_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    complaint = ComplaintService.get_for_caller(db, complaint_id, current_user)
    return _complaint_dict(complaint, current_user)


@router.patch("/{complaint_id}", response_model=dict)
async def update_complaint(
    complaint_id: str,
    request: Request,
    title: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    urgency: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    removeMediaIds: Optional[List[str]] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    video: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Edit a complaint (multipart).
    The owning student may edit only while Pending; admins may edit any time.
    """
    complaint = ComplaintService.update(
        db,
        complaint_id,
        current_user,
        fields={
            "title": title,
            "category": category,
            "description": description,
            "urgency": urgency,
            "location": location
        },
        remove_media_ids=_split_ids(removeMediaIds),
        images=images,
        video=video,
        request=request
    )
    return _complaint_dict(complaint, current_user)


@router.patch("/{complaint_id}/status", response_model=dict)
async def update_complaint_status(
    complaint_id: str,
    update: StatusUpdate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Admin: change status and resolution notes."""
    complaint = ComplaintService.update_status(
        db, complaint_id, current_user,
        status=update.status,
        resolution_notes=update.resolutionNotes,
        request=request
    )
    return _complaint_dict(complaint, current_user)


@router.delete("/{complaint_id}", response_model=dict)
async def delete_complaint(
    complaint_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    ComplaintService.delete(db, complaint_id, current_user, request=request)
    return {"success": True}


@router.get("/{complaint_id}/media/{media_id}/file")
async def get_media_file(
    complaint_id: str,
    media_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Serve a locally stored attachment (S3 media is served through presigned URLs)."""
    complaint = ComplaintService.get_for_caller(db, complaint_id, current_user)
    media = next((m for m in complaint.media if m.id == media_id), None)
    path = MediaService.local_file(media) if media else None
    if path is None:
        raise NotFound("Media not found")
    return FileResponse(path, filename=media.file_name)
