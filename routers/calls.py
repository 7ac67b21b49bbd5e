"""
Call APIs: room provisioning, live-call lookup and hangup.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel

from database.models import User
from auth.dependencies import get_db_session, get_current_user
from services.call_providers import CallProvider, video_provider_from_config, voice_provider_from_config
from services.call_service import RoomProvisioningService, CallService, serialize_call


router = APIRouter(tags=["calls"])


class RoomRequest(BaseModel):
    """Room provisioning request."""
    complaintId: Optional[str] = None


def get_video_provider() -> CallProvider:
    return video_provider_from_config()


def get_voice_provider() -> CallProvider:
    return voice_provider_from_config()


@router.post("/api/calls/video-room", response_model=dict)
async def create_video_room(
    data: RoomRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    provider: CallProvider = Depends(get_video_provider)
):
    """
    Create a video room for a complaint.
    Any prior active call for the complaint is ended; the student is notified when an admin starts it.
    """
    service = RoomProvisioningService(db, provider)
    return await service.provision(data.complaintId, current_user, request=request)


@router.post("/api/calls/voice-room", response_model=dict)
async def create_voice_room(
    data: RoomRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    provider: CallProvider = Depends(get_voice_provider)
):
    """Admin: create a voice room and a participant token for a complaint."""
    service = RoomProvisioningService(db, provider)
    return await service.provision(data.complaintId, current_user, request=request)


@router.get("/api/calls/active", response_model=dict)
async def active_calls(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Live calls visible to the caller (a student's pending call request, or every live call for admins)."""
    return {"data": CallService.live_for_caller(db, current_user)}


@router.post("/api/calls/{call_id}/end", response_model=dict)
async def end_call(
    call_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    call = CallService.end_call(db, call_id, current_user, request=request)
    return serialize_call(call)


@router.get("/api/complaints/{complaint_id}/calls/active", response_model=dict)
async def complaint_active_call(
    complaint_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    call = CallService.live_for_complaint(db, complaint_id, current_user)
    return {"call": serialize_call(call) if call else None}
