"""
Profile APIs (All Authenticated Users).
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel

from database.models import User
from auth.dependencies import get_db_session, get_current_user
from core.exceptions import InvalidInput
from services.audit_service import AuditService


router = APIRouter(prefix="/api/profile", tags=["profile"])


class ProfileUpdate(BaseModel):
    """Update profile request."""
    name: Optional[str] = None
    phone: Optional[str] = None
    batch: Optional[str] = None


class ProfileResponse(BaseModel):
    """Profile response model."""
    id: str
    email: str
    name: str
    role: str
    phone: Optional[str]
    batch: Optional[str]
    createdAt: str
    updatedAt: str


def _profile_response(user: User) -> ProfileResponse:
    profile = user.profile
    return ProfileResponse(
        id=user.id,
        email=user.email,
        name=profile.name,
        role=profile.role.value,
        phone=profile.phone,
        batch=profile.batch,
        createdAt=profile.created_at.isoformat(),
        updatedAt=profile.updated_at.isoformat()
    )


@router.get("", response_model=ProfileResponse)
async def get_profile(current_user: User = Depends(get_current_user)):
    """Get own profile."""
    return _profile_response(current_user)


@router.patch("", response_model=ProfileResponse)
async def update_profile(
    profile_data: ProfileUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Update own name, phone and batch.
    Empty phone/batch clears the field; the name cannot be blank.
    """
    profile = current_user.profile

    if profile_data.name is not None:
        if not profile_data.name.strip():
            raise InvalidInput("Name cannot be empty")
        profile.name = profile_data.name.strip()
    if profile_data.phone is not None:
        profile.phone = profile_data.phone.strip() or None
    if profile_data.batch is not None:
        profile.batch = profile_data.batch.strip() or None

    AuditService.record(
        db, action="profile_update", user_id=current_user.id, request=request,
        resource_type="user", resource_id=current_user.id,
        details=profile_data.model_dump(exclude_none=True), commit=False
    )
    db.commit()
    db.refresh(profile)
    return _profile_response(current_user)
