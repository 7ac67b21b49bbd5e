"""
Authentication endpoints: student sign-up, login, token refresh, current user.
"""
from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr
from typing import Optional

from database.models import User
from auth.dependencies import get_db_session, get_current_user
from core.exceptions import Unauthenticated
from services.auth_service import AuthService
from services.audit_service import AuditService
from auth.security import generate_refresh_token_hash
from core.logger import logger
import config


router = APIRouter(prefix="/api/auth", tags=["authentication"])


# Request Models
class StudentSignUp(BaseModel):
    """Student sign-up request."""
    name: str
    email: EmailStr
    password: str
    phone: Optional[str] = None
    batch: Optional[str] = None


class LoginRequest(BaseModel):
    """Login request."""
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    """Refresh token request."""
    refresh_token: str


class TokenResponse(BaseModel):
    """Token response model."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: dict


def user_info(user: User) -> dict:
    profile = user.profile
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role.value if user.role else None,
        "name": profile.name if profile else None,
        "phone": profile.phone if profile else None,
        "batch": profile.batch if profile else None,
        "is_active": user.is_active,
        "created_at": user.created_at.isoformat(),
        "last_login": user.last_login.isoformat() if user.last_login else None
    }


def _issue_tokens(db: Session, user: User, request: Request) -> TokenResponse:
    access_token, refresh_token = AuthService.create_tokens(user)
    AuthService.save_refresh_token(
        db=db,
        user_id=user.id,
        refresh_token=refresh_token,
        device_info=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None
    )
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=user_info(user)
    )


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    data: StudentSignUp,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Create a student account and log it in. Admins are created with scripts/create_admin.py."""
    user = AuthService.create_user(
        db=db,
        email=data.email,
        password=data.password,
        name=data.name,
        phone=data.phone,
        batch=data.batch
    )
    AuditService.record(
        db, action="signup", user_id=user.id, request=request,
        resource_type="user", resource_id=user.id
    )
    return _issue_tokens(db, user, request)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """
    Login with email + password.
    Returns JWT tokens and user info.
    """
    user = AuthService.authenticate_user(db=db, email=credentials.email, password=credentials.password)
    if not user:
        AuditService.record(
            db, action="login_failed", request=request,
            resource_type="user", details={"email": credentials.email}
        )
        raise Unauthenticated("Invalid email or password")

    if user.role is None:
        logger.warning(f"Login for {user.email} refused: no profile")
        raise Unauthenticated("User profile not found")

    AuditService.record(
        db, action="login", user_id=user.id, request=request,
        resource_type="user", resource_id=user.id
    )
    return _issue_tokens(db, user, request)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    token_data: RefreshTokenRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Exchange a refresh token for a new token pair; the old refresh token is revoked."""
    user, access_token, new_refresh_token = AuthService.rotate_refresh_token(
        db,
        token_data.refresh_token,
        ip_address=request.client.host if request.client else None
    )
    return TokenResponse(
        access_token=access_token,
        refresh_token=new_refresh_token,
        expires_in=config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=user_info(user)
    )


@router.get("/me", response_model=dict)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information."""
    return user_info(current_user)


@router.post("/logout", response_model=dict)
async def logout(
    token_data: RefreshTokenRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Revoke a refresh token. The access token stays valid until it expires."""
    token_hash = generate_refresh_token_hash(token_data.refresh_token)
    revoked = AuthService.revoke_refresh_token(db, token_hash, user_id=current_user.id)
    AuditService.record(
        db, action="logout", user_id=current_user.id, request=request,
        resource_type="user", resource_id=current_user.id
    )
    return {"success": True, "revoked": revoked}
