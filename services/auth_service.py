"""
Account service: sign-up, password login and refresh-token rotation.
"""
from datetime import timedelta
from typing import Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.exceptions import InvalidInput, Unauthenticated
from core.logger import logger
from database.models import User, Profile, UserRole, RefreshToken, utcnow
from auth.security import (
    verify_password, get_password_hash, validate_password,
    create_access_token, create_refresh_token, decode_refresh_token,
    generate_refresh_token_hash
)
import config


class AuthService:
    """Service for authentication operations."""

    @staticmethod
    def create_user(
        db: Session,
        email: str,
        password: str,
        name: str,
        role: UserRole = UserRole.STUDENT,
        phone: Optional[str] = None,
        batch: Optional[str] = None,
    ) -> User:
        """
        Create a user together with its profile.

        Raises:
            InvalidInput: weak password or email already registered
        """
        is_valid, error_message = validate_password(password)
        if not is_valid:
            raise InvalidInput(error_message)

        email = email.strip().lower()
        existing = db.query(User).filter(func.lower(User.email) == email).first()
        if existing:
            raise InvalidInput("User with this email already exists")

        user = User(email=email, hashed_password=get_password_hash(password), is_active=True)
        user.profile = Profile(role=role, name=name.strip(), phone=phone, batch=batch)
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"Created user: {email} (role: {role.value})")
        return user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        """
        Check an email/password pair.

        Returns:
            User if authenticated, None otherwise
        """
        user = db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()
        if not user or not user.hashed_password:
            return None

        if not verify_password(password, user.hashed_password):
            logger.warning(f"Failed login attempt for {email}")
            return None

        if not user.is_active:
            return None

        user.last_login = utcnow()
        db.commit()
        return user

    @staticmethod
    def create_tokens(user: User) -> Tuple[str, str]:
        """
        Create access and refresh tokens for user.

        Returns:
            Tuple of (access_token, refresh_token)
        """
        data = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value if user.role else None,
        }
        return create_access_token(data), create_refresh_token(data)

    @staticmethod
    def save_refresh_token(
        db: Session,
        user_id: str,
        refresh_token: str,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> RefreshToken:
        """Persist the hash of an issued refresh token."""
        refresh_token_obj = RefreshToken(
            user_id=user_id,
            token_hash=generate_refresh_token_hash(refresh_token),
            device_info=device_info,
            ip_address=ip_address,
            expires_at=utcnow() + timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS)
        )
        db.add(refresh_token_obj)
        db.commit()
        return refresh_token_obj

    @staticmethod
    def revoke_refresh_token(db: Session, token_hash: str, user_id: Optional[str] = None) -> bool:
        """Revoke a refresh token, optionally only if it belongs to user_id."""
        query = db.query(RefreshToken).filter(
            RefreshToken.token_hash == token_hash,
            RefreshToken.is_revoked == False
        )
        if user_id is not None:
            query = query.filter(RefreshToken.user_id == user_id)
        token = query.first()

        if not token:
            return False

        token.is_revoked = True
        token.revoked_at = utcnow()
        db.commit()
        return True

    @staticmethod
    def rotate_refresh_token(
        db: Session,
        refresh_token: str,
        ip_address: Optional[str] = None
    ) -> Tuple[User, str, str]:
        """
        Exchange a valid refresh token for a new token pair, revoking the old one.

        Raises:
            Unauthenticated: token invalid, revoked, expired or user gone
        """
        payload = decode_refresh_token(refresh_token)
        if payload is None:
            raise Unauthenticated("Invalid refresh token")

        stored = db.query(RefreshToken).filter(
            RefreshToken.token_hash == generate_refresh_token_hash(refresh_token)
        ).first()
        if not stored or stored.is_revoked or stored.expires_at <= utcnow():
            raise Unauthenticated("Invalid refresh token")

        user = AuthService.get_user_by_id(db, stored.user_id)
        if not user or not user.is_active:
            raise Unauthenticated("Invalid refresh token")

        stored.is_revoked = True
        stored.revoked_at = utcnow()
        access_token, new_refresh_token = AuthService.create_tokens(user)
        AuthService.save_refresh_token(db, user.id, new_refresh_token, ip_address=ip_address)
        return user, access_token, new_refresh_token

    @staticmethod
    def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
        """Get user by ID."""
        return db.query(User).filter(User.id == user_id).first()

