"""
Database models for the complaint portal.
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text,
    ForeignKey, JSON, Index, TypeDecorator, text
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# Custom Type Decorator for Enum Values
# ============================================================================

class EnumValue(TypeDecorator):
    """Type decorator to ensure enum values (not names) are stored."""
    impl = String
    cache_ok = True

    def __init__(self, enum_class, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        """Convert enum to its value when writing to database."""
        if value is None:
            return None
        if isinstance(value, enum.Enum):
            return value.value
        return value

    def process_result_value(self, value, dialect):
        """Convert database value back to enum when reading."""
        if value is None:
            return None
        if isinstance(value, str):
            try:
                return self.enum_class(value)
            except ValueError:
                return value
        return value


# ============================================================================
# Enums - Must be defined before models that use them
# ============================================================================

class UserRole(str, enum.Enum):
    """User roles for authorization."""
    STUDENT = "student"
    ADMIN = "admin"


class ComplaintCategory(str, enum.Enum):
    SYSTEM = "System"
    HOSTEL = "Hostel"
    INTERNET = "Internet"
    FOOD = "Food"
    BEHAVIOUR = "Behaviour"
    OTHERS = "Others"


class ComplaintUrgency(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ComplaintStatus(str, enum.Enum):
    """Complaint lifecycle status. Resolved and Cancelled are terminal by convention only."""
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    WAITING_FOR_STUDENT = "Waiting for Student"
    RESOLVED = "Resolved"
    CANCELLED = "Cancelled"


class MediaType(str, enum.Enum):
    """Media types for complaint attachments."""
    IMAGE = "image"
    VIDEO = "video"


class CallStatus(str, enum.Enum):
    ACTIVE = "active"
    ENDED = "ended"


class CallProviderKind(str, enum.Enum):
    """Which third-party vendor a call room lives on."""
    DAILY = "daily"
    VIDEOSDK = "videosdk"
    ZEGO = "zego"


class NotificationType(str, enum.Enum):
    STATUS_UPDATE = "status_update"
    NEW_COMPLAINT = "new_complaint"
    CALL_REQUEST = "call_request"
    VIDEO_CALL_REQUEST = "video_call_request"


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """Authenticated account. Role and display data live on Profile."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    profile = relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    complaints = relationship("Complaint", back_populates="student", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")

    @property
    def role(self):
        """Role from the profile, or None when the account has no profile yet."""
        return self.profile.role if self.profile else None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class Profile(Base):
    """One per user: role, display name, phone, optional batch label."""
    __tablename__ = "profiles"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role = Column(EnumValue(UserRole), default=UserRole.STUDENT, nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    batch = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="profile")

    __table_args__ = (
        Index('idx_profile_role', 'role'),
    )


class Complaint(Base):
    """Student-submitted issue tracked through a status lifecycle."""
    __tablename__ = "complaints"

    id = Column(String(36), primary_key=True, default=new_id)
    student_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    category = Column(EnumValue(ComplaintCategory), nullable=False)
    description = Column(Text, nullable=False)
    location = Column(String(255), nullable=True)
    urgency = Column(EnumValue(ComplaintUrgency), default=ComplaintUrgency.MEDIUM, nullable=False)
    status = Column(EnumValue(ComplaintStatus), default=ComplaintStatus.PENDING, nullable=False)
    resolution_notes = Column(Text, nullable=True)  # Admin-authored
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    student = relationship("User", back_populates="complaints")
    media = relationship("ComplaintMedia", back_populates="complaint", cascade="all, delete-orphan")
    video_calls = relationship("VideoCall", back_populates="complaint", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="complaint", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_complaint_student', 'student_id'),
        Index('idx_complaint_status', 'status'),
        Index('idx_complaint_category', 'category'),
        Index('idx_complaint_created', 'created_at'),
    )


class ComplaintMedia(Base):
    """Complaint attachment. S3-linked so the stored object can be removed with the row."""
    __tablename__ = "complaint_media"

    id = Column(String(36), primary_key=True, default=new_id)
    complaint_id = Column(String(36), ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False)
    file_type = Column(EnumValue(MediaType), nullable=False)
    file_url = Column(String(1024), nullable=False)  # s3://bucket/key or local path
    file_name = Column(String(255), nullable=True)  # Original filename
    s3_bucket = Column(String(255), nullable=True)
    s3_key = Column(String(512), nullable=True)
    file_size_bytes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    complaint = relationship("Complaint", back_populates="media")

    __table_args__ = (
        Index('idx_media_complaint', 'complaint_id'),
    )


class VideoCall(Base):
    """Reference to an ephemeral third-party call room for one complaint."""
    __tablename__ = "video_calls"

    id = Column(String(36), primary_key=True, default=new_id)
    complaint_id = Column(String(36), ForeignKey("complaints.id", ondelete="CASCADE"), nullable=False)
    provider = Column(EnumValue(CallProviderKind), nullable=False)
    room_id = Column(String(255), nullable=False)
    room_url = Column(String(1024), nullable=True)  # Absent for client-side room handles
    expires_at = Column(DateTime, nullable=False)
    status = Column(EnumValue(CallStatus), default=CallStatus.ACTIVE, nullable=False)
    initiated_by_admin = Column(Boolean, default=False, nullable=False)
    initiated_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)

    complaint = relationship("Complaint", back_populates="video_calls")

    __table_args__ = (
        Index('idx_video_call_complaint', 'complaint_id'),
        Index('idx_video_call_status', 'status'),
        # At most one active call per complaint
        Index(
            'uq_video_call_active_complaint', 'complaint_id',
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


class Notification(Base):
    """Per-user message pointing at a complaint."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    complaint_id = Column(String(36), ForeignKey("complaints.id", ondelete="CASCADE"), nullable=True)
    type = Column(EnumValue(NotificationType), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="notifications")
    complaint = relationship("Complaint", back_populates="notifications")

    __table_args__ = (
        Index('idx_notification_user', 'user_id'),
        Index('idx_notification_user_read', 'user_id', 'is_read'),
        Index('idx_notification_created', 'created_at'),
    )


class RefreshToken(Base):
    """Refresh token model for JWT refresh."""
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(255), unique=True, index=True, nullable=False)  # Hashed token
    device_info = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    is_revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index('idx_refresh_user', 'user_id'),
    )


class AuditLog(Base):
    """Audit log for security and compliance."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False)  # e.g., "complaint_create", "call_start", "login"
    resource_type = Column(String(50), nullable=True)  # e.g., "complaint", "video_call", "user"
    resource_id = Column(String(100), nullable=True)
    ip_address = Column(String(45), nullable=True)  # IPv6 compatible
    user_agent = Column(String(500), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('idx_audit_user', 'user_id'),
        Index('idx_audit_action', 'action'),
    )
