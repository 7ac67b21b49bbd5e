"""
Audit trail for complaint, call and account actions.
"""
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from fastapi import Request

from database.models import AuditLog


class AuditService:
    """Service for audit logging."""

    @staticmethod
    def record(
        db: Session,
        action: str,
        user_id: Optional[str] = None,
        request: Optional[Request] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        commit: bool = True
    ) -> AuditLog:
        """
        Add an audit row.

        Args:
            db: Database session
            action: Action name (e.g., "complaint_create", "call_start", "login")
            user_id: Acting user, if any
            request: Incoming request; client IP and user agent are taken from it
            resource_type: Type of resource (e.g., "complaint", "video_call")
            resource_id: ID of resource
            details: Additional details
            commit: When False the row joins the caller's open transaction

        Returns:
            Created AuditLog
        """
        audit_log = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=request.client.host if request is not None and request.client else None,
            user_agent=request.headers.get("user-agent") if request is not None else None,
            details=details
        )
        db.add(audit_log)
        if commit:
            db.commit()
        else:
            db.flush()
        return audit_log
