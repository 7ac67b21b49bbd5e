"""
Error taxonomy for the portal.

Every error carries the HTTP status it is reported with; app.py converts them
into ``{"error": message}`` responses at the request boundary.
"""
from fastapi import status


class PortalError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(PortalError):
    """Missing or malformed request fields."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Unauthenticated(PortalError):
    """Missing or invalid bearer credential, or no resolvable role."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class Forbidden(PortalError):
    """Authenticated but not allowed."""
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFound(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class RateLimited(PortalError):
    """Upstream returned 429; caller should back off."""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please wait a moment."


class ServiceUnavailable(PortalError):
    """Upstream returned 402 (credits exhausted); passed through as 402."""
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "AI service temporarily unavailable. Please try again later."


class UpstreamError(PortalError):
    """Any other failure talking to a third-party API."""
    default_message = "Upstream service error"


class ProtocolError(UpstreamError):
    """Upstream response did not follow the expected wire format."""
    default_message = "Upstream response had no body"


class ConfigurationError(PortalError):
    """A required secret or setting is absent."""
    default_message = "Service is not configured"


class InternalError(PortalError):
    default_message = "Internal server error"
