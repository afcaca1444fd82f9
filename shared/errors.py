"""
Shared error handling for the Usernet manifest service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for access layer services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ManifestError(AccessLayerException):
    """Base class for failures while resolving a manifest response."""

    status_code = 500


class MalformedManifest(ManifestError):
    """A manifest record exists but is not a well-formed rule set."""

    def __init__(self, service: str, message: str = "Malformed manifest", details: Optional[Dict[str, Any]] = None):
        details = {"service": service, **(details or {})}
        super().__init__("MALFORMED_MANIFEST", f"{service}: {message}", details)
        self.service = service


class InvalidOverride(ManifestError):
    """An override fragment cannot be merged as a structured document."""

    def __init__(self, message: str = "Invalid override", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_OVERRIDE", message, details)


class RenderError(ManifestError):
    """Loading, compiling or executing a response template failed."""

    def __init__(self, content_type: str, message: str = "Render error", details: Optional[Dict[str, Any]] = None):
        details = {"content_type": content_type, **(details or {})}
        super().__init__("RENDER_ERROR", message, details)
        self.content_type = content_type


class ManifestIOError(ManifestError):
    """Reading or persisting a manifest record failed."""

    def __init__(self, service: str, message: str = "Manifest I/O error", details: Optional[Dict[str, Any]] = None):
        details = {"service": service, **(details or {})}
        super().__init__("MANIFEST_IO_ERROR", f"{service}: {message}", details)
        self.service = service
