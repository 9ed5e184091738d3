"""
Error taxonomy shared by the storage operations and the HTTP layer.

Every failure that reaches a request boundary is one of these; the Flask
error handlers in ``api.py`` turn them into ``{"status": "error", ...}``
responses with the carried status code.
"""

from typing import Any, Dict, Optional


class RepositoryError(Exception):
    """Base class for failures surfaced to API callers."""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {'status': 'error', 'message': self.message}
        body.update(self.details)
        return body


class ValidationError(RepositoryError):
    """Missing or malformed input."""
    status_code = 400


class ConflictError(RepositoryError):
    """Duplicate identity, taken author order, or a guarded delete that still has dependents."""
    status_code = 409


class NotFoundError(RepositoryError):
    status_code = 404


class AuthError(RepositoryError):
    """Missing or invalid session (401), wrong role or deactivated account (403)."""
    status_code = 401


class UpstreamError(RepositoryError):
    """The blob store rejected or failed an upload."""
    status_code = 500


class InternalError(RepositoryError):
    status_code = 500
