"""
Verification Errors - Failure Taxonomy for the Verification Lifecycle

Every failure raised by the verification core carries a stable ``kind`` and
the HTTP status the web layer answers with. Routes never build error bodies
themselves; a single exception handler renders these.
"""

from __future__ import annotations

from typing import ClassVar


class VerificationError(Exception):
    """Base class for all verification failures."""

    kind: ClassVar[str] = "verification_error"
    status_code: ClassVar[int] = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Structured failure body."""
        return {
            "success": False,
            "error": self.kind,
            "message": self.message,
        }


class AuthError(VerificationError):
    """Missing, malformed or expired credential."""

    kind = "auth_error"
    status_code = 401


class AuthorizationError(VerificationError):
    """Authenticated, but not allowed to perform the action."""

    kind = "authorization_error"
    status_code = 403


class NotFoundError(VerificationError):
    """Unknown user or verification request."""

    kind = "not_found"
    status_code = 404


class ValidationError(VerificationError):
    """Missing or malformed input field."""

    kind = "validation_error"
    status_code = 400


class ConflictError(VerificationError):
    """Duplicate open request, or a request that is already resolved."""

    kind = "conflict"
    status_code = 409


class UploadError(VerificationError):
    """Document normalization or object storage failure."""

    kind = "upload_error"
    status_code = 500


class PersistenceError(VerificationError):
    """The verification store could not be written."""

    kind = "persistence_error"
    status_code = 500
