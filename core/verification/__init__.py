"""
Marketplace Verification - Request Lifecycle

Users submit proof documents, an administrator approves or rejects them, and
the outcome gates marketplace privileges.

Invariants:
1. At most one open (pending / under_review) request per user
2. A user's status follows their latest open or resolved request
3. Rejection archives the active documents and clears them in one step
4. verified is true exactly when the status is approved
5. Resolved requests are history; resubmission creates a new request
"""

from core.verification.errors import (
    VerificationError,
    AuthError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
    ConflictError,
    UploadError,
    PersistenceError,
)
from core.verification.schema import (
    RequestStatus,
    UserVerificationStatus,
    DocumentSlot,
    StoredDocument,
    DocumentBundle,
    UserProfile,
    VerificationRequest,
    UserVerificationRecord,
    BusinessDetails,
    OPEN_REQUEST_STATUSES,
    TERMINAL_REQUEST_STATUSES,
    DEFAULT_APPROVE_NOTES,
    DEFAULT_REJECT_NOTES,
    extract_business_fields,
)
from core.verification.storage import (
    ObjectStorage,
    LocalObjectStorage,
    S3ObjectStorage,
    UploadedObject,
    get_object_storage,
    reset_object_storage,
    DEFAULT_URL_EXPIRY_SECONDS,
)
from core.verification.normalizer import (
    DocumentNormalizer,
    InlineDocument,
    StorageReference,
    DocumentInput,
    parse_document_input,
    parse_document_bundle,
    VERIFICATION_FOLDER,
    MAX_DOCUMENT_SIZE_BYTES,
)
from core.verification.repository import (
    VerificationStore,
    get_verification_store,
    reset_verification_store,
)
from core.verification.users import (
    UserDirectory,
    get_user_directory,
    reset_user_directory,
)
from core.verification.submission import (
    SubmissionHandler,
    SubmissionResult,
)
from core.verification.review import ReviewDecisionEngine

__all__ = [
    # Errors
    "VerificationError",
    "AuthError",
    "AuthorizationError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "UploadError",
    "PersistenceError",
    # Schema
    "RequestStatus",
    "UserVerificationStatus",
    "DocumentSlot",
    "StoredDocument",
    "DocumentBundle",
    "UserProfile",
    "VerificationRequest",
    "UserVerificationRecord",
    "BusinessDetails",
    "OPEN_REQUEST_STATUSES",
    "TERMINAL_REQUEST_STATUSES",
    "DEFAULT_APPROVE_NOTES",
    "DEFAULT_REJECT_NOTES",
    "extract_business_fields",
    # Storage
    "ObjectStorage",
    "LocalObjectStorage",
    "S3ObjectStorage",
    "UploadedObject",
    "get_object_storage",
    "reset_object_storage",
    "DEFAULT_URL_EXPIRY_SECONDS",
    # Normalizer
    "DocumentNormalizer",
    "InlineDocument",
    "StorageReference",
    "DocumentInput",
    "parse_document_input",
    "parse_document_bundle",
    "VERIFICATION_FOLDER",
    "MAX_DOCUMENT_SIZE_BYTES",
    # Store
    "VerificationStore",
    "get_verification_store",
    "reset_verification_store",
    "UserDirectory",
    "get_user_directory",
    "reset_user_directory",
    # Lifecycle
    "SubmissionHandler",
    "SubmissionResult",
    "ReviewDecisionEngine",
]
