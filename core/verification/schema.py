"""
Verification Schema - Requests, Per-User Status and Document Bundles

Defines the canonical records of the verification lifecycle:

- VerificationRequest: one row per submission attempt (immutable once resolved)
- UserVerificationRecord: the current, authoritative status of one user
- BusinessDetails: satellite record upserted from submissions
- DocumentBundle: slot -> stored document descriptor

Serialised field names follow the marketplace wire format (camelCase).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Final, Optional


# =============================================================================
# Enums
# =============================================================================


class RequestStatus(Enum):
    """Status of a single verification request."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserVerificationStatus(Enum):
    """Current verification status of a user."""

    NOT_STARTED = "not_started"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentSlot(Enum):
    """Document slots a verification submission can fill."""

    ID_CARD = "idCard"
    BUSINESS_LICENSE = "businessLicense"
    FARM_CERTIFICATION = "farmCertification"


# =============================================================================
# Constants
# =============================================================================

# A request in one of these states blocks a new submission
OPEN_REQUEST_STATUSES: Final[frozenset[RequestStatus]] = frozenset(
    {RequestStatus.PENDING, RequestStatus.UNDER_REVIEW}
)

TERMINAL_REQUEST_STATUSES: Final[frozenset[RequestStatus]] = frozenset(
    {RequestStatus.APPROVED, RequestStatus.REJECTED}
)

DEFAULT_REQUEST_TYPE: Final[str] = "agrilink_verification"

DEFAULT_APPROVE_NOTES: Final[str] = "Approved by admin"
DEFAULT_REJECT_NOTES: Final[str] = "Rejected by admin"

# Payload key -> BusinessDetails attribute
BUSINESS_FIELDS: Final[dict[str, str]] = {
    "businessName": "business_name",
    "businessDescription": "business_description",
    "businessLicenseNumber": "business_license_number",
    "businessHours": "business_hours",
    "specialties": "specialties",
    "policies": "policies",
}


def generate_request_id() -> str:
    """Generate a unique verification request ID."""
    return f"VR-{uuid.uuid4().hex[:12].upper()}"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# =============================================================================
# Documents
# =============================================================================


@dataclass(frozen=True)
class StoredDocument:
    """
    Descriptor of a document held by object storage.

    ``reference`` is an opaque storage key, never inline content.
    """

    reference: str
    filename: str
    original_name: str
    size_bytes: int
    mime_type: str

    def to_dict(self) -> dict:
        """Convert to wire format."""
        return {
            "reference": self.reference,
            "filename": self.filename,
            "originalName": self.original_name,
            "sizeBytes": self.size_bytes,
            "mimeType": self.mime_type,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoredDocument":
        """Create from wire format."""
        return cls(
            reference=data["reference"],
            filename=data.get("filename") or "",
            original_name=data.get("originalName") or "",
            size_bytes=int(data.get("sizeBytes") or 0),
            mime_type=data.get("mimeType") or "",
        )


@dataclass(frozen=True)
class DocumentBundle:
    """Documents submitted together, keyed by slot."""

    documents: dict[DocumentSlot, StoredDocument] = field(default_factory=dict)

    def get(self, slot: DocumentSlot) -> Optional[StoredDocument]:
        """Get the document in a slot."""
        return self.documents.get(slot)

    @property
    def slots(self) -> list[DocumentSlot]:
        """Filled slots, in declaration order."""
        return [slot for slot in DocumentSlot if slot in self.documents]

    @property
    def references(self) -> set[str]:
        """Storage references of every document in the bundle."""
        return {doc.reference for doc in self.documents.values()}

    def to_dict(self) -> dict:
        """Convert to wire format."""
        return {slot.value: self.documents[slot].to_dict() for slot in self.slots}

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentBundle":
        """Create from wire format (stored descriptors only)."""
        return cls(
            documents={
                DocumentSlot(key): StoredDocument.from_dict(value)
                for key, value in data.items()
                if value
            }
        )


def bundle_to_dict(bundle: Optional[DocumentBundle]) -> Optional[dict]:
    """Serialise an optional bundle."""
    return bundle.to_dict() if bundle is not None else None


def bundle_from_dict(data: Optional[dict]) -> Optional[DocumentBundle]:
    """Deserialise an optional bundle."""
    return DocumentBundle.from_dict(data) if data else None


# =============================================================================
# User Profile
# =============================================================================


@dataclass(frozen=True)
class UserProfile:
    """Directory entry used to snapshot the submitting user."""

    user_id: str
    email: str
    name: str
    user_type: str
    account_type: str

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "email": self.email,
            "name": self.name,
            "userType": self.user_type,
            "accountType": self.account_type,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserProfile":
        return cls(
            user_id=data["userId"],
            email=data["email"],
            name=data["name"],
            user_type=data["userType"],
            account_type=data["accountType"],
        )


# =============================================================================
# Verification Request
# =============================================================================


@dataclass
class VerificationRequest:
    """
    One verification submission attempt.

    User fields are snapshotted at submission time and never refreshed.
    Review fields are populated only by a terminal decision.
    """

    request_id: str
    user_id: str
    user_email: str
    user_name: str
    user_type: str
    account_type: str
    status: RequestStatus
    submitted_at: datetime
    created_at: datetime
    updated_at: datetime
    request_type: str = DEFAULT_REQUEST_TYPE
    documents: Optional[DocumentBundle] = None
    business_info: Optional[dict] = None
    phone_verified: bool = False
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None

    @classmethod
    def create(
        cls,
        profile: UserProfile,
        documents: Optional[DocumentBundle] = None,
        business_info: Optional[dict] = None,
        request_type: str = DEFAULT_REQUEST_TYPE,
        status: RequestStatus = RequestStatus.UNDER_REVIEW,
        phone_verified: bool = False,
    ) -> "VerificationRequest":
        """Create a new request snapshotting the user's profile."""
        now = datetime.utcnow()
        return cls(
            request_id=generate_request_id(),
            user_id=profile.user_id,
            user_email=profile.email,
            user_name=profile.name,
            user_type=profile.user_type,
            account_type=profile.account_type,
            status=status,
            submitted_at=now,
            created_at=now,
            updated_at=now,
            request_type=request_type,
            documents=documents,
            business_info=business_info,
            phone_verified=phone_verified,
        )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_REQUEST_STATUSES

    @property
    def is_resolved(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES

    def resolve(self, status: RequestStatus, reviewed_by: str, notes: str) -> None:
        """Record a terminal review decision."""
        if status not in TERMINAL_REQUEST_STATUSES:
            raise ValueError(f"{status.value} is not a terminal status")
        if self.is_resolved:
            raise ValueError(f"Request {self.request_id} is already {self.status.value}")
        now = datetime.utcnow()
        self.status = status
        self.reviewed_at = now
        self.reviewed_by = reviewed_by
        self.review_notes = notes
        self.updated_at = now

    def to_dict(self) -> dict:
        """Convert to wire format."""
        return {
            "id": self.request_id,
            "userId": self.user_id,
            "userEmail": self.user_email,
            "userName": self.user_name,
            "userType": self.user_type,
            "accountType": self.account_type,
            "requestType": self.request_type,
            "status": self.status.value,
            "verificationDocuments": bundle_to_dict(self.documents),
            "businessInfo": self.business_info,
            "phoneVerified": self.phone_verified,
            "submittedAt": _format_datetime(self.submitted_at),
            "reviewedAt": _format_datetime(self.reviewed_at),
            "reviewedBy": self.reviewed_by,
            "reviewNotes": self.review_notes,
            "createdAt": _format_datetime(self.created_at),
            "updatedAt": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VerificationRequest":
        """Create from wire format."""
        return cls(
            request_id=data["id"],
            user_id=data["userId"],
            user_email=data["userEmail"],
            user_name=data["userName"],
            user_type=data["userType"],
            account_type=data["accountType"],
            request_type=data.get("requestType") or DEFAULT_REQUEST_TYPE,
            status=RequestStatus(data["status"]),
            documents=bundle_from_dict(data.get("verificationDocuments")),
            business_info=data.get("businessInfo"),
            phone_verified=bool(data.get("phoneVerified", False)),
            submitted_at=datetime.fromisoformat(data["submittedAt"]),
            reviewed_at=_parse_datetime(data.get("reviewedAt")),
            reviewed_by=data.get("reviewedBy"),
            review_notes=data.get("reviewNotes"),
            created_at=datetime.fromisoformat(data["createdAt"]),
            updated_at=datetime.fromisoformat(data["updatedAt"]),
        )


# =============================================================================
# User Verification Record
# =============================================================================


@dataclass
class UserVerificationRecord:
    """
    Authoritative verification status of one user.

    State changes go through the ``mark_*`` methods, which keep ``verified``
    coupled to the status and move documents between the active and
    archived fields together.
    """

    user_id: str
    verification_status: UserVerificationStatus = UserVerificationStatus.NOT_STARTED
    verified: bool = False
    verification_submitted: bool = False
    verification_documents: Optional[DocumentBundle] = None
    rejected_documents: Optional[DocumentBundle] = None
    phone_verified: bool = False
    business_details_completed: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def _touch(self) -> None:
        self.updated_at = datetime.utcnow()

    def mark_under_review(self, documents: Optional[DocumentBundle]) -> None:
        """A request is open; its documents become the active bundle."""
        self.verification_status = UserVerificationStatus.UNDER_REVIEW
        self.verified = False
        self.verification_submitted = True
        self.verification_documents = documents
        self._touch()

    def mark_approved(self, documents: Optional[DocumentBundle] = None) -> None:
        """The open request was approved."""
        self.verification_status = UserVerificationStatus.APPROVED
        self.verified = True
        self.verification_submitted = True
        if documents is not None:
            self.verification_documents = documents
        self._touch()

    def mark_rejected(self, archived: Optional[DocumentBundle]) -> None:
        """
        The open request was rejected.

        The archived bundle replaces ``rejected_documents`` and the active
        bundle is cleared in the same step. Without an archive the previous
        rejected bundle is kept.
        """
        self.verification_status = UserVerificationStatus.REJECTED
        self.verified = False
        self.verification_submitted = True
        if archived is not None:
            self.rejected_documents = archived
        self.verification_documents = None
        self._touch()

    def to_dict(self) -> dict:
        """Convert to wire format."""
        return {
            "userId": self.user_id,
            "verificationStatus": self.verification_status.value,
            "verified": self.verified,
            "verificationSubmitted": self.verification_submitted,
            "verificationDocuments": bundle_to_dict(self.verification_documents),
            "rejectedDocuments": bundle_to_dict(self.rejected_documents),
            "phoneVerified": self.phone_verified,
            "businessDetailsCompleted": self.business_details_completed,
            "createdAt": _format_datetime(self.created_at),
            "updatedAt": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserVerificationRecord":
        """Create from wire format."""
        return cls(
            user_id=data["userId"],
            verification_status=UserVerificationStatus(data["verificationStatus"]),
            verified=bool(data.get("verified", False)),
            verification_submitted=bool(data.get("verificationSubmitted", False)),
            verification_documents=bundle_from_dict(data.get("verificationDocuments")),
            rejected_documents=bundle_from_dict(data.get("rejectedDocuments")),
            phone_verified=bool(data.get("phoneVerified", False)),
            business_details_completed=bool(data.get("businessDetailsCompleted", False)),
            created_at=datetime.fromisoformat(data["createdAt"]),
            updated_at=datetime.fromisoformat(data["updatedAt"]),
        )


# =============================================================================
# Business Details
# =============================================================================


@dataclass
class BusinessDetails:
    """Business metadata kept in sync from verification submissions."""

    user_id: str
    business_name: Optional[str] = None
    business_description: Optional[str] = None
    business_license_number: Optional[str] = None
    business_hours: Optional[str] = None
    specialties: list[str] = field(default_factory=list)
    policies: Optional[dict] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def apply(self, updates: dict) -> None:
        """Apply attribute updates from ``extract_business_fields``."""
        for attr, value in updates.items():
            setattr(self, attr, value)
        self.updated_at = datetime.utcnow()

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "businessName": self.business_name,
            "businessDescription": self.business_description,
            "businessLicenseNumber": self.business_license_number,
            "businessHours": self.business_hours,
            "specialties": list(self.specialties),
            "policies": self.policies,
            "createdAt": _format_datetime(self.created_at),
            "updatedAt": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BusinessDetails":
        return cls(
            user_id=data["userId"],
            business_name=data.get("businessName"),
            business_description=data.get("businessDescription"),
            business_license_number=data.get("businessLicenseNumber"),
            business_hours=data.get("businessHours"),
            specialties=list(data.get("specialties") or []),
            policies=data.get("policies"),
            created_at=datetime.fromisoformat(data["createdAt"]),
            updated_at=datetime.fromisoformat(data["updatedAt"]),
        )


def extract_business_fields(payload: dict) -> dict:
    """
    Pick business fields out of a submission payload.

    Returns a mapping of BusinessDetails attribute -> value containing only
    the fields present (and not None) in the payload.
    """
    updates = {}
    for key, attr in BUSINESS_FIELDS.items():
        value = payload.get(key)
        if value is None:
            continue
        if attr == "specialties":
            value = [value] if isinstance(value, str) else list(value)
        updates[attr] = value
    return updates
