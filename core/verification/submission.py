"""
Request Submission Handler - Opening a Verification Request

A user may hold at most one open (pending or under-review) request. A
submission while one is open returns that request instead of creating a
new row, so client retries are safe.

Order of work for a new request:
1. Resolve the user's profile for the snapshot fields
2. Normalise the document bundle (uploads happen here, before any write)
3. Insert the request, mirror its documents into the user's record and
   upsert business details, all in one store transaction
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, Optional

from core.verification.errors import ValidationError
from core.verification.normalizer import DocumentNormalizer, parse_document_bundle
from core.verification.repository import VerificationStore
from core.verification.schema import (
    DEFAULT_REQUEST_TYPE,
    OPEN_REQUEST_STATUSES,
    RequestStatus,
    UserVerificationRecord,
    VerificationRequest,
    extract_business_fields,
)
from core.verification.users import UserDirectory

logger = logging.getLogger(__name__)


# Payload keys accepted for the document bundle, in order of preference
DOCUMENT_PAYLOAD_KEYS: Final[tuple[str, ...]] = ("documents", "verificationDocuments")


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a submission."""

    request_id: str
    is_new_request: bool

    @property
    def message(self) -> str:
        if self.is_new_request:
            return "Verification request submitted successfully"
        return "Verification request already submitted"

    def to_dict(self) -> dict:
        body = {
            "success": True,
            "message": self.message,
            "requestId": self.request_id,
        }
        if not self.is_new_request:
            body["existing"] = True
        return body


def _requested_status(payload: dict) -> RequestStatus:
    raw = payload.get("status")
    if raw is None:
        return RequestStatus.UNDER_REVIEW
    try:
        status = RequestStatus(raw)
    except ValueError:
        raise ValidationError(f"Invalid status: {raw}")
    if status not in OPEN_REQUEST_STATUSES:
        raise ValidationError(f"A new request cannot start as {status.value}")
    return status


def _business_info(payload: dict) -> Optional[dict]:
    info = payload.get("businessInfo")
    if info is not None and not isinstance(info, dict):
        raise ValidationError("businessInfo must be an object")
    return info or None


def _document_payload(payload: dict) -> Optional[dict]:
    for key in DOCUMENT_PAYLOAD_KEYS:
        if payload.get(key):
            return payload[key]
    return None


class SubmissionHandler:
    """
    Accepts verification submissions.

    Usage:
        handler = SubmissionHandler(store, directory, DocumentNormalizer(storage))
        result = handler.submit(user_id, payload)
    """

    def __init__(
        self,
        store: VerificationStore,
        directory: UserDirectory,
        normalizer: DocumentNormalizer,
    ):
        self._store = store
        self._directory = directory
        self._normalizer = normalizer

    def submit(self, user_id: str, payload: Optional[dict] = None) -> SubmissionResult:
        """
        Submit a verification request for a user.

        Args:
            user_id: Authenticated user
            payload: Submission body (documents, businessInfo, business fields, ...)

        Returns:
            SubmissionResult with the new or already-open request id

        Raises:
            NotFoundError: If the user has no profile
            ValidationError: If the payload is malformed or reuses a reference the user does not own
            UploadError: If a document cannot be normalised (nothing is written)
            PersistenceError: If the store cannot be written
        """
        payload = payload or {}
        profile = self._directory.require(user_id)

        with self._store.user_lock(user_id):
            existing = self._store.find_open_request(user_id)
            if existing is not None:
                self._reassert_under_review(existing)
                logger.warning(
                    "User %s already has open request %s; returning it",
                    user_id,
                    existing.request_id,
                )
                return SubmissionResult(request_id=existing.request_id, is_new_request=False)

            status = _requested_status(payload)
            business_info = _business_info(payload)
            business_updates = extract_business_fields(payload)
            bundle = self._normalizer.normalize(
                parse_document_bundle(_document_payload(payload)),
                owned_references=self._store.owned_references(user_id),
            )

            request = VerificationRequest.create(
                profile=profile,
                documents=bundle,
                business_info=business_info,
                request_type=payload.get("requestType") or DEFAULT_REQUEST_TYPE,
                status=status,
                phone_verified=bool(payload.get("phoneVerified", False)),
            )

            with self._store.transaction():
                self._store.insert_request(request)

                record = self._store.get_record(user_id) or UserVerificationRecord(user_id=user_id)
                record.mark_under_review(bundle)
                self._store.save_record(record)

                if business_updates:
                    self._store.upsert_business_details(user_id, business_updates)

        logger.info(
            "Verification request %s submitted by %s (%s)",
            request.request_id,
            user_id,
            ", ".join(s.value for s in bundle.slots) if bundle else "no documents",
        )
        return SubmissionResult(request_id=request.request_id, is_new_request=True)

    def _reassert_under_review(self, existing: VerificationRequest) -> None:
        """Make the user's record agree with an already-open request."""
        with self._store.transaction():
            record = self._store.get_record(existing.user_id)
            if record is None:
                record = UserVerificationRecord(user_id=existing.user_id)
                record.mark_under_review(existing.documents)
            else:
                record.mark_under_review(record.verification_documents or existing.documents)
            self._store.save_record(record)
