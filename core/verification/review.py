"""
Review Decision Engine - Admin Approval and Rejection

A decision is terminal for its request. Each decision updates the request
and the owner's verification record in one store transaction, under the
owner's lock, so a racing approve/reject cannot leave the record disagreeing
with the request.

Rejection transfers document custody: the request's bundle (or, if it
carried none, the user's active bundle) becomes ``rejected_documents`` and
the active bundle is cleared.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.verification.errors import ConflictError, NotFoundError, ValidationError
from core.verification.repository import VerificationStore
from core.verification.schema import (
    DEFAULT_APPROVE_NOTES,
    DEFAULT_REJECT_NOTES,
    RequestStatus,
    UserVerificationRecord,
    VerificationRequest,
)

logger = logging.getLogger(__name__)


def _notes_or_default(notes: Optional[str], default: str) -> str:
    if notes and notes.strip():
        return notes.strip()
    return default


class ReviewDecisionEngine:
    """Applies admin decisions to verification requests."""

    def __init__(self, store: VerificationStore):
        self._store = store

    def approve(
        self,
        request_id: str,
        admin_id: str,
        notes: Optional[str] = None,
    ) -> VerificationRequest:
        """
        Approve an open request and mark its owner verified.

        Raises:
            NotFoundError: If the request does not exist
            ConflictError: If the request is already resolved
        """
        return self._decide(
            request_id,
            admin_id,
            RequestStatus.APPROVED,
            _notes_or_default(notes, DEFAULT_APPROVE_NOTES),
        )

    def reject(
        self,
        request_id: str,
        admin_id: str,
        notes: Optional[str] = None,
    ) -> VerificationRequest:
        """
        Reject an open request and archive its documents.

        Raises:
            NotFoundError: If the request does not exist
            ConflictError: If the request is already resolved
        """
        return self._decide(
            request_id,
            admin_id,
            RequestStatus.REJECTED,
            _notes_or_default(notes, DEFAULT_REJECT_NOTES),
        )

    def _load(self, request_id: str) -> VerificationRequest:
        request = self._store.get_request(request_id) if request_id else None
        if request is None:
            raise NotFoundError("Verification request not found")
        return request

    def _decide(
        self,
        request_id: str,
        admin_id: str,
        decision: RequestStatus,
        notes: str,
    ) -> VerificationRequest:
        if not admin_id:
            raise ValidationError("Reviewer id is required")

        owner = self._load(request_id).user_id

        with self._store.user_lock(owner):
            with self._store.transaction():
                # Re-read under the owner's lock; a concurrent decision may have landed
                request = self._load(request_id)
                if request.is_resolved:
                    raise ConflictError(
                        f"Verification request {request_id} is already {request.status.value}"
                    )

                request.resolve(decision, reviewed_by=admin_id, notes=notes)
                self._store.save_request(request)

                record = self._store.get_record(owner)
                if decision == RequestStatus.APPROVED:
                    record = record or UserVerificationRecord(user_id=owner)
                    record.mark_approved(request.documents)
                else:
                    archived = request.documents or (
                        record.verification_documents if record else None
                    )
                    if record is None:
                        logger.warning("No verification record for %s; creating one", owner)
                        record = UserVerificationRecord(user_id=owner)
                    record.mark_rejected(archived)
                self._store.save_record(record)

        logger.info(
            "Admin %s %s verification request %s for %s",
            admin_id,
            decision.value,
            request_id,
            request.user_email,
        )
        return request
