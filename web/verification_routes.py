"""
Verification Routes - Submission and Status for Marketplace Users

Routes:
- POST /api/verification/request - Submit (or re-find the open) verification request
- GET  /api/verification/status  - Caller's current verification status and history

All routes require a bearer token.
"""

from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from core.verification import (
    SubmissionHandler,
    UserVerificationRecord,
    VerificationStore,
)
from web.auth import Principal
from web.dependencies import current_principal, get_store, get_submission_handler


router = APIRouter(prefix="/api/verification", tags=["verification"])


class VerificationSubmission(BaseModel):
    """Request body for a verification submission."""

    model_config = ConfigDict(extra="allow")

    requestType: Optional[str] = None
    status: Optional[str] = None
    documents: Optional[dict] = None
    verificationDocuments: Optional[dict] = None
    businessInfo: Optional[dict] = None
    phoneVerified: Optional[bool] = None
    businessName: Optional[str] = None
    businessDescription: Optional[str] = None
    businessLicenseNumber: Optional[str] = None
    businessHours: Optional[str] = None
    specialties: Optional[Union[list[str], str]] = None
    policies: Optional[dict] = None


@router.post("/request")
def submit_verification_request(
    body: VerificationSubmission,
    principal: Principal = Depends(current_principal),
    handler: SubmissionHandler = Depends(get_submission_handler),
):
    """
    Submit a verification request.

    Returns the existing request (``existing: true``) when one is already open.
    """
    result = handler.submit(principal.user_id, body.model_dump(exclude_none=True))
    return result.to_dict()


@router.get("/status")
def verification_status(
    principal: Principal = Depends(current_principal),
    store: VerificationStore = Depends(get_store),
):
    """Get the caller's verification record, open request and history."""
    record = store.get_record(principal.user_id) or UserVerificationRecord(
        user_id=principal.user_id
    )
    open_request = store.find_open_request(principal.user_id)
    history = store.list_requests_for_user(principal.user_id)

    return {
        "success": True,
        "verification": record.to_dict(),
        "openRequestId": open_request.request_id if open_request else None,
        "requests": [r.to_dict() for r in history],
    }
