"""
Admin Routes - Verification Review for Administrators

All routes require a bearer token whose principal is an administrator.
Non-admins receive 403 Forbidden.

Routes:
- GET  /api/admin/verification-requests             - List requests (optional ?status=)
- GET  /api/admin/verification-requests/{id}        - Request detail with owner state
- POST /api/admin/verification-requests/approve     - Approve a request
- POST /api/admin/verification-requests/reject      - Reject a request
- POST /api/admin/users                             - Register a user profile
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core.verification import (
    NotFoundError,
    RequestStatus,
    ReviewDecisionEngine,
    UserDirectory,
    ValidationError,
    VerificationStore,
)
from web.auth import Principal
from web.dependencies import get_directory, get_review_engine, get_store, require_admin


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api/admin", tags=["admin"])


class ReviewDecision(BaseModel):
    """Request body for approve/reject."""

    requestId: Optional[str] = None
    reviewNotes: Optional[str] = None


class UserRegistration(BaseModel):
    """Request body for registering a marketplace user profile."""

    userId: str
    email: str
    name: str
    userType: str
    accountType: str


def _required_request_id(body: ReviewDecision) -> str:
    if not body.requestId or not body.requestId.strip():
        raise ValidationError("Request ID is required")
    return body.requestId.strip()


# =============================================================================
# Request Listing
# =============================================================================


@router.get("/verification-requests")
def list_verification_requests(
    status: Optional[str] = None,
    admin: Principal = Depends(require_admin),
    store: VerificationStore = Depends(get_store),
    directory: UserDirectory = Depends(get_directory),
):
    """List all verification requests, newest first."""
    status_filter = None
    if status:
        try:
            status_filter = RequestStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid status: {status}")

    requests = store.get_admin_list(status_filter)
    for item in requests:
        profile = directory.get(item["userId"])
        item["user"] = profile.to_dict() if profile else None

    return {
        "success": True,
        "requests": requests,
        "counts": store.count_by_status(),
    }


@router.get("/verification-requests/{request_id}")
def verification_request_detail(
    request_id: str,
    admin: Principal = Depends(require_admin),
    store: VerificationStore = Depends(get_store),
    directory: UserDirectory = Depends(get_directory),
):
    """View one request with its owner's current verification state."""
    request = store.get_request(request_id)
    if request is None:
        raise NotFoundError("Verification request not found")

    record = store.get_record(request.user_id)
    business = store.get_business_details(request.user_id)
    profile = directory.get(request.user_id)

    return {
        "success": True,
        "request": request.to_dict(),
        "userVerification": record.to_dict() if record else None,
        "businessDetails": business.to_dict() if business else None,
        "user": profile.to_dict() if profile else None,
        "history": [r.to_dict() for r in store.list_requests_for_user(request.user_id)],
    }


# =============================================================================
# Approve/Reject Actions
# =============================================================================


@router.post("/verification-requests/approve")
def approve_verification_request(
    body: ReviewDecision,
    admin: Principal = Depends(require_admin),
    engine: ReviewDecisionEngine = Depends(get_review_engine),
):
    """Approve a verification request."""
    engine.approve(_required_request_id(body), admin.user_id, body.reviewNotes)
    return {
        "success": True,
        "message": "Verification request approved successfully",
    }


@router.post("/verification-requests/reject")
def reject_verification_request(
    body: ReviewDecision,
    admin: Principal = Depends(require_admin),
    engine: ReviewDecisionEngine = Depends(get_review_engine),
):
    """Reject a verification request and archive its documents."""
    engine.reject(_required_request_id(body), admin.user_id, body.reviewNotes)
    return {
        "success": True,
        "message": "Verification request rejected successfully",
    }


# =============================================================================
# User Directory
# =============================================================================


@router.post("/users")
def register_user(
    body: UserRegistration,
    admin: Principal = Depends(require_admin),
    directory: UserDirectory = Depends(get_directory),
):
    """Create or replace a marketplace user profile."""
    profile = directory.register(
        user_id=body.userId,
        email=body.email,
        name=body.name,
        user_type=body.userType,
        account_type=body.accountType,
    )
    return {"success": True, "user": profile.to_dict()}
