"""
Storage Routes - Temporary URLs for Verification Documents

Routes:
- POST /api/storage/presigned-url - Resolve a storage reference to a temporary URL
- GET  /files/{reference}         - Serve a local object behind a signed URL
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from pydantic import BaseModel

from core.verification import (
    AuthorizationError,
    LocalObjectStorage,
    NotFoundError,
    ObjectStorage,
    ValidationError,
    VerificationStore,
)
from utils.config import Config
from web.auth import Principal
from web.dependencies import current_principal, get_config, get_storage, get_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["storage"])


class PresignRequest(BaseModel):
    """Request body for URL resolution."""

    reference: Optional[str] = None
    expiresIn: Optional[int] = None


def _expiry(requested: Optional[int], config: Config) -> int:
    if requested is None or requested <= 0 or requested > config.presign_max_seconds:
        return config.presign_default_seconds
    return requested


@router.post("/api/storage/presigned-url")
def presigned_url(
    body: PresignRequest,
    principal: Principal = Depends(current_principal),
    config: Config = Depends(get_config),
    store: VerificationStore = Depends(get_store),
    storage: ObjectStorage = Depends(get_storage),
):
    """
    Resolve a storage reference to a time-boxed URL.

    Non-admins may only resolve documents they submitted.
    """
    reference = (body.reference or "").strip()
    if not reference:
        raise ValidationError("reference is required")

    if not principal.is_admin and reference not in store.owned_references(principal.user_id):
        logger.warning("User %s asked for foreign reference %s", principal.user_id, reference)
        raise AuthorizationError("Not allowed to access this document")

    expires_in = _expiry(body.expiresIn, config)
    return {
        "success": True,
        "presignedUrl": storage.resolve(reference, expires_in),
        "reference": reference,
        "expiresIn": expires_in,
    }


@router.get("/files/{reference:path}")
def serve_file(
    reference: str,
    expires: int = 0,
    signature: str = "",
    storage: ObjectStorage = Depends(get_storage),
):
    """Serve a locally stored object for a valid signed URL."""
    if not isinstance(storage, LocalObjectStorage):
        raise NotFoundError("File serving is only available for local storage")

    if not signature or not storage.verify_signature(reference, expires, signature):
        raise AuthorizationError("Invalid or expired signature")

    return FileResponse(path=storage.path_for(reference))
