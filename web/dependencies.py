"""
Request Dependencies - Services and Principals for Route Handlers

Services are built once by ``create_app`` and kept on ``app.state``;
these dependencies hand them to routes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request

from core.verification import (
    AuthorizationError,
    ObjectStorage,
    ReviewDecisionEngine,
    SubmissionHandler,
    UserDirectory,
    VerificationStore,
)
from utils.config import Config
from web.auth import Principal, extract_bearer_token, verify_token


def get_config(request: Request) -> Config:
    return request.app.state.config


def get_store(request: Request) -> VerificationStore:
    return request.app.state.store


def get_directory(request: Request) -> UserDirectory:
    return request.app.state.directory


def get_storage(request: Request) -> ObjectStorage:
    return request.app.state.storage


def get_submission_handler(request: Request) -> SubmissionHandler:
    return request.app.state.submission_handler


def get_review_engine(request: Request) -> ReviewDecisionEngine:
    return request.app.state.review_engine


# =============================================================================
# Authentication Dependencies
# =============================================================================


def current_principal(
    authorization: Optional[str] = Header(None),
    config: Config = Depends(get_config),
) -> Principal:
    """
    Dependency that requires a valid bearer token.

    Raises AuthError (401) if missing or invalid.
    """
    return verify_token(extract_bearer_token(authorization), config.auth_secret)


def require_admin(principal: Principal = Depends(current_principal)) -> Principal:
    """
    Dependency that requires an administrator.

    Raises AuthorizationError (403) for non-admin principals.
    """
    if not principal.is_admin:
        raise AuthorizationError("Admin access required")
    return principal
