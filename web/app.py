"""
FastAPI application for the marketplace verification service.

Production deployment configuration via environment variables.
"""

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.verification import (
    DocumentNormalizer,
    ObjectStorage,
    ReviewDecisionEngine,
    SubmissionHandler,
    UserDirectory,
    ValidationError,
    VerificationError,
    VerificationStore,
    get_object_storage,
    get_user_directory,
    get_verification_store,
)
from utils.config import Config
from web.admin_routes import router as admin_router
from web.storage_routes import router as storage_router
from web.verification_routes import router as verification_router

logger = logging.getLogger(__name__)

# =============================================================================
# Environment Configuration
# =============================================================================

# Production mode detection
IS_PRODUCTION = os.getenv("RAILWAY_ENVIRONMENT") is not None or os.getenv("PRODUCTION", "").lower() == "true"


def create_app(
    config: Optional[Config] = None,
    store: Optional[VerificationStore] = None,
    directory: Optional[UserDirectory] = None,
    storage: Optional[ObjectStorage] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Collaborators default to the configured singletons; tests pass their own.
    """
    config = config or Config.load()
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))

    app = FastAPI(
        title="Marketplace Verification Service",
        description="Verification request lifecycle: submission, review and document custody",
        version="0.1.0",
        # Production settings: disable docs/redoc for private deployment
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=config.debug and not IS_PRODUCTION,
    )

    store = store or get_verification_store(config.store_path)
    directory = directory or get_user_directory(config.users_path)
    storage = storage or get_object_storage(config)

    app.state.config = config
    app.state.store = store
    app.state.directory = directory
    app.state.storage = storage
    app.state.submission_handler = SubmissionHandler(
        store,
        directory,
        DocumentNormalizer(storage, max_size_bytes=config.max_document_size_bytes),
    )
    app.state.review_engine = ReviewDecisionEngine(store)

    @app.get("/", include_in_schema=False)
    def root():
        """Root healthcheck. No dependencies, no IO."""
        return {"status": "ok"}

    @app.get("/health", include_in_schema=False)
    def health():
        """Secondary health endpoint. No dependencies, no IO."""
        return {"status": "healthy"}

    @app.get("/api/health")
    def api_health():
        """Health check endpoint with store counters."""
        return {
            "status": "healthy",
            "version": "0.1.0",
            "environment": "production" if IS_PRODUCTION else "development",
            "requests": store.count_requests(),
        }

    # CORS middleware - only when origins are configured
    if config.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )

    # ==========================================================================
    # Error rendering: every failure leaves as {success, error, message}
    # ==========================================================================
    @app.exception_handler(VerificationError)
    async def verification_error_handler(request: Request, exc: VerificationError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field_name = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field_name}: {first.get('msg', 'invalid')}" if field_name else "Invalid request body"
        return JSONResponse(ValidationError(message).to_dict(), status_code=400)

    app.include_router(verification_router)
    app.include_router(admin_router)
    app.include_router(storage_router)

    logger.info(
        "Verification service configured (storage=%s, data_dir=%s)",
        config.storage_backend,
        config.data_dir,
    )
    return app
