"""
Marketplace Verification Service - Core Business Logic

This module provides the verification request lifecycle:
1. Document normalisation (inline content -> stored references)
2. Submission with a single open request per user
3. Admin review (approve / reject with document custody transfer)
4. Durable, transactional verification state
"""

from .verification import (
    SubmissionHandler,
    SubmissionResult,
    ReviewDecisionEngine,
    DocumentNormalizer,
    VerificationStore,
    UserDirectory,
    VerificationError,
)

__all__ = [
    "SubmissionHandler",
    "SubmissionResult",
    "ReviewDecisionEngine",
    "DocumentNormalizer",
    "VerificationStore",
    "UserDirectory",
    "VerificationError",
]
