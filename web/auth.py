"""
Bearer Authentication - Signed Tokens for Marketplace Principals

Implements:
- Token issue/verify for principals (user id, email, admin flag)
- Bearer header parsing

Tokens are base64(json_payload).hmac_sha256_signature with an expiry
inside the payload. Role checks happen in web.dependencies.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final, Optional

from core.verification.errors import AuthError

BEARER_PREFIX: Final[str] = "Bearer "


# =============================================================================
# Principal
# =============================================================================


@dataclass(frozen=True)
class Principal:
    """An authenticated caller."""

    user_id: str
    email: str
    is_admin: bool
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        """Check if the token has expired."""
        return datetime.utcnow() > self.expires_at

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "email": self.email,
            "isAdmin": self.is_admin,
            "expiresAt": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Principal":
        return cls(
            user_id=data["userId"],
            email=data["email"],
            is_admin=bool(data.get("isAdmin", False)),
            expires_at=datetime.fromisoformat(data["expiresAt"]),
        )


# =============================================================================
# Token Management
# =============================================================================


def _signature(payload_b64: str, secret: str) -> str:
    return hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).hexdigest()


def issue_token(
    user_id: str,
    email: str,
    secret: str,
    is_admin: bool = False,
    ttl_hours: int = 24,
) -> str:
    """
    Sign a bearer token for a principal.

    Usage:
        python -m web.cli issue-token admin-1 ops@example.com --admin
    """
    principal = Principal(
        user_id=user_id,
        email=email,
        is_admin=is_admin,
        expires_at=datetime.utcnow() + timedelta(hours=ttl_hours),
    )
    payload = json.dumps(principal.to_dict(), separators=(",", ":"))
    payload_b64 = base64.urlsafe_b64encode(payload.encode()).decode()
    return f"{payload_b64}.{_signature(payload_b64, secret)}"


def verify_token(token: str, secret: str) -> Principal:
    """
    Verify and decode a bearer token.

    Raises:
        AuthError: If the token is malformed, forged or expired
    """
    try:
        payload_b64, signature = token.rsplit(".", 1)
    except ValueError:
        raise AuthError("Invalid token")

    if not hmac.compare_digest(signature, _signature(payload_b64, secret)):
        raise AuthError("Invalid token")

    try:
        payload = base64.urlsafe_b64decode(payload_b64.encode()).decode()
        principal = Principal.from_dict(json.loads(payload))
    except (ValueError, KeyError, json.JSONDecodeError):
        raise AuthError("Invalid token")

    if principal.is_expired:
        raise AuthError("Token expired")

    return principal


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Get the token from an Authorization header.

    Raises:
        AuthError: If the header is missing or not a bearer credential
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthError("No token provided")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthError("No token provided")
    return token
