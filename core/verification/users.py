"""
User Directory - Profiles Snapshotted into Verification Requests

Uses JSON file persistence, swappable for the marketplace user table later.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from core.verification.errors import NotFoundError, ValidationError
from core.verification.schema import UserProfile

logger = logging.getLogger(__name__)


class UserDirectory:
    """Repository of marketplace user profiles."""

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialize directory.

        Args:
            persist_path: Path to JSON file for persistence
        """
        self._profiles: dict[str, UserProfile] = {}
        self._persist_path = Path(persist_path) if persist_path else None
        self._lock = threading.Lock()

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        if not self._persist_path:
            return

        data = {
            "users": {uid: p.to_dict() for uid, p in self._profiles.items()},
            "saved_at": datetime.utcnow().isoformat(),
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2))

    def _load_from_file(self) -> None:
        try:
            data = json.loads(self._persist_path.read_text())
            for uid, profile_data in data.get("users", {}).items():
                self._profiles[uid] = UserProfile.from_dict(profile_data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load user directory data: %s", e)

    def register(
        self,
        user_id: str,
        email: str,
        name: str,
        user_type: str,
        account_type: str,
    ) -> UserProfile:
        """
        Create or replace a user profile.

        Raises:
            ValidationError: If a required field is empty
        """
        for field_name, value in (
            ("user_id", user_id),
            ("email", email),
            ("name", name),
            ("user_type", user_type),
            ("account_type", account_type),
        ):
            if not value or not str(value).strip():
                raise ValidationError(f"{field_name} is required")

        profile = UserProfile(
            user_id=user_id,
            email=email.strip().lower(),
            name=name.strip(),
            user_type=user_type,
            account_type=account_type,
        )
        with self._lock:
            self._profiles[user_id] = profile
            self._save_to_file()
        return profile

    def get(self, user_id: str) -> Optional[UserProfile]:
        """Get a profile by user ID."""
        return self._profiles.get(user_id)

    def require(self, user_id: str) -> UserProfile:
        """
        Get a profile, failing if the user is unknown.

        Raises:
            NotFoundError: If no profile exists
        """
        profile = self._profiles.get(user_id)
        if profile is None:
            raise NotFoundError("User not found")
        return profile

    def list_all(self) -> list[UserProfile]:
        return list(self._profiles.values())

    def count(self) -> int:
        return len(self._profiles)


# =============================================================================
# Singleton Instance
# =============================================================================

_directory_instance: Optional[UserDirectory] = None


def get_user_directory(persist_path: Optional[str] = None) -> UserDirectory:
    """
    Get the user directory singleton.

    Args:
        persist_path: Optional path for persistence (only used on first call)
    """
    global _directory_instance
    if _directory_instance is None:
        _directory_instance = UserDirectory(persist_path or "data/users.json")
    return _directory_instance


def reset_user_directory() -> None:
    """Reset the singleton instance (for testing)."""
    global _directory_instance
    _directory_instance = None
