"""
Verification Store - Requests, User Status and Business Details

In-memory tables with JSON file persistence. Every write goes through
``transaction()``: the tables are snapshotted, the unit is applied, the file
is written once, and any failure restores the snapshot. Readers receive
copies, so nothing outside a transaction can mutate stored rows.

Concurrency:
- The store lock serialises transactions and table reads.
- ``user_lock(user_id)`` serialises whole lifecycle operations for one user
  (check, upload, write) without blocking other users.
- ``insert_request`` refuses a second open request for the same user.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import weakref
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from core.verification.errors import ConflictError, PersistenceError
from core.verification.schema import (
    BusinessDetails,
    RequestStatus,
    UserVerificationRecord,
    VerificationRequest,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Store
# =============================================================================


class VerificationStore:
    """
    Durable state of the verification lifecycle.

    Tables:
    - requests: request_id -> VerificationRequest (insertion ordered)
    - records: user_id -> UserVerificationRecord
    - business: user_id -> BusinessDetails
    """

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialise store.

        Args:
            persist_path: Optional path to persist data to JSON file
        """
        self._requests: dict[str, VerificationRequest] = {}
        self._records: dict[str, UserVerificationRecord] = {}
        self._business: dict[str, BusinessDetails] = {}
        self._persist_path = Path(persist_path) if persist_path else None

        self._lock = threading.RLock()
        self._depth = 0
        # Entries disappear once no caller holds the lock
        self._user_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self._user_locks_guard = threading.Lock()

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    # =========================================================================
    # Persistence
    # =========================================================================

    def _save_to_file(self) -> None:
        """Persist data to file."""
        if not self._persist_path:
            return

        data = {
            "requests": [r.to_dict() for r in self._requests.values()],
            "records": {uid: r.to_dict() for uid, r in self._records.items()},
            "businessDetails": {uid: b.to_dict() for uid, b in self._business.items()},
            "saved_at": datetime.utcnow().isoformat(),
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._persist_path.with_suffix(self._persist_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2))
        tmp_path.replace(self._persist_path)

    def _load_from_file(self) -> None:
        """Load data from file."""
        try:
            data = json.loads(self._persist_path.read_text())
            for request_data in data.get("requests", []):
                request = VerificationRequest.from_dict(request_data)
                self._requests[request.request_id] = request
            for uid, record_data in data.get("records", {}).items():
                self._records[uid] = UserVerificationRecord.from_dict(record_data)
            for uid, business_data in data.get("businessDetails", {}).items():
                self._business[uid] = BusinessDetails.from_dict(business_data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            raise PersistenceError(
                f"Could not load verification data from {self._persist_path}: {e}"
            ) from e

        logger.info(
            "Loaded %d requests and %d user records from %s",
            len(self._requests),
            len(self._records),
            self._persist_path,
        )

    # =========================================================================
    # Units of Work
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator["VerificationStore"]:
        """
        Apply a group of writes as one unit.

        Nested transactions join the outermost one. The file is written when
        the outermost transaction completes; on any exception the in-memory
        tables are restored to their state at entry.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = copy.deepcopy((self._requests, self._records, self._business))
            self._depth = 1
            try:
                yield self
                try:
                    self._save_to_file()
                except OSError as e:
                    logger.error("Persisting verification store failed: %s", e)
                    raise PersistenceError(f"Failed to persist verification data: {e}") from e
            except BaseException:
                self._requests, self._records, self._business = snapshot
                raise
            finally:
                self._depth = 0

    @contextmanager
    def user_lock(self, user_id: str) -> Iterator[None]:
        """Serialise lifecycle operations for one user."""
        with self._user_locks_guard:
            lock = self._user_locks.setdefault(user_id, threading.Lock())
        with lock:
            yield

    # =========================================================================
    # Requests
    # =========================================================================

    def insert_request(self, request: VerificationRequest) -> VerificationRequest:
        """
        Insert a new verification request.

        Raises:
            ConflictError: If the id exists, or the user already has an open request
        """
        with self.transaction():
            if request.request_id in self._requests:
                raise ConflictError(f"Verification request {request.request_id} already exists")
            if request.is_open:
                existing = self._find_open_request(request.user_id)
                if existing is not None:
                    raise ConflictError(
                        f"User {request.user_id} already has open request {existing.request_id}"
                    )
            self._requests[request.request_id] = copy.deepcopy(request)
        return request

    def save_request(self, request: VerificationRequest) -> None:
        """
        Replace a stored request.

        Raises:
            KeyError: If the request was never inserted
        """
        with self.transaction():
            if request.request_id not in self._requests:
                raise KeyError(request.request_id)
            self._requests[request.request_id] = copy.deepcopy(request)

    def get_request(self, request_id: str) -> Optional[VerificationRequest]:
        """Get a request by ID."""
        with self._lock:
            request = self._requests.get(request_id)
            return copy.deepcopy(request) if request else None

    def _user_requests(self, user_id: str) -> list[VerificationRequest]:
        """A user's requests, newest first."""
        return [r for r in reversed(self._requests.values()) if r.user_id == user_id]

    def _find_open_request(self, user_id: str) -> Optional[VerificationRequest]:
        for request in self._user_requests(user_id):
            if request.is_open:
                return request
        return None

    def find_open_request(self, user_id: str) -> Optional[VerificationRequest]:
        """Get the user's pending or under-review request, if any."""
        with self._lock:
            request = self._find_open_request(user_id)
            return copy.deepcopy(request) if request else None

    def list_requests_for_user(self, user_id: str) -> list[VerificationRequest]:
        """Get all of a user's requests, newest first."""
        with self._lock:
            return copy.deepcopy(self._user_requests(user_id))

    def list_requests(self, status: Optional[RequestStatus] = None) -> list[VerificationRequest]:
        """Get all requests, newest first, optionally filtered by status."""
        with self._lock:
            requests = [
                r for r in reversed(self._requests.values())
                if status is None or r.status == status
            ]
            return copy.deepcopy(requests)

    def count_requests(self) -> int:
        with self._lock:
            return len(self._requests)

    def count_by_status(self) -> dict[str, int]:
        """Get count of requests by status."""
        with self._lock:
            counts: dict[str, int] = {}
            for request in self._requests.values():
                counts[request.status.value] = counts.get(request.status.value, 0) + 1
            return counts

    # =========================================================================
    # User Verification Records
    # =========================================================================

    def get_record(self, user_id: str) -> Optional[UserVerificationRecord]:
        """Get a user's verification record."""
        with self._lock:
            record = self._records.get(user_id)
            return copy.deepcopy(record) if record else None

    def save_record(self, record: UserVerificationRecord) -> None:
        """Insert or replace a user's verification record."""
        with self.transaction():
            self._records[record.user_id] = copy.deepcopy(record)

    def owned_references(self, user_id: str) -> set[str]:
        """Storage references the user has submitted, active or archived."""
        with self._lock:
            references: set[str] = set()
            record = self._records.get(user_id)
            if record:
                for bundle in (record.verification_documents, record.rejected_documents):
                    if bundle:
                        references |= bundle.references
            for request in self._user_requests(user_id):
                if request.documents:
                    references |= request.documents.references
            return references

    # =========================================================================
    # Business Details
    # =========================================================================

    def get_business_details(self, user_id: str) -> Optional[BusinessDetails]:
        with self._lock:
            details = self._business.get(user_id)
            return copy.deepcopy(details) if details else None

    def upsert_business_details(self, user_id: str, updates: dict) -> BusinessDetails:
        """
        Update the user's business details, creating the row if absent.

        Args:
            user_id: Owning user
            updates: BusinessDetails attribute -> value

        Returns:
            The stored BusinessDetails
        """
        with self.transaction():
            details = self._business.get(user_id)
            if details is None:
                details = BusinessDetails(user_id=user_id)
                self._business[user_id] = details
            details.apply(updates)
            return copy.deepcopy(details)

    # =========================================================================
    # Admin View
    # =========================================================================

    def get_admin_list(self, status: Optional[RequestStatus] = None) -> list[dict]:
        """
        Requests joined with the owner's current record and business details.

        Returns list of request dicts, newest first.
        """
        with self._lock:
            result = []
            for request in self.list_requests(status):
                item = request.to_dict()
                record = self._records.get(request.user_id)
                business = self._business.get(request.user_id)
                item["userVerification"] = record.to_dict() if record else None
                item["businessName"] = business.business_name if business else None
                item["businessDescription"] = business.business_description if business else None
                item["businessLicenseNumber"] = (
                    business.business_license_number if business else None
                )
                result.append(item)
            return result


# =============================================================================
# Singleton Instance
# =============================================================================

_store_instance: Optional[VerificationStore] = None


def get_verification_store(persist_path: Optional[str] = None) -> VerificationStore:
    """
    Get the verification store singleton.

    Args:
        persist_path: Optional path for persistence (only used on first call)

    Returns:
        VerificationStore instance
    """
    global _store_instance
    if _store_instance is None:
        _store_instance = VerificationStore(persist_path or "data/verification.json")
    return _store_instance


def reset_verification_store() -> None:
    """Reset the singleton instance (for testing)."""
    global _store_instance
    _store_instance = None
