"""
Tests for the Verification Store

Tests covering:
1. Open-request uniqueness per user
2. Transactions are all-or-nothing
3. Persistence survives a reload
4. Readers get copies, not live rows
5. Owned references and per-user locks
"""

from __future__ import annotations

import gc
import json
import tempfile
import threading
import time
from pathlib import Path

import pytest

from core.verification import (
    ConflictError,
    DocumentBundle,
    DocumentSlot,
    PersistenceError,
    RequestStatus,
    StoredDocument,
    UserProfile,
    UserVerificationRecord,
    UserVerificationStatus,
    VerificationRequest,
    VerificationStore,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_path():
    """Create a temporary JSON path for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield str(Path(tmpdir) / "verification.json")


@pytest.fixture
def store(temp_path):
    return VerificationStore(persist_path=temp_path)


@pytest.fixture
def profile():
    return UserProfile(
        user_id="farmer-1",
        email="farmer@example.com",
        name="Ada Farmer",
        user_type="farmer",
        account_type="business",
    )


@pytest.fixture
def bundle():
    return DocumentBundle(documents={
        DocumentSlot.ID_CARD: StoredDocument(
            reference="verification/id.png",
            filename="id.png",
            original_name="my-id.png",
            size_bytes=10,
            mime_type="image/png",
        ),
    })


# =============================================================================
# Request Tests
# =============================================================================


class TestRequests:
    """Tests for request insertion and lookup."""

    def test_insert_and_get(self, store, profile, bundle):
        request = VerificationRequest.create(profile, documents=bundle)
        store.insert_request(request)

        loaded = store.get_request(request.request_id)
        assert loaded.user_email == "farmer@example.com"
        assert loaded.status == RequestStatus.UNDER_REVIEW
        assert loaded.documents == bundle

    def test_second_open_request_is_refused(self, store, profile):
        """A user never holds two open requests."""
        store.insert_request(VerificationRequest.create(profile))
        with pytest.raises(ConflictError):
            store.insert_request(VerificationRequest.create(profile, status=RequestStatus.PENDING))
        assert store.count_requests() == 1

    def test_resolved_request_does_not_block(self, store, profile):
        first = store.insert_request(VerificationRequest.create(profile))
        first.resolve(RequestStatus.REJECTED, reviewed_by="admin", notes="blurry")
        store.save_request(first)

        store.insert_request(VerificationRequest.create(profile))
        assert store.count_requests() == 2
        assert store.find_open_request(profile.user_id).request_id != first.request_id

    def test_duplicate_id_is_refused(self, store, profile):
        request = store.insert_request(VerificationRequest.create(profile))
        request.resolve(RequestStatus.APPROVED, reviewed_by="admin", notes="ok")
        with pytest.raises(ConflictError):
            store.insert_request(request)

    def test_save_unknown_request_fails(self, store, profile):
        with pytest.raises(KeyError):
            store.save_request(VerificationRequest.create(profile))

    def test_user_history_is_newest_first(self, store, profile):
        first = store.insert_request(VerificationRequest.create(profile))
        first.resolve(RequestStatus.REJECTED, reviewed_by="admin", notes="no")
        store.save_request(first)
        second = store.insert_request(VerificationRequest.create(profile))

        history = store.list_requests_for_user(profile.user_id)
        assert [r.request_id for r in history] == [second.request_id, first.request_id]

    def test_filter_and_counts(self, store, profile):
        first = store.insert_request(VerificationRequest.create(profile))
        first.resolve(RequestStatus.APPROVED, reviewed_by="admin", notes="ok")
        store.save_request(first)
        store.insert_request(VerificationRequest.create(profile))

        assert len(store.list_requests(RequestStatus.APPROVED)) == 1
        assert store.count_by_status() == {"approved": 1, "under_review": 1}

    def test_readers_get_copies(self, store, profile):
        """Mutating a returned request does not touch the stored row."""
        request = store.insert_request(VerificationRequest.create(profile))
        loaded = store.get_request(request.request_id)
        loaded.status = RequestStatus.APPROVED

        assert store.get_request(request.request_id).status == RequestStatus.UNDER_REVIEW


# =============================================================================
# Transaction Tests
# =============================================================================


class TestTransactions:
    """Tests for all-or-nothing units of work."""

    def test_failure_rolls_back_every_write(self, store, profile, bundle):
        request = VerificationRequest.create(profile, documents=bundle)

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.insert_request(request)
                record = UserVerificationRecord(user_id=profile.user_id)
                record.mark_under_review(bundle)
                store.save_record(record)
                raise RuntimeError("boom")

        assert store.get_request(request.request_id) is None
        assert store.get_record(profile.user_id) is None

    def test_rollback_keeps_earlier_state(self, store, profile, bundle):
        record = UserVerificationRecord(user_id=profile.user_id)
        record.mark_under_review(bundle)
        store.save_record(record)

        with pytest.raises(RuntimeError):
            with store.transaction():
                changed = store.get_record(profile.user_id)
                changed.mark_rejected(changed.verification_documents)
                store.save_record(changed)
                raise RuntimeError("boom")

        restored = store.get_record(profile.user_id)
        assert restored.verification_status == UserVerificationStatus.UNDER_REVIEW
        assert restored.verification_documents == bundle
        assert restored.rejected_documents is None

    def test_write_failure_becomes_persistence_error(self, profile):
        """An unwritable file surfaces as PersistenceError and rolls back."""
        with tempfile.TemporaryDirectory() as tmpdir:
            blocker = Path(tmpdir) / "not-a-dir"
            blocker.write_text("x")
            store = VerificationStore(persist_path=str(blocker / "verification.json"))

            with pytest.raises(PersistenceError):
                store.insert_request(VerificationRequest.create(profile))
            assert store.count_requests() == 0


# =============================================================================
# Persistence Tests
# =============================================================================


class TestPersistence:
    """Tests for JSON persistence."""

    def test_reload_restores_tables(self, temp_path, profile, bundle):
        store = VerificationStore(persist_path=temp_path)
        request = store.insert_request(VerificationRequest.create(profile, documents=bundle))
        record = UserVerificationRecord(user_id=profile.user_id)
        record.mark_under_review(bundle)
        store.save_record(record)
        store.upsert_business_details(profile.user_id, {"business_name": "Green Acres"})

        reloaded = VerificationStore(persist_path=temp_path)
        assert reloaded.get_request(request.request_id).documents == bundle
        assert reloaded.get_record(profile.user_id).verification_documents == bundle
        assert reloaded.get_business_details(profile.user_id).business_name == "Green Acres"
        assert reloaded.find_open_request(profile.user_id).request_id == request.request_id

    def test_corrupt_file_raises(self, temp_path):
        Path(temp_path).write_text("{not json")
        with pytest.raises(PersistenceError):
            VerificationStore(persist_path=temp_path)

    def test_file_layout(self, temp_path, profile):
        store = VerificationStore(persist_path=temp_path)
        store.insert_request(VerificationRequest.create(profile))

        data = json.loads(Path(temp_path).read_text())
        assert set(data) == {"requests", "records", "businessDetails", "saved_at"}
        assert data["requests"][0]["userId"] == "farmer-1"


# =============================================================================
# Admin View Tests
# =============================================================================


class TestAdminList:
    """Tests for the joined admin listing."""

    def test_join_includes_record_and_business(self, store, profile):
        store.insert_request(VerificationRequest.create(profile))
        record = UserVerificationRecord(user_id=profile.user_id)
        record.mark_under_review(None)
        store.save_record(record)
        store.upsert_business_details(profile.user_id, {"business_license_number": "LIC-9"})

        [item] = store.get_admin_list()
        assert item["userVerification"]["verificationStatus"] == "under_review"
        assert item["businessLicenseNumber"] == "LIC-9"
        assert item["businessName"] is None

    def test_missing_joins_are_none(self, store, profile):
        store.insert_request(VerificationRequest.create(profile))
        [item] = store.get_admin_list(RequestStatus.UNDER_REVIEW)
        assert item["userVerification"] is None
        assert item["businessDescription"] is None


# =============================================================================
# Ownership and Locking Tests
# =============================================================================


class TestOwnedReferences:
    """Tests for the references a user may reuse."""

    def test_collects_active_archived_and_request_documents(self, store, profile, bundle):
        archived = DocumentBundle(documents={
            DocumentSlot.BUSINESS_LICENSE: StoredDocument(
                reference="verification/old-license.png",
                filename="old-license.png",
                original_name="license.png",
                size_bytes=5,
                mime_type="image/png",
            ),
        })
        store.insert_request(VerificationRequest.create(profile, documents=bundle))
        record = UserVerificationRecord(user_id=profile.user_id)
        record.mark_rejected(archived)
        store.save_record(record)

        assert store.owned_references(profile.user_id) == {
            "verification/id.png",
            "verification/old-license.png",
        }

    def test_other_users_own_nothing(self, store, profile, bundle):
        store.insert_request(VerificationRequest.create(profile, documents=bundle))
        assert store.owned_references("someone-else") == set()


class TestUserLocks:
    """Tests for per-user locks."""

    def test_lock_serialises_same_user(self, store):
        entered = []

        def worker(n):
            with store.user_lock("farmer-1"):
                entered.append(("in", n))
                time.sleep(0.01)
                entered.append(("out", n))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Each "in" is immediately followed by its own "out"
        for i in range(0, len(entered), 2):
            assert entered[i][0] == "in"
            assert entered[i + 1] == ("out", entered[i][1])

    def test_same_lock_while_held(self, store):
        with store.user_lock("farmer-1"):
            held = store._user_locks["farmer-1"]
            assert held.locked()

    def test_idle_locks_are_released(self, store):
        """The lock table does not grow with every user ever seen."""
        for n in range(50):
            with store.user_lock(f"user-{n}"):
                pass
        gc.collect()
        assert len(store._user_locks) == 0
