"""
Tests for Admin Review Decisions

Tests covering:
1. Approval marks the owner verified and keeps the documents active
2. Rejection moves the documents into the archive in one step
3. Rejection falls back to the record's active bundle
4. A missing record is created on decision
5. Resolved requests cannot be decided again
6. Racing approve/reject leaves exactly one decision and a matching record
"""

from __future__ import annotations

import tempfile
import threading
from pathlib import Path

import pytest

from core.verification import (
    ConflictError,
    DocumentBundle,
    DocumentSlot,
    NotFoundError,
    RequestStatus,
    ReviewDecisionEngine,
    StoredDocument,
    UserProfile,
    UserVerificationRecord,
    UserVerificationStatus,
    ValidationError,
    VerificationRequest,
    VerificationStore,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield VerificationStore(persist_path=str(Path(tmpdir) / "verification.json"))


@pytest.fixture
def engine(store):
    return ReviewDecisionEngine(store)


@pytest.fixture
def profile():
    return UserProfile(
        user_id="farmer-1",
        email="farmer@example.com",
        name="Ada Farmer",
        user_type="farmer",
        account_type="business",
    )


def _bundle(name: str) -> DocumentBundle:
    return DocumentBundle(documents={
        DocumentSlot.ID_CARD: StoredDocument(
            reference=f"verification/{name}.png",
            filename=f"{name}.png",
            original_name=f"{name}.png",
            size_bytes=10,
            mime_type="image/png",
        ),
    })


def _open(store, profile, documents=None, with_record=True) -> VerificationRequest:
    request = store.insert_request(VerificationRequest.create(profile, documents=documents))
    if with_record:
        record = UserVerificationRecord(user_id=profile.user_id)
        record.mark_under_review(documents)
        store.save_record(record)
    return request


# =============================================================================
# Approval Tests
# =============================================================================


class TestApprove:
    """Tests for approval."""

    def test_approve_verifies_user(self, engine, store, profile):
        docs = _bundle("id")
        request = _open(store, profile, docs)

        decided = engine.approve(request.request_id, "admin-1")

        assert decided.status == RequestStatus.APPROVED
        assert decided.reviewed_by == "admin-1"
        assert decided.review_notes == "Approved by admin"
        assert decided.reviewed_at is not None

        record = store.get_record(profile.user_id)
        assert record.verification_status == UserVerificationStatus.APPROVED
        assert record.verified is True
        assert record.verification_documents == docs
        assert store.find_open_request(profile.user_id) is None

    def test_custom_notes_are_kept(self, engine, store, profile):
        request = _open(store, profile)
        decided = engine.approve(request.request_id, "admin-1", "  Looks good  ")
        assert decided.review_notes == "Looks good"

    def test_missing_record_is_created(self, engine, store, profile):
        request = _open(store, profile, _bundle("id"), with_record=False)
        engine.approve(request.request_id, "admin-1")

        record = store.get_record(profile.user_id)
        assert record.verified is True
        assert record.verification_documents == _bundle("id")


# =============================================================================
# Rejection Tests
# =============================================================================


class TestReject:
    """Tests for rejection and document custody."""

    def test_reject_archives_request_documents(self, engine, store, profile):
        docs = _bundle("id")
        request = _open(store, profile, docs)

        decided = engine.reject(request.request_id, "admin-1", "Blurry photo")

        assert decided.status == RequestStatus.REJECTED
        assert decided.review_notes == "Blurry photo"
        record = store.get_record(profile.user_id)
        assert record.verification_status == UserVerificationStatus.REJECTED
        assert record.verified is False
        assert record.rejected_documents == docs
        assert record.verification_documents is None

    def test_reject_falls_back_to_active_bundle(self, engine, store, profile):
        """A request without documents archives the user's active bundle."""
        request = _open(store, profile, documents=None, with_record=False)
        record = UserVerificationRecord(user_id=profile.user_id)
        record.mark_under_review(_bundle("earlier"))
        store.save_record(record)

        engine.reject(request.request_id, "admin-1")

        record = store.get_record(profile.user_id)
        assert record.rejected_documents == _bundle("earlier")
        assert record.verification_documents is None

    def test_reject_without_any_documents_keeps_previous_archive(self, engine, store, profile):
        record = UserVerificationRecord(user_id=profile.user_id)
        record.mark_rejected(_bundle("old"))
        store.save_record(record)
        request = _open(store, profile, documents=None, with_record=False)

        engine.reject(request.request_id, "admin-1")

        assert store.get_record(profile.user_id).rejected_documents == _bundle("old")

    def test_reject_without_record_creates_one(self, engine, store, profile):
        request = _open(store, profile, _bundle("id"), with_record=False)
        engine.reject(request.request_id, "admin-1")

        record = store.get_record(profile.user_id)
        assert record.verification_status == UserVerificationStatus.REJECTED
        assert record.rejected_documents == _bundle("id")

    def test_default_notes(self, engine, store, profile):
        request = _open(store, profile)
        assert engine.reject(request.request_id, "admin-1", "").review_notes == "Rejected by admin"


# =============================================================================
# Guard Tests
# =============================================================================


class TestGuards:
    """Tests for decisions that must be refused."""

    def test_unknown_request(self, engine):
        with pytest.raises(NotFoundError):
            engine.approve("VR-MISSING", "admin-1")

    def test_empty_request_id(self, engine):
        with pytest.raises(NotFoundError):
            engine.reject("", "admin-1")

    def test_missing_reviewer(self, engine, store, profile):
        request = _open(store, profile)
        with pytest.raises(ValidationError):
            engine.approve(request.request_id, "")

    def test_second_decision_conflicts(self, engine, store, profile):
        request = _open(store, profile, _bundle("id"))
        engine.approve(request.request_id, "admin-1")

        with pytest.raises(ConflictError):
            engine.reject(request.request_id, "admin-2")

        record = store.get_record(profile.user_id)
        assert record.verified is True
        assert store.get_request(request.request_id).status == RequestStatus.APPROVED


# =============================================================================
# Concurrency Tests
# =============================================================================


class TestConcurrentDecisions:
    """Approve and reject racing on one request."""

    @pytest.mark.parametrize("round_number", range(10))
    def test_one_decision_wins_and_record_agrees(self, engine, store, profile, round_number):
        docs = _bundle(f"id-{round_number}")
        request = _open(store, profile, docs)
        barrier = threading.Barrier(2)
        outcomes: dict[str, object] = {}

        def decide(name, action):
            barrier.wait()
            try:
                outcomes[name] = action(request.request_id, f"admin-{name}")
            except ConflictError as e:
                outcomes[name] = e

        threads = [
            threading.Thread(target=decide, args=("approve", engine.approve)),
            threading.Thread(target=decide, args=("reject", engine.reject)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        conflicts = [o for o in outcomes.values() if isinstance(o, ConflictError)]
        assert len(outcomes) == 2
        assert len(conflicts) == 1

        final = store.get_request(request.request_id)
        record = store.get_record(profile.user_id)
        assert record.verification_status.value == final.status.value
        assert record.verified == (final.status == RequestStatus.APPROVED)
        if final.status == RequestStatus.REJECTED:
            assert record.verification_documents is None
            assert record.rejected_documents == docs
        else:
            assert record.verification_documents == docs
            assert record.rejected_documents is None
