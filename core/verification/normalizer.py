"""
Document Normalizer - Inbound Documents to Stored Descriptors

A document arrives either as inline content (a data URI, or raw base64 with
an explicit mime type) or as a reference to an object already in storage.
The web boundary turns each into a tagged input; the normalizer uploads
inline content and returns a bundle in which every ``reference`` points into
storage.

Normalising a bundle that only holds storage references performs no upload,
so re-normalisation is idempotent.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import AbstractSet, Final, Optional, Union

from core.verification.errors import UploadError, ValidationError
from core.verification.schema import DocumentBundle, DocumentSlot, StoredDocument
from core.verification.storage import ObjectStorage

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

VERIFICATION_FOLDER: Final[str] = "verification"

# Largest decoded document accepted (10 MB)
MAX_DOCUMENT_SIZE_BYTES: Final[int] = 10 * 1024 * 1024

INLINE_MARKER: Final[str] = "data:"

DATA_URI_REGEX: Final = re.compile(r"^data:([A-Za-z0-9.+/-]+);base64,(.+)$", re.DOTALL)

KIND_INLINE: Final[str] = "inline"
KIND_REFERENCE: Final[str] = "reference"


# =============================================================================
# Tagged Inputs
# =============================================================================


@dataclass(frozen=True)
class InlineDocument:
    """Document content supplied with the request."""

    content: bytes
    mime_type: str
    original_name: Optional[str] = None


@dataclass(frozen=True)
class StorageReference:
    """Document already held by object storage."""

    reference: str
    filename: Optional[str] = None
    original_name: Optional[str] = None
    size_bytes: int = 0
    mime_type: str = ""


DocumentInput = Union[InlineDocument, StorageReference]


# =============================================================================
# Wire Parsing
# =============================================================================


def decode_data_uri(data: str) -> tuple[str, bytes]:
    """
    Split a base64 data URI into (mime_type, content).

    Raises:
        UploadError: If the URI or its payload is malformed
    """
    match = DATA_URI_REGEX.match(data.strip())
    if not match:
        raise UploadError("Invalid base64 data format")
    mime_type, payload = match.group(1), match.group(2)
    return mime_type.lower(), _decode_base64(payload)


def _decode_base64(payload: str) -> bytes:
    try:
        return base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise UploadError(f"Invalid base64 payload: {e}") from e


def parse_document_input(slot: DocumentSlot, value: dict) -> DocumentInput:
    """
    Turn one wire document into a tagged input.

    An explicit ``kind`` ("inline" or "reference") decides the variant.
    Without it, a value whose ``data`` begins with the ``data:`` marker is
    inline and anything else is a storage reference. Previously normalised
    descriptors (carrying ``reference``) pass through as references.

    Raises:
        ValidationError: If the value has no usable data or an unknown kind
        UploadError: If inline content is malformed
    """
    if not isinstance(value, dict):
        raise ValidationError(f"{slot.value} must be an object")

    kind = value.get("kind")
    name = value.get("name") or value.get("originalName")

    if "reference" in value and "data" not in value:
        if kind not in (None, KIND_REFERENCE):
            raise ValidationError(f"{slot.value}: stored documents cannot be inline")
        return StorageReference(
            reference=value["reference"],
            filename=value.get("filename"),
            original_name=name,
            size_bytes=int(value.get("sizeBytes") or 0),
            mime_type=value.get("mimeType") or "",
        )

    data = value.get("data")
    if not data or not isinstance(data, str):
        raise ValidationError(f"{slot.value}.data is required")

    if kind is None:
        kind = KIND_INLINE if data.startswith(INLINE_MARKER) else KIND_REFERENCE

    if kind == KIND_INLINE:
        if data.startswith(INLINE_MARKER):
            mime_type, content = decode_data_uri(data)
        else:
            mime_type = (value.get("mimeType") or "").lower()
            if not mime_type:
                raise UploadError(f"{slot.value}: inline content needs a mimeType")
            content = _decode_base64(data)
        return InlineDocument(content=content, mime_type=mime_type, original_name=name)

    if kind == KIND_REFERENCE:
        return StorageReference(
            reference=data,
            original_name=name,
            mime_type=value.get("mimeType") or "",
        )

    raise ValidationError(f"{slot.value}: unknown document kind '{kind}'")


def parse_document_bundle(payload: Optional[dict]) -> dict[DocumentSlot, DocumentInput]:
    """
    Parse a wire document bundle into tagged inputs.

    Missing or empty slots are omitted.

    Raises:
        ValidationError: On unknown slots or malformed values
        UploadError: On malformed inline content
    """
    if not payload:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("documents must be an object keyed by document slot")

    known = {slot.value: slot for slot in DocumentSlot}
    inputs: dict[DocumentSlot, DocumentInput] = {}
    for key, value in payload.items():
        if key not in known:
            raise ValidationError(f"Unknown document slot: {key}")
        if not value:
            continue
        slot = known[key]
        inputs[slot] = parse_document_input(slot, value)
    return inputs


# =============================================================================
# Normalizer
# =============================================================================


class DocumentNormalizer:
    """
    Converts tagged document inputs into a stored DocumentBundle.

    Usage:
        normalizer = DocumentNormalizer(storage)
        bundle = normalizer.normalize(
            parse_document_bundle(payload["documents"]),
            owned_references=store.owned_references(user_id),
        )
    """

    def __init__(
        self,
        storage: ObjectStorage,
        folder: str = VERIFICATION_FOLDER,
        max_size_bytes: int = MAX_DOCUMENT_SIZE_BYTES,
    ):
        self._storage = storage
        self._folder = folder
        self._max_size_bytes = max_size_bytes

    def _check_reference(self, document: StorageReference, owned_references: AbstractSet[str]) -> None:
        # Ownership is checked first so a foreign key's existence is not revealed
        if document.reference not in owned_references:
            raise ValidationError(f"Unknown document reference: {document.reference}")
        if not self._storage.exists(document.reference):
            raise ValidationError(f"Stored document not found: {document.reference}")

    def normalize_document(
        self,
        document: DocumentInput,
        owned_references: AbstractSet[str] = frozenset(),
    ) -> StoredDocument:
        """
        Normalise one document.

        Args:
            document: Inline content or a storage reference
            owned_references: References the submitter may reuse

        Raises:
            ValidationError: If a reference is not the submitter's or no longer stored
            UploadError: If inline content is not an image, too large, or upload fails
        """
        if isinstance(document, StorageReference):
            self._check_reference(document, owned_references)
            filename = document.filename or PurePosixPath(document.reference).name
            return StoredDocument(
                reference=document.reference,
                filename=filename,
                original_name=document.original_name or filename,
                size_bytes=document.size_bytes,
                mime_type=document.mime_type,
            )

        if not document.mime_type.startswith("image/"):
            raise UploadError("File must be an image")
        if not document.content:
            raise UploadError("File is empty")
        if len(document.content) > self._max_size_bytes:
            raise UploadError(
                f"File is too large ({len(document.content)} bytes, "
                f"limit {self._max_size_bytes})"
            )

        uploaded = self._storage.upload(document.content, document.mime_type, self._folder)
        extension = PurePosixPath(uploaded.filename).suffix
        return StoredDocument(
            reference=uploaded.reference,
            filename=uploaded.filename,
            original_name=document.original_name or f"upload{extension}",
            size_bytes=uploaded.size_bytes,
            mime_type=document.mime_type,
        )

    def normalize(
        self,
        inputs: dict[DocumentSlot, DocumentInput],
        owned_references: AbstractSet[str] = frozenset(),
    ) -> Optional[DocumentBundle]:
        """
        Normalise every supplied slot.

        Storage references are only accepted when they are in
        ``owned_references`` and still exist in storage. Returns None when no
        document was supplied. A failure in any slot aborts the whole bundle.
        """
        if not inputs:
            return None

        documents: dict[DocumentSlot, StoredDocument] = {}
        for slot in DocumentSlot:
            if slot not in inputs:
                continue
            try:
                documents[slot] = self.normalize_document(inputs[slot], owned_references)
            except (UploadError, ValidationError) as e:
                logger.warning("Normalisation of %s failed: %s", slot.value, e.message)
                if documents:
                    logger.warning(
                        "Discarding bundle; already stored: %s",
                        ", ".join(sorted(d.reference for d in documents.values())),
                    )
                raise

        return DocumentBundle(documents=documents)
