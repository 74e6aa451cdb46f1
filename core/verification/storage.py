"""
Object Storage - Custody of Uploaded Verification Documents

Documents are written once and addressed by an opaque reference
("{folder}/{filename}"). Readers never receive a permanent location;
they get a time-boxed URL from ``resolve``.

Backends:
- LocalObjectStorage: filesystem, URLs signed with HMAC-SHA256
- S3ObjectStorage: S3 bucket, URLs presigned by boto3
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Optional
from urllib.parse import urlencode

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from core.verification.errors import NotFoundError, UploadError

logger = logging.getLogger(__name__)


# =============================================================================
# Storage Configuration
# =============================================================================

DEFAULT_STORAGE_PATH: Final[str] = "data/uploads"

# Default validity of a resolved URL (1 hour)
DEFAULT_URL_EXPIRY_SECONDS: Final[int] = 3600


@dataclass(frozen=True)
class UploadedObject:
    """Result of a successful upload."""

    reference: str
    filename: str
    size_bytes: int


def _sanitise_segment(segment: str) -> str:
    """Sanitise a folder or filename segment for safe storage."""
    safe = segment.replace("/", "_").replace("\\", "_").replace("..", "_")
    safe = safe.strip().strip(".")
    return safe or "misc"


def _extension_for(mime_type: str) -> str:
    """File extension for a mime type ("image/svg+xml" -> "svg")."""
    subtype = mime_type.split("/", 1)[-1] if "/" in mime_type else ""
    subtype = subtype.split("+", 1)[0].split(";", 1)[0].strip().lower()
    return _sanitise_segment(subtype) if subtype else "jpg"


def generate_object_name(mime_type: str) -> str:
    """Unique filename for an upload of the given mime type."""
    return f"{uuid.uuid4()}.{_extension_for(mime_type)}"


# =============================================================================
# Interface
# =============================================================================


class ObjectStorage(ABC):
    """Abstract object storage collaborator."""

    @abstractmethod
    def upload(self, content: bytes, mime_type: str, folder: str) -> UploadedObject:
        """
        Store content under a logical folder.

        Raises:
            UploadError: If the backend rejects the write
        """

    @abstractmethod
    def resolve(self, reference: str, expires_in: int = DEFAULT_URL_EXPIRY_SECONDS) -> str:
        """
        Get a temporary fetch URL for a stored object.

        Raises:
            NotFoundError: If no object exists for the reference
            UploadError: If the backend cannot sign the URL
        """

    @abstractmethod
    def exists(self, reference: str) -> bool:
        """Check whether an object exists."""


# =============================================================================
# Local Filesystem Backend
# =============================================================================


class LocalObjectStorage(ObjectStorage):
    """
    Filesystem-backed object storage.

    Objects live at {storage_root}/{folder}/{filename}. Resolved URLs point at
    ``base_url`` and carry an expiry timestamp plus an HMAC signature that
    ``verify_signature`` checks when the file is served.
    """

    def __init__(
        self,
        storage_root: Optional[str] = None,
        secret: str = "",
        base_url: str = "/files",
    ):
        """
        Initialise local storage.

        Args:
            storage_root: Root directory. Defaults to data/uploads.
            secret: Key used to sign resolved URLs
            base_url: URL prefix the web layer serves files from
        """
        self._storage_root = Path(storage_root or DEFAULT_STORAGE_PATH)
        self._storage_root.mkdir(parents=True, exist_ok=True)
        self._secret = secret
        self._base_url = base_url.rstrip("/")

    @property
    def storage_root(self) -> Path:
        return self._storage_root

    def _path_for(self, reference: str) -> Path:
        """Filesystem path for a reference, confined to the storage root."""
        root = self._storage_root.resolve()
        path = (root / reference).resolve()
        if root not in path.parents:
            raise NotFoundError(f"Invalid storage reference: {reference}")
        return path

    def _sign(self, reference: str, expires: int) -> str:
        message = f"{reference}:{expires}".encode()
        return hmac.new(self._secret.encode(), message, hashlib.sha256).hexdigest()

    def upload(self, content: bytes, mime_type: str, folder: str) -> UploadedObject:
        filename = generate_object_name(mime_type)
        reference = f"{_sanitise_segment(folder)}/{filename}"
        path = self._storage_root / reference
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            logger.error("Local upload failed for %s: %s", reference, e)
            raise UploadError(f"Failed to upload file: {e}") from e

        logger.info("Stored %s (%d bytes, %s)", reference, len(content), mime_type)
        return UploadedObject(reference=reference, filename=filename, size_bytes=len(content))

    def exists(self, reference: str) -> bool:
        try:
            return self._path_for(reference).is_file()
        except NotFoundError:
            return False

    def resolve(self, reference: str, expires_in: int = DEFAULT_URL_EXPIRY_SECONDS) -> str:
        if not self.exists(reference):
            raise NotFoundError(f"Stored object not found: {reference}")
        expires = int(time.time()) + expires_in
        query = urlencode({"expires": expires, "signature": self._sign(reference, expires)})
        return f"{self._base_url}/{reference}?{query}"

    def verify_signature(self, reference: str, expires: int, signature: str) -> bool:
        """Check a signature produced by ``resolve`` and that it has not expired."""
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._sign(reference, expires), signature)

    def read(self, reference: str) -> bytes:
        """
        Read a stored object.

        Raises:
            NotFoundError: If the object does not exist
        """
        path = self._path_for(reference)
        if not path.is_file():
            raise NotFoundError(f"Stored object not found: {reference}")
        return path.read_bytes()

    def path_for(self, reference: str) -> Path:
        """Filesystem path of an existing object (for file responses)."""
        path = self._path_for(reference)
        if not path.is_file():
            raise NotFoundError(f"Stored object not found: {reference}")
        return path


# =============================================================================
# S3 Backend
# =============================================================================


class S3ObjectStorage(ObjectStorage):
    """S3-backed object storage with presigned GET URLs."""

    def __init__(self, bucket: str, region: str = "us-east-1", client=None):
        if not bucket:
            raise ValueError("bucket is required")
        self._bucket = bucket
        self._client = client or boto3.client("s3", region_name=region)

    def upload(self, content: bytes, mime_type: str, folder: str) -> UploadedObject:
        filename = generate_object_name(mime_type)
        reference = f"{_sanitise_segment(folder)}/{filename}"
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=reference,
                Body=content,
                ContentType=mime_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 upload failed for %s: %s", reference, e)
            raise UploadError(f"Failed to upload file: {e}") from e

        logger.info("Uploaded s3://%s/%s (%d bytes)", self._bucket, reference, len(content))
        return UploadedObject(reference=reference, filename=filename, size_bytes=len(content))

    def exists(self, reference: str) -> bool:
        try:
            self._client.head_object(Bucket=self._bucket, Key=reference)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise UploadError(f"Failed to inspect stored object: {e}") from e
        return True

    def resolve(self, reference: str, expires_in: int = DEFAULT_URL_EXPIRY_SECONDS) -> str:
        if not self.exists(reference):
            raise NotFoundError(f"Stored object not found: {reference}")
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": reference},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Presigning failed for %s: %s", reference, e)
            raise UploadError(f"Failed to generate presigned URL: {e}") from e


# =============================================================================
# Singleton Instance
# =============================================================================

_storage_instance: Optional[ObjectStorage] = None


def get_object_storage(config=None) -> ObjectStorage:
    """
    Get the object storage singleton.

    Args:
        config: Optional utils.config.Config (only used on first call)

    Returns:
        ObjectStorage instance for the configured backend
    """
    global _storage_instance
    if _storage_instance is None:
        from utils.config import Config

        config = config or Config.load()
        if config.storage_backend == "s3":
            _storage_instance = S3ObjectStorage(config.s3_bucket, config.aws_region)
        else:
            _storage_instance = LocalObjectStorage(
                storage_root=config.storage_root,
                secret=config.auth_secret,
                base_url=f"{config.public_base_url}/files",
            )
    return _storage_instance


def reset_object_storage() -> None:
    """Reset the singleton instance (for testing)."""
    global _storage_instance
    _storage_instance = None
