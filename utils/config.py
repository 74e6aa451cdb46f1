"""
Configuration management.
"""

import os
import secrets
from dataclasses import dataclass, field


# Ephemeral secret for development (tokens and file URLs won't survive restarts)
_EPHEMERAL_SECRET = secrets.token_hex(32)


def _default_secret() -> str:
    return os.getenv("AUTH_SECRET") or _EPHEMERAL_SECRET


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    allowed_origins: list = field(
        default_factory=lambda: [
            o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()
        ]
    )
    public_base_url: str = field(
        default_factory=lambda: os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
    )

    # Data
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./data"))

    # Object storage
    storage_backend: str = field(
        default_factory=lambda: os.getenv("STORAGE_BACKEND", "local").lower()
    )
    storage_root: str = field(
        default_factory=lambda: os.getenv("STORAGE_ROOT", "./data/uploads")
    )
    s3_bucket: str = field(default_factory=lambda: os.getenv("S3_BUCKET", ""))
    aws_region: str = field(default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"))
    presign_default_seconds: int = field(
        default_factory=lambda: int(os.getenv("PRESIGN_DEFAULT_SECONDS", "3600"))
    )
    presign_max_seconds: int = field(
        default_factory=lambda: int(os.getenv("PRESIGN_MAX_SECONDS", "604800"))
    )
    max_document_size_bytes: int = field(
        default_factory=lambda: int(os.getenv("MAX_DOCUMENT_SIZE_BYTES", str(10 * 1024 * 1024)))
    )

    # Auth
    auth_secret: str = field(default_factory=_default_secret)
    token_ttl_hours: int = field(
        default_factory=lambda: int(os.getenv("TOKEN_TTL_HOURS", "24"))
    )

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    @property
    def store_path(self) -> str:
        return os.path.join(self.data_dir, "verification.json")

    @property
    def users_path(self) -> str:
        return os.path.join(self.data_dir, "users.json")

    def to_dict(self) -> dict:
        """Convert config to dictionary (secrets excluded)."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "allowed_origins": self.allowed_origins,
            "public_base_url": self.public_base_url,
            "data_dir": self.data_dir,
            "storage_backend": self.storage_backend,
            "storage_root": self.storage_root,
            "s3_bucket": self.s3_bucket,
            "aws_region": self.aws_region,
            "presign_default_seconds": self.presign_default_seconds,
            "presign_max_seconds": self.presign_max_seconds,
            "max_document_size_bytes": self.max_document_size_bytes,
            "token_ttl_hours": self.token_ttl_hours,
        }
