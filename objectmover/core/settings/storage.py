"""Connection settings for the S3-compatible object store.

Environment variables use STORAGE_ prefix.
Example: STORAGE_ENDPOINT="http://localhost:9000"
         STORAGE_DEFAULT_BUCKET="media"

Leave ``endpoint`` unset for AWS S3; point it at the server URL for MinIO,
LocalStack or any other store speaking the S3 API.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, SecretStr, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BOTO_RETRY_MODES = frozenset({"standard", "adaptive", "legacy"})


class StorageBackendType(StrEnum):
    """Object store flavours served by the S3 backend."""

    S3 = "s3"
    MINIO = "minio"


class StorageSettings(BaseSettings):
    """Where the object store lives and how the client talks to it.

    Environment variables use STORAGE_ prefix.
    Example: STORAGE_ENABLED=true
    """

    # ──────────────────────────────────────────────────────────────
    # Backend selection
    # ──────────────────────────────────────────────────────────────

    enabled: bool = Field(default=True, description="Allow the transfer service to build a store client")

    backend: StorageBackendType = Field(
        default=StorageBackendType.S3,
        description="Backend flavour (s3 or minio)",
    )

    endpoint: str | None = Field(
        default=None,
        description="Custom endpoint URL; unset means AWS S3",
    )

    region: str = Field(default="us-east-1", description="Region used for signing requests")

    default_bucket: str | None = Field(
        default=None,
        min_length=3,
        max_length=63,
        description="Bucket used for bare relative keys",
    )

    # ──────────────────────────────────────────────────────────────
    # Credentials (both or neither; neither uses the botocore chain)
    # ──────────────────────────────────────────────────────────────

    access_key: SecretStr | None = Field(default=None, description="Static access key id")
    secret_key: SecretStr | None = Field(default=None, description="Static secret access key")

    # ──────────────────────────────────────────────────────────────
    # Client tuning
    # ──────────────────────────────────────────────────────────────

    use_ssl: bool = Field(default=True, description="Connect over TLS")
    verify_ssl: bool = Field(default=True, description="Verify the server certificate")

    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="botocore-level retry attempts, applied beneath the engine's own backoff",
    )

    retry_mode: str = Field(default="standard", description="botocore retry mode")

    timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Connect and read timeout in seconds for a single request",
    )

    max_pool_connections: int = Field(
        default=32,
        ge=1,
        le=500,
        description="HTTP connections shared by every concurrent part, range and batch item",
    )

    # ──────────────────────────────────────────────────────────────
    # Presigned URLs
    # ──────────────────────────────────────────────────────────────

    presigned_url_expiry_seconds: int = Field(
        default=3600,
        ge=60,
        le=604800,
        description="Lifetime of a presigned URL when the caller gives none",
    )

    max_presigned_url_expiry_seconds: int = Field(
        default=604800,
        ge=60,
        le=604800,
        description="Longest lifetime a caller may request (S3 caps SigV4 at 7 days)",
    )

    health_check_timeout: float = Field(
        default=5.0,
        ge=1.0,
        le=30.0,
        description="Seconds to wait for HeadBucket during a health check",
    )

    @field_validator("retry_mode")
    @classmethod
    def _check_retry_mode(cls, value: str) -> str:
        if value not in BOTO_RETRY_MODES:
            msg = f"retry_mode must be one of {sorted(BOTO_RETRY_MODES)}, got {value!r}"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _check_credential_pair(self) -> StorageSettings:
        if (self.access_key is None) != (self.secret_key is None):
            msg = "access_key and secret_key must be set together, or both left unset"
            raise ValueError(msg)
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_configured(self) -> bool:
        return self.enabled

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_minio(self) -> bool:
        """True when a custom endpoint replaces AWS S3."""
        return self.endpoint is not None

    def get_boto3_config(self) -> dict[str, Any]:
        """Keyword arguments for ``aioboto3.Session().client("s3", ...)``."""
        kwargs: dict[str, Any] = {
            "region_name": self.region,
            "use_ssl": self.use_ssl,
            "verify": self.verify_ssl,
        }
        if self.endpoint:
            kwargs["endpoint_url"] = self.endpoint
        if self.access_key is not None and self.secret_key is not None:
            kwargs["aws_access_key_id"] = self.access_key.get_secret_value()
            kwargs["aws_secret_access_key"] = self.secret_key.get_secret_value()
        return kwargs

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )
