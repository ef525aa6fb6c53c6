"""Transfer engine tuning settings.

Environment variables use TRANSFER_ prefix.
Example: TRANSFER_UPLOAD_MULTIPART_THRESHOLD=26214400
         TRANSFER_PART_SIZE=16777216

Every value here is a default; per-call ``TransferOptions`` override them.
"""

from __future__ import annotations

from pydantic import Field, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024
GIB = 1024 * MIB

# S3 rejects non-final parts smaller than 5 MiB
MIN_PART_SIZE = 5 * MIB
MAX_PART_COUNT = 10_000


class TransferSettings(BaseSettings):
    """Thresholds, part sizes, concurrency and retry policy for transfers.

    Environment variables use TRANSFER_ prefix.
    """

    # ──────────────────────────────────────────────────────────────
    # Upload
    # ──────────────────────────────────────────────────────────────

    upload_multipart_threshold: int = Field(
        default=25 * MIB,
        ge=1,
        description="Files up to this size (inclusive) are uploaded with a single put",
    )

    part_size: int = Field(
        default=16 * MIB,
        ge=MIN_PART_SIZE,
        le=5 * GIB,
        description="Preferred multipart part size in bytes",
    )

    max_parts: int = Field(
        default=MAX_PART_COUNT,
        ge=1,
        le=MAX_PART_COUNT,
        description="Maximum number of parts the store accepts for one upload",
    )

    max_buffered_parts: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Parts held in memory at once during a multipart upload",
    )

    upload_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Concurrent part uploads within one multipart upload",
    )

    single_put_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a single-part put on transient network errors",
    )

    # ──────────────────────────────────────────────────────────────
    # Download
    # ──────────────────────────────────────────────────────────────

    download_multipart_threshold: int = Field(
        default=25 * MIB,
        ge=1,
        description="Objects up to this size (inclusive) are fetched with one streamed read",
    )

    download_chunk_size: int = Field(
        default=8 * MIB,
        ge=64 * 1024,
        description="Byte length of each ranged read",
    )

    download_concurrency: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Initial ceiling on concurrent ranged reads for one download",
    )

    min_download_concurrency: int = Field(
        default=1,
        ge=1,
        le=64,
        description="Floor the throttle never reduces concurrency below",
    )

    throttle_failure_threshold: int = Field(
        default=2,
        ge=1,
        le=50,
        description="Connection-level failures in a row that trigger a concurrency reduction",
    )

    throttle_recovery_successes: int = Field(
        default=4,
        ge=1,
        le=100,
        description="Consecutive successful ranges needed to raise the limit by one",
    )

    stream_chunk_size: int = Field(
        default=1 * MIB,
        ge=64 * 1024,
        description="Read size when streaming a single-range download to disk",
    )

    # ──────────────────────────────────────────────────────────────
    # Batch
    # ──────────────────────────────────────────────────────────────

    batch_concurrency: int = Field(
        default=4,
        ge=1,
        le=256,
        description="Items transferred concurrently by a batch",
    )

    fail_fast: bool = Field(
        default=False,
        description="Abort outstanding batch items after the first failure",
    )

    # ──────────────────────────────────────────────────────────────
    # Retry policy
    # ──────────────────────────────────────────────────────────────

    retry_max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Attempts per part, range or copy call before giving up",
    )

    retry_base_delay: float = Field(
        default=0.2,
        ge=0.0,
        le=30.0,
        description="Delay before the first retry in seconds",
    )

    retry_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Exponential backoff multiplier",
    )

    retry_max_delay: float = Field(
        default=20.0,
        ge=0.0,
        le=300.0,
        description="Upper bound on a single backoff delay",
    )

    retry_jitter_min: float = Field(default=0.5, ge=0.0, le=1.0)
    retry_jitter_max: float = Field(default=1.5, ge=1.0, le=3.0)

    call_timeout: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Timeout for one network call (part, range, copy), not the whole transfer",
    )

    # ──────────────────────────────────────────────────────────────
    # Copy
    # ──────────────────────────────────────────────────────────────

    server_side_copy_enabled: bool = Field(
        default=True,
        description="Try CopyObject before falling back to download-then-upload",
    )

    max_server_side_copy_bytes: int = Field(
        default=5 * GIB,
        ge=1,
        description="Largest object CopyObject accepts in one call",
    )

    temp_dir: str | None = Field(
        default=None,
        description="Directory for two-phase copy staging files (system default if unset)",
    )

    @model_validator(mode="after")
    def _validate_ranges(self) -> TransferSettings:
        """Reject a concurrency floor above the ceiling."""
        if self.min_download_concurrency > self.download_concurrency:
            raise ValueError("min_download_concurrency must not exceed download_concurrency")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def retry_jitter_range(self) -> tuple[float, float]:
        """Jitter bounds as the tuple the retry strategy expects."""
        return (self.retry_jitter_min, self.retry_jitter_max)

    model_config = SettingsConfigDict(
        env_prefix="TRANSFER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
