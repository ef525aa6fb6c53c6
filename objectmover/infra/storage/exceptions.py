"""Storage-specific exceptions for object store operations.

Every storage error carries a machine-readable ``code``, a ``message``, a
``metadata`` mapping and a ``retryable`` flag. The flag is what the shared
retry policy consults: network failures and timeouts are retried locally
with backoff, everything else surfaces immediately.

Example:
    ```python
    from objectmover.infra.storage.exceptions import map_boto_error

    try:
        await client.head_object(Bucket=bucket, Key=key)
    except ClientError as e:
        raise map_boto_error(e, operation="head", key=key) from e
    ```
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from objectmover.core.exceptions import AppException
from objectmover.utils.retry import RetryError

if TYPE_CHECKING:
    from botocore.exceptions import BotoCoreError, ClientError

    from .models import BatchReport


class StorageError(AppException):
    """Base exception for all storage-related errors.

    Attributes:
        code: Error code identifier for programmatic error handling.
        message: Human-readable error message.
        retryable: Whether the shared backoff policy may retry the call.
        extra: Additional context (bucket, key, AWS error code, ...).

    Example:
        ```python
        raise StorageError(
            message="Failed to connect to object store",
            code="STORAGE_CONNECTION_ERROR",
            metadata={"endpoint": "http://localhost:9000"},
        )
        ```
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: str,
        metadata: dict[str, Any] | None = None,
        retryable: bool | None = None,
    ) -> None:
        """Initialize storage error.

        Args:
            message: Human-readable error message.
            code: Error code for programmatic handling.
            metadata: Additional error context.
            retryable: Override the class-level retry classification.
        """
        self.code = code
        self.message = message
        if retryable is not None:
            self.retryable = retryable
        super().__init__(
            detail=message,
            type=code.lower().replace("_", "-"),
            extra=metadata or {},
        )

    @property
    def metadata(self) -> dict[str, Any]:
        """Alias for ``extra`` using storage vocabulary."""
        return self.extra


class StorageNotConfiguredError(StorageError):
    """Raised when the object store is disabled, missing settings, or not started."""

    def __init__(
        self,
        message: str = "Storage is not configured or enabled",
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code="STORAGE_NOT_CONFIGURED", metadata=metadata)


class InvalidPathError(StorageError):
    """Raised when a path is malformed or cannot be resolved to a bucket.

    Example:
        ```python
        raise InvalidPathError(
            "Remote path has no bucket and no default bucket is configured",
            metadata={"path": "reports/2024.csv"},
        )
        ```
    """

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_INVALID_PATH", metadata=metadata)


class StorageFileNotFoundError(StorageError):
    """Raised when a requested object or prefix does not exist."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_NOT_FOUND", metadata=metadata)


class StoragePermissionError(StorageError):
    """Raised when credentials are missing, expired, or lack the needed permission."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_PERMISSION_DENIED", metadata=metadata)


class StorageNetworkError(StorageError):
    """Raised for connection-level failures (refused, reset, endpoint unreachable).

    Retryable. A burst of these across concurrent ranged reads is also the
    signal the download throttle uses to lower its concurrency.
    """

    retryable = True

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_NETWORK_ERROR", metadata=metadata)


class StorageTimeoutError(StorageError):
    """Raised when a single network call exceeds its time limit, or the store throttles.

    Retryable, counted against the same budget as network errors.
    """

    retryable = True

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_TIMEOUT", metadata=metadata)


class StorageIntegrityError(StorageError):
    """Reserved for content verification failures; not raised by the engine."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_INTEGRITY_ERROR", metadata=metadata)


class TransferAbortedError(StorageError):
    """Raised (or reported) for work cancelled by a fail-fast abort."""

    def __init__(
        self,
        message: str = "Transfer aborted after a sibling failure",
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code="STORAGE_TRANSFER_ABORTED", metadata=metadata)


class PartialBatchFailureError(StorageError):
    """Aggregate failure for a batch or directory operation.

    Attributes:
        report: The full ``BatchReport`` with per-item results and errors.
    """

    def __init__(self, report: BatchReport, message: str | None = None) -> None:
        self.report = report
        failed = len(report.errors)
        super().__init__(
            message=message or f"{failed} item(s) failed",
            code="STORAGE_PARTIAL_BATCH_FAILURE",
            metadata={"failed": failed, "aborted": len(report.aborted)},
        )


class StorageUploadError(StorageError):
    """Raised when an upload fails for a reason not covered by a narrower kind."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_UPLOAD_ERROR", metadata=metadata)


class StorageDownloadError(StorageError):
    """Raised when a download fails for a reason not covered by a narrower kind."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_DOWNLOAD_ERROR", metadata=metadata)


class StorageCopyError(StorageError):
    """Raised when the store refuses a server-side copy."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_COPY_ERROR", metadata=metadata)


class StorageValidationError(StorageError):
    """Raised when request parameters are rejected by the engine or the store."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_VALIDATION_ERROR", metadata=metadata)


class StorageQuotaExceededError(StorageError):
    """Raised when the store reports a quota or account limit."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="STORAGE_QUOTA_EXCEEDED", metadata=metadata)


# AWS error codes that mean the object (or its bucket) is absent
NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "NoSuchUpload", "404", "NotFound"})

PERMISSION_CODES = frozenset(
    {
        "AccessDenied",
        "403",
        "Forbidden",
        "ExpiredToken",
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
        "InvalidToken",
        "TokenRefreshRequired",
        "AllAccessDisabled",
    }
)

TIMEOUT_CODES = frozenset({"RequestTimeout", "RequestTimeTooSkewed", "SlowDown", "Throttling"})

NETWORK_CODES = frozenset({"InternalError", "ServiceUnavailable", "500", "502", "503", "504"})

QUOTA_CODES = frozenset({"QuotaExceeded", "TooManyBuckets", "AccountProblem"})

VALIDATION_CODES = frozenset(
    {
        "InvalidRequest",
        "InvalidArgument",
        "MalformedXML",
        "InvalidBucketName",
        "InvalidObjectState",
        "KeyTooLongError",
        "MetadataTooLarge",
        "EntityTooLarge",
        "EntityTooSmall",
        "InvalidPart",
        "InvalidPartOrder",
        "NotImplemented",
    }
)


def map_boto_error(
    error: ClientError,
    operation: str,
    key: str | None = None,
    bucket: str | None = None,
) -> StorageError:
    """Map a botocore ClientError to a domain-specific StorageError.

    Args:
        error: The botocore ClientError to map.
        operation: The storage operation being performed (e.g., "upload_part").
        key: Optional object key being operated on.
        bucket: Optional bucket being operated on.

    Returns:
        StorageError: Appropriate domain-specific storage exception.

    Error Code Mappings:
        - NoSuchKey, NoSuchBucket, NoSuchUpload, 404 -> StorageFileNotFoundError
        - AccessDenied, ExpiredToken, InvalidAccessKeyId, 403 -> StoragePermissionError
        - RequestTimeout, SlowDown, Throttling -> StorageTimeoutError (retryable)
        - InternalError, ServiceUnavailable, 5xx -> StorageNetworkError (retryable)
        - QuotaExceeded, TooManyBuckets -> StorageQuotaExceededError
        - InvalidRequest, InvalidArgument, EntityTooLarge, ... -> StorageValidationError
        - Others -> StorageError
    """
    error_info = error.response.get("Error", {})
    error_code = str(error_info.get("Code", "Unknown"))
    error_message = error_info.get("Message") or str(error)
    status_code = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

    metadata: dict[str, Any] = {
        "operation": operation,
        "aws_error_code": error_code,
        "aws_error_message": error_message,
        "request_id": error.response.get("ResponseMetadata", {}).get("RequestId"),
    }
    if key:
        metadata["key"] = key
    if bucket:
        metadata["bucket"] = bucket
    elif "BucketName" in error_info:
        metadata["bucket"] = error_info["BucketName"]  # type: ignore[typeddict-item]

    if error_code in NOT_FOUND_CODES:
        return StorageFileNotFoundError(f"{operation} failed: {error_message}", metadata=metadata)

    if error_code in PERMISSION_CODES:
        return StoragePermissionError(f"{operation} failed: {error_message}", metadata=metadata)

    if error_code in TIMEOUT_CODES:
        return StorageTimeoutError(f"{operation} timed out: {error_message}", metadata=metadata)

    if error_code in NETWORK_CODES or (isinstance(status_code, int) and status_code >= 500):
        return StorageNetworkError(f"{operation} failed: {error_message}", metadata=metadata)

    if error_code in QUOTA_CODES:
        return StorageQuotaExceededError(f"{operation} failed: {error_message}", metadata=metadata)

    if error_code in VALIDATION_CODES:
        return StorageValidationError(f"{operation} failed: {error_message}", metadata=metadata)

    return StorageError(
        message=f"{operation} failed: {error_message}",
        code="STORAGE_ERROR",
        metadata=metadata,
    )


def map_transport_error(
    error: BotoCoreError,
    operation: str,
    key: str | None = None,
    bucket: str | None = None,
) -> StorageError:
    """Map a botocore transport error (no HTTP response) to a StorageError.

    Read/connect timeouts become ``StorageTimeoutError``; every other
    connection-level failure becomes ``StorageNetworkError``. Both are
    retryable. Non-transport botocore errors (bad parameters, missing
    credentials) map to non-retryable kinds.
    """
    from botocore.exceptions import (
        ConnectionError as BotoConnectionError,
        ConnectTimeoutError,
        HTTPClientError,
        NoCredentialsError,
        ParamValidationError,
        ReadTimeoutError,
    )

    metadata: dict[str, Any] = {"operation": operation, "error": str(error)}
    if key:
        metadata["key"] = key
    if bucket:
        metadata["bucket"] = bucket

    if isinstance(error, ReadTimeoutError | ConnectTimeoutError):
        return StorageTimeoutError(f"{operation} timed out: {error}", metadata=metadata)
    if isinstance(error, BotoConnectionError | HTTPClientError):
        return StorageNetworkError(f"{operation} connection failed: {error}", metadata=metadata)
    if isinstance(error, NoCredentialsError):
        return StoragePermissionError(f"{operation} failed: {error}", metadata=metadata)
    if isinstance(error, ParamValidationError):
        return StorageValidationError(f"{operation} failed: {error}", metadata=metadata)
    return StorageError(f"{operation} failed: {error}", code="STORAGE_ERROR", metadata=metadata)


def is_retryable(error: BaseException) -> bool:
    """Decide whether the shared backoff policy should retry ``error``.

    Storage errors answer through their ``retryable`` flag. Bare
    ``TimeoutError`` (raised by a per-call ``asyncio.timeout``) and OS-level
    connection errors are transient as well.
    """
    if isinstance(error, StorageError):
        return error.retryable
    return isinstance(error, TimeoutError | ConnectionError)


def is_connection_failure(error: BaseException) -> bool:
    """True for failures that suggest the connection pool is saturated."""
    if isinstance(error, RetryError):
        error = error.last_exception
    return isinstance(
        error,
        StorageNetworkError | StorageTimeoutError | TimeoutError | ConnectionError,
    )


def as_storage_error(error: BaseException, operation: str) -> StorageError:
    """Normalize any failure into a StorageError for result reporting.

    ``RetryError`` is unwrapped to the failure from its last attempt.
    """
    if isinstance(error, RetryError):
        error = error.last_exception
    if isinstance(error, StorageError):
        return error
    if isinstance(error, TimeoutError):
        return StorageTimeoutError(f"{operation} timed out", metadata={"operation": operation})
    if isinstance(error, ConnectionError):
        return StorageNetworkError(
            f"{operation} connection failed: {error}", metadata={"operation": operation}
        )
    if isinstance(error, FileNotFoundError):
        return StorageFileNotFoundError(
            f"{operation} failed: {error}", metadata={"operation": operation}
        )
    if isinstance(error, PermissionError):
        return StoragePermissionError(
            f"{operation} failed: {error}", metadata={"operation": operation}
        )
    return StorageError(
        message=f"{operation} failed: {error}",
        code="STORAGE_ERROR",
        metadata={"operation": operation, "error_type": type(error).__name__},
    )


def first_failure(error: BaseException) -> BaseException:
    """Return the first real failure inside a (possibly nested) exception group.

    ``asyncio.TaskGroup`` wraps child failures in an ``ExceptionGroup``;
    sibling cancellations caused by that failure are skipped.
    """
    if isinstance(error, BaseExceptionGroup):
        for inner in error.exceptions:
            found = first_failure(inner)
            if not isinstance(found, asyncio.CancelledError):
                return found
        return error.exceptions[0]
    return error
