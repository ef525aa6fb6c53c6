"""Base exception classes for objectmover."""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base application exception.

    All custom exceptions should inherit from this class. The shape mirrors
    a problem-details document so errors can be rendered the same way by the
    CLI or by any host binding layered on top of the engine.

    Attributes:
        detail: Human-readable error message.
        type: Error type identifier (kebab-case).
        title: Short, human-readable summary of the problem type.
        instance: Reference that identifies the specific occurrence, such as
            the ``s3://`` URI or local path involved.
        extra: Additional context-specific information about the error.

    Example:
            raise AppException(
            detail="Object not found",
            type="storage-not-found",
            instance="s3://media/reports/2024.csv",
            extra={"bucket": "media", "key": "reports/2024.csv"},
        )
    """

    def __init__(
        self,
        detail: str,
        type: str = "about:blank",
        title: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize application exception.

        Args:
            detail: Human-readable error message.
            type: Error type identifier.
            title: Short summary of the problem type.
            instance: Reference identifying this specific occurrence.
            extra: Additional context about the error.
        """
        self.detail = detail
        self.type = type
        self.title = title or self._default_title(type)
        self.instance = instance
        self.extra = extra or {}
        super().__init__(detail)

    @staticmethod
    def _default_title(type: str) -> str:
        """Derive a title from the error type identifier.

        Args:
            type: Kebab-case error type.

        Returns:
            Title-cased summary, or ``"Error"`` for the blank type.
        """
        if not type or type == "about:blank":
            return "Error"
        return type.replace("-", " ").title()

    def to_dict(self) -> dict[str, Any]:
        """Render the exception as a problem-details style mapping."""
        payload: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "detail": self.detail,
        }
        if self.instance:
            payload["instance"] = self.instance
        if self.extra:
            payload.update(self.extra)
        return payload

