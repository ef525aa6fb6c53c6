from __future__ import annotations

import random
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from objectmover.core.settings.transfer import TransferSettings


class RetryStrategy:
    """Bounded exponential backoff with optional jitter.

    The delay before retry ``n`` (0-based) is
    ``min(initial_delay * exponential_base**n, max_delay)``, scaled by a
    uniform factor drawn from ``jitter_range`` when jitter is enabled.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        jitter_range: tuple[float, float] = (0.5, 1.5),
        exceptions: tuple[type[Exception], ...] = (Exception,),
        retry_if: Callable[[Exception], bool] | None = None,
        stop_after_delay: float | None = None,
    ) -> None:
        if max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {max_attempts}"
            raise ValueError(msg)
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.jitter_range = jitter_range
        self.exceptions = exceptions
        self.retry_if = retry_if
        self.stop_after_delay = stop_after_delay

    def should_retry(self, exception: Exception) -> bool:
        if not isinstance(exception, self.exceptions):
            return False
        if self.retry_if is not None:
            return self.retry_if(exception)
        return True

    def calculate_delay(self, attempt: int) -> float:
        delay = self.initial_delay * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay)
        if self.jitter:
            delay *= random.uniform(self.jitter_range[0], self.jitter_range[1])
        return delay

    @classmethod
    def from_settings(
        cls,
        settings: TransferSettings,
        *,
        max_attempts: int | None = None,
        retry_if: Callable[[Exception], bool] | None = None,
    ) -> RetryStrategy:
        """Build the engine-wide backoff policy from transfer settings."""
        return cls(
            max_attempts=max_attempts or settings.retry_max_attempts,
            initial_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            exponential_base=settings.retry_multiplier,
            jitter_range=settings.retry_jitter_range,
            retry_if=retry_if,
        )
