"""Byte progress reporting shared by the upload and download engines."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Accumulates transferred bytes and forwards them to a callback.

    Parts and ranges finish out of order, so only the running total is
    reported, never individual offsets.
    """

    def __init__(self, total: int, callback: Callable[[int, int], None] | None = None) -> None:
        self.total = total
        self.transferred = 0
        self._callback = callback

    def advance(self, nbytes: int) -> None:
        self.transferred += nbytes
        if self._callback is None:
            return
        try:
            self._callback(self.transferred, self.total)
        except Exception:
            # A broken progress callback must not fail the transfer
            logger.exception("Progress callback raised", extra={"transferred": self.transferred})
