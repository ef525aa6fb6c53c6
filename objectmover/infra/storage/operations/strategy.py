"""Transfer strategy selection.

Each decision is a pure function returning a tagged variant, so the
engines ``match`` on the result and the thresholds can be tested without
any I/O:

- ``choose_upload_strategy``   -> ``SinglePart | Multipart``
- ``choose_download_strategy`` -> ``SingleStream | Ranged``
- ``choose_copy_strategy``     -> ``ServerSideCopy | TwoPhaseCopy``
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import ClassVar

from objectmover.core.settings.transfer import MAX_PART_COUNT, MIB
from objectmover.infra.storage.models import ByteRange

# ============================================================================
# Upload
# ============================================================================


@dataclass(frozen=True)
class SinglePart:
    kind: ClassVar[str] = "single_part"


@dataclass(frozen=True)
class Multipart:
    part_size: int
    part_count: int

    kind: ClassVar[str] = "multipart"


UploadStrategy = SinglePart | Multipart


def adjust_part_size(size: int, part_size: int, max_parts: int = MAX_PART_COUNT) -> int:
    """Grow ``part_size`` until ``size`` fits in ``max_parts`` parts.

    The result is never smaller than ``part_size``. When growth is needed
    it is rounded up to a whole MiB.
    """
    if size <= part_size * max_parts:
        return part_size
    needed = math.ceil(size / max_parts)
    return math.ceil(needed / MIB) * MIB


def choose_upload_strategy(
    size: int,
    threshold: int,
    part_size: int,
    max_parts: int = MAX_PART_COUNT,
) -> UploadStrategy:
    """Single put for ``size <= threshold``, multipart above it."""
    if size <= threshold:
        return SinglePart()
    effective = adjust_part_size(size, part_size, max_parts)
    return Multipart(part_size=effective, part_count=math.ceil(size / effective))


# ============================================================================
# Download
# ============================================================================


@dataclass(frozen=True)
class SingleStream:
    kind: ClassVar[str] = "single_stream"


@dataclass(frozen=True)
class Ranged:
    ranges: tuple[ByteRange, ...]

    kind: ClassVar[str] = "ranged"


DownloadStrategy = SingleStream | Ranged


def plan_ranges(size: int, chunk_size: int) -> list[ByteRange]:
    """Split ``size`` bytes into ordered, disjoint inclusive ranges.

    Every range is ``chunk_size`` long except possibly the last one. An
    empty object has no ranges.
    """
    if chunk_size < 1:
        msg = f"chunk_size must be positive, got {chunk_size}"
        raise ValueError(msg)
    return [
        ByteRange(start=start, end=min(start + chunk_size, size) - 1)
        for start in range(0, size, chunk_size)
    ]


def choose_download_strategy(size: int, threshold: int, chunk_size: int) -> DownloadStrategy:
    """Streamed read for ``size <= threshold``, concurrent ranged reads above it."""
    if size <= threshold:
        return SingleStream()
    return Ranged(ranges=tuple(plan_ranges(size, chunk_size)))


# ============================================================================
# Remote to remote copy
# ============================================================================

REASON_DISABLED = "server_side_copy_disabled"
REASON_SIZE_LIMIT = "exceeds_server_side_copy_limit"
REASON_REJECTED = "server_side_copy_rejected"


@dataclass(frozen=True)
class ServerSideCopy:
    kind: ClassVar[str] = "server_side"


@dataclass(frozen=True)
class TwoPhaseCopy:
    reason: str

    kind: ClassVar[str] = "two_phase"


CopyStrategy = ServerSideCopy | TwoPhaseCopy


def choose_copy_strategy(
    size: int | None,
    *,
    server_side_enabled: bool,
    max_server_side_bytes: int,
) -> CopyStrategy:
    """Prefer a server-side copy unless disabled or the object is too large for it.

    ``size`` may be None when it is unknown; the store then decides, and a
    rejection falls back to ``TwoPhaseCopy(REASON_REJECTED)`` at copy time.
    """
    if not server_side_enabled:
        return TwoPhaseCopy(reason=REASON_DISABLED)
    if size is not None and size > max_server_side_bytes:
        return TwoPhaseCopy(reason=REASON_SIZE_LIMIT)
    return ServerSideCopy()
