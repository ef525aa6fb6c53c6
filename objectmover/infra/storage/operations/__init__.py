"""Transfer engines built on the ObjectStore protocol.

- UploadEngine / DownloadEngine: one file, single-shot or chunked
- BatchCoordinator: many transfers under a worker pool with fail-fast
- CopyOrchestrator: one object between any two locations
- DirectoryService: prefix directories (create, exists, list, delete, copy)
- ObjectOperations: delete, get_bytes, object_info
- presign: presigned GET/PUT URLs
"""

from __future__ import annotations

from .batch import BatchCoordinator
from .copy import CopyOrchestrator
from .directory import DirectoryService
from .download import ConcurrencyThrottle, DownloadEngine
from .objects import ObjectOperations
from .presigned import presign
from .strategy import (
    CopyStrategy,
    DownloadStrategy,
    Multipart,
    Ranged,
    ServerSideCopy,
    SinglePart,
    SingleStream,
    TwoPhaseCopy,
    UploadStrategy,
    adjust_part_size,
    choose_copy_strategy,
    choose_download_strategy,
    choose_upload_strategy,
    plan_ranges,
)
from .upload import UploadEngine

__all__ = [
    "BatchCoordinator",
    "ConcurrencyThrottle",
    "CopyOrchestrator",
    "CopyStrategy",
    "DirectoryService",
    "DownloadEngine",
    "DownloadStrategy",
    "Multipart",
    "ObjectOperations",
    "Ranged",
    "ServerSideCopy",
    "SinglePart",
    "SingleStream",
    "TwoPhaseCopy",
    "UploadEngine",
    "UploadStrategy",
    "adjust_part_size",
    "choose_copy_strategy",
    "choose_download_strategy",
    "choose_upload_strategy",
    "plan_ranges",
    "presign",
]
