"""Object store backends.

- ObjectStore: protocol every backend implements
- create_object_store(): build the backend selected by StorageSettings
"""

from __future__ import annotations

from .factory import create_object_store
from .protocol import MAX_DELETE_BATCH, ListPage, ObjectStore

__all__ = ["MAX_DELETE_BATCH", "ListPage", "ObjectStore", "create_object_store"]
