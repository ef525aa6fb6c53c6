"""Test fixtures for pytest.

This module re-exports commonly used test doubles for easier importing.
"""

from .object_store import InMemoryObjectStore, StoredObject, UploadSession

__all__ = [
    "InMemoryObjectStore",
    "StoredObject",
    "UploadSession",
]
