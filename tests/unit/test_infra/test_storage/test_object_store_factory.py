"""Unit tests for the object store factory."""

import pytest

from objectmover.core.settings.storage import StorageBackendType, StorageSettings
from objectmover.infra.storage.backends import create_object_store
from objectmover.infra.storage.backends.s3.backend import S3ObjectStore
from objectmover.infra.storage.exceptions import StorageNotConfiguredError


class TestObjectStoreFactory:
    """Test backend selection from settings."""

    def test_create_s3_store(self):
        settings = StorageSettings(
            enabled=True,
            backend=StorageBackendType.S3,
            default_bucket="test-bucket",
            access_key="test-key",
            secret_key="test-secret",
        )

        store = create_object_store(settings)

        assert isinstance(store, S3ObjectStore)
        assert store.backend_name == "s3"
        assert not store.is_ready

    def test_create_minio_store(self):
        """MinIO is served by the S3 store with a custom endpoint."""
        settings = StorageSettings(
            enabled=True,
            backend=StorageBackendType.MINIO,
            endpoint="http://localhost:9000",
            access_key="minioadmin",
            secret_key="minioadmin",
        )

        store = create_object_store(settings)

        assert isinstance(store, S3ObjectStore)
        assert settings.is_minio

    def test_rejects_disabled_storage(self):
        settings = StorageSettings(enabled=False)

        with pytest.raises(StorageNotConfiguredError) as exc_info:
            create_object_store(settings)

        assert "Storage not configured" in exc_info.value.message
