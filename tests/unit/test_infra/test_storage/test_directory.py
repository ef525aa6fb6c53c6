"""Unit tests for DirectoryService over the flat key namespace."""

from __future__ import annotations

import pytest

from objectmover.infra.storage.exceptions import InvalidPathError, StorageNetworkError, StoragePermissionError
from objectmover.infra.storage.models import CloudPath, DirectoryEntry, ListFormat, ListType, LocalPath
from objectmover.infra.storage.operations.copy import CopyOrchestrator
from objectmover.infra.storage.operations.directory import (
    PLACEHOLDER_CONTENT_TYPE,
    DirectoryService,
    is_placeholder_key,
)
from objectmover.infra.storage.operations.download import DownloadEngine
from objectmover.infra.storage.operations.upload import UploadEngine


@pytest.fixture
def directories(store, transfer_settings):
    uploader = UploadEngine(store, transfer_settings)
    downloader = DownloadEngine(store, transfer_settings)
    copier = CopyOrchestrator(store, transfer_settings, uploader, downloader)
    return DirectoryService(store, transfer_settings, copier)


@pytest.fixture
def tree(store):
    """media/
    ├── docs/            (placeholder)
    ├── docs/a.txt
    ├── docs/b.csv
    ├── docs/sub/c.txt
    ├── docs/sub/deeper/d.txt
    └── other.txt
    """
    store.add("media", "docs/", b"", content_type=PLACEHOLDER_CONTENT_TYPE)
    store.add("media", "docs/a.txt", b"aaa")
    store.add("media", "docs/b.csv", b"bb")
    store.add("media", "docs/sub/c.txt", b"c")
    store.add("media", "docs/sub/deeper/d.txt", b"dddd")
    store.add("media", "other.txt", b"o")
    return store


class TestCreate:
    @pytest.mark.asyncio
    async def test_writes_placeholder(self, directories, store):
        result = await directories.create(CloudPath("media", "reports"))

        assert result.success
        assert result.metadata["created"] is True
        assert result.metadata["path"] == "s3://media/reports/"
        placeholder = store.objects[("media", "reports/")]
        assert placeholder.body == b""
        assert placeholder.content_type == PLACEHOLDER_CONTENT_TYPE

    @pytest.mark.asyncio
    async def test_is_idempotent(self, directories, store):
        await directories.create(CloudPath("media", "reports/"))
        result = await directories.create(CloudPath("media", "reports/"))

        assert result.success
        assert result.metadata["created"] is False
        assert store.calls.count("put_object") == 1

    @pytest.mark.asyncio
    async def test_bucket_root_is_noop(self, directories, store):
        result = await directories.create(CloudPath("media", ""))

        assert result.success
        assert result.metadata["created"] is False
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_store_failure_is_reported(self, directories, store):
        store.fail("put_object", StoragePermissionError("AccessDenied"))

        result = await directories.create(CloudPath("media", "reports/"))

        assert not result.success
        assert result.metadata["code"] == "STORAGE_PERMISSION_DENIED"


class TestExists:
    @pytest.mark.asyncio
    async def test_placeholder_only(self, directories, store):
        store.add("media", "empty/", b"")

        assert await directories.exists(CloudPath("media", "empty"))

    @pytest.mark.asyncio
    async def test_objects_without_placeholder(self, directories, store):
        store.add("media", "implicit/file.txt", b"x")

        assert await directories.exists(CloudPath("media", "implicit/"))

    @pytest.mark.asyncio
    async def test_missing(self, directories, tree):
        assert not await directories.exists(CloudPath("media", "nothing/"))

    @pytest.mark.asyncio
    async def test_prefix_of_a_file_name_is_not_a_directory(self, directories, tree):
        assert not await directories.exists(CloudPath("media", "doc"))

    @pytest.mark.asyncio
    async def test_store_failure_raises(self, directories, store):
        store.fail("head_object", StoragePermissionError("AccessDenied"))

        with pytest.raises(StoragePermissionError):
            await directories.exists(CloudPath("media", "x/"))


class TestList:
    """Test listing shape, filters and formats."""

    @pytest.mark.asyncio
    async def test_shallow_listing_collapses_sub_directories(self, directories, tree):
        keys = await directories.list(CloudPath("media", "docs"), format=ListFormat.KEYS)

        assert keys == ["docs/a.txt", "docs/b.csv", "docs/sub/"]

    @pytest.mark.asyncio
    async def test_placeholder_of_listed_directory_is_excluded(self, directories, tree):
        keys = await directories.list(CloudPath("media", "docs/"), recurse=True, format=ListFormat.KEYS)

        assert "docs/" not in keys

    @pytest.mark.asyncio
    async def test_recursive_listing_includes_intermediate_directories(self, directories, tree):
        keys = await directories.list(CloudPath("media", "docs/"), recurse=True, format=ListFormat.KEYS)

        assert keys == [
            "docs/a.txt",
            "docs/b.csv",
            "docs/sub/",
            "docs/sub/c.txt",
            "docs/sub/deeper/",
            "docs/sub/deeper/d.txt",
        ]

    @pytest.mark.asyncio
    async def test_type_filter(self, directories, tree):
        files = await directories.list(
            CloudPath("media", "docs/"), recurse=True, type=ListType.FILES, format=ListFormat.NAMES
        )
        dirs = await directories.list(
            CloudPath("media", "docs/"), recurse=True, type=ListType.DIRECTORIES, format=ListFormat.NAMES
        )

        assert files == ["a.txt", "b.csv", "c.txt", "d.txt"]
        assert dirs == ["sub/", "deeper/"]

    @pytest.mark.asyncio
    async def test_name_filter(self, directories, tree):
        names = await directories.list(
            CloudPath("media", "docs/"), recurse=True, filter="*.txt", format=ListFormat.NAMES
        )

        assert names == ["a.txt", "c.txt", "d.txt"]

    @pytest.mark.asyncio
    async def test_paths_format(self, directories, tree):
        paths = await directories.list(CloudPath("media", ""))

        assert paths == ["s3://media/docs/", "s3://media/other.txt"]

    @pytest.mark.asyncio
    async def test_entries_format(self, directories, tree):
        entries = await directories.list(CloudPath("media", "docs/"), format=ListFormat.ENTRIES)

        assert all(isinstance(entry, DirectoryEntry) for entry in entries)
        by_key = {entry.key: entry for entry in entries}
        assert by_key["docs/a.txt"].size == 3
        assert by_key["docs/a.txt"].last_modified is not None
        assert by_key["docs/sub/"].is_directory

    @pytest.mark.asyncio
    async def test_listing_spans_pages(self, directories, store):
        store.page_size = 2
        for index in range(5):
            store.add("media", f"many/{index}.bin", b"x")

        keys = await directories.list(CloudPath("media", "many/"), format=ListFormat.KEYS)

        assert keys == [f"many/{index}.bin" for index in range(5)]

    @pytest.mark.asyncio
    async def test_empty_directory(self, directories):
        assert await directories.list(CloudPath("media", "nothing/")) == []

    @pytest.mark.asyncio
    async def test_transient_list_failure_is_retried(self, directories, tree):
        tree.fail("list_objects", StorageNetworkError("connection reset"))

        keys = await directories.list(CloudPath("media", "docs/"), format=ListFormat.KEYS)

        assert len(keys) == 3

    @pytest.mark.asyncio
    async def test_transient_failure_during_recursive_list_is_retried(self, directories, tree):
        tree.page_size = 2
        tree.fail("list_objects", StorageNetworkError("connection reset"), times=2)

        keys = await directories.list(CloudPath("media", "docs/"), recurse=True, format=ListFormat.KEYS)

        assert keys == [
            "docs/a.txt",
            "docs/b.csv",
            "docs/sub/",
            "docs/sub/c.txt",
            "docs/sub/deeper/",
            "docs/sub/deeper/d.txt",
        ]


class TestDelete:
    @pytest.mark.asyncio
    async def test_deletes_everything_under_prefix(self, directories, tree):
        result = await directories.delete(CloudPath("media", "docs"))

        assert result.success
        assert result.metadata["deleted"] == 5
        assert tree.keys("media") == ["other.txt"]

    @pytest.mark.asyncio
    async def test_missing_prefix_is_noop(self, directories, tree):
        result = await directories.delete(CloudPath("media", "nothing/"))

        assert result.success
        assert result.metadata["deleted"] == 0

    @pytest.mark.asyncio
    async def test_bucket_root_is_refused(self, directories, tree):
        with pytest.raises(InvalidPathError):
            await directories.delete(CloudPath("media", ""))

        assert len(tree.keys("media")) == 6

    @pytest.mark.asyncio
    async def test_partial_failure_lists_keys(self, directories, tree):
        tree.undeletable = {"docs/b.csv"}

        result = await directories.delete(CloudPath("media", "docs/"))

        assert not result.success
        assert result.metadata["code"] == "STORAGE_PARTIAL_BATCH_FAILURE"
        assert result.metadata["failed_keys"] == ["docs/b.csv"]
        assert result.metadata["deleted"] == 4

    @pytest.mark.asyncio
    async def test_large_prefix_is_deleted_in_chunks(self, directories, store):
        for index in range(1001):
            store.add("media", f"bulk/{index:04d}", b"")

        result = await directories.delete(CloudPath("media", "bulk/"))

        assert result.success
        assert result.metadata["deleted"] == 1001
        assert store.calls.count("delete_objects") == 2

    @pytest.mark.asyncio
    async def test_transient_list_failure_is_retried(self, directories, tree):
        tree.fail("list_objects", StorageNetworkError("connection reset"), times=2)

        result = await directories.delete(CloudPath("media", "docs/"))

        assert result.success
        assert result.metadata["deleted"] == 5
        assert tree.keys("media") == ["other.txt"]


class TestCopy:
    """Test directory copies between any two locations."""

    @pytest.mark.asyncio
    async def test_recursive_remote_copy(self, directories, tree):
        report = await directories.copy(CloudPath("media", "docs/"), CloudPath("archive", "2024/"), recurse=True)

        assert report.success
        assert tree.keys("archive") == [
            "2024/",
            "2024/a.txt",
            "2024/b.csv",
            "2024/sub/c.txt",
            "2024/sub/deeper/d.txt",
        ]
        assert tree.body("archive", "2024/sub/deeper/d.txt") == b"dddd"

    @pytest.mark.asyncio
    async def test_shallow_remote_copy(self, directories, tree):
        report = await directories.copy(CloudPath("media", "docs"), CloudPath("archive", "flat"))

        assert report.success
        assert "2024/sub/c.txt" not in tree.keys("archive")
        assert tree.keys("archive") == ["flat/", "flat/a.txt", "flat/b.csv"]

    @pytest.mark.asyncio
    async def test_local_directory_upload(self, directories, store, write_file, tmp_path):
        write_file("site/index.html", b"<html/>")
        write_file("site/css/app.css", b"body{}")

        report = await directories.copy(LocalPath(str(tmp_path / "site")), CloudPath("media", "web/"), recurse=True)

        assert report.success
        assert store.keys("media") == ["web/css/app.css", "web/index.html"]

    @pytest.mark.asyncio
    async def test_remote_directory_download(self, directories, tree, tmp_path):
        report = await directories.copy(CloudPath("media", "docs/"), LocalPath(f"{tmp_path}/out/"), recurse=True)

        assert report.success
        assert (tmp_path / "out" / "a.txt").read_bytes() == b"aaa"
        assert (tmp_path / "out" / "sub" / "deeper" / "d.txt").read_bytes() == b"dddd"

    @pytest.mark.asyncio
    async def test_missing_source(self, directories, tree):
        report = await directories.copy(CloudPath("media", "nothing/"), CloudPath("archive", "x/"), recurse=True)

        assert not report.success
        assert report.errors[0].code == "STORAGE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_failures_are_reported_per_key(self, directories, tree):
        tree.fail("copy_object", StoragePermissionError("AccessDenied"), times=None, key="docs/b.csv")

        report = await directories.copy(
            CloudPath("media", "docs/"), CloudPath("archive", "2024/"), recurse=True, fail_fast=False
        )

        assert not report.success
        assert report.failed_keys == ["2024/b.csv"]
        assert ("archive", "2024/a.txt") in tree.objects

    @pytest.mark.asyncio
    async def test_transient_list_failure_during_recursive_copy_is_retried(self, directories, tree):
        tree.fail("list_objects", StorageNetworkError("connection reset"), key="docs/", times=2)

        report = await directories.copy(CloudPath("media", "docs/"), CloudPath("archive", "2024/"), recurse=True)

        assert report.success
        assert tree.body("archive", "2024/sub/deeper/d.txt") == b"dddd"


def test_is_placeholder_key():
    assert is_placeholder_key("a/")
    assert not is_placeholder_key("a")
