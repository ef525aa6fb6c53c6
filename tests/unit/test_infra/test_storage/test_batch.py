"""Unit tests for BatchCoordinator ordering, concurrency and fail-fast."""

from __future__ import annotations

import asyncio

import pytest

from objectmover.infra.storage.exceptions import PartialBatchFailureError, StoragePermissionError
from objectmover.infra.storage.models import (
    CloudPath,
    LocalPath,
    TransferOptions,
    TransferRequest,
    TransferResult,
)
from objectmover.infra.storage.operations.batch import BatchCoordinator
from objectmover.infra.storage.operations.upload import UploadEngine

KIB = 1024


def _requests(count: int) -> list[TransferRequest]:
    return [
        TransferRequest(source=LocalPath(f"/tmp/{index}.bin"), destination=CloudPath("media", f"{index}.bin"))
        for index in range(count)
    ]


def _index(request: TransferRequest) -> int:
    return int(request.source.name.split(".")[0])


class TestRunBatch:
    """Test the worker pool without fail-fast."""

    @pytest.mark.asyncio
    async def test_results_follow_input_order(self):
        async def runner(request):
            # Later items finish first
            await asyncio.sleep(0.001 * (5 - _index(request)))
            return TransferResult.ok(key=request.destination.key)

        report = await BatchCoordinator(runner).run_batch(_requests(5), concurrency=5, fail_fast=False)

        assert report.success
        assert [result.metadata["key"] for result in report.results] == [f"{i}.bin" for i in range(5)]
        assert [result.metadata["index"] for result in report.results] == list(range(5))

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        in_flight = 0
        peak = 0

        async def runner(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return TransferResult.ok()

        report = await BatchCoordinator(runner).run_batch(_requests(10), concurrency=3, fail_fast=False)

        assert report.success
        assert len(report.results) == 10
        assert peak == 3

    @pytest.mark.asyncio
    async def test_failures_are_collected_per_item(self):
        async def runner(request):
            if _index(request) in (1, 3):
                return TransferResult.failed("denied", code="STORAGE_PERMISSION_DENIED")
            return TransferResult.ok()

        report = await BatchCoordinator(runner).run_batch(_requests(5), concurrency=2, fail_fast=False)

        assert not report.success
        assert len(report.results) == 5
        assert [error.index for error in report.errors] == [1, 3]
        assert report.errors[0].key == "1.bin"
        assert report.errors[0].code == "STORAGE_PERMISSION_DENIED"
        assert report.failed_keys == ["1.bin", "3.bin"]
        assert report.aborted == []

    @pytest.mark.asyncio
    async def test_runner_exceptions_become_failed_results(self):
        async def runner(request):
            raise StoragePermissionError("AccessDenied")

        report = await BatchCoordinator(runner).run_batch(_requests(2), concurrency=1, fail_fast=False)

        assert not report.success
        assert all(result.error for result in report.results)
        assert report.errors[1].code == "STORAGE_PERMISSION_DENIED"

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        async def runner(request):
            raise AssertionError("not called")

        report = await BatchCoordinator(runner).run_batch([], concurrency=4, fail_fast=True)

        assert report.success
        assert report.results == []

    @pytest.mark.asyncio
    async def test_invalid_concurrency(self):
        async def runner(request):
            return TransferResult.ok()

        with pytest.raises(ValueError):
            await BatchCoordinator(runner).run_batch(_requests(1), concurrency=0, fail_fast=False)


class TestFailFast:
    """Test cancellation of outstanding work after the first failure."""

    @pytest.mark.asyncio
    async def test_first_failure_aborts_the_rest(self):
        started: list[int] = []
        blocker = asyncio.Event()

        async def runner(request):
            index = _index(request)
            started.append(index)
            if index == 0:
                return TransferResult.failed("boom", code="STORAGE_ERROR")
            await blocker.wait()
            return TransferResult.ok()

        report = await BatchCoordinator(runner).run_batch(_requests(4), concurrency=2, fail_fast=True)

        assert not report.success
        assert report.was_aborted
        assert [error.index for error in report.errors] == [0]
        assert len(report.results) == 1
        assert report.aborted == [1, 2, 3]
        assert 2 not in started
        assert 3 not in started

    @pytest.mark.asyncio
    async def test_completed_items_are_kept(self):
        gate = asyncio.Event()

        async def runner(request):
            index = _index(request)
            if index == 0:
                return TransferResult.ok()
            if index == 1:
                await asyncio.sleep(0)
                return TransferResult.failed("boom")
            await gate.wait()
            return TransferResult.ok()

        report = await BatchCoordinator(runner).run_batch(_requests(3), concurrency=1, fail_fast=True)

        assert [result.success for result in report.results] == [True, False]
        assert report.aborted == [2]

    @pytest.mark.asyncio
    async def test_raise_for_failure(self):
        async def runner(request):
            return TransferResult.failed("boom")

        report = await BatchCoordinator(runner).run_batch(_requests(1), concurrency=1, fail_fast=True)

        with pytest.raises(PartialBatchFailureError) as exc_info:
            report.raise_for_failure()
        assert exc_info.value.report is report
        assert exc_info.value.code == "STORAGE_PARTIAL_BATCH_FAILURE"

    @pytest.mark.asyncio
    async def test_in_flight_multipart_upload_is_aborted(self, store, transfer_settings, write_file, payload):
        big = write_file("big.bin", payload(4 * KIB))
        small = write_file("small.txt", b"tiny")
        # Block every part upload, and fail the small put only once a part is in flight
        store.gates["upload_part"] = asyncio.Event()
        store.gates["put_object"] = store.entered("upload_part")
        store.fail("put_object", StoragePermissionError("AccessDenied"))
        engine = UploadEngine(store, transfer_settings)
        options = TransferOptions(part_size=KIB)
        requests = [
            TransferRequest(LocalPath(str(big)), CloudPath("media", "big.bin"), options),
            TransferRequest(LocalPath(str(small)), CloudPath("media", "small.txt"), options),
        ]

        async def runner(request):
            return await engine.upload(request.source, request.destination, request.options)

        report = await BatchCoordinator(runner, operation="batch_upload").run_batch(
            requests, concurrency=2, fail_fast=True
        )

        assert not report.success
        assert [error.index for error in report.errors] == [1]
        assert report.aborted == [0]
        assert len(store.aborted) == 1
        assert store.completed == []
        assert store.keys("media") == []
