"""Batch coordination for many independent transfers.

A fixed pool of ``concurrency`` workers pulls items in input order. Each
item is run by the ``runner`` coroutine (an upload, download or copy) and
produces its own ``TransferResult``.

With ``fail_fast`` the first failed item stops the pool: no worker takes a
new item, and items still in flight are cancelled at their next await
point. Cancelled engines abort their multipart sessions and discard
partial files before unwinding, and those items are reported as aborted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from objectmover.infra.storage import metrics
from objectmover.infra.storage.exceptions import as_storage_error
from objectmover.infra.storage.models import (
    BatchItem,
    BatchItemError,
    BatchReport,
    CloudPath,
    TransferRequest,
    TransferResult,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator, Sequence

logger = logging.getLogger(__name__)


class _BatchAborted(Exception):
    """Raised by the worker whose item failed under fail-fast."""

    def __init__(self, index: int) -> None:
        super().__init__(f"Batch aborted after item {index} failed")
        self.index = index


def _item_key(request: TransferRequest) -> str:
    destination = request.destination
    if isinstance(destination, CloudPath):
        return destination.key
    return str(destination)


class BatchCoordinator:
    """Runs transfer requests under a bounded worker pool.

    Args:
        runner: Coroutine function executing one request
        operation: Label used for metrics and logs (``batch_upload``, ...)
    """

    def __init__(
        self,
        runner: Callable[[TransferRequest], Awaitable[TransferResult]],
        operation: str = "batch",
    ) -> None:
        self._runner = runner
        self._operation = operation

    async def run_batch(
        self,
        items: Sequence[TransferRequest],
        concurrency: int,
        fail_fast: bool,
    ) -> BatchReport:
        """Run every item and aggregate the outcome.

        Without fail-fast the report holds one result per item in input
        order. With fail-fast it holds only items that reached a terminal
        state, and ``aborted`` lists every other index.

        Raises:
            ValueError: If concurrency is below 1
        """
        if concurrency < 1:
            msg = f"concurrency must be at least 1, got {concurrency}"
            raise ValueError(msg)

        batch = [BatchItem(index=index, request=request) for index, request in enumerate(items)]
        results: dict[int, TransferResult] = {}
        pending = iter(batch)
        abort = asyncio.Event()

        logger.debug(
            f"Starting {self._operation}",
            extra={"items": len(batch), "concurrency": concurrency, "fail_fast": fail_fast},
        )

        try:
            async with asyncio.TaskGroup() as tg:
                for _ in range(min(concurrency, len(batch))):
                    tg.create_task(self._worker(pending, results, abort, fail_fast))
        except* _BatchAborted as group:
            failed_index = min(error.index for error in group.exceptions)
            logger.warning(
                f"{self._operation} aborted after item {failed_index} failed",
                extra={"index": failed_index, "completed": len(results), "total": len(batch)},
            )

        report = self._build_report(batch, results)
        metrics.record_batch_operation(
            self._operation,
            total=len(batch),
            succeeded=sum(1 for result in report.results if result.success),
            failed=len(report.errors),
            aborted=len(report.aborted),
        )
        return report

    async def _worker(
        self,
        pending: Iterator[BatchItem],
        results: dict[int, TransferResult],
        abort: asyncio.Event,
        fail_fast: bool,
    ) -> None:
        while not abort.is_set():
            item = next(pending, None)
            if item is None:
                return
            result = await self._run_item(item)
            results[item.index] = result
            if fail_fast and not result.success:
                abort.set()
                raise _BatchAborted(item.index)

    async def _run_item(self, item: BatchItem) -> TransferResult:
        try:
            result = await self._runner(item.request)
        except Exception as e:
            error = as_storage_error(e, self._operation)
            result = TransferResult.failed(error.message, code=error.code)
        return result.with_metadata(index=item.index)

    @staticmethod
    def _build_report(batch: list[BatchItem], results: dict[int, TransferResult]) -> BatchReport:
        ordered = [results[item.index] for item in batch if item.index in results]
        errors = [
            BatchItemError(
                index=item.index,
                message=results[item.index].message or "transfer failed",
                key=_item_key(item.request),
                code=results[item.index].metadata.get("code"),
            )
            for item in batch
            if item.index in results and not results[item.index].success
        ]
        aborted = [item.index for item in batch if item.index not in results]
        return BatchReport(
            success=not errors and not aborted,
            results=ordered,
            errors=errors,
            aborted=aborted,
        )
