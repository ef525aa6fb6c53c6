"""Transfer commands for S3-compatible object storage.

Each command starts the shared TransferService, runs one operation and
exits with status 1 whenever the result reports a failure.

Paths are ``s3://bucket/key`` URIs, bare keys (resolved against
STORAGE_DEFAULT_BUCKET) or local filesystem paths.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import json
import sys
from typing import NoReturn

import click

from objectmover.cli.utils import coro, error, format_bytes, info, success, warning
from objectmover.infra.storage import (
    BatchReport,
    DirectoryEntry,
    ListFormat,
    ListType,
    StorageError,
    TransferOptions,
    TransferResult,
    TransferService,
    get_transfer_service,
)


@asynccontextmanager
async def open_service() -> AsyncIterator[TransferService]:
    service = get_transfer_service()
    await service.startup()
    try:
        yield service
    finally:
        await service.shutdown()


def _report_result(result: TransferResult, done: str) -> None:
    if result.success:
        success(done)
        return
    error(result.message or "operation failed")
    sys.exit(1)


def _report_batch(report: BatchReport, verb: str) -> None:
    succeeded = sum(1 for result in report.results if result.success)
    for item in report.errors:
        error(f"[{item.index}] {item.key}: {item.message}")
    if report.aborted:
        warning(f"{len(report.aborted)} item(s) aborted after the first failure")
    if report.success:
        success(f"{verb} {succeeded} item(s)")
        return
    error(f"{verb} {succeeded} item(s), {len(report.errors)} failed")
    sys.exit(1)


def _fail(e: StorageError) -> NoReturn:
    error(f"{e.message} [{e.code}]")
    sys.exit(1)


# ============================================================================
# Transfers
# ============================================================================


@click.command(name="upload")
@click.argument("sources", nargs=-1, required=True)
@click.argument("destination")
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Parallel items or parts")
@click.option("--fail-fast/--no-fail-fast", default=None, help="Abort the batch on the first failure")
@click.option("--part-size", type=click.IntRange(min=1), default=None, help="Multipart part size in bytes")
@coro
async def upload(
    sources: tuple[str, ...],
    destination: str,
    concurrency: int | None,
    fail_fast: bool | None,
    part_size: int | None,
) -> None:
    """Upload local files to DESTINATION.

    \b
    Examples:
      objectmover upload ./report.csv s3://reports/2024/report.csv
      objectmover upload a.bin b.bin s3://data/incoming/ --concurrency 8
    """
    options = TransferOptions(part_size=part_size, concurrency=concurrency)
    try:
        async with open_service() as service:
            if len(sources) == 1:
                result = await service.upload(sources[0], destination, options)
                _report_result(result, f"Uploaded {sources[0]} -> {result.metadata.get('destination')}")
                return
            info(f"Uploading {len(sources)} files...")
            report = await service.batch_upload(
                list(sources), destination, concurrency=concurrency, fail_fast=fail_fast, options=options
            )
            _report_batch(report, "Uploaded")
    except StorageError as e:
        _fail(e)


@click.command(name="download")
@click.argument("sources", nargs=-1, required=True)
@click.argument("destination")
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Parallel items or ranges")
@click.option("--fail-fast/--no-fail-fast", default=None, help="Abort the batch on the first failure")
@coro
async def download(
    sources: tuple[str, ...],
    destination: str,
    concurrency: int | None,
    fail_fast: bool | None,
) -> None:
    """Download objects to a local DESTINATION.

    \b
    Examples:
      objectmover download s3://reports/2024/report.csv ./report.csv
      objectmover download s3://data/a.bin s3://data/b.bin ./downloads/
    """
    options = TransferOptions(concurrency=concurrency)
    try:
        async with open_service() as service:
            if len(sources) == 1:
                result = await service.download(sources[0], destination, options)
                _report_result(result, f"Downloaded {sources[0]} -> {result.metadata.get('destination')}")
                return
            info(f"Downloading {len(sources)} objects...")
            report = await service.batch_download(
                list(sources), destination, concurrency=concurrency, fail_fast=fail_fast, options=options
            )
            _report_batch(report, "Downloaded")
    except StorageError as e:
        _fail(e)


@click.command(name="cp")
@click.argument("source")
@click.argument("destination")
@click.option("--recursive", "-r", is_flag=True, help="Copy a whole directory tree")
@coro
async def cp(source: str, destination: str, recursive: bool) -> None:
    """Copy an object or directory; either side may be local or remote."""
    try:
        async with open_service() as service:
            if recursive:
                report = await service.directory_copy(source, destination, recurse=True)
                _report_batch(report, "Copied")
                return
            result = await service.copy(source, destination)
            strategy = result.metadata.get("strategy", "")
            _report_result(result, f"Copied {source} -> {destination} ({strategy})")
    except StorageError as e:
        _fail(e)


@click.command(name="rm")
@click.argument("path")
@click.option("--recursive", "-r", is_flag=True, help="Delete every object under the prefix")
@coro
async def rm(path: str, recursive: bool) -> None:
    """Delete an object, or a directory with --recursive."""
    try:
        async with open_service() as service:
            if recursive:
                result = await service.directory_delete(path)
                _report_result(result, f"Deleted {result.metadata.get('deleted', 0)} object(s) under {path}")
                return
            result = await service.delete(path)
            _report_result(result, f"Deleted {path}")
    except StorageError as e:
        _fail(e)


# ============================================================================
# Directories
# ============================================================================


@click.command(name="ls")
@click.argument("prefix")
@click.option("--recursive", "-r", is_flag=True, help="List every level below the prefix")
@click.option("--filter", "name_filter", default=None, help="Glob matched against entry names")
@click.option(
    "--type",
    "list_type",
    type=click.Choice([t.value for t in ListType]),
    default=ListType.ALL.value,
    help="Entry kinds to include",
)
@click.option(
    "--format",
    "list_format",
    type=click.Choice([f.value for f in ListFormat]),
    default=ListFormat.PATHS.value,
    help="Output shape",
)
@coro
async def ls(prefix: str, recursive: bool, name_filter: str | None, list_type: str, list_format: str) -> None:
    """List a directory prefix.

    \b
    Examples:
      objectmover ls s3://data/incoming/
      objectmover ls s3://data/ -r --type files --filter "*.csv"
    """
    try:
        async with open_service() as service:
            entries = await service.directory_list(
                prefix,
                recurse=recursive,
                filter=name_filter,
                type=list_type,
                format=list_format,
            )
    except StorageError as e:
        _fail(e)

    for entry in entries:
        if isinstance(entry, DirectoryEntry):
            modified = entry.last_modified.strftime("%Y-%m-%d %H:%M:%S") if entry.last_modified else "-"
            size = "DIR" if entry.is_directory else format_bytes(entry.size)
            click.echo(f"{modified:<20} {size:>10}  {entry.key}")
        else:
            click.echo(entry)


@click.command(name="mkdir")
@click.argument("prefix")
@coro
async def mkdir(prefix: str) -> None:
    """Create a directory placeholder (no-op if it exists)."""
    try:
        async with open_service() as service:
            result = await service.directory_create(prefix)
            verb = "Created" if result.metadata.get("created") else "Exists"
            _report_result(result, f"{verb}: {result.metadata.get('path', prefix)}")
    except StorageError as e:
        _fail(e)


# ============================================================================
# Objects
# ============================================================================


@click.command(name="presign")
@click.argument("path")
@click.option("--method", type=click.Choice(["GET", "PUT"], case_sensitive=False), default="GET")
@click.option("--expires", type=int, default=None, help="Lifetime in seconds")
@click.option("--content-type", default=None, help="Content type signed into a PUT URL")
@coro
async def presign(path: str, method: str, expires: int | None, content_type: str | None) -> None:
    """Print a presigned URL for PATH."""
    try:
        async with open_service() as service:
            url = await service.presign(path, method=method, expires_seconds=expires, content_type=content_type)
    except StorageError as e:
        _fail(e)
    click.echo(url.url)


@click.command(name="info")
@click.argument("path")
@coro
async def info_cmd(path: str) -> None:
    """Show object metadata, or the aggregate of a directory prefix."""
    try:
        async with open_service() as service:
            metadata = await service.object_info(path)
    except StorageError as e:
        _fail(e)
    click.echo(json.dumps(metadata.to_dict(), indent=2, default=str))


@click.command(name="cat")
@click.argument("path")
@coro
async def cat(path: str) -> None:
    """Write an object's bytes to stdout."""
    try:
        async with open_service() as service:
            data = await service.get_bytes(path)
    except StorageError as e:
        _fail(e)
    stdout = click.get_binary_stream("stdout")
    stdout.write(data)
    stdout.flush()
