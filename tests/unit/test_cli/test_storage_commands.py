"""Tests for the transfer CLI commands.

Testing approach:
- Uses Click's CliRunner for command invocation
- Patches the service singleton with a TransferService over the in-memory store
- Checks exit codes and printed output, not engine internals
"""

from __future__ import annotations

import json
from unittest.mock import patch

from click.testing import CliRunner
import pytest

from objectmover.cli.main import cli
from objectmover.infra.storage.exceptions import StoragePermissionError
from objectmover.infra.storage.service import TransferService

# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def patched_service(store, storage_settings, transfer_settings):
    """Route every command to a fresh service over the shared in-memory store."""
    with patch(
        "objectmover.cli.commands.storage.get_transfer_service",
        side_effect=lambda: TransferService(storage_settings, transfer_settings, store=store),
    ):
        yield store


# =============================================================================
# Transfers
# =============================================================================


class TestUploadCommand:
    def test_single_upload(self, cli_runner, patched_service, write_file):
        source = write_file("report.csv", b"a,b\n1,2\n")

        result = cli_runner.invoke(cli, ["upload", str(source), "s3://media/reports/"])

        assert result.exit_code == 0, result.output
        assert "Uploaded" in result.output
        assert patched_service.body("media", "reports/report.csv") == b"a,b\n1,2\n"

    def test_batch_upload(self, cli_runner, patched_service, write_file):
        sources = [str(write_file(name, b"x")) for name in ("a.bin", "b.bin")]

        result = cli_runner.invoke(cli, ["upload", *sources, "incoming/", "--concurrency", "2"])

        assert result.exit_code == 0, result.output
        assert "Uploaded 2 item(s)" in result.output
        assert patched_service.keys("media") == ["incoming/a.bin", "incoming/b.bin"]

    def test_failure_exits_nonzero(self, cli_runner, patched_service, write_file):
        source = write_file("report.csv", b"data")
        patched_service.fail("put_object", StoragePermissionError("AccessDenied"))

        result = cli_runner.invoke(cli, ["upload", str(source), "s3://media/report.csv"])

        assert result.exit_code == 1
        assert "AccessDenied" in result.output


class TestDownloadCommand:
    def test_single_download(self, cli_runner, patched_service, tmp_path):
        patched_service.add("media", "a.txt", b"content")
        target = tmp_path / "a.txt"

        result = cli_runner.invoke(cli, ["download", "s3://media/a.txt", str(target)])

        assert result.exit_code == 0, result.output
        assert target.read_bytes() == b"content"

    def test_batch_with_missing_object(self, cli_runner, patched_service, tmp_path):
        patched_service.add("media", "a.txt", b"content")

        result = cli_runner.invoke(
            cli, ["download", "a.txt", "missing.txt", f"{tmp_path}/", "--no-fail-fast"]
        )

        assert result.exit_code == 1
        assert "1 failed" in result.output
        assert (tmp_path / "a.txt").exists()


class TestCopyAndDelete:
    def test_copy(self, cli_runner, patched_service):
        patched_service.add("media", "a.txt", b"content")

        result = cli_runner.invoke(cli, ["cp", "a.txt", "s3://archive/a.txt"])

        assert result.exit_code == 0, result.output
        assert patched_service.body("archive", "a.txt") == b"content"

    def test_recursive_copy(self, cli_runner, patched_service):
        patched_service.add("media", "docs/a.txt", b"a")
        patched_service.add("media", "docs/b.txt", b"b")

        result = cli_runner.invoke(cli, ["cp", "-r", "docs/", "s3://archive/docs/"])

        assert result.exit_code == 0, result.output
        assert patched_service.keys("archive") == ["docs/a.txt", "docs/b.txt"]

    def test_rm(self, cli_runner, patched_service):
        patched_service.add("media", "a.txt", b"content")

        result = cli_runner.invoke(cli, ["rm", "a.txt"])

        assert result.exit_code == 0, result.output
        assert patched_service.keys("media") == []

    def test_rm_recursive(self, cli_runner, patched_service):
        patched_service.add("media", "docs/a.txt", b"a")
        patched_service.add("media", "docs/b.txt", b"b")

        result = cli_runner.invoke(cli, ["rm", "-r", "docs"])

        assert result.exit_code == 0, result.output
        assert "Deleted 2 object(s)" in result.output

    def test_rm_directory_without_recursive(self, cli_runner, patched_service):
        result = cli_runner.invoke(cli, ["rm", "docs/"])

        assert result.exit_code == 1
        assert "STORAGE_INVALID_PATH" in result.output


# =============================================================================
# Directories and objects
# =============================================================================


class TestListCommand:
    def test_paths(self, cli_runner, patched_service):
        patched_service.add("media", "docs/a.txt", b"a")
        patched_service.add("media", "docs/sub/b.txt", b"b")

        result = cli_runner.invoke(cli, ["ls", "docs"])

        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == ["s3://media/docs/a.txt", "s3://media/docs/sub/"]

    def test_recursive_files_with_filter(self, cli_runner, patched_service):
        patched_service.add("media", "docs/a.txt", b"a")
        patched_service.add("media", "docs/b.csv", b"b")
        patched_service.add("media", "docs/sub/c.txt", b"c")

        result = cli_runner.invoke(
            cli, ["ls", "docs/", "-r", "--type", "files", "--filter", "*.txt", "--format", "names"]
        )

        assert result.output.splitlines() == ["a.txt", "c.txt"]

    def test_entries_table(self, cli_runner, patched_service):
        patched_service.add("media", "docs/a.txt", b"abc")

        result = cli_runner.invoke(cli, ["ls", "docs/", "--format", "entries"])

        assert "3 B" in result.output
        assert "docs/a.txt" in result.output


class TestObjectCommands:
    def test_mkdir(self, cli_runner, patched_service):
        first = cli_runner.invoke(cli, ["mkdir", "reports"])
        second = cli_runner.invoke(cli, ["mkdir", "reports"])

        assert "Created" in first.output
        assert "Exists" in second.output
        assert patched_service.keys("media") == ["reports/"]

    def test_presign(self, cli_runner, patched_service):
        result = cli_runner.invoke(cli, ["presign", "a.png", "--method", "put", "--expires", "120"])

        assert result.exit_code == 0, result.output
        assert result.output.strip() == "https://media.s3.test/a.png?X-Method=PUT&X-Expires=120"

    def test_info(self, cli_runner, patched_service):
        patched_service.add("media", "docs/a.txt", b"abc")

        result = cli_runner.invoke(cli, ["info", "docs/"])

        payload = json.loads(result.output)
        assert payload["is_directory"] is True
        assert payload["object_count"] == 1
        assert payload["total_size"] == 3

    def test_info_missing(self, cli_runner, patched_service):
        result = cli_runner.invoke(cli, ["info", "ghost.txt"])

        assert result.exit_code == 1
        assert "STORAGE_NOT_FOUND" in result.output

    def test_cat(self, cli_runner, patched_service):
        patched_service.add("media", "a.bin", b"\x00\x01binary")

        result = cli_runner.invoke(cli, ["cat", "a.bin"])

        assert result.exit_code == 0
        assert result.stdout_bytes == b"\x00\x01binary"


# =============================================================================
# Config and group
# =============================================================================


class TestConfigCommand:
    def test_json_masks_credentials(self, cli_runner, monkeypatch):
        monkeypatch.setenv("STORAGE_ACCESS_KEY", "AKIA-TEST")
        monkeypatch.setenv("STORAGE_SECRET_KEY", "very-secret")

        result = cli_runner.invoke(cli, ["config", "--format", "json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["storage"]["credentials"] == "***"
        assert "access_key" not in payload["storage"]
        assert "very-secret" not in result.output
        assert payload["transfer"]["part_size"] == 16 * 1024 * 1024

    def test_table(self, cli_runner):
        result = cli_runner.invoke(cli, ["config"])

        assert result.exit_code == 0, result.output
        assert "[STORAGE]" in result.output
        assert "not configured" in result.output

    def test_invalid_configuration(self, cli_runner, monkeypatch):
        monkeypatch.setenv("STORAGE_ACCESS_KEY", "only-half")

        result = cli_runner.invoke(cli, ["config"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


def test_version(cli_runner):
    result = cli_runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert "0.1.0" in result.output
