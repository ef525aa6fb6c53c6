"""Print the effective configuration."""

import json
import sys
from typing import Any

import click
from pydantic import ValidationError

from objectmover.cli.utils import error, header, success, warning
from objectmover.core.settings import (
    get_logging_settings,
    get_storage_settings,
    get_transfer_settings,
)


def build_config_dict() -> dict[str, dict[str, Any]]:
    """Storage, transfer and logging settings with credentials masked."""
    storage = get_storage_settings()
    transfer = get_transfer_settings()
    logs = get_logging_settings()

    storage_dict = storage.model_dump(mode="json", exclude={"access_key", "secret_key"})
    storage_dict["credentials"] = "***" if storage.access_key else "not configured"
    return {
        "storage": storage_dict,
        "transfer": transfer.model_dump(mode="json"),
        "logging": logs.model_dump(mode="json"),
    }


@click.command(name="config")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "table"]),
    default="table",
    help="Output format",
)
def config(output_format: str) -> None:
    """Display the effective settings (secrets are never shown)."""
    try:
        config_dict = build_config_dict()
    except ValidationError as e:
        error(f"Invalid configuration: {e}")
        sys.exit(1)

    if output_format == "json":
        click.echo(json.dumps(config_dict, indent=2, default=str))
        return

    for section, values in config_dict.items():
        header(f"[{section.upper()}]")
        for key, value in values.items():
            click.echo(f"  {key:36} = {value}")

    if not config_dict["storage"]["is_configured"]:
        warning("\nStorage is not enabled. Set STORAGE_ENABLED=true.")
    else:
        success("\nConfiguration loaded successfully")
