"""Main CLI entry point for objectmover."""

import click

from objectmover.cli.commands import config, storage
from objectmover.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="objectmover")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """objectmover - Move data between local disk and S3-compatible object storage.

    \b
    Commands:
      upload     Upload one or more local files
      download   Download one or more objects
      cp         Copy an object or directory (-r), local or remote on either side
      rm         Delete an object or directory (-r)
      ls         List a directory prefix
      mkdir      Create a directory placeholder
      presign    Print a presigned GET or PUT URL
      info       Object metadata or directory aggregate
      cat        Write an object to stdout
      config     Show the effective settings

    \b
    Quick Start:
      export STORAGE_ENABLED=true STORAGE_DEFAULT_BUCKET=my-bucket
      objectmover upload ./data.bin incoming/
      objectmover ls s3://my-bucket/incoming/ --format entries
    """
    ctx.ensure_object(dict)


# Transfers
cli.add_command(storage.upload)
cli.add_command(storage.download)
cli.add_command(storage.cp)
cli.add_command(storage.rm)

# Directories
cli.add_command(storage.ls)
cli.add_command(storage.mkdir)

# Objects
cli.add_command(storage.presign)
cli.add_command(storage.info_cmd)
cli.add_command(storage.cat)

cli.add_command(config.config)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
