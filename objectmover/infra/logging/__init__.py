"""Logging setup for objectmover entrypoints.

Library code only calls ``logging.getLogger(__name__)``; handlers are
installed by the CLI (or a host application) through ``setup_logging``.
"""

from objectmover.infra.logging.config import configure_logging, setup_logging, shutdown
from objectmover.infra.logging.formatters import JSONFormatter

__all__ = ["JSONFormatter", "configure_logging", "setup_logging", "shutdown"]
