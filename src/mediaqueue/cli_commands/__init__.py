"""CLI command modules for mediaqueue."""

from mediaqueue.cli_commands.queue import queue_app
from mediaqueue.cli_commands.status import status_command

__all__ = ["queue_app", "status_command"]
