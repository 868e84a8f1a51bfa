"""Per-statement commands and the disposer chain that tears them down."""

from pgshape.commands.builder import (
    AsyncCommand,
    AsyncCommandReader,
    Command,
    CommandReader,
    StatementLike,
    build_command,
    build_command_async,
)
from pgshape.commands.disposer import CommandDisposer

__all__ = [
    "AsyncCommand",
    "AsyncCommandReader",
    "Command",
    "CommandReader",
    "CommandDisposer",
    "StatementLike",
    "build_command",
    "build_command_async",
]
