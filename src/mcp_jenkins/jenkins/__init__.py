"""Command channel to a Jenkins controller."""
from .base import (
    Command,
    CommandExecutor,
    CommandFailed,
    ExecutorError,
    ExecutorTimeout,
    ExecutorUnavailable,
    ServerConfig,
)
from .cli import JenkinsCLI
from .bootstrap import BootstrapError, ensure_cli_jar

__all__ = [
    "Command",
    "CommandExecutor",
    "CommandFailed",
    "ExecutorError",
    "ExecutorTimeout",
    "ExecutorUnavailable",
    "ServerConfig",
    "JenkinsCLI",
    "BootstrapError",
    "ensure_cli_jar",
]
