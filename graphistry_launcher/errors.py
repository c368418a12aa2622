"""Failure modes for the launcher and installer."""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "ConfigError",
    "InstallError",
    "InterpreterNotFound",
    "LauncherError",
    "SpawnFailure",
    "WorkerAbnormalExit",
    "WorkerKilled",
    "WorkerScriptMissing",
]


class LauncherError(RuntimeError):
    """Base class for failures that terminate the launcher.

    ``exit_code`` is the status the process should exit with once the error has
    been reported.
    """

    exit_code: int = 1


class ConfigError(LauncherError):
    """Raised when ``graphistry-mcp.toml`` cannot be parsed or is malformed."""


class InterpreterNotFound(LauncherError):
    """Raised when neither the isolated environment nor a system Python is usable."""

    def __init__(self, candidates: tuple[str, ...] = ()) -> None:
        message = "Python not found. Please install Python 3.10+ from python.org"
        if candidates:
            message += f" (tried: {', '.join(candidates)})"
        super().__init__(message)
        self.candidates = candidates


class WorkerScriptMissing(LauncherError):
    """Raised when the MCP server entry script is absent from the install root."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"MCP server not found at {path}")
        self.path = path


class SpawnFailure(LauncherError):
    """Raised when the worker process cannot be started."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to start Python MCP server: {reason}")
        self.reason = reason


class WorkerAbnormalExit(LauncherError):
    """The worker exited on its own with a non-zero status."""

    def __init__(self, code: int) -> None:
        super().__init__(f"Python MCP server exited with code {code}")
        self.code = code
        self.exit_code = code


class WorkerKilled(LauncherError):
    """The worker was terminated by a signal instead of exiting."""

    def __init__(self, signal_name: str) -> None:
        super().__init__(f"Python MCP server killed by signal {signal_name}")
        self.signal_name = signal_name


class InstallError(LauncherError):
    """Raised when no installation strategy managed to provision dependencies."""
