"""Installer and stdio supervisor for the Graphistry MCP server."""

from .version import __version__  # noqa: F401
