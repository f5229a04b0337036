"""Gravity MCP - MCP server for Gravity Forms field operations."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("gravity-mcp")
except PackageNotFoundError:
    # Package not installed (development mode without editable install)
    __version__ = "0.4.0"

from gravity_mcp.server import create_server, main

__all__ = ["__version__", "create_server", "main"]
