"""Unified action-based MCP tools."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .field import register_unified_field_tool
from .form import register_unified_form_tool


if TYPE_CHECKING:  # pragma: no cover - import-time typing only
    from mcp.server.fastmcp import FastMCP
    from gravity_mcp.config import ServerConfig


def register_unified_tools(mcp: "FastMCP", config: "ServerConfig") -> None:
    """Register all unified tool routers."""
    register_unified_form_tool(mcp, config)
    register_unified_field_tool(mcp, config)


__all__ = [
    "register_unified_tools",
    "register_unified_field_tool",
    "register_unified_form_tool",
]
