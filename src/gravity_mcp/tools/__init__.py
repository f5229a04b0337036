"""MCP tool registration surface."""

from gravity_mcp.tools.unified import register_unified_tools

__all__ = [
    "register_unified_tools",
]
