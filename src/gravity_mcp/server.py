"""FastMCP server for gravity-mcp.

Exposes the unified ``form`` and ``field`` tools over stdio.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from mcp.server.fastmcp import FastMCP

from gravity_mcp.config import ServerConfig, get_config
from gravity_mcp.core.observability import audit_log
from gravity_mcp.tools.unified import register_unified_tools

logger = logging.getLogger(__name__)


def create_server(config: Optional[ServerConfig] = None) -> FastMCP:
    """Create and configure the FastMCP server instance."""

    if config is None:
        config = get_config()

    config.setup_logging()

    if not config.gravity_forms.is_configured:
        logger.warning(
            "Form Store credentials are not configured; form and field tools "
            "will return UNAVAILABLE until GRAVITY_FORMS_* variables are set"
        )

    mcp = FastMCP(name=config.server_name)
    register_unified_tools(mcp, config)

    logger.info("Server created: %s v%s", config.server_name, config.server_version)
    return mcp


def main() -> None:
    """Main entry point for the gravity-mcp server."""

    try:
        config = get_config()
        server = create_server(config)

        logger.info("Starting %s v%s", config.server_name, config.server_version)
        audit_log("tool_invocation", tool="server_start", version=config.server_version)

        server.run()

    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
        sys.exit(0)
    except Exception as exc:
        logger.error("Server error: %s: %s", type(exc).__name__, exc)
        audit_log("tool_invocation", tool="server_error", error=str(exc), success=False)
        sys.exit(1)


if __name__ == "__main__":
    main()
