#!/usr/bin/env python3
"""
Code Intel MCP Tools Package

Bridges the Code Intel daemon to MCP protocol, allowing AI agents to use
code intelligence tools via MCP instead of direct HTTP calls.

The HTTP daemon is a SINGLETON - one instance serves all MCP clients.
This bridge auto-ensures the daemon is running on startup.
"""

import asyncio
import logging
import sys

# Import core components first
from ._core import (
    mcp,
    http_post,
    run_tool,
    format_result,
    ensure_daemon_running,
    HTTP_BASE_URL,
    cleanup,
)

# Import all tool modules to register their @mcp.tool() decorators
from . import navigation
from . import lsp

__all__ = [
    "mcp",
    "http_post",
    "run_tool",
    "format_result",
    "ensure_daemon_running",
    "main",
]

logger = logging.getLogger(__name__)


def main():
    """Run the MCP server."""
    # stdout carries the MCP stdio channel; log to stderr only
    logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stderr)
    logger.info("Starting Code Intel MCP Bridge Server")
    logger.info("  HTTP Backend: %s", HTTP_BASE_URL)

    logger.info("  Ensuring HTTP daemon is running...")
    if ensure_daemon_running():
        logger.info("  HTTP daemon is ready")
    else:
        logger.warning("  Could not verify daemon status")

    try:
        mcp.run()
    finally:
        # Cleanup HTTP session (daemon keeps running for other clients)
        loop = asyncio.new_event_loop()
        loop.run_until_complete(cleanup())
        loop.close()


if __name__ == "__main__":
    main()
