#!/usr/bin/env python3
"""
Core utilities shared across all Code Intel MCP tools.
"""

import logging
import os
import subprocess
import sys
from typing import Optional

import aiohttp
from mcp.server.fastmcp import FastMCP
from toon import encode as toon_encode

from ..daemon import DEFAULT_PORT

logger = logging.getLogger(__name__)

# Configuration
HTTP_BASE_URL = os.environ.get("CODE_INTEL_HTTP_URL", f"http://localhost:{DEFAULT_PORT}")
HTTP_TIMEOUT = aiohttp.ClientTimeout(total=60)

# Shared MCP instance
mcp = FastMCP("code-intel")

# Shared HTTP session
_http_session: Optional[aiohttp.ClientSession] = None


def ensure_daemon_running() -> bool:
    """Ensure the singleton HTTP daemon is running."""
    result = subprocess.run(
        [sys.executable, "-m", "code_intel.manager", "ensure", "--port", str(DEFAULT_PORT)],
        capture_output=True,
        text=True
    )
    if result.returncode != 0:
        logger.warning("Failed to ensure daemon: %s", result.stderr)
        return False
    return True


async def get_session() -> aiohttp.ClientSession:
    """Get or create HTTP session."""
    global _http_session
    if _http_session is None or _http_session.closed:
        _http_session = aiohttp.ClientSession(timeout=HTTP_TIMEOUT)
    return _http_session


async def _read_response(resp: aiohttp.ClientResponse) -> dict:
    if resp.content_type == "application/json":
        data = await resp.json()
        if resp.status == 200 or "error" in data:
            return data
    text = await resp.text()
    return {"error": f"HTTP {resp.status}: {text}"}


async def http_post(endpoint: str, data: dict) -> dict:
    """Make POST request to HTTP daemon."""
    session = await get_session()
    url = f"{HTTP_BASE_URL}/{endpoint}"
    try:
        async with session.post(url, json=data) as resp:
            return await _read_response(resp)
    except aiohttp.ClientError as e:
        return {"error": f"Connection error: {e}. Is the Code Intel daemon running on {HTTP_BASE_URL}?"}


async def run_tool(name: str, args: dict) -> str:
    """Forward a tool call to the daemon and format the answer."""
    return format_result(await http_post(f"tools/{name}", args))


def document_args(uri: str, line: int | None = None, character: int | None = None) -> dict:
    """Build the common {textDocument, position?} tool arguments."""
    args = {"textDocument": {"uri": uri}}
    if line is not None and character is not None:
        args["position"] = {"line": line, "character": character}
    return args


def format_result(result: dict) -> str:
    """Format result dict as TOON for token efficiency."""
    if "error" in result:
        return f"Error: {result['error']}"
    if "isError" in result:
        # Soft result envelope: render its text as-is
        return "\n".join(item.get("text", "") for item in result.get("content", []))
    if result.get("result") is None:
        return "No results"
    return toon_encode(result)


async def cleanup():
    """Cleanup HTTP session on shutdown."""
    global _http_session
    if _http_session and not _http_session.closed:
        await _http_session.close()
