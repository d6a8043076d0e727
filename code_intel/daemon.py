#!/usr/bin/env python3
"""
Code Intel Daemon

A shared HTTP server that hosts the tool dispatcher in front of the language
servers, so every MCP client shares one language-server instance per
language (and its index).

Usage:
    python -m code_intel.daemon [--port 7903] [--workspace /path/to/workspace]

Endpoints:
    GET  /                  - Tool catalog (name, description, inputSchema)
    GET  /tools             - Same as above
    POST /tools/{name}      - Run a tool; the JSON body is the tool's args
    GET  /health            - Health check
    GET  /stats             - Request count and running language servers

Example:
    curl -X POST http://localhost:7903/tools/find_usages \\
      -H "Content-Type: application/json" \\
      -d '{"textDocument": {"uri": "file:///path/to/file.py"},
           "position": {"line": 41, "character": 9}}'
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from aiohttp import web

from .documents import DocumentStore, FileSystemDocumentStore
from .lsp import LSPError
from .provider import LanguageServerProvider, Provider
from .results import SoftResult, ToolError, UnknownToolError
from .tools import TOOLS, ToolRunner

logger = logging.getLogger(__name__)

DEFAULT_PORT = 7903


class CodeIntelDaemon:
    def __init__(self, workspace: str, port: int = DEFAULT_PORT,
                 provider: Provider | None = None, store: DocumentStore | None = None):
        self.workspace = workspace
        self.port = port
        self.store = store or FileSystemDocumentStore()
        self.provider = provider or LanguageServerProvider(workspace, self.store)
        self.runner = ToolRunner(self.provider, self.store)
        self.app = web.Application()
        self._setup_routes()
        self._request_count = 0

    def _setup_routes(self):
        self.app.router.add_get("/", self.handle_catalog)
        self.app.router.add_get("/tools", self.handle_catalog)
        self.app.router.add_post("/tools/{name}", self.handle_tool)
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/stats", self.handle_stats)

    async def stop(self):
        """Stop the language servers."""
        if isinstance(self.provider, LanguageServerProvider):
            await self.provider.stop()

    def _json_response(self, data: dict, status: int = 200) -> web.Response:
        return web.json_response(data, status=status)

    def _error_response(self, message: str, status: int = 400) -> web.Response:
        return self._json_response({"error": message}, status=status)

    # --- Endpoints ---

    async def handle_catalog(self, request: web.Request) -> web.Response:
        """List the published tools."""
        return self._json_response({"tools": TOOLS})

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return self._json_response({"status": "ok", "workspace": self.workspace})

    async def handle_stats(self, request: web.Request) -> web.Response:
        """Return daemon statistics."""
        servers = []
        if isinstance(self.provider, LanguageServerProvider):
            servers = sorted(
                lang for lang, client in self.provider.clients.items() if client.is_running
            )
        return self._json_response({
            "request_count": self._request_count,
            "workspace": self.workspace,
            "language_servers": servers,
        })

    async def handle_tool(self, request: web.Request) -> web.Response:
        """Run one tool call."""
        self._request_count += 1
        name = request.match_info["name"]

        try:
            args = await request.json()
        except json.JSONDecodeError:
            return self._error_response("Request body must be a JSON object")
        if not isinstance(args, dict):
            return self._error_response("Request body must be a JSON object")

        try:
            result = await self.runner.run(name, args)
        except UnknownToolError as e:
            return self._error_response(str(e), 404)
        except ToolError as e:
            return self._error_response(str(e))
        except asyncio.TimeoutError:
            return self._error_response("LSP request timed out", 504)
        except (LSPError, LookupError, ConnectionError, OSError) as e:
            logger.error("%s failed: %s", name, e)
            return self._error_response(str(e), 500)

        if isinstance(result, SoftResult):
            return self._json_response(result.to_dict())
        return self._json_response({"result": result})

    async def run(self):
        """Run the HTTP server."""
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, "localhost", self.port)
        await site.start()
        logger.info("Code Intel daemon listening on http://localhost:%d (workspace %s)",
                    self.port, self.workspace)

        # Keep running
        try:
            while True:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()
            await runner.cleanup()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Code Intel daemon - shared language servers for all agents")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"HTTP port (default: {DEFAULT_PORT})")
    parser.add_argument("--workspace", type=str, default=os.getcwd(), help="Workspace root (default: cwd)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


async def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    daemon = CodeIntelDaemon(workspace=os.path.abspath(args.workspace), port=args.port)
    await daemon.run()


def run_main():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    run_main()
