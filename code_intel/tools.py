#!/usr/bin/env python3
"""
Code Intel - Tool catalog and dispatcher

TOOLS is the published catalog. ToolRunner validates a call against it,
checks the target document exists, decodes the common arguments and routes
to exactly one handler.
"""

import logging
from typing import Any

from .documents import DocumentStore, uri_to_path
from .handlers import ToolHandlers, ToolRequest
from .positions import InvalidPositionError, position_from_wire
from .provider import Provider
from .results import UnknownToolError, soft_error

logger = logging.getLogger(__name__)


_TEXT_DOCUMENT = {
    "type": "object",
    "description": "The document to query",
    "properties": {"uri": {"type": "string", "description": "Document URI (file://...)"}},
    "required": ["uri"],
}
_POSITION = {
    "type": "object",
    "description": "Zero-based position in the document",
    "properties": {
        "line": {"type": "integer", "minimum": 0},
        "character": {"type": "integer", "minimum": 0},
    },
    "required": ["line", "character"],
}


def _schema(extra: dict | None = None, position: bool = True) -> dict:
    properties = {"textDocument": _TEXT_DOCUMENT}
    required = ["textDocument"]
    if position:
        properties["position"] = _POSITION
        required.append("position")
    properties.update(extra or {})
    return {"type": "object", "properties": properties, "required": required}


TOOLS = [
    {
        "name": "find_usages",
        "description": "Find all references to the symbol at a position, with a preview of each line.",
        "inputSchema": _schema(),
    },
    {
        "name": "go_to_definition",
        "description": "Find where the symbol at a position is defined.",
        "inputSchema": _schema(),
    },
    {
        "name": "find_implementations",
        "description": "Find implementations of the interface or abstract member at a position.",
        "inputSchema": _schema(),
    },
    {
        "name": "get_hover_info",
        "description": "Get type information and documentation for the symbol at a position.",
        "inputSchema": _schema(),
    },
    {
        "name": "get_document_symbols",
        "description": "Get the symbol outline of a document as a tree.",
        "inputSchema": _schema(position=False),
    },
    {
        "name": "get_completions",
        "description": "Get completion suggestions at a position.",
        "inputSchema": _schema({
            "triggerCharacter": {"type": "string", "description": "Character that triggered completion"},
        }),
    },
    {
        "name": "get_signature_help",
        "description": "Get signature and parameter information for the call at a position.",
        "inputSchema": _schema(),
    },
    {
        "name": "get_rename_locations",
        "description": "Get the edits that would rename the symbol at a position across the workspace.",
        "inputSchema": _schema({
            "newName": {"type": "string", "description": "New symbol name (default: newName)"},
        }),
    },
    {
        "name": "get_code_actions",
        "description": "Get quick fixes and refactorings available at a position or selection.",
        "inputSchema": _schema({
            "range": {"type": "object", "description": "Optional selection; defaults to the position"},
        }, position=False),
    },
    {
        "name": "get_code_lens",
        "description": "Get the code lenses (inline actionable hints) of a document.",
        "inputSchema": _schema(position=False),
    },
    {
        "name": "execute_code_lens",
        "description": "Run the command of the code lens starting at a position.",
        "inputSchema": _schema({
            "command": {
                "type": "object",
                "description": "Command of the lens to run",
                "properties": {
                    "command": {"type": "string"},
                    "arguments": {"type": "array"},
                },
                "required": ["command"],
            },
        }),
    },
    {
        "name": "get_semantic_tokens",
        "description": "Get decoded semantic tokens of a document, or its symbols when tokens are unavailable.",
        "inputSchema": _schema(position=False),
    },
    {
        "name": "get_call_hierarchy",
        "description": "Get incoming and outgoing calls of the function at a position.",
        "inputSchema": _schema(),
    },
    {
        "name": "get_type_hierarchy",
        "description": "Get supertypes and subtypes of the type at a position.",
        "inputSchema": _schema(),
    },
]

TOOL_NAMES = [tool["name"] for tool in TOOLS]
POSITION_REQUIRED = {
    tool["name"] for tool in TOOLS if "position" in tool["inputSchema"]["required"]
}


class ToolRunner:
    """Validate, decode and route one tool call."""

    def __init__(self, provider: Provider, store: DocumentStore):
        self.store = store
        self.handlers = ToolHandlers(provider, store)

    async def run(self, name: str, args: dict | None) -> Any:
        if name not in TOOL_NAMES:
            raise UnknownToolError(name)
        args = args or {}

        text_document = args.get("textDocument") or {}
        uri = text_document.get("uri") if isinstance(text_document, dict) else None
        if not isinstance(uri, str) or not await self.store.exists(uri):
            path = uri_to_path(uri) if isinstance(uri, str) else ""
            return soft_error(f"Error: File not found - {path}")

        try:
            position = position_from_wire(args.get("position"))
        except InvalidPositionError as e:
            return soft_error(f"Error: Invalid position - {e}")
        if position is None and name in POSITION_REQUIRED:
            return soft_error(f"Error: {name} requires a position")

        handler = getattr(self.handlers, name, None)
        if handler is None:
            raise UnknownToolError(name)

        logger.debug("Running %s on %s at %s", name, uri, position)
        return await handler(ToolRequest(uri=uri, position=position, args=args))
