#!/usr/bin/env python3
"""
Code Intel - Capability handlers

One handler per tool. Each queries the provider and maps the raw LSP answer
field by field into the bridge's wire shapes. Handlers return a payload, a
SoftResult, or None for "no data"; they raise ToolError only when no
substitute result exists.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .documents import DocumentStore, TextDocument, get_preview
from .positions import (
    Position,
    point_range,
    range_from_wire,
    range_to_wire,
)
from .provider import Provider
from .results import SoftResult, ToolError, soft_error, soft_info

logger = logging.getLogger(__name__)


# Fallback token type names, indexed by symbol kind ordinal (namespace = 1)
FALLBACK_TOKEN_TYPES = [
    "namespace", "class", "enum", "interface",
    "struct", "typeParameter", "type", "parameter",
    "variable", "property", "enumMember", "decorator",
    "event", "function", "method", "macro", "keyword",
    "modifier", "comment", "string", "number", "regexp",
    "operator",
]
FALLBACK_TOKEN_TYPE_BY_KIND = {kind: name for kind, name in enumerate(FALLBACK_TOKEN_TYPES, start=1)}
FALLBACK_MESSAGE = "Using document symbols as fallback"


@dataclass(frozen=True)
class ToolRequest:
    """Arguments common to every tool call, plus the raw args."""
    uri: str
    position: Position | None = None
    args: dict = field(default_factory=dict)


@dataclass(frozen=True)
class LensKey:
    """Code lenses have no id; start position + command id is the identity."""
    start: Position
    command: str | None

    @classmethod
    def from_lens(cls, lens: dict) -> "LensKey":
        start = lens.get("range", {}).get("start", {})
        command = lens.get("command") or {}
        return cls(Position(start.get("line", -1), start.get("character", -1)), command.get("command"))


# --- Normalizers ---

def _as_list(result: Any) -> list:
    if result is None:
        return []
    if isinstance(result, list):
        return result
    return [result]


def markup_text(content: Any) -> str | None:
    """Flatten a string, MarkedString or MarkupContent to plain text."""
    if content is None:
        return None
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        return content.get("value", "")
    return str(content)


def normalize_location(loc: dict) -> dict:
    """Location or LocationLink -> {uri, range}."""
    if "targetUri" in loc:
        range_ = loc.get("targetSelectionRange") or loc["targetRange"]
        return {"uri": loc["targetUri"], "range": range_to_wire(range_)}
    return {"uri": loc["uri"], "range": range_to_wire(loc["range"])}


def normalize_symbol(symbol: dict) -> dict:
    """DocumentSymbol (or flat SymbolInformation) -> {name, kind, range, children}."""
    range_ = symbol.get("range") or symbol.get("location", {}).get("range")
    return {
        "name": symbol.get("name", ""),
        "kind": symbol.get("kind"),
        "range": range_to_wire(range_),
        "children": [normalize_symbol(child) for child in symbol.get("children") or []],
    }


def normalize_completion_item(item: dict) -> dict:
    text_edit = item.get("textEdit") or {}
    # InsertReplaceEdit carries insert/replace instead of range
    edit_range = text_edit.get("range") or text_edit.get("insert")
    return {
        "label": item.get("label"),
        "kind": item.get("kind"),
        "detail": item.get("detail"),
        "documentation": markup_text(item.get("documentation")),
        "sortText": item.get("sortText"),
        "filterText": item.get("filterText"),
        "insertText": item.get("insertText") or text_edit.get("newText"),
        "range": range_to_wire(edit_range),
    }


def normalize_signature(signature: dict, help_: dict) -> dict:
    return {
        "label": signature.get("label"),
        "documentation": markup_text(signature.get("documentation")),
        "parameters": [
            {"label": param.get("label"), "documentation": markup_text(param.get("documentation"))}
            for param in signature.get("parameters") or []
        ],
        "activeParameter": signature.get("activeParameter", help_.get("activeParameter")),
        "activeSignature": help_.get("activeSignature"),
    }


def normalize_text_edit(edit: dict) -> dict:
    return {"range": range_to_wire(edit["range"]), "newText": edit.get("newText", "")}


def flatten_workspace_edit(workspace_edit: dict) -> list[dict]:
    """WorkspaceEdit -> [{uri, edits}] in provider order."""
    entries = []
    for uri, edits in (workspace_edit.get("changes") or {}).items():
        entries.append({"uri": uri, "edits": [normalize_text_edit(e) for e in edits]})
    for change in workspace_edit.get("documentChanges") or []:
        if "kind" in change:
            # create/rename/delete file operations carry no text edits
            continue
        entries.append({
            "uri": change["textDocument"]["uri"],
            "edits": [normalize_text_edit(e) for e in change.get("edits", [])],
        })
    return entries


def normalize_diagnostic(diagnostic: dict) -> dict:
    return {
        "message": diagnostic.get("message", ""),
        "severity": diagnostic.get("severity"),
        "range": range_to_wire(diagnostic["range"]),
    }


def normalize_code_action(action: dict) -> dict:
    return {
        "title": action.get("title", ""),
        "kind": action.get("kind"),
        "isPreferred": action.get("isPreferred"),
        "diagnostics": [normalize_diagnostic(d) for d in action.get("diagnostics") or []],
    }


def normalize_command(command: dict | None) -> dict | None:
    if not command:
        return None
    return {
        "title": command.get("title", ""),
        "command": command.get("command"),
        "arguments": command.get("arguments"),
    }


def normalize_code_lens(lens: dict) -> dict:
    return {"range": range_to_wire(lens["range"]), "command": normalize_command(lens.get("command"))}


def normalize_hierarchy_item(item: dict) -> dict:
    return {
        "name": item.get("name", ""),
        "kind": item.get("kind"),
        "detail": item.get("detail"),
        "uri": item.get("uri", ""),
        "range": range_to_wire(item["range"]),
    }


def normalize_call(call: dict, endpoint: str) -> dict:
    """Incoming ('from') or outgoing ('to') call with the ranges that justify it."""
    return {
        endpoint: normalize_hierarchy_item(call[endpoint]),
        "fromRanges": [range_to_wire(r) for r in call.get("fromRanges") or []],
    }


def _utf16_slice(line: str, character: int, length: int) -> str:
    """Cut `length` UTF-16 code units starting at column `character`."""
    encoded = line.encode("utf-16-le")
    return encoded[2 * character:2 * (character + length)].decode("utf-16-le", errors="replace")


def decode_semantic_tokens(data: list[int], legend: dict, document: TextDocument) -> list[dict]:
    """Decode the relative 5-int token stream against the document text."""
    token_types = legend.get("tokenTypes") or []
    token_modifiers = legend.get("tokenModifiers") or []
    lines = document.lines
    tokens = []
    line = 0
    character = 0
    for i in range(0, len(data) - len(data) % 5, 5):
        delta_line, delta_start, length, type_index, modifier_bits = data[i:i + 5]
        if delta_line:
            line += delta_line
            character = delta_start
        else:
            character += delta_start
        text = _utf16_slice(lines[line], character, length) if line < len(lines) else ""
        tokens.append({
            "line": line,
            "character": character,
            "length": length,
            "tokenType": token_types[type_index] if type_index < len(token_types) else "unknown",
            "tokenModifiers": [
                name for bit, name in enumerate(token_modifiers) if modifier_bits & (1 << bit)
            ],
            "text": text,
        })
    return tokens


def _first_candidate(items: list, kind: str) -> dict | None:
    if not items:
        return None
    if len(items) > 1:
        logger.debug("Ignoring %d extra %s hierarchy candidates", len(items) - 1, kind)
    return items[0]


class ToolHandlers:
    """Handlers for the tool catalog, keyed by tool name."""

    def __init__(self, provider: Provider, store: DocumentStore):
        self.provider = provider
        self.store = store

    async def _with_preview(self, location: dict) -> dict:
        result = normalize_location(location)
        preview = await get_preview(self.store, result["uri"], result["range"]["start"]["line"])
        if preview is not None:
            result["preview"] = preview
        return result

    # --- Reference family ---

    async def find_usages(self, request: ToolRequest) -> list[dict]:
        locations = await self.provider.references(request.uri, request.position)
        # Previews resolve one location at a time
        return [await self._with_preview(loc) for loc in _as_list(locations)]

    async def go_to_definition(self, request: ToolRequest) -> list[dict]:
        result = await self.provider.definition(request.uri, request.position)
        return [normalize_location(loc) for loc in _as_list(result)]

    async def find_implementations(self, request: ToolRequest) -> list[dict]:
        result = await self.provider.implementation(request.uri, request.position)
        return [await self._with_preview(loc) for loc in _as_list(result)]

    # --- Information ---

    async def get_hover_info(self, request: ToolRequest) -> list[dict]:
        result = await self.provider.hover(request.uri, request.position)
        hovers = []
        for hover in _as_list(result):
            hover_range = range_to_wire(hover.get("range"))
            entry = {
                "contents": [markup_text(c) for c in _as_list(hover.get("contents"))],
                "range": hover_range,
            }
            if hover_range:
                preview = await get_preview(self.store, request.uri, hover_range["start"]["line"])
                if preview is not None:
                    entry["preview"] = preview
            hovers.append(entry)
        return hovers

    async def get_document_symbols(self, request: ToolRequest) -> list[dict]:
        result = await self.provider.document_symbols(request.uri)
        return [normalize_symbol(symbol) for symbol in _as_list(result)]

    async def get_completions(self, request: ToolRequest) -> list[dict] | None:
        result = await self.provider.completion(
            request.uri, request.position, request.args.get("triggerCharacter")
        )
        if result is None:
            return None
        items = result.get("items", []) if isinstance(result, dict) else result
        return [normalize_completion_item(item) for item in items]

    async def get_signature_help(self, request: ToolRequest) -> list[dict] | None:
        help_ = await self.provider.signature_help(request.uri, request.position)
        if help_ is None:
            return None
        return [normalize_signature(sig, help_) for sig in help_.get("signatures") or []]

    # --- Edits ---

    async def get_rename_locations(self, request: ToolRequest) -> list[dict]:
        new_name = request.args.get("newName") or "newName"
        workspace_edit = await self.provider.rename(request.uri, request.position, new_name)
        if not workspace_edit:
            return []
        return flatten_workspace_edit(workspace_edit)

    async def get_code_actions(self, request: ToolRequest) -> list[dict] | SoftResult:
        selection = request.args.get("range")
        if selection is not None:
            try:
                range_ = range_from_wire(selection)
            except (KeyError, TypeError, ValueError) as e:
                return soft_error(f"Error: Invalid range - {e}")
        elif request.position is not None:
            range_ = point_range(request.position)
        else:
            return soft_error("Error: get_code_actions requires a position or range")
        actions = await self.provider.code_actions(request.uri, range_)
        return [normalize_code_action(action) for action in _as_list(actions)]

    # --- Code lens ---

    async def get_code_lens(self, request: ToolRequest) -> list[dict] | SoftResult:
        try:
            lenses = await self.provider.code_lens(request.uri)
        except Exception as e:
            return soft_error(f"Error executing CodeLens provider: {e}")
        if not lenses:
            return soft_info("No CodeLens items found in document")
        return [normalize_code_lens(lens) for lens in lenses]

    async def execute_code_lens(self, request: ToolRequest) -> dict | SoftResult:
        requested = request.args.get("command")
        command_id = requested.get("command") if isinstance(requested, dict) else requested
        if not command_id:
            return soft_error("Error: execute_code_lens requires a command")
        key = LensKey(request.position, command_id)

        try:
            # Lenses are re-resolved on every call; nothing is cached from get_code_lens
            lenses = await self.provider.code_lens(request.uri)
            if not lenses:
                return soft_error("No CodeLens found at the specified position")

            target = next((lens for lens in lenses if LensKey.from_lens(lens) == key), None)
            if target is None or not target.get("command"):
                return soft_error("No matching CodeLens command found at the specified position")

            command = target["command"]
            result = await self.provider.execute_command(
                request.uri, command["command"], command.get("arguments") or []
            )
        except Exception as e:
            return soft_error(f"Error executing CodeLens command: {e}")

        return {"command": normalize_command(command), "result": result}

    # --- Semantic tokens ---

    async def get_semantic_tokens(self, request: ToolRequest) -> dict | SoftResult:
        document = await self.store.open(request.uri)
        if document.language_id not in await self.provider.languages():
            return soft_error(f"Semantic tokens not supported for language: {document.language_id}")

        try:
            semantic_tokens = await self.provider.semantic_tokens(request.uri)
            if not semantic_tokens:
                return soft_info("No semantic tokens found in document")
            legend = await self.provider.semantic_tokens_legend(request.uri)
        except Exception as e:
            logger.warning("Semantic tokens failed for %s, falling back to symbols: %s", request.uri, e)
            return await self._semantic_tokens_fallback(request.uri)

        return {
            "resultId": semantic_tokens.get("resultId"),
            "tokens": decode_semantic_tokens(semantic_tokens.get("data") or [], legend, document),
        }

    async def _semantic_tokens_fallback(self, uri: str) -> dict:
        try:
            symbols = await self.provider.document_symbols(uri)
        except Exception as e:
            raise ToolError("Semantic tokens provider not available and fallback failed") from e
        if not symbols:
            raise ToolError("Semantic tokens provider not available and fallback failed")
        return {
            "fallback": FALLBACK_MESSAGE,
            "symbols": [
                {
                    "name": symbol.get("name", ""),
                    "kind": symbol.get("kind"),
                    "range": range_to_wire(symbol.get("range") or symbol.get("location", {}).get("range")),
                    "tokenType": FALLBACK_TOKEN_TYPE_BY_KIND.get(symbol.get("kind"), "unknown"),
                }
                for symbol in symbols
            ],
        }

    # --- Hierarchies ---

    async def get_call_hierarchy(self, request: ToolRequest) -> dict | None:
        items = await self.provider.prepare_call_hierarchy(request.uri, request.position)
        root = _first_candidate(items, "call")
        if root is None:
            return None

        incoming, outgoing = await asyncio.gather(
            self.provider.incoming_calls(root),
            self.provider.outgoing_calls(root),
        )
        return {
            "item": normalize_hierarchy_item(root),
            "incomingCalls": [normalize_call(call, "from") for call in _as_list(incoming)],
            "outgoingCalls": [normalize_call(call, "to") for call in _as_list(outgoing)],
        }

    async def get_type_hierarchy(self, request: ToolRequest) -> dict | None:
        items = await self.provider.prepare_type_hierarchy(request.uri, request.position)
        root = _first_candidate(items, "type")
        if root is None:
            return None

        supertypes, subtypes = await asyncio.gather(
            self.provider.supertypes(root),
            self.provider.subtypes(root),
        )
        return {
            "item": normalize_hierarchy_item(root),
            "supertypes": [normalize_hierarchy_item(t) for t in _as_list(supertypes)],
            "subtypes": [normalize_hierarchy_item(t) for t in _as_list(subtypes)],
        }
