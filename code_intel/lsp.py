#!/usr/bin/env python3
"""
Code Intel - LSP Client

JSON-RPC client for a single language-server process over stdio.
One client serves one language id; the provider keeps one per language.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from .documents import TextDocument
from .positions import Position, Range

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = float(os.environ.get("CODE_INTEL_LSP_TIMEOUT", "30"))

# Token types/modifiers this client understands; servers pick their legend from these
SEMANTIC_TOKEN_TYPES = [
    "namespace", "type", "class", "enum", "interface", "struct",
    "typeParameter", "parameter", "variable", "property", "enumMember",
    "event", "function", "method", "macro", "keyword", "modifier",
    "comment", "string", "number", "regexp", "operator", "decorator",
]
SEMANTIC_TOKEN_MODIFIERS = [
    "declaration", "definition", "readonly", "static", "deprecated",
    "abstract", "async", "modification", "documentation", "defaultLibrary",
]

CLIENT_CAPABILITIES = {
    "textDocument": {
        "synchronization": {"dynamicRegistration": False},
        "definition": {"dynamicRegistration": False, "linkSupport": True},
        "implementation": {"dynamicRegistration": False, "linkSupport": True},
        "references": {"dynamicRegistration": False},
        "hover": {"dynamicRegistration": False, "contentFormat": ["markdown", "plaintext"]},
        "completion": {
            "dynamicRegistration": False,
            "completionItem": {"insertReplaceSupport": True, "documentationFormat": ["markdown", "plaintext"]},
            "contextSupport": True,
        },
        "signatureHelp": {"dynamicRegistration": False, "contextSupport": True},
        "documentSymbol": {"dynamicRegistration": False, "hierarchicalDocumentSymbolSupport": True},
        "rename": {"dynamicRegistration": False},
        "codeAction": {
            "dynamicRegistration": False,
            "codeActionLiteralSupport": {
                "codeActionKind": {"valueSet": ["", "quickfix", "refactor", "source"]},
            },
            "isPreferredSupport": True,
        },
        "codeLens": {"dynamicRegistration": False},
        "semanticTokens": {
            "dynamicRegistration": False,
            "requests": {"full": True},
            "tokenTypes": SEMANTIC_TOKEN_TYPES,
            "tokenModifiers": SEMANTIC_TOKEN_MODIFIERS,
            "formats": ["relative"],
        },
        "callHierarchy": {"dynamicRegistration": False},
        "typeHierarchy": {"dynamicRegistration": False},
        "publishDiagnostics": {"relatedInformation": True},
    },
    "workspace": {
        "executeCommand": {"dynamicRegistration": False},
        "workspaceFolders": True,
        "configuration": True,
    },
}


class LSPError(Exception):
    """Error response from the language server."""

    def __init__(self, message: str, code: int | None = None):
        self.code = code
        super().__init__(message)


class LSPClient:
    def __init__(self, workspace: str, language_id: str, command: list[str],
                 timeout: float = DEFAULT_REQUEST_TIMEOUT):
        self.workspace = workspace
        self.language_id = language_id
        self.command = command
        self.timeout = timeout
        self.process: asyncio.subprocess.Process | None = None
        self.request_id = 0
        self.pending_requests: dict[int, asyncio.Future] = {}
        self.capabilities: dict = {}
        self._read_task: asyncio.Task | None = None
        self._initialized = False
        self._open_documents: dict[str, tuple[int, str]] = {}  # uri -> (version, text)

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def start(self):
        """Start the language server and initialize the LSP session."""
        self.process = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
            cwd=self.workspace,
        )

        self._read_task = asyncio.create_task(self._read_loop())

        root_uri = Path(self.workspace).resolve().as_uri()
        init_result = await self.request("initialize", {
            "processId": os.getpid(),
            "capabilities": CLIENT_CAPABILITIES,
            "rootUri": root_uri,
            "workspaceFolders": [
                {"uri": root_uri, "name": Path(self.workspace).name or "workspace"}
            ],
        })
        self.capabilities = (init_result or {}).get("capabilities", {})

        await self.notify("initialized", {})
        self._initialized = True
        logger.info("Started %s language server: %s", self.language_id, " ".join(self.command))
        return init_result

    async def stop(self):
        """Shut the language server down."""
        if self.is_running and self._initialized:
            try:
                await self.request("shutdown", None, timeout=5)
                await self.notify("exit", None)
            except (LSPError, asyncio.TimeoutError, ConnectionError) as e:
                logger.debug("Clean %s shutdown failed: %s", self.language_id, e)
        if self._read_task:
            self._read_task.cancel()
        if self.is_running:
            self.process.terminate()
            await self.process.wait()
        self._initialized = False

    async def _read_loop(self):
        """Read and dispatch LSP messages."""
        while True:
            try:
                header = b""
                while b"\r\n\r\n" not in header:
                    chunk = await self.process.stdout.read(1)
                    if not chunk:
                        self._fail_pending(ConnectionError(f"{self.language_id} language server exited"))
                        return
                    header += chunk

                content_length = 0
                for line in header.decode().split("\r\n"):
                    if line.startswith("Content-Length:"):
                        content_length = int(line.split(":")[1].strip())

                content = await self.process.stdout.readexactly(content_length)
                self._dispatch(json.loads(content.decode()))

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("LSP read error (%s): %s", self.language_id, e)

    def _dispatch(self, message: dict):
        if "method" in message and "id" in message:
            # Server -> client request; answer so the server doesn't block
            self._reply(message)
        elif "id" in message and message["id"] in self.pending_requests:
            future = self.pending_requests.pop(message["id"])
            if future.done():
                return
            if "error" in message:
                error = message["error"]
                future.set_exception(LSPError(error.get("message", "LSP error"), error.get("code")))
            else:
                future.set_result(message.get("result"))

    def _reply(self, message: dict):
        result = None
        if message["method"] == "workspace/configuration":
            result = [None for _ in message.get("params", {}).get("items", [])]
        self._send({"jsonrpc": "2.0", "id": message["id"], "result": result})

    def _fail_pending(self, error: Exception):
        for future in self.pending_requests.values():
            if not future.done():
                future.set_exception(error)
        self.pending_requests.clear()

    def _send(self, message: dict):
        """Send a JSON-RPC message to the language server."""
        content = json.dumps(message).encode()
        header = f"Content-Length: {len(content)}\r\n\r\n".encode()
        self.process.stdin.write(header + content)
        asyncio.create_task(self.process.stdin.drain())

    async def request(self, method: str, params: Any, timeout: float | None = None) -> Any:
        """Send a request and wait for the response."""
        self.request_id += 1
        request_id = self.request_id

        future = asyncio.get_running_loop().create_future()
        self.pending_requests[request_id] = future

        self._send({
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params,
        })

        try:
            return await asyncio.wait_for(future, timeout=timeout or self.timeout)
        finally:
            self.pending_requests.pop(request_id, None)

    async def notify(self, method: str, params: Any):
        """Send a notification (no response expected)."""
        self._send({
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
        })

    def supports(self, capability: str) -> bool:
        return bool(self.capabilities.get(capability))

    async def open_document(self, document: TextDocument):
        """didOpen a document once per session, then didChange when its text changes."""
        opened = self._open_documents.get(document.uri)
        if opened is None:
            await self.notify("textDocument/didOpen", {
                "textDocument": {
                    "uri": document.uri,
                    "languageId": document.language_id,
                    "version": 1,
                    "text": document.text,
                }
            })
            self._open_documents[document.uri] = (1, document.text)
            return

        version, text = opened
        if text == document.text:
            return
        version += 1
        # Full-text sync
        await self.notify("textDocument/didChange", {
            "textDocument": {"uri": document.uri, "version": version},
            "contentChanges": [{"text": document.text}],
        })
        self._open_documents[document.uri] = (version, document.text)

    @property
    def semantic_tokens_legend(self) -> dict:
        provider = self.capabilities.get("semanticTokensProvider") or {}
        return provider.get("legend") or {
            "tokenTypes": SEMANTIC_TOKEN_TYPES,
            "tokenModifiers": SEMANTIC_TOKEN_MODIFIERS,
        }

    # High-level LSP operations; positions are zero-based

    @staticmethod
    def _at(uri: str, position: Position) -> dict:
        return {"textDocument": {"uri": uri}, "position": position.to_dict()}

    async def get_references(self, uri: str, position: Position) -> list:
        """Get all references to the symbol at position."""
        params = self._at(uri, position)
        params["context"] = {"includeDeclaration": True}
        result = await self.request("textDocument/references", params)
        return result or []

    async def get_definition(self, uri: str, position: Position) -> Any:
        """Location, Location[] or LocationLink[] for the symbol at position."""
        return await self.request("textDocument/definition", self._at(uri, position))

    async def get_implementation(self, uri: str, position: Position) -> Any:
        return await self.request("textDocument/implementation", self._at(uri, position))

    async def get_hover(self, uri: str, position: Position) -> dict | None:
        """Get hover info (type, docs) at position."""
        return await self.request("textDocument/hover", self._at(uri, position))

    async def get_document_symbols(self, uri: str) -> list:
        """Get document symbols (outline) for a document."""
        result = await self.request("textDocument/documentSymbol", {
            "textDocument": {"uri": uri},
        })
        return result or []

    async def get_completion(self, uri: str, position: Position,
                             trigger_character: str | None = None) -> Any:
        params = self._at(uri, position)
        if trigger_character:
            params["context"] = {"triggerKind": 2, "triggerCharacter": trigger_character}
        else:
            params["context"] = {"triggerKind": 1}
        return await self.request("textDocument/completion", params)

    async def get_signature_help(self, uri: str, position: Position) -> dict | None:
        return await self.request("textDocument/signatureHelp", self._at(uri, position))

    async def rename_symbol(self, uri: str, position: Position, new_name: str) -> dict | None:
        """WorkspaceEdit renaming the symbol at position."""
        params = self._at(uri, position)
        params["newName"] = new_name
        return await self.request("textDocument/rename", params)

    async def get_code_actions(self, uri: str, range_: Range, diagnostics: list | None = None) -> list:
        """Get code actions for a range."""
        result = await self.request("textDocument/codeAction", {
            "textDocument": {"uri": uri},
            "range": range_.to_dict(),
            "context": {"diagnostics": diagnostics or []},
        })
        return result or []

    async def get_code_lens(self, uri: str) -> list:
        """Get code lenses for a document, resolving them when supported."""
        result = await self.request("textDocument/codeLens", {
            "textDocument": {"uri": uri},
        })
        lenses = result or []
        provider = self.capabilities.get("codeLensProvider") or {}
        if not provider.get("resolveProvider"):
            return lenses
        resolved = []
        for lens in lenses:
            if lens.get("command") is None:
                lens = await self.request("codeLens/resolve", lens) or lens
            resolved.append(lens)
        return resolved

    async def execute_command(self, command: str, arguments: list | None = None) -> Any:
        return await self.request("workspace/executeCommand", {
            "command": command,
            "arguments": arguments or [],
        })

    async def get_semantic_tokens(self, uri: str) -> dict | None:
        """Packed semantic token stream for a document."""
        if not self.supports("semanticTokensProvider"):
            raise LSPError(f"{self.language_id} language server has no semantic tokens provider")
        return await self.request("textDocument/semanticTokens/full", {
            "textDocument": {"uri": uri},
        })

    async def prepare_call_hierarchy(self, uri: str, position: Position) -> list:
        """Prepare call hierarchy at position."""
        result = await self.request("textDocument/prepareCallHierarchy", self._at(uri, position))
        return result or []

    async def get_incoming_calls(self, item: dict) -> list:
        """Get incoming calls for a call hierarchy item."""
        result = await self.request("callHierarchy/incomingCalls", {"item": item})
        return result or []

    async def get_outgoing_calls(self, item: dict) -> list:
        """Get outgoing calls for a call hierarchy item."""
        result = await self.request("callHierarchy/outgoingCalls", {"item": item})
        return result or []

    async def prepare_type_hierarchy(self, uri: str, position: Position) -> list:
        result = await self.request("textDocument/prepareTypeHierarchy", self._at(uri, position))
        return result or []

    async def get_supertypes(self, item: dict) -> list:
        result = await self.request("typeHierarchy/supertypes", {"item": item})
        return result or []

    async def get_subtypes(self, item: dict) -> list:
        result = await self.request("typeHierarchy/subtypes", {"item": item})
        return result or []
