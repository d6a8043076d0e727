#!/usr/bin/env python3
"""
Code Intel - Language-intelligence provider

Provider is the interface the tool handlers query: one method per tool
category, answering with raw LSP-shaped values. LanguageServerProvider
implements it by routing each document to a language server chosen by the
document's language id, starting servers on first use.
"""

import asyncio
import logging
import os
import shlex
import shutil
from abc import ABC, abstractmethod
from typing import Any

from .documents import DocumentStore
from .lsp import LSPClient
from .positions import Position, Range

logger = logging.getLogger(__name__)


# Built-in defaults: language_id -> command line
# Override per language with CODE_INTEL_SERVER_<LANGUAGE>="cmd args..."
DEFAULT_SERVERS = {
    "python": ["pyright-langserver", "--stdio"],
    "typescript": ["typescript-language-server", "--stdio"],
    "javascript": ["typescript-language-server", "--stdio"],
    "typescriptreact": ["typescript-language-server", "--stdio"],
    "javascriptreact": ["typescript-language-server", "--stdio"],
    "go": ["gopls", "serve"],
    "rust": ["rust-analyzer"],
}


def load_server_commands(environ: dict | None = None) -> dict[str, list[str]]:
    """Default server table merged with CODE_INTEL_SERVER_* overrides."""
    environ = os.environ if environ is None else environ
    servers = {lang: list(cmd) for lang, cmd in DEFAULT_SERVERS.items()}
    prefix = "CODE_INTEL_SERVER_"
    for key, value in environ.items():
        if key.startswith(prefix) and value.strip():
            servers[key[len(prefix):].lower()] = shlex.split(value)
    return servers


class Provider(ABC):
    """Positional code-intelligence queries over documents."""

    @abstractmethod
    async def languages(self) -> list[str]:
        """Language ids the provider currently serves."""

    @abstractmethod
    async def references(self, uri: str, position: Position) -> list: ...

    @abstractmethod
    async def definition(self, uri: str, position: Position) -> Any: ...

    @abstractmethod
    async def implementation(self, uri: str, position: Position) -> Any: ...

    @abstractmethod
    async def hover(self, uri: str, position: Position) -> Any: ...

    @abstractmethod
    async def document_symbols(self, uri: str) -> list: ...

    @abstractmethod
    async def completion(self, uri: str, position: Position,
                         trigger_character: str | None = None) -> Any: ...

    @abstractmethod
    async def signature_help(self, uri: str, position: Position) -> dict | None: ...

    @abstractmethod
    async def rename(self, uri: str, position: Position, new_name: str) -> dict | None: ...

    @abstractmethod
    async def code_actions(self, uri: str, range_: Range) -> list: ...

    @abstractmethod
    async def code_lens(self, uri: str) -> list: ...

    @abstractmethod
    async def execute_command(self, uri: str, command: str, arguments: list) -> Any: ...

    @abstractmethod
    async def semantic_tokens(self, uri: str) -> dict | None:
        """Packed token stream ({resultId?, data}) or None."""

    @abstractmethod
    async def semantic_tokens_legend(self, uri: str) -> dict:
        """{tokenTypes, tokenModifiers} used to decode semantic_tokens."""

    @abstractmethod
    async def prepare_call_hierarchy(self, uri: str, position: Position) -> list: ...

    @abstractmethod
    async def incoming_calls(self, item: dict) -> list: ...

    @abstractmethod
    async def outgoing_calls(self, item: dict) -> list: ...

    @abstractmethod
    async def prepare_type_hierarchy(self, uri: str, position: Position) -> list: ...

    @abstractmethod
    async def supertypes(self, item: dict) -> list: ...

    @abstractmethod
    async def subtypes(self, item: dict) -> list: ...


class LanguageServerProvider(Provider):
    """Provider backed by one language-server process per language id."""

    def __init__(self, workspace: str, store: DocumentStore,
                 servers: dict[str, list[str]] | None = None):
        self.workspace = workspace
        self.store = store
        self.servers = servers if servers is not None else load_server_commands()
        self.clients: dict[str, LSPClient] = {}
        self._starting: dict[str, asyncio.Task] = {}

    async def languages(self) -> list[str]:
        return sorted(
            lang for lang, cmd in self.servers.items()
            if lang in self.clients or shutil.which(cmd[0])
        )

    async def _client_for_language(self, language_id: str) -> LSPClient:
        client = self.clients.get(language_id)
        if client is not None and client.is_running:
            return client
        if language_id not in self.servers:
            raise LookupError(f"No language server configured for {language_id}")
        # Concurrent first calls share one startup
        task = self._starting.get(language_id)
        if task is None:
            if client is not None:
                logger.warning("%s language server exited, restarting", language_id)
                self.clients.pop(language_id, None)
                await client.stop()
                task = self._starting.get(language_id)
        if task is None:
            task = asyncio.create_task(self._start_client(language_id))
            self._starting[language_id] = task
        try:
            return await task
        finally:
            self._starting.pop(language_id, None)

    async def _start_client(self, language_id: str) -> LSPClient:
        client = LSPClient(self.workspace, language_id, self.servers[language_id])
        await client.start()
        self.clients[language_id] = client
        return client

    async def _client_for(self, uri: str) -> LSPClient:
        """Client for a document's language, with the document opened."""
        document = await self.store.open(uri)
        client = await self._client_for_language(document.language_id)
        await client.open_document(document)
        return client

    @staticmethod
    def _item_uri(item: dict) -> str:
        return item.get("uri", "")

    async def stop(self):
        for client in self.clients.values():
            await client.stop()
        self.clients.clear()

    async def references(self, uri, position):
        return await (await self._client_for(uri)).get_references(uri, position)

    async def definition(self, uri, position):
        return await (await self._client_for(uri)).get_definition(uri, position)

    async def implementation(self, uri, position):
        return await (await self._client_for(uri)).get_implementation(uri, position)

    async def hover(self, uri, position):
        return await (await self._client_for(uri)).get_hover(uri, position)

    async def document_symbols(self, uri):
        return await (await self._client_for(uri)).get_document_symbols(uri)

    async def completion(self, uri, position, trigger_character=None):
        client = await self._client_for(uri)
        return await client.get_completion(uri, position, trigger_character)

    async def signature_help(self, uri, position):
        return await (await self._client_for(uri)).get_signature_help(uri, position)

    async def rename(self, uri, position, new_name):
        return await (await self._client_for(uri)).rename_symbol(uri, position, new_name)

    async def code_actions(self, uri, range_):
        return await (await self._client_for(uri)).get_code_actions(uri, range_)

    async def code_lens(self, uri):
        return await (await self._client_for(uri)).get_code_lens(uri)

    async def execute_command(self, uri, command, arguments):
        # Commands are server-specific; send to the server that produced the lens
        return await (await self._client_for(uri)).execute_command(command, arguments)

    async def semantic_tokens(self, uri):
        return await (await self._client_for(uri)).get_semantic_tokens(uri)

    async def semantic_tokens_legend(self, uri):
        return (await self._client_for(uri)).semantic_tokens_legend

    async def prepare_call_hierarchy(self, uri, position):
        return await (await self._client_for(uri)).prepare_call_hierarchy(uri, position)

    async def incoming_calls(self, item):
        return await (await self._client_for(self._item_uri(item))).get_incoming_calls(item)

    async def outgoing_calls(self, item):
        return await (await self._client_for(self._item_uri(item))).get_outgoing_calls(item)

    async def prepare_type_hierarchy(self, uri, position):
        return await (await self._client_for(uri)).prepare_type_hierarchy(uri, position)

    async def supertypes(self, item):
        return await (await self._client_for(self._item_uri(item))).get_supertypes(item)

    async def subtypes(self, item):
        return await (await self._client_for(self._item_uri(item))).get_subtypes(item)
