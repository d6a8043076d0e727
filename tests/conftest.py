"""pytest configuration and in-memory collaborators."""

import asyncio

import pytest

from code_intel.documents import DocumentStore, TextDocument, detect_language_id
from code_intel.provider import Provider


MAIN_URI = "file:///workspace/main.py"
UTIL_URI = "file:///workspace/util.py"
BROKEN_URI = "file:///workspace/broken.py"

MAIN_TEXT = """import util

def greet(name):
    return util.shout(name)

greet("world")
"""

UTIL_TEXT = """def shout(text):
    return text.upper()
"""


def make_range(start_line, start_char, end_line=None, end_char=None):
    end_line = start_line if end_line is None else end_line
    end_char = start_char if end_char is None else end_char
    return {
        "start": {"line": start_line, "character": start_char},
        "end": {"line": end_line, "character": end_char},
    }


class InMemoryDocumentStore(DocumentStore):
    """Documents held in a dict; URIs in `unreadable` exist but fail to open."""

    def __init__(self, documents: dict[str, str], unreadable: set[str] | None = None):
        self.documents = documents
        self.unreadable = unreadable or set()
        self.opened: list[str] = []

    async def exists(self, uri: str) -> bool:
        return uri in self.documents or uri in self.unreadable

    async def open(self, uri: str) -> TextDocument:
        self.opened.append(uri)
        if uri in self.unreadable or uri not in self.documents:
            raise OSError(f"cannot read {uri}")
        return TextDocument(uri=uri, language_id=detect_language_id(uri), text=self.documents[uri])


class FakeProvider(Provider):
    """Answers each query from `responses[method]` and records every call.

    A response may be a value, an exception instance (raised), or a callable
    (called with the query args; coroutine results are awaited).
    """

    def __init__(self, **responses):
        self.responses = responses
        self.calls: list[tuple] = []

    def called(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    async def _answer(self, method, *args):
        self.calls.append((method, *args))
        value = self.responses.get(method)
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value(*args)
            if asyncio.iscoroutine(value):
                value = await value
        return value

    async def languages(self):
        self.calls.append(("languages",))
        return self.responses.get("languages", ["python"])

    async def references(self, uri, position):
        return await self._answer("references", uri, position)

    async def definition(self, uri, position):
        return await self._answer("definition", uri, position)

    async def implementation(self, uri, position):
        return await self._answer("implementation", uri, position)

    async def hover(self, uri, position):
        return await self._answer("hover", uri, position)

    async def document_symbols(self, uri):
        return await self._answer("document_symbols", uri)

    async def completion(self, uri, position, trigger_character=None):
        return await self._answer("completion", uri, position, trigger_character)

    async def signature_help(self, uri, position):
        return await self._answer("signature_help", uri, position)

    async def rename(self, uri, position, new_name):
        return await self._answer("rename", uri, position, new_name)

    async def code_actions(self, uri, range_):
        return await self._answer("code_actions", uri, range_)

    async def code_lens(self, uri):
        return await self._answer("code_lens", uri)

    async def execute_command(self, uri, command, arguments):
        return await self._answer("execute_command", uri, command, arguments)

    async def semantic_tokens(self, uri):
        return await self._answer("semantic_tokens", uri)

    async def semantic_tokens_legend(self, uri):
        return self.responses.get("legend", {
            "tokenTypes": ["namespace", "function", "variable", "string"],
            "tokenModifiers": ["declaration", "readonly"],
        })

    async def prepare_call_hierarchy(self, uri, position):
        return await self._answer("prepare_call_hierarchy", uri, position)

    async def incoming_calls(self, item):
        return await self._answer("incoming_calls", item)

    async def outgoing_calls(self, item):
        return await self._answer("outgoing_calls", item)

    async def prepare_type_hierarchy(self, uri, position):
        return await self._answer("prepare_type_hierarchy", uri, position)

    async def supertypes(self, item):
        return await self._answer("supertypes", item)

    async def subtypes(self, item):
        return await self._answer("subtypes", item)


@pytest.fixture
def store():
    return InMemoryDocumentStore(
        {MAIN_URI: MAIN_TEXT, UTIL_URI: UTIL_TEXT},
        unreadable={BROKEN_URI},
    )


@pytest.fixture
def provider():
    return FakeProvider()
