"""Tests for the capability handlers."""

import asyncio
import logging

import pytest

from code_intel.handlers import (
    FALLBACK_MESSAGE,
    LensKey,
    ToolHandlers,
    ToolRequest,
    decode_semantic_tokens,
    flatten_workspace_edit,
    normalize_symbol,
)
from code_intel.documents import TextDocument
from code_intel.positions import Position, Range
from code_intel.results import SoftResult, ToolError

from conftest import BROKEN_URI, MAIN_URI, UTIL_URI, make_range


def _request(line=None, character=None, uri=MAIN_URI, **args):
    position = Position(line, character) if line is not None else None
    return ToolRequest(uri=uri, position=position, args=args)


@pytest.fixture
def handlers(provider, store):
    return ToolHandlers(provider, store)


class TestReferenceFamily:
    @pytest.mark.asyncio
    async def test_usages_keep_location_when_one_preview_fails(self, handlers, provider, caplog):
        provider.responses["references"] = [
            {"uri": MAIN_URI, "range": make_range(2, 4, 2, 9)},
            {"uri": BROKEN_URI, "range": make_range(0, 0, 0, 5)},
            {"uri": UTIL_URI, "range": make_range(0, 4, 0, 9)},
        ]

        with caplog.at_level(logging.WARNING):
            result = await handlers.find_usages(_request(2, 5))

        assert len(result) == 3
        assert result[0]["preview"] == "def greet(name):"
        assert "preview" not in result[1]
        assert result[1] == {"uri": BROKEN_URI, "range": make_range(0, 0, 0, 5)}
        assert result[2]["preview"] == "def shout(text):"
        assert BROKEN_URI in caplog.text

    @pytest.mark.asyncio
    async def test_no_references_is_empty_list(self, handlers, provider):
        provider.responses["references"] = None
        assert await handlers.find_usages(_request(0, 0)) == []

    @pytest.mark.asyncio
    async def test_definition_has_no_preview(self, handlers, provider):
        provider.responses["definition"] = {"uri": UTIL_URI, "range": make_range(0, 4, 0, 9)}
        assert await handlers.go_to_definition(_request(3, 16)) == [
            {"uri": UTIL_URI, "range": make_range(0, 4, 0, 9)}
        ]

    @pytest.mark.asyncio
    async def test_definition_accepts_location_links(self, handlers, provider):
        provider.responses["definition"] = [{
            "originSelectionRange": make_range(3, 16, 3, 21),
            "targetUri": UTIL_URI,
            "targetRange": make_range(0, 0, 1, 23),
            "targetSelectionRange": make_range(0, 4, 0, 9),
        }]
        assert await handlers.go_to_definition(_request(3, 16)) == [
            {"uri": UTIL_URI, "range": make_range(0, 4, 0, 9)}
        ]

    @pytest.mark.asyncio
    async def test_implementation_preview_comes_from_its_own_document(self, handlers, provider):
        provider.responses["implementation"] = [{"uri": UTIL_URI, "range": make_range(1, 4, 1, 10)}]
        result = await handlers.find_implementations(_request(3, 16))
        assert result == [{
            "uri": UTIL_URI,
            "range": make_range(1, 4, 1, 10),
            "preview": "return text.upper()",
        }]


class TestInformation:
    @pytest.mark.asyncio
    async def test_hover_contents_flattened(self, handlers, provider):
        provider.responses["hover"] = {
            "contents": [
                "plain text",
                {"language": "python", "value": "def greet(name)"},
            ],
            "range": make_range(2, 4, 2, 9),
        }
        assert await handlers.get_hover_info(_request(2, 5)) == [{
            "contents": ["plain text", "def greet(name)"],
            "range": make_range(2, 4, 2, 9),
            "preview": "def greet(name):",
        }]

    @pytest.mark.asyncio
    async def test_hover_markup_without_range(self, handlers, provider):
        provider.responses["hover"] = {"contents": {"kind": "markdown", "value": "**greet**"}}
        assert await handlers.get_hover_info(_request(2, 5)) == [
            {"contents": ["**greet**"], "range": None}
        ]

    @pytest.mark.asyncio
    async def test_document_symbols_keep_tree_shape(self, handlers, provider):
        provider.responses["document_symbols"] = [{
            "name": "Calculator",
            "kind": 5,
            "range": make_range(0, 0, 9, 0),
            "selectionRange": make_range(0, 6, 0, 16),
            "children": [{
                "name": "add",
                "kind": 6,
                "range": make_range(1, 4, 3, 0),
                "children": [{"name": "x", "kind": 13, "range": make_range(2, 8, 2, 9)}],
            }],
        }]
        result = await handlers.get_document_symbols(_request())
        assert result[0]["name"] == "Calculator"
        assert result[0]["children"][0]["name"] == "add"
        assert result[0]["children"][0]["children"] == [
            {"name": "x", "kind": 13, "range": make_range(2, 8, 2, 9), "children": []}
        ]

    def test_symbol_information_normalized(self):
        symbol = {"name": "shout", "kind": 12, "location": {"uri": UTIL_URI, "range": make_range(0, 0, 1, 23)}}
        assert normalize_symbol(symbol) == {
            "name": "shout", "kind": 12, "range": make_range(0, 0, 1, 23), "children": [],
        }

    @pytest.mark.asyncio
    async def test_completions_from_completion_list(self, handlers, provider):
        provider.responses["completion"] = {
            "isIncomplete": False,
            "items": [
                {
                    "label": "shout",
                    "kind": 3,
                    "detail": "(text) -> str",
                    "documentation": {"kind": "markdown", "value": "Upper-case text"},
                    "sortText": "a",
                    "textEdit": {"range": make_range(3, 16, 3, 21), "newText": "shout"},
                },
                {"label": "upper", "kind": 2, "insertText": "upper()"},
            ],
        }

        result = await handlers.get_completions(_request(3, 16, triggerCharacter="."))

        assert result[0] == {
            "label": "shout", "kind": 3, "detail": "(text) -> str",
            "documentation": "Upper-case text", "sortText": "a", "filterText": None,
            "insertText": "shout", "range": make_range(3, 16, 3, 21),
        }
        assert result[1]["insertText"] == "upper()"
        assert result[1]["range"] is None
        assert provider.calls[0][-1] == "."

    @pytest.mark.asyncio
    async def test_completion_insert_replace_edit_uses_insert_range(self, handlers, provider):
        provider.responses["completion"] = [{
            "label": "shout",
            "textEdit": {
                "newText": "shout",
                "insert": make_range(3, 16, 3, 18),
                "replace": make_range(3, 16, 3, 21),
            },
        }]
        result = await handlers.get_completions(_request(3, 18))
        assert result[0]["range"] == make_range(3, 16, 3, 18)

    @pytest.mark.asyncio
    async def test_no_completions_is_none(self, handlers, provider):
        provider.responses["completion"] = None
        assert await handlers.get_completions(_request(0, 0)) is None

    @pytest.mark.asyncio
    async def test_signature_help(self, handlers, provider):
        provider.responses["signature_help"] = {
            "signatures": [{
                "label": "shout(text)",
                "documentation": "Shout it.",
                "parameters": [{"label": "text", "documentation": {"kind": "plaintext", "value": "input"}}],
            }],
            "activeSignature": 0,
            "activeParameter": 0,
        }
        assert await handlers.get_signature_help(_request(3, 22)) == [{
            "label": "shout(text)",
            "documentation": "Shout it.",
            "parameters": [{"label": "text", "documentation": "input"}],
            "activeParameter": 0,
            "activeSignature": 0,
        }]

    @pytest.mark.asyncio
    async def test_no_signature_help_is_none(self, handlers, provider):
        provider.responses["signature_help"] = None
        assert await handlers.get_signature_help(_request(0, 0)) is None


class TestRename:
    @pytest.mark.asyncio
    async def test_default_new_name(self, handlers, provider):
        provider.responses["rename"] = None
        assert await handlers.get_rename_locations(_request(2, 5)) == []
        assert provider.calls[0][-1] == "newName"

    @pytest.mark.asyncio
    async def test_explicit_new_name_forwarded(self, handlers, provider):
        provider.responses["rename"] = {}
        await handlers.get_rename_locations(_request(2, 5, newName="salute"))
        assert provider.calls[0][-1] == "salute"

    @pytest.mark.asyncio
    async def test_changes_map_flattened_in_provider_order(self, handlers, provider):
        provider.responses["rename"] = {"changes": {
            UTIL_URI: [{"range": make_range(0, 4, 0, 9), "newText": "yell"}],
            MAIN_URI: [
                {"range": make_range(3, 16, 3, 21), "newText": "yell"},
            ],
        }}
        result = await handlers.get_rename_locations(_request(0, 4, newName="yell"))
        assert [entry["uri"] for entry in result] == [UTIL_URI, MAIN_URI]
        assert result[1]["edits"] == [{"range": make_range(3, 16, 3, 21), "newText": "yell"}]

    def test_document_changes_skip_resource_operations(self):
        edit = {"documentChanges": [
            {"textDocument": {"uri": MAIN_URI, "version": 3},
             "edits": [{"range": make_range(2, 4, 2, 9), "newText": "hello"}]},
            {"kind": "rename", "oldUri": UTIL_URI, "newUri": "file:///workspace/loud.py"},
        ]}
        assert flatten_workspace_edit(edit) == [
            {"uri": MAIN_URI, "edits": [{"range": make_range(2, 4, 2, 9), "newText": "hello"}]}
        ]


class TestCodeActions:
    @pytest.mark.asyncio
    async def test_queries_zero_width_range_at_position(self, handlers, provider):
        provider.responses["code_actions"] = [
            {
                "title": "Import 'os'",
                "kind": "quickfix",
                "isPreferred": True,
                "diagnostics": [{"message": "\"os\" is not defined", "severity": 1, "range": make_range(4, 0, 4, 2)}],
            },
            {"title": "Organize imports", "command": "organize", "arguments": []},
        ]

        result = await handlers.get_code_actions(_request(4, 1))

        assert provider.calls[0][2] == Range(Position(4, 1), Position(4, 1))
        assert result[0] == {
            "title": "Import 'os'",
            "kind": "quickfix",
            "isPreferred": True,
            "diagnostics": [{"message": "\"os\" is not defined", "severity": 1, "range": make_range(4, 0, 4, 2)}],
        }
        assert result[1]["diagnostics"] == []
        assert result[1]["kind"] is None

    @pytest.mark.asyncio
    async def test_explicit_selection(self, handlers, provider):
        provider.responses["code_actions"] = []
        await handlers.get_code_actions(_request(range=make_range(1, 0, 3, 4)))
        assert provider.calls[0][2] == Range(Position(1, 0), Position(3, 4))

    @pytest.mark.asyncio
    async def test_needs_position_or_selection(self, handlers, provider):
        result = await handlers.get_code_actions(_request())
        assert isinstance(result, SoftResult) and result.is_error
        assert provider.calls == []


LENSES = [
    {"range": make_range(0, 0, 0, 10), "command": {"title": "Run", "command": "a", "arguments": [1, "x"]}},
    {"range": make_range(5, 0, 5, 10), "command": {"title": "Debug", "command": "b"}},
]


class TestCodeLens:
    @pytest.mark.asyncio
    async def test_list_lenses(self, handlers, provider):
        provider.responses["code_lens"] = LENSES + [{"range": make_range(7, 0, 7, 3)}]
        result = await handlers.get_code_lens(_request())
        assert result[0] == {
            "range": make_range(0, 0, 0, 10),
            "command": {"title": "Run", "command": "a", "arguments": [1, "x"]},
        }
        assert result[2]["command"] is None

    @pytest.mark.asyncio
    async def test_empty_list_is_successful_soft_result(self, handlers, provider):
        provider.responses["code_lens"] = []
        result = await handlers.get_code_lens(_request())
        assert result == SoftResult("No CodeLens items found in document", is_error=False)

    @pytest.mark.asyncio
    async def test_provider_fault_is_error(self, handlers, provider):
        provider.responses["code_lens"] = RuntimeError("server crashed")
        result = await handlers.get_code_lens(_request())
        assert result.is_error
        assert "server crashed" in result.text

    @pytest.mark.asyncio
    async def test_execute_matches_position_and_command(self, handlers, provider):
        provider.responses["code_lens"] = LENSES
        provider.responses["execute_command"] = {"ran": True}

        result = await handlers.execute_code_lens(_request(0, 0, command={"command": "a"}))

        assert result == {
            "command": {"title": "Run", "command": "a", "arguments": [1, "x"]},
            "result": {"ran": True},
        }
        assert provider.calls[-1] == ("execute_command", MAIN_URI, "a", [1, "x"])

    @pytest.mark.asyncio
    async def test_execute_with_wrong_command_at_position_fails_softly(self, handlers, provider):
        provider.responses["code_lens"] = LENSES
        result = await handlers.execute_code_lens(_request(0, 0, command={"command": "b"}))
        assert result.is_error
        assert result.text == "No matching CodeLens command found at the specified position"
        assert provider.called("execute_command") == 0

    @pytest.mark.asyncio
    async def test_execute_refetches_lenses_each_call(self, handlers, provider):
        provider.responses["code_lens"] = LENSES
        await handlers.execute_code_lens(_request(5, 0, command={"command": "b"}))
        await handlers.execute_code_lens(_request(5, 0, command={"command": "b"}))
        assert provider.called("code_lens") == 2
        assert provider.calls[-1] == ("execute_command", MAIN_URI, "b", [])

    @pytest.mark.asyncio
    async def test_execute_without_lenses(self, handlers, provider):
        provider.responses["code_lens"] = None
        result = await handlers.execute_code_lens(_request(0, 0, command={"command": "a"}))
        assert result == SoftResult("No CodeLens found at the specified position", is_error=True)

    @pytest.mark.asyncio
    async def test_execute_command_failure_is_soft_error(self, handlers, provider):
        provider.responses["code_lens"] = LENSES
        provider.responses["execute_command"] = RuntimeError("command not found")
        result = await handlers.execute_code_lens(_request(0, 0, command={"command": "a"}))
        assert result.is_error
        assert "command not found" in result.text

    @pytest.mark.asyncio
    async def test_execute_requires_command(self, handlers, provider):
        result = await handlers.execute_code_lens(_request(0, 0))
        assert result.is_error
        assert provider.calls == []

    def test_lens_key(self):
        assert LensKey.from_lens(LENSES[0]) == LensKey(Position(0, 0), "a")
        assert LensKey.from_lens({"range": make_range(1, 1)}) == LensKey(Position(1, 1), None)


class TestSemanticTokens:
    @pytest.mark.asyncio
    async def test_decodes_relative_stream(self, handlers, provider):
        # "def greet" on line 2 (function, declaration), "util" on line 3, "shout" on line 3
        provider.responses["semantic_tokens"] = {
            "resultId": "r1",
            "data": [
                2, 4, 5, 1, 0b01,
                1, 11, 4, 0, 0,
                0, 5, 5, 1, 0b10,
            ],
        }
        result = await handlers.get_semantic_tokens(_request())
        assert result["resultId"] == "r1"
        assert result["tokens"] == [
            {"line": 2, "character": 4, "length": 5, "tokenType": "function",
             "tokenModifiers": ["declaration"], "text": "greet"},
            {"line": 3, "character": 11, "length": 4, "tokenType": "namespace",
             "tokenModifiers": [], "text": "util"},
            {"line": 3, "character": 16, "length": 5, "tokenType": "function",
             "tokenModifiers": ["readonly"], "text": "shout"},
        ]

    def test_unknown_type_index(self):
        document = TextDocument(uri=MAIN_URI, language_id="python", text="abc\n")
        tokens = decode_semantic_tokens([0, 0, 3, 9, 0], {"tokenTypes": ["a"]}, document)
        assert tokens[0]["tokenType"] == "unknown"

    def test_columns_count_utf16_code_units(self):
        # The emoji is one code point but two UTF-16 units
        document = TextDocument(uri=MAIN_URI, language_id="python", text='s = "\U0001F600"; name = 1\n')
        tokens = decode_semantic_tokens([0, 10, 4, 2, 0], {"tokenTypes": ["a", "b", "variable"]}, document)
        assert tokens[0]["character"] == 10
        assert tokens[0]["text"] == "name"

    @pytest.mark.asyncio
    async def test_unsupported_language_fails_softly_before_query(self, handlers, provider):
        provider.responses["languages"] = ["typescript"]
        result = await handlers.get_semantic_tokens(_request())
        assert result == SoftResult("Semantic tokens not supported for language: python", is_error=True)
        assert provider.called("semantic_tokens") == 0

    @pytest.mark.asyncio
    async def test_no_stream_is_successful_empty_result(self, handlers, provider):
        provider.responses["semantic_tokens"] = None
        result = await handlers.get_semantic_tokens(_request())
        assert result == SoftResult("No semantic tokens found in document", is_error=False)
        assert provider.called("document_symbols") == 0

    @pytest.mark.asyncio
    async def test_provider_error_falls_back_to_symbols(self, handlers, provider):
        provider.responses["semantic_tokens"] = RuntimeError("not supported")
        provider.responses["document_symbols"] = [
            {"name": "IGreeter", "kind": 4, "range": make_range(0, 0, 2, 0)},
            {"name": "weird", "kind": 99, "range": make_range(3, 0, 3, 5)},
        ]

        result = await handlers.get_semantic_tokens(_request())

        assert result == {
            "fallback": FALLBACK_MESSAGE,
            "symbols": [
                {"name": "IGreeter", "kind": 4, "range": make_range(0, 0, 2, 0), "tokenType": "interface"},
                {"name": "weird", "kind": 99, "range": make_range(3, 0, 3, 5), "tokenType": "unknown"},
            ],
        }

    @pytest.mark.asyncio
    async def test_fallback_without_symbols_is_hard_failure(self, handlers, provider):
        provider.responses["semantic_tokens"] = RuntimeError("not supported")
        provider.responses["document_symbols"] = None
        with pytest.raises(ToolError, match="fallback failed"):
            await handlers.get_semantic_tokens(_request())


CALL_ROOT = {
    "name": "greet", "kind": 12, "detail": "main", "uri": MAIN_URI,
    "range": make_range(2, 0, 3, 27), "selectionRange": make_range(2, 4, 2, 9),
}


class TestHierarchies:
    @pytest.mark.asyncio
    async def test_call_hierarchy_expands_both_sides(self, handlers, provider):
        provider.responses["prepare_call_hierarchy"] = [CALL_ROOT]
        provider.responses["incoming_calls"] = [{
            "from": {"name": "<module>", "kind": 2, "uri": MAIN_URI, "range": make_range(0, 0, 6, 0)},
            "fromRanges": [make_range(5, 0, 5, 5)],
        }]
        provider.responses["outgoing_calls"] = [{
            "to": {"name": "shout", "kind": 12, "uri": UTIL_URI, "range": make_range(0, 0, 1, 23)},
            "fromRanges": [make_range(3, 16, 3, 21)],
        }]

        result = await handlers.get_call_hierarchy(_request(2, 5))

        assert result["item"] == {
            "name": "greet", "kind": 12, "detail": "main", "uri": MAIN_URI, "range": make_range(2, 0, 3, 27),
        }
        assert result["incomingCalls"][0]["from"]["name"] == "<module>"
        assert result["incomingCalls"][0]["fromRanges"] == [make_range(5, 0, 5, 5)]
        assert result["outgoingCalls"][0]["to"]["uri"] == UTIL_URI
        assert result["outgoingCalls"][0]["fromRanges"] == [make_range(3, 16, 3, 21)]

    @pytest.mark.asyncio
    async def test_no_candidate_gives_no_result(self, handlers, provider):
        provider.responses["prepare_call_hierarchy"] = []
        provider.responses["prepare_type_hierarchy"] = None
        assert await handlers.get_call_hierarchy(_request(0, 0)) is None
        assert await handlers.get_type_hierarchy(_request(0, 0)) is None
        assert provider.called("incoming_calls") == provider.called("supertypes") == 0

    @pytest.mark.asyncio
    async def test_only_first_candidate_is_expanded(self, handlers, provider):
        second = dict(CALL_ROOT, name="other")
        provider.responses["prepare_call_hierarchy"] = [CALL_ROOT, second]
        provider.responses["incoming_calls"] = []
        provider.responses["outgoing_calls"] = []
        result = await handlers.get_call_hierarchy(_request(2, 5))
        assert result["item"]["name"] == "greet"
        assert provider.calls[-1][1] is CALL_ROOT

    @pytest.mark.asyncio
    async def test_type_hierarchy_sides_run_concurrently(self, handlers, provider):
        subtypes_done = asyncio.Event()
        finished = []

        async def supertypes(item):
            # Completes only after subtypes has finished: deadlocks if run sequentially
            await subtypes_done.wait()
            finished.append("supertypes")
            return [{"name": "Base", "kind": 5, "uri": UTIL_URI, "range": make_range(0, 0, 1, 0)}]

        async def subtypes(item):
            await asyncio.sleep(0)
            finished.append("subtypes")
            subtypes_done.set()
            return [{"name": "Leaf", "kind": 5, "detail": "leaf.py", "uri": MAIN_URI, "range": make_range(8, 0, 9, 0)}]

        provider.responses["prepare_type_hierarchy"] = [dict(CALL_ROOT, name="Mid", kind=5)]
        provider.responses["supertypes"] = supertypes
        provider.responses["subtypes"] = subtypes

        result = await asyncio.wait_for(handlers.get_type_hierarchy(_request(2, 5)), timeout=2)

        assert finished == ["subtypes", "supertypes"]
        assert provider.called("supertypes") == provider.called("subtypes") == 1
        assert result["item"]["name"] == "Mid"
        assert [t["name"] for t in result["supertypes"]] == ["Base"]
        assert result["subtypes"] == [{
            "name": "Leaf", "kind": 5, "detail": "leaf.py", "uri": MAIN_URI, "range": make_range(8, 0, 9, 0),
        }]

    @pytest.mark.asyncio
    async def test_call_hierarchy_empty_sides(self, handlers, provider):
        provider.responses["prepare_call_hierarchy"] = [CALL_ROOT]
        provider.responses["incoming_calls"] = None
        provider.responses["outgoing_calls"] = []
        result = await handlers.get_call_hierarchy(_request(2, 5))
        assert result["incomingCalls"] == [] and result["outgoingCalls"] == []
