#!/usr/bin/env python3
"""Code intelligence tools: completions, edits, code lens, tokens, hierarchies."""

from ._core import mcp, run_tool, document_args


@mcp.tool()
async def get_completions(uri: str, line: int, character: int, triggerCharacter: str = None) -> str:
    """
    Get code completion suggestions at a position.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line number (0-indexed)
        character: Column (0-indexed, UTF-16 units)
        triggerCharacter: Character that triggered completion, e.g. "." (optional)
    """
    args = document_args(uri, line, character)
    if triggerCharacter:
        args["triggerCharacter"] = triggerCharacter
    return await run_tool("get_completions", args)


@mcp.tool()
async def get_signature_help(uri: str, line: int, character: int) -> str:
    """
    Get signature help for a function call.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line number (0-indexed)
        character: Column (0-indexed, UTF-16 units)
    """
    return await run_tool("get_signature_help", document_args(uri, line, character))


@mcp.tool()
async def get_rename_locations(uri: str, line: int, character: int, newName: str = None) -> str:
    """
    Get the edits that would rename a symbol across files. Nothing is applied.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line number (0-indexed)
        character: Column (0-indexed, UTF-16 units)
        newName: New name for the symbol (default: "newName")
    """
    args = document_args(uri, line, character)
    if newName:
        args["newName"] = newName
    return await run_tool("get_rename_locations", args)


@mcp.tool()
async def get_code_actions(uri: str, line: int = None, character: int = None,
                           start_line: int = None, start_character: int = None,
                           end_line: int = None, end_character: int = None) -> str:
    """
    Get available quick fixes and refactorings at a position or selection.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line number (0-indexed), when querying a single position
        character: Column (0-indexed, UTF-16 units)
        start_line: Selection start line (optional; replaces line/character)
        start_character: Selection start column
        end_line: Selection end line
        end_character: Selection end column
    """
    args = document_args(uri, line, character)
    selection = (start_line, start_character, end_line, end_character)
    if all(value is not None for value in selection):
        args["range"] = {
            "start": {"line": start_line, "character": start_character},
            "end": {"line": end_line, "character": end_character},
        }
    return await run_tool("get_code_actions", args)


@mcp.tool()
async def get_code_lens(uri: str) -> str:
    """
    Get code lenses for a document.

    Args:
        uri: Document URI (file:///absolute/path)
    """
    return await run_tool("get_code_lens", document_args(uri))


@mcp.tool()
async def execute_code_lens(uri: str, line: int, character: int, command: str) -> str:
    """
    Execute the command of the code lens that starts at a position.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line where the lens starts (0-indexed)
        character: Column where the lens starts (0-indexed)
        command: Command id of the lens, as listed by get_code_lens
    """
    args = document_args(uri, line, character)
    args["command"] = {"command": command}
    return await run_tool("execute_code_lens", args)


@mcp.tool()
async def get_semantic_tokens(uri: str) -> str:
    """
    Get semantic tokens for a document (falls back to document symbols).

    Args:
        uri: Document URI (file:///absolute/path)
    """
    return await run_tool("get_semantic_tokens", document_args(uri))


@mcp.tool()
async def get_call_hierarchy(uri: str, line: int, character: int) -> str:
    """
    Get incoming and outgoing calls for a function.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line number (0-indexed)
        character: Column (0-indexed, UTF-16 units)
    """
    return await run_tool("get_call_hierarchy", document_args(uri, line, character))


@mcp.tool()
async def get_type_hierarchy(uri: str, line: int, character: int) -> str:
    """
    Get supertypes and subtypes of a class or interface.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line number (0-indexed)
        character: Column (0-indexed, UTF-16 units)
    """
    return await run_tool("get_type_hierarchy", document_args(uri, line, character))
