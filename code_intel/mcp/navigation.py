#!/usr/bin/env python3
"""Navigation tools: usages, definition, implementations, hover, symbols."""

from ._core import mcp, run_tool, document_args


@mcp.tool()
async def find_usages(uri: str, line: int, character: int) -> str:
    """
    Find all references to a symbol, with the source line of each.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line number (0-indexed)
        character: Column (0-indexed, UTF-16 units)
    """
    return await run_tool("find_usages", document_args(uri, line, character))


@mcp.tool()
async def go_to_definition(uri: str, line: int, character: int) -> str:
    """
    Get the definition location of a symbol.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line number (0-indexed)
        character: Column (0-indexed, UTF-16 units)
    """
    return await run_tool("go_to_definition", document_args(uri, line, character))


@mcp.tool()
async def find_implementations(uri: str, line: int, character: int) -> str:
    """
    Find implementations of an interface or abstract method.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line number (0-indexed)
        character: Column (0-indexed, UTF-16 units)
    """
    return await run_tool("find_implementations", document_args(uri, line, character))


@mcp.tool()
async def get_hover_info(uri: str, line: int, character: int) -> str:
    """
    Get type information and documentation for a symbol.

    Args:
        uri: Document URI (file:///absolute/path)
        line: Line number (0-indexed)
        character: Column (0-indexed, UTF-16 units)
    """
    return await run_tool("get_hover_info", document_args(uri, line, character))


@mcp.tool()
async def get_document_symbols(uri: str) -> str:
    """
    Get the symbol outline of a document.

    Args:
        uri: Document URI (file:///absolute/path)
    """
    return await run_tool("get_document_symbols", document_args(uri))
