"""
Code Intel - code intelligence tools over language servers.

Exposes find-usages, definitions, hover, completions, rename, code actions,
code lens, semantic tokens and call/type hierarchies as uniformly shaped
tool calls, served by a shared daemon and an MCP bridge.
"""

from .documents import DocumentStore, FileSystemDocumentStore, TextDocument
from .positions import Position, Range
from .provider import LanguageServerProvider, Provider
from .results import SoftResult, ToolError, UnknownToolError
from .tools import TOOLS, TOOL_NAMES, ToolRunner

__version__ = "0.1.0"

__all__ = [
    "DocumentStore",
    "FileSystemDocumentStore",
    "TextDocument",
    "Position",
    "Range",
    "Provider",
    "LanguageServerProvider",
    "SoftResult",
    "ToolError",
    "UnknownToolError",
    "TOOLS",
    "TOOL_NAMES",
    "ToolRunner",
]
