#!/usr/bin/env python3
"""
Code Intel - Document store and preview resolver

The document store opens a document by URI and reads its lines. The default
store reads file:// URIs straight from disk; anything else is reported as
missing.
"""

import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

# LSP counts only these as line breaks; str.splitlines also splits on \f, \x85, \u2028...
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


# Extension -> LSP language ID
LANGUAGE_ID_MAP = {
    ".py": "python", ".pyi": "python",
    ".js": "javascript", ".jsx": "javascriptreact",
    ".ts": "typescript", ".tsx": "typescriptreact",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "c", ".h": "c",
    ".cpp": "cpp", ".cc": "cpp", ".cxx": "cpp", ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".lua": "lua",
    ".sh": "shellscript",
    ".json": "json",
    ".yaml": "yaml", ".yml": "yaml",
    ".md": "markdown",
}


def detect_language_id(path: str) -> str:
    ext = os.path.splitext(path)[1].lower()
    return LANGUAGE_ID_MAP.get(ext, "plaintext")


def uri_to_path(uri: str) -> str:
    """Convert a file:// URI to a local path; other URIs are returned as-is."""
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return uri
    path = unquote(parsed.path)
    # file:///C:/x -> C:/x
    if os.name == "nt" and len(path) > 2 and path[0] == "/" and path[2] == ":":
        path = path[1:]
    return path


def path_to_uri(path: str) -> str:
    return Path(os.path.abspath(path)).as_uri()


@dataclass(frozen=True)
class TextDocument:
    """An opened document: its URI, language and lines."""
    uri: str
    language_id: str
    text: str

    @property
    def lines(self) -> list[str]:
        lines = _LINE_BREAK.split(self.text)
        if lines[-1] == "":
            lines.pop()
        return lines

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def line_at(self, line: int) -> str:
        lines = self.lines
        if line < 0 or line >= len(lines):
            raise IndexError(f"Line {line} out of range for {self.uri} ({len(lines)} lines)")
        return lines[line]


class DocumentStore(ABC):
    """Storage collaborator: existence checks and document reads."""

    @abstractmethod
    async def exists(self, uri: str) -> bool:
        ...

    @abstractmethod
    async def open(self, uri: str) -> TextDocument:
        ...


class FileSystemDocumentStore(DocumentStore):
    """Serves file:// URIs from the local filesystem."""

    async def exists(self, uri: str) -> bool:
        if urlparse(uri).scheme != "file":
            return False
        return Path(uri_to_path(uri)).is_file()

    async def open(self, uri: str) -> TextDocument:
        if urlparse(uri).scheme != "file":
            raise FileNotFoundError(f"Unsupported document URI: {uri}")
        path = uri_to_path(uri)
        text = Path(path).read_text(encoding="utf-8", errors="replace")
        return TextDocument(uri=uri, language_id=detect_language_id(path), text=text)


async def get_preview(store: DocumentStore, uri: str, line: int | None) -> str | None:
    """Trimmed text of one line, or None if the document can't be read."""
    if line is None:
        return None
    try:
        document = await store.open(uri)
        return document.line_at(line).strip()
    except Exception as e:
        logger.warning("Failed to get preview for %s:%s: %s", uri, line, e)
        return None
