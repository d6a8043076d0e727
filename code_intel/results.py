#!/usr/bin/env python3
"""
Code Intel - Tool results and errors

Tool calls end in one of three ways:
  * a normalized payload (lists/dicts ready for JSON),
  * a SoftResult envelope, delivered normally but flagged with isError,
  * a raised ToolError, which aborts the call.
"""

from dataclasses import dataclass


class ToolError(Exception):
    """Hard failure of a tool call; no substitute result exists."""


class UnknownToolError(ToolError):
    """The requested tool is not part of the published catalog."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


@dataclass(frozen=True)
class SoftResult:
    """Informational or soft-failure envelope returned instead of a payload."""
    text: str
    is_error: bool = False

    def to_dict(self) -> dict:
        return {
            "content": [{"type": "text", "text": self.text}],
            "isError": self.is_error,
        }


def soft_error(text: str) -> SoftResult:
    return SoftResult(text, is_error=True)


def soft_info(text: str) -> SoftResult:
    return SoftResult(text, is_error=False)
