#!/usr/bin/env python3
"""
Code Intel - Position/Range Codec

Converts wire-format line/character pairs into provider-native Position and
Range values and back. Provider responses arrive as plain LSP dicts; every
range the bridge emits goes through range_to_wire so the output shape is the
same no matter which provider field it came from.
"""

from dataclasses import dataclass
from typing import Any


class InvalidPositionError(ValueError):
    """Raised when a wire position is not a pair of non-negative integers."""


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line/character position (UTF-16 code units)."""
    line: int
    character: int

    def to_dict(self) -> dict:
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True)
class Range:
    """Span between two positions, start <= end."""
    start: Position
    end: Position

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Range end {self.end} precedes start {self.start}")

    def to_dict(self) -> dict:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}


def _coerce_index(value: Any, field: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPositionError(f"{field} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidPositionError(f"{field} must be non-negative, got {value}")
    return value


def create_position(line: Any, character: Any) -> Position:
    """Build a provider position from wire line/character values."""
    return Position(_coerce_index(line, "line"), _coerce_index(character, "character"))


def position_from_wire(data: dict | None) -> Position | None:
    """Decode an optional {line, character} dict."""
    if data is None:
        return None
    if not isinstance(data, dict):
        raise InvalidPositionError(f"position must be an object, got {data!r}")
    return create_position(data.get("line"), data.get("character"))


def position_to_wire(position: Position | dict) -> dict:
    if isinstance(position, Position):
        return position.to_dict()
    return {"line": position["line"], "character": position["character"]}


def range_from_wire(data: dict) -> Range:
    """Decode a provider range dict into a Range."""
    start = data["start"]
    end = data["end"]
    return Range(
        Position(start["line"], start["character"]),
        Position(end["line"], end["character"]),
    )


def range_to_wire(range_: Range | dict | None) -> dict | None:
    """Normalize a Range or provider range dict to {start, end}."""
    if range_ is None:
        return None
    if isinstance(range_, Range):
        return range_.to_dict()
    return {
        "start": position_to_wire(range_["start"]),
        "end": position_to_wire(range_["end"]),
    }


def point_range(position: Position) -> Range:
    """Zero-width range at a position."""
    return Range(position, position)
