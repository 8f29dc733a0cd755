"""
Field Path Resolver
====================

Addresses values inside an arbitrary JSON document with a small
JSONPath-like grammar::

    path     := "$" segment*
    segment  := "." key | "[" index "]" | "[" "]" | "[" "*" "]"
    key      := one or more characters other than ".", "[" and "]"
    index    := one or more decimal digits

Resolution never raises for absent data: a segment that does not match
(missing key, index out of range, wrong container shape) simply yields
no values. A key segment applied to an array fans out across the
array's object elements, so ``$.children.child_dob`` returns the date of
birth of every child.

Usage:
    from lexintake.rules.paths import resolve, is_missing
    resolve({"a": [{"b": 1}, {"b": 2}]}, "$.a.b")   # [1, 2]
    resolve({"a": [1, 2]}, "$.a[5]")                # []
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Union

from lexintake.errors import PathSyntaxError


# ── Segments ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class Key:
    """Object member access (``.name``)."""
    name: str


@dataclass(frozen=True)
class Index:
    """Array element access (``[n]``)."""
    position: int


@dataclass(frozen=True)
class Wildcard:
    """Every element of an array (``[]`` or ``[*]``)."""


Segment = Union[Key, Index, Wildcard]

_KEY_STOP = ".[]"


class _PathParser:
    """Recursive-descent parser producing a segment tuple."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def _error(self, message: str) -> PathSyntaxError:
        return PathSyntaxError(f"{message} at position {self.pos} in path {self.text!r}")

    def _peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def parse(self) -> tuple[Segment, ...]:
        if self._peek() != "$":
            raise self._error("Path must start with '$'")
        self.pos += 1
        return tuple(self._segments())

    def _segments(self) -> list[Segment]:
        segments: list[Segment] = []
        while self.pos < len(self.text):
            char = self._peek()
            if char == ".":
                self.pos += 1
                segments.append(self._key())
            elif char == "[":
                self.pos += 1
                segments.append(self._bracket())
            else:
                raise self._error(f"Unexpected character {char!r}")
        return segments

    def _key(self) -> Key:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in _KEY_STOP:
            self.pos += 1
        if self.pos == start:
            raise self._error("Empty key")
        return Key(self.text[start:self.pos])

    def _bracket(self) -> Segment:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] != "]":
            self.pos += 1
        if self.pos >= len(self.text):
            raise self._error("Unclosed '['")
        body = self.text[start:self.pos]
        self.pos += 1
        if body in ("", "*"):
            return Wildcard()
        if not body.isdigit() or not body.isascii():
            raise self._error(f"Invalid array index {body!r}")
        return Index(int(body))


@lru_cache(maxsize=1024)
def parse_path(path: str) -> tuple[Segment, ...]:
    """
    Parse a field path into its segments.

    Raises:
        PathSyntaxError: If the path does not follow the grammar above.
    """
    if not isinstance(path, str):
        raise PathSyntaxError(f"Path must be a string, got {type(path).__name__}")
    return _PathParser(path).parse()


def is_valid_path(path: str) -> bool:
    """True if ``path`` parses."""
    try:
        parse_path(path)
    except PathSyntaxError:
        return False
    return True


# ── Resolution ─────────────────────────────────────────────────────

def _step(values: list[Any], segment: Segment) -> list[Any]:
    out: list[Any] = []
    for value in values:
        if isinstance(segment, Key):
            if isinstance(value, dict):
                if segment.name in value:
                    out.append(value[segment.name])
            elif isinstance(value, list):
                # Fan-out over repeatable sections
                for element in value:
                    if isinstance(element, dict) and segment.name in element:
                        out.append(element[segment.name])
        elif isinstance(segment, Index):
            if isinstance(value, list) and segment.position < len(value):
                out.append(value[segment.position])
        elif isinstance(value, list):
            out.extend(value)
    return out


def resolve(payload: Any, path: str) -> list[Any]:
    """
    Resolve a field path against a JSON value.

    Args:
        payload: Any JSON-compatible value (usually a dict).
        path: Field path such as ``$.children[0].child_dob``.

    Returns:
        All matched values, in document order. Empty when nothing matches.
    """
    values = [payload]
    for segment in parse_path(path):
        values = _step(values, segment)
        if not values:
            break
    return values


# ── Emptiness ──────────────────────────────────────────────────────

def is_missing(value: Any) -> bool:
    """
    Recursive emptiness test shared by rule conditions and strategies.

    Missing: None, a blank string, an empty list or dict, a list whose
    every element is missing, a dict whose every value is missing.
    Numbers and booleans (including 0 and False) are present.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, list):
        return all(is_missing(element) for element in value)
    if isinstance(value, dict):
        return all(is_missing(element) for element in value.values())
    return False


def present_values(payload: Any, path: str) -> list[Any]:
    """Resolved values with missing ones filtered out."""
    return [value for value in resolve(payload, path) if not is_missing(value)]


def collapse(values: list[Any]) -> Any:
    """Evidence form of a resolved list: None, the single value, or the list."""
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return values


def is_finite_number(value: Any) -> bool:
    """True for int/float values that are finite and not booleans."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)
