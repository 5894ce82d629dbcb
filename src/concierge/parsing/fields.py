"""Deterministic extraction of structured fields from free-form issue text."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from typing import Dict, Optional, Tuple

_HEADING_PATTERN = re.compile(r"^#+\s+(.+)$")
_KEY_VALUE_PATTERN = re.compile(r"^\s*([^:=]+)\s*[:=]\s*(.+)$")
_NON_WORD_PATTERN = re.compile(r"[^\w\s]")
_WHITESPACE_PATTERN = re.compile(r"\s+")


class FieldMap(MutableMapping[str, str]):
    """Mapping of field names to values with case-insensitive keys.

    The spelling of the most recent assignment is kept for display.
    """

    def __init__(self, initial: Mapping[str, str] | Iterable[Tuple[str, str]] | None = None) -> None:
        self._entries: Dict[str, Tuple[str, str]] = {}
        if initial is not None:
            self.update(initial)

    def __getitem__(self, key: str) -> str:
        return self._entries[key.lower()][1]

    def __setitem__(self, key: str, value: str) -> None:
        self._entries[key.lower()] = (key, value)

    def __delitem__(self, key: str) -> None:
        del self._entries[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._entries

    def __repr__(self) -> str:
        return f"FieldMap({dict(self.items())!r})"

    def lookup(self, *names: str) -> Optional[Tuple[str, str]]:
        """Return ``(name, value)`` for the first of ``names`` that is present."""
        for name in names:
            entry = self._entries.get(name.lower())
            if entry is not None:
                return entry
        return None

    def to_dict(self) -> Dict[str, str]:
        return dict(self.items())


def normalize_field_name(raw: str) -> str:
    """Lowercase ``raw`` and join its words with underscores."""
    cleaned = _NON_WORD_PATTERN.sub("", raw)
    cleaned = _WHITESPACE_PATTERN.sub("_", cleaned.strip())
    return cleaned.lower()


def parse_sections(text: str | None) -> FieldMap:
    """Collect the text under each markdown heading as a field value."""
    fields = FieldMap()
    if not text:
        return fields

    current: Optional[str] = None
    buffer: list[str] = []

    def _flush() -> None:
        if current is None:
            return
        value = "\n".join(buffer).strip()
        if value:
            fields[current] = value

    for line in text.splitlines():
        match = _HEADING_PATTERN.match(line)
        if match:
            _flush()
            current = normalize_field_name(match.group(1).strip())
            buffer = []
            continue
        if current is not None:
            buffer.append(line)
    _flush()
    return fields


def extract_key_value_lines(text: str | None) -> FieldMap:
    """Collect ``key: value`` and ``key = value`` lines."""
    fields = FieldMap()
    if not text:
        return fields
    for line in text.splitlines():
        match = _KEY_VALUE_PATTERN.match(line)
        if not match:
            continue
        key = normalize_field_name(match.group(1))
        value = match.group(2).strip()
        if key and value:
            fields[key] = value
    return fields


def merge_fields(*sources: Mapping[str, str] | None) -> FieldMap:
    """Merge field maps left to right; later sources override earlier ones."""
    merged = FieldMap()
    for source in sources:
        if not source:
            continue
        for key, value in source.items():
            merged[key] = value
    return merged


def parse_issue_fields(text: str | None) -> FieldMap:
    """Headed sections first, then ``key: value`` lines layered on top."""
    return merge_fields(parse_sections(text), extract_key_value_lines(text))


__all__ = [
    "FieldMap",
    "extract_key_value_lines",
    "merge_fields",
    "normalize_field_name",
    "parse_issue_fields",
    "parse_sections",
]
