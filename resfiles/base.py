"""Shared types for resource entry codecs."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol


class ResourceFormatError(ValueError):
    """Raised when resource content cannot be parsed or emitted."""


@dataclass(frozen=True, slots=True)
class ResourceEntry:
    value: str = ""
    comment: Optional[str] = None
    # JSON literal of a non-string leaf (number, boolean, null, array) so a
    # rewrite can emit the original type. ``value`` holds the same text.
    raw: Optional[str] = field(default=None, compare=False)


# Insertion order is the order of the entries in the file.
Entries = Dict[str, ResourceEntry]


class EntryCodec(Protocol):
    """Reads and writes the key/value entries of one resource file format."""

    format_hint: str

    def extract(self, text: str) -> Entries:
        ...

    def serialize(self, entries: Entries, *, template: Optional[str] = None) -> str:
        ...


__all__ = ["Entries", "EntryCodec", "ResourceEntry", "ResourceFormatError"]
