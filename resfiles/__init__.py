"""Resource entry extractors and serializers used by the backup engine."""
from __future__ import annotations

from .base import EntryCodec, ResourceEntry, ResourceFormatError
from .registry import (
    extract_entries,
    format_hint_for,
    get_codec,
    register_codec,
    serialize_entries,
    supported_formats,
)

__all__ = [
    "EntryCodec",
    "ResourceEntry",
    "ResourceFormatError",
    "extract_entries",
    "format_hint_for",
    "get_codec",
    "register_codec",
    "serialize_entries",
    "supported_formats",
]
