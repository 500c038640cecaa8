"""Lookup of entry codecs by format hint."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional, Union

from .base import Entries, EntryCodec, ResourceFormatError
from .jsonfmt import JsonCodec
from .resx import ResxCodec

_CODECS: Dict[str, EntryCodec] = {}


def _normalize(format_hint: str) -> str:
    hint = format_hint.strip().lower()
    if not hint.startswith("."):
        hint = f".{hint}"
    return hint


def register_codec(codec: EntryCodec, *, format_hint: Optional[str] = None) -> None:
    _CODECS[_normalize(format_hint or codec.format_hint)] = codec


def get_codec(format_hint: str) -> EntryCodec:
    codec = _CODECS.get(_normalize(format_hint))
    if codec is None:
        raise ResourceFormatError(f"no entry codec registered for {format_hint!r}")
    return codec


def supported_formats() -> List[str]:
    return sorted(_CODECS)


def format_hint_for(path: Union[str, os.PathLike[str]]) -> str:
    """Return the format hint (lower-case extension) for ``path``."""

    suffix = Path(path).suffix
    if not suffix:
        raise ResourceFormatError(f"cannot infer resource format for {path}")
    return suffix.lower()


def extract_entries(text: str, format_hint: str) -> Entries:
    return get_codec(format_hint).extract(text)


def serialize_entries(entries: Entries, format_hint: str, *, template: Optional[str] = None) -> str:
    return get_codec(format_hint).serialize(entries, template=template)


register_codec(ResxCodec())
register_codec(JsonCodec())


__all__ = [
    "extract_entries",
    "format_hint_for",
    "get_codec",
    "register_codec",
    "serialize_entries",
    "supported_formats",
]
