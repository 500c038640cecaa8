"""Decode snapshot bytes and run them through the entry extractor."""
from __future__ import annotations

import codecs
import hashlib
from pathlib import Path
from typing import Optional

from resfiles import ResourceFormatError, extract_entries, format_hint_for
from resfiles.base import Entries

from .errors import BackupIOError, BackupNotFoundError, BackupSerializationError


def sha256_bytes(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def read_live_file(path: Path, *, file_name: Optional[str] = None, operation: str) -> bytes:
    """Read a live resource file from disk, never from a cache."""

    try:
        with Path(path).open("rb") as handle:
            return handle.read()
    except (FileNotFoundError, IsADirectoryError) as exc:
        raise BackupNotFoundError(
            f"file not found: {path}", file_name=file_name or Path(path).name, operation=operation
        ) from exc
    except OSError as exc:
        raise BackupIOError(
            f"cannot read {path}: {exc}", file_name=file_name or Path(path).name, operation=operation
        ) from exc


_UTF16_BOMS = (codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)


def decode_text(content: bytes) -> str:
    # utf-8-sig drops the BOM that resx editors like to write; Visual Studio
    # may also save resx as UTF-16 with a BOM.
    if content.startswith(_UTF16_BOMS):
        return content.decode("utf-16")
    return content.decode("utf-8-sig")


def encode_like(text: str, original: bytes) -> bytes:
    """Encode ``text`` with the encoding and BOM ``original`` was stored with."""

    if original.startswith(codecs.BOM_UTF16_LE):
        return codecs.BOM_UTF16_LE + text.encode("utf-16-le")
    if original.startswith(codecs.BOM_UTF16_BE):
        return codecs.BOM_UTF16_BE + text.encode("utf-16-be")
    if original.startswith(codecs.BOM_UTF8):
        return codecs.BOM_UTF8 + text.encode("utf-8")
    return text.encode("utf-8")


def hint_for(path: Path | str, *, file_name: Optional[str] = None, operation: str) -> str:
    try:
        return format_hint_for(path)
    except ResourceFormatError as exc:
        raise BackupSerializationError(str(exc), file_name=file_name, operation=operation) from exc


def extract(
    content: bytes,
    format_hint: str,
    *,
    file_name: Optional[str] = None,
    version: Optional[int] = None,
    operation: str,
) -> Entries:
    try:
        return extract_entries(decode_text(content), format_hint)
    except (ResourceFormatError, UnicodeDecodeError) as exc:
        raise BackupSerializationError(
            f"cannot extract entries ({format_hint}): {exc}",
            file_name=file_name,
            version=version,
            operation=operation,
        ) from exc


__all__ = ["decode_text", "encode_like", "extract", "hint_for", "read_live_file", "sha256_bytes"]
