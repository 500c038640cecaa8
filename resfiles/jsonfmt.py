"""Codec for JSON resource files (flat or nested objects)."""
from __future__ import annotations

import json
from typing import Any, Dict, Iterator, Optional, Tuple

from .base import Entries, ResourceEntry, ResourceFormatError

_SEPARATOR = "."

Path = Tuple[str, ...]


def _load(text: str) -> Dict[str, Any]:
    if not text.strip():
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ResourceFormatError(f"invalid JSON resource: {exc}") from exc
    if not isinstance(data, dict):
        raise ResourceFormatError("JSON resource root must be an object")
    return data


def _entry(value: Any) -> ResourceEntry:
    if isinstance(value, str):
        return ResourceEntry(value=value)
    literal = json.dumps(value, ensure_ascii=False)
    return ResourceEntry(value=literal, raw=literal)


def _leaf(entry: ResourceEntry) -> Any:
    if entry.raw is not None:
        return json.loads(entry.raw)
    return entry.value


def _walk(data: Dict[str, Any], prefix: Path = ()) -> Iterator[Tuple[Path, Any]]:
    # Empty objects hold no entries; they stay in the tree untouched.
    for key, value in data.items():
        path = prefix + (key,)
        if isinstance(value, dict):
            yield from _walk(value, path)
        else:
            yield path, value


def _set(tree: Dict[str, Any], path: Path, value: Any, key: str) -> None:
    node = tree
    for part in path[:-1]:
        child = node.setdefault(part, {})
        if not isinstance(child, dict):
            raise ResourceFormatError(f"key {key!r} conflicts with value at {part!r}")
        node = child
    if isinstance(node.get(path[-1]), dict):
        raise ResourceFormatError(f"key {key!r} conflicts with nested object")
    node[path[-1]] = value


def _remove(tree: Dict[str, Any], path: Path) -> None:
    node = tree
    for part in path[:-1]:
        node = node[part]
    del node[path[-1]]


class JsonCodec:
    format_hint = ".json"

    def extract(self, text: str) -> Entries:
        return {_SEPARATOR.join(path): _entry(value) for path, value in _walk(_load(text))}

    def serialize(self, entries: Entries, *, template: Optional[str] = None) -> str:
        """Render ``entries`` as JSON.

        With a ``template`` only the leaves whose entry changed are rewritten;
        every other node, empty objects included, keeps its original type and
        position. Keys missing from ``entries`` are removed. New keys nest on
        the separator when the template is nested and stay flat otherwise.
        JSON has no comment slot, so comments are dropped.
        """

        tree = _load(template) if template else {}
        existing: Dict[str, Tuple[Path, Any]] = {
            _SEPARATOR.join(path): (path, value) for path, value in _walk(tree)
        }
        nested = any(len(path) > 1 for path, _ in existing.values()) or any(
            isinstance(value, dict) for value in tree.values()
        )

        for key, (path, _) in existing.items():
            if key not in entries:
                _remove(tree, path)

        for key, entry in entries.items():
            if key in existing:
                path, current = existing[key]
                before = _entry(current)
                if (before.value, before.raw) == (entry.value, entry.raw):
                    continue
            else:
                path = tuple(key.split(_SEPARATOR)) if nested else (key,)
            _set(tree, path, _leaf(entry), key)
        return json.dumps(tree, ensure_ascii=False, indent=2) + "\n"


__all__ = ["JsonCodec"]
