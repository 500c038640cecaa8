"""Common dataclasses shared across backup modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

MANIFEST_FORMAT = 1


@dataclass(frozen=True, slots=True)
class BackupVersion:
    """One immutable snapshot record of a tracked file."""

    version: int
    timestamp: datetime
    operation: str
    hash: str
    size_bytes: int
    file: str
    key_count: Optional[int] = None
    changed_keys: int = 0
    changed_key_names: Tuple[str, ...] = ()

    def to_json(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "timestamp": self.timestamp.isoformat(),
            "operation": self.operation,
            "hash": self.hash,
            "size_bytes": self.size_bytes,
            "file": self.file,
            "key_count": self.key_count,
            "changed_keys": self.changed_keys,
            "changed_key_names": list(self.changed_key_names),
        }

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "BackupVersion":
        timestamp = datetime.fromisoformat(str(payload["timestamp"]))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        key_count = payload.get("key_count")
        return cls(
            version=int(payload["version"]),
            timestamp=timestamp,
            operation=str(payload.get("operation") or ""),
            hash=str(payload["hash"]),
            size_bytes=int(payload["size_bytes"]),
            file=str(payload["file"]),
            key_count=int(key_count) if key_count is not None else None,
            changed_keys=int(payload.get("changed_keys") or 0),
            changed_key_names=tuple(str(name) for name in payload.get("changed_key_names") or ()),
        )


@dataclass(slots=True)
class BackupManifest:
    file_name: str
    backups: List[BackupVersion] = field(default_factory=list)

    def latest(self) -> Optional[BackupVersion]:
        if not self.backups:
            return None
        return max(self.backups, key=lambda item: item.version)

    def get(self, version: int) -> Optional[BackupVersion]:
        for item in self.backups:
            if item.version == version:
                return item
        return None

    def next_version(self) -> int:
        latest = self.latest()
        return latest.version + 1 if latest else 1

    def newest_first(self) -> List[BackupVersion]:
        return sorted(self.backups, key=lambda item: item.version, reverse=True)


class ChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class ChangeRecord:
    key: str
    change_type: ChangeType
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    old_comment: Optional[str] = None
    new_comment: Optional[str] = None


@dataclass(slots=True)
class DiffStatistics:
    total_keys: int = 0
    added: int = 0
    modified: int = 0
    deleted: int = 0
    unchanged: int = 0

    @property
    def total_changes(self) -> int:
        return self.added + self.modified + self.deleted


@dataclass(slots=True)
class DiffResult:
    changes: List[ChangeRecord]
    include_unchanged: bool
    statistics: DiffStatistics
    version_a: Optional[BackupVersion] = None
    version_b: Optional[BackupVersion] = None

    def by_key(self) -> Dict[str, ChangeRecord]:
        return {change.key: change for change in self.changes}


@dataclass(slots=True)
class RetentionSummary:
    removed: List[int]
    kept: List[int]
    freed_bytes: int
    failed: Dict[int, str] = field(default_factory=dict)
    dry_run: bool = False
    error: Optional[str] = None


@dataclass(slots=True)
class RestoreResult:
    file_name: str
    version: int
    target: Path
    restored_keys: List[str] = field(default_factory=list)
    skipped_keys: List[str] = field(default_factory=list)
    pre_restore_backup: Optional[BackupVersion] = None


@dataclass(slots=True)
class RestoreValidation:
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


__all__ = [
    "MANIFEST_FORMAT",
    "BackupManifest",
    "BackupVersion",
    "ChangeRecord",
    "ChangeType",
    "DiffResult",
    "DiffStatistics",
    "RestoreResult",
    "RestoreValidation",
    "RetentionSummary",
]
