"""Key-level comparison of resource snapshots."""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from core.paths import tracked_name
from resfiles.base import Entries

from .content import extract, hint_for, read_live_file
from .manager import VersionManager
from .types import BackupVersion, ChangeRecord, ChangeType, DiffResult, DiffStatistics


def diff_entries(old: Entries, new: Entries, *, include_unchanged: bool = False) -> DiffResult:
    """Classify every key of ``old`` and ``new``; records come back sorted by key."""

    changes: List[ChangeRecord] = []
    stats = DiffStatistics()
    for key in sorted(set(old) | set(new)):
        before = old.get(key)
        after = new.get(key)
        stats.total_keys += 1
        if before is None and after is not None:
            stats.added += 1
            changes.append(
                ChangeRecord(key=key, change_type=ChangeType.ADDED, new_value=after.value, new_comment=after.comment)
            )
        elif after is None and before is not None:
            stats.deleted += 1
            changes.append(
                ChangeRecord(key=key, change_type=ChangeType.DELETED, old_value=before.value, old_comment=before.comment)
            )
        elif before is not None and after is not None:
            if before.value != after.value:
                stats.modified += 1
                change_type = ChangeType.MODIFIED
            else:
                stats.unchanged += 1
                if not include_unchanged:
                    continue
                change_type = ChangeType.UNCHANGED
            changes.append(
                ChangeRecord(
                    key=key,
                    change_type=change_type,
                    old_value=before.value,
                    new_value=after.value,
                    old_comment=before.comment,
                    new_comment=after.comment,
                )
            )
    return DiffResult(changes=changes, include_unchanged=include_unchanged, statistics=stats)


class DiffEngine:
    """Compare snapshots with each other or with the live file. Read-only."""

    def __init__(self, manager: Optional[VersionManager] = None) -> None:
        self._manager = manager or VersionManager()

    def compare(
        self,
        old_content: bytes,
        new_content: bytes,
        include_unchanged: bool = False,
        *,
        format_hint: str,
    ) -> DiffResult:
        old = extract(old_content, format_hint, operation="compare")
        new = extract(new_content, format_hint, operation="compare")
        return diff_entries(old, new, include_unchanged=include_unchanged)

    def compare_versions(
        self,
        file_name: str,
        version_a: int,
        version_b: int,
        base_path: Path | str,
        include_unchanged: bool = False,
    ) -> DiffResult:
        name = tracked_name(file_name)
        record_a = self._manager.get_backup(name, version_a, base_path)
        record_b = self._manager.get_backup(name, version_b, base_path)
        old = self._snapshot_entries(name, record_a, base_path)
        new = self._snapshot_entries(name, record_b, base_path)
        result = diff_entries(old, new, include_unchanged=include_unchanged)
        result.version_a = record_a
        result.version_b = record_b
        return result

    def compare_with_current(
        self,
        file_name: str,
        version: int,
        live_file_path: Path | str,
        base_path: Path | str,
        include_unchanged: bool = False,
    ) -> DiffResult:
        """Diff with the snapshot as the old side and the live file as the new side."""

        name = tracked_name(file_name)
        record = self._manager.get_backup(name, version, base_path)
        old = self._snapshot_entries(name, record, base_path)
        new = self._live_entries(name, Path(live_file_path))
        result = diff_entries(old, new, include_unchanged=include_unchanged)
        result.version_a = record
        return result

    def preview_restore(
        self,
        file_name: str,
        version: int,
        live_file_path: Path | str,
        base_path: Path | str,
        include_unchanged: bool = False,
    ) -> DiffResult:
        """Diff oriented as live file -> snapshot: what a restore would change."""

        name = tracked_name(file_name)
        record = self._manager.get_backup(name, version, base_path)
        new = self._snapshot_entries(name, record, base_path)
        old = self._live_entries(name, Path(live_file_path))
        result = diff_entries(old, new, include_unchanged=include_unchanged)
        result.version_b = record
        return result

    # ------------------------------------------------------------------
    def _snapshot_entries(self, file_name: str, record: BackupVersion, base_path: Path | str) -> Entries:
        content = self._manager.read_backup(file_name, record.version, base_path)
        hint = hint_for(record.file, file_name=file_name, operation="diff")
        return extract(content, hint, file_name=file_name, version=record.version, operation="diff")

    def _live_entries(self, file_name: str, path: Path) -> Entries:
        content = read_live_file(path, file_name=file_name, operation="diff")
        hint = hint_for(path, file_name=file_name, operation="diff")
        return extract(content, hint, file_name=file_name, operation="diff")


__all__ = ["DiffEngine", "diff_entries"]
