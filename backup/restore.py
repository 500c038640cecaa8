"""Restore resource files from stored snapshots."""
from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from core.paths import tracked_name
from resfiles import ResourceFormatError, serialize_entries
from resfiles.base import Entries

from .content import decode_text, encode_like, extract, hint_for, read_live_file
from .diff import DiffEngine
from .errors import BackupError, BackupIOError, BackupSerializationError
from .manager import VersionManager
from .types import BackupVersion, DiffResult, RestoreResult, RestoreValidation

PRE_RESTORE_OPERATION = "pre-restore"
PRE_SELECTIVE_RESTORE_OPERATION = "pre-selective-restore"


def _write_atomic(target: Path, payload: bytes, *, file_name: str, version: int) -> None:
    """Replace ``target`` with ``payload`` in one rename; never leaves a partial file."""

    tmp_name: Optional[str] = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".restore", dir=target.parent)
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        if target.exists():
            shutil.copymode(target, tmp_name)
        os.replace(tmp_name, target)
        tmp_name = None
    except OSError as exc:
        raise BackupIOError(
            f"cannot write {target}: {exc}", file_name=file_name, version=version, operation="restore"
        ) from exc
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)


def _unique_folded(keys: Iterable[str]) -> List[str]:
    """Requested keys in order, dropping repeats that differ only in case."""

    seen: Dict[str, str] = {}
    for key in keys:
        seen.setdefault(key.casefold(), key)
    return list(seen.values())


def _match_key(entries: Entries, key: str) -> Optional[str]:
    # Resource keys are case-insensitive in .NET; an exact match still wins.
    if key in entries:
        return key
    folded = key.casefold()
    for candidate in entries:
        if candidate.casefold() == folded:
            return candidate
    return None


class RestoreService:
    """Roll a live file back to a stored version, wholesale or key by key."""

    def __init__(self, manager: VersionManager, diff_engine: Optional[DiffEngine] = None) -> None:
        self._manager = manager
        self._diff = diff_engine or DiffEngine(manager)
        self._logger = manager.logger

    @property
    def manager(self) -> VersionManager:
        return self._manager

    # ------------------------------------------------------------------
    def preview_restore(
        self,
        file_name: str,
        version: int,
        target_file_path: Path | str,
        base_path: Path | str,
        include_unchanged: bool = False,
    ) -> DiffResult:
        return self._diff.preview_restore(
            file_name, version, target_file_path, base_path, include_unchanged=include_unchanged
        )

    def restore(
        self,
        file_name: str,
        version: int,
        target_file_path: Path | str,
        base_path: Path | str,
        create_backup_before_restore: bool = True,
    ) -> RestoreResult:
        """Overwrite the target with the snapshot bytes, verbatim."""

        name = tracked_name(file_name)
        target = Path(target_file_path)
        # Read before the safeguard runs: its rotation may prune this very version.
        content = self._manager.read_backup(name, version, base_path)
        pre_restore = self._safeguard(target, base_path, create_backup_before_restore)
        try:
            _write_atomic(target, content, file_name=name, version=version)
        except BackupError as exc:
            self._logger.error("restore_failed", file=name, version=version, target=str(target), error=str(exc))
            raise
        self._logger.event(
            event="restore_applied", phase="restore", ok=True, file=name, version=version, target=str(target)
        )
        return RestoreResult(file_name=name, version=version, target=target, pre_restore_backup=pre_restore)

    def restore_keys(
        self,
        file_name: str,
        version: int,
        keys: Iterable[str],
        target_file_path: Path | str,
        base_path: Path | str,
        create_backup_before_restore: bool = True,
    ) -> RestoreResult:
        """Merge the snapshot values of ``keys`` into the target file.

        Requested keys match snapshot and target keys ignoring case. Keys absent
        from the snapshot are left untouched in the target and reported in
        ``skipped_keys``. Other keys are never modified. The file keeps its
        encoding and byte order mark.
        """

        name = tracked_name(file_name)
        target = Path(target_file_path)
        record = self._manager.get_backup(name, version, base_path)
        snapshot = extract(
            self._manager.read_backup(name, version, base_path),
            hint_for(record.file, file_name=name, operation="restore_keys"),
            file_name=name,
            version=version,
            operation="restore_keys",
        )
        current_bytes = read_live_file(target, file_name=name, operation="restore_keys")
        format_hint = hint_for(target, file_name=name, operation="restore_keys")
        current = extract(current_bytes, format_hint, file_name=name, operation="restore_keys")

        merged = dict(current)
        restored: List[str] = []
        skipped: List[str] = []
        for key in _unique_folded(keys):
            source_key = _match_key(snapshot, key)
            if source_key is None:
                skipped.append(key)
                continue
            # An existing target key keeps its casing; a new one takes the snapshot's.
            target_key = _match_key(current, key) or source_key
            merged[target_key] = snapshot[source_key]
            restored.append(target_key)

        result = RestoreResult(
            file_name=name, version=version, target=target, restored_keys=restored, skipped_keys=skipped
        )
        if not restored:
            self._logger.info("restore_keys_skipped", file=name, version=version, skipped=skipped)
            return result

        try:
            text = serialize_entries(merged, format_hint, template=decode_text(current_bytes))
        except ResourceFormatError as exc:
            raise BackupSerializationError(
                f"cannot serialize merged entries for {target}: {exc}",
                file_name=name,
                version=version,
                operation="restore_keys",
            ) from exc
        result.pre_restore_backup = self._safeguard(
            target, base_path, create_backup_before_restore, operation=PRE_SELECTIVE_RESTORE_OPERATION
        )
        try:
            _write_atomic(target, encode_like(text, current_bytes), file_name=name, version=version)
        except BackupError as exc:
            self._logger.error("restore_failed", file=name, version=version, target=str(target), error=str(exc))
            raise
        self._logger.event(
            event="restore_keys_applied",
            phase="restore",
            ok=True,
            file=name,
            version=version,
            restored=restored,
            skipped=skipped,
        )
        return result

    def get_backup_keys(self, file_name: str, version: int, base_path: Path | str) -> List[str]:
        name = tracked_name(file_name)
        record = self._manager.get_backup(name, version, base_path)
        entries = extract(
            self._manager.read_backup(name, version, base_path),
            hint_for(record.file, file_name=name, operation="get_backup_keys"),
            file_name=name,
            version=version,
            operation="get_backup_keys",
        )
        return list(entries)

    def validate_restore(
        self,
        file_name: str,
        version: int,
        target_file_path: Path | str,
        base_path: Path | str,
    ) -> RestoreValidation:
        result = RestoreValidation()
        target = Path(target_file_path)
        try:
            self._manager.get_backup_file_path(file_name, version, base_path)
        except BackupError as exc:
            result.is_valid = False
            result.errors.append(str(exc))
            return result

        if not target.exists():
            result.warnings.append("Target file does not exist. A new file will be created.")
            return result
        if not os.access(target, os.W_OK):
            result.is_valid = False
            result.errors.append("Target file is not writable")
            return result

        try:
            diff = self.preview_restore(file_name, version, target, base_path)
        except BackupError as exc:
            result.warnings.append(f"Could not generate preview: {exc}")
            return result
        if diff.statistics.total_changes > 0:
            result.warnings.append(f"This will modify {diff.statistics.total_changes} key(s)")
        return result

    # ------------------------------------------------------------------
    def _safeguard(
        self,
        target: Path,
        base_path: Path | str,
        enabled: bool,
        *,
        operation: str = PRE_RESTORE_OPERATION,
    ) -> Optional[BackupVersion]:
        if not enabled or not target.exists():
            return None
        return self._manager.create_backup(target, operation, base_path)


__all__ = ["PRE_RESTORE_OPERATION", "PRE_SELECTIVE_RESTORE_OPERATION", "RestoreService"]
