"""Public API for backup operations."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from core.logging_utils import configure_json_logging
from core.paths import resolve_base_path
from core.settings import load_settings

from .config import BackupConfig
from .diff import DiffEngine
from .errors import BackupError
from .logs import BackupLogger
from .manager import Clock, VersionManager
from .restore import RestoreService
from .types import BackupVersion, DiffResult, RestoreResult, RestoreValidation, RetentionSummary
from .verify import verify_backups


class BackupService:
    """Coordinate backup, diff, restore and retention for one resource project."""

    def __init__(
        self,
        *,
        base_path: Optional[Path | str] = None,
        settings: Optional[Dict[str, Any]] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._base_path = resolve_base_path(base_path)
        self._settings = dict(settings) if settings is not None else load_settings(self._base_path)
        self._config = BackupConfig.from_settings(self._settings)
        logging_section = self._settings.get("logging") or {}
        if logging_section.get("json_file"):
            configure_json_logging(self._base_path, level=str(logging_section.get("level", "INFO")))
        self._logger = BackupLogger(self._base_path)
        self._manager = VersionManager(self._config.rotation_policy(), logger=self._logger, clock=clock)
        self._diff = DiffEngine(self._manager)
        self._restore = RestoreService(self._manager, self._diff)

    # ------------------------------------------------------------------
    @property
    def base_path(self) -> Path:
        return self._base_path

    @property
    def config(self) -> BackupConfig:
        return self._config

    @property
    def manager(self) -> VersionManager:
        return self._manager

    # ------------------------------------------------------------------
    def create(self, file_path: Path | str, operation: str = "manual") -> Optional[BackupVersion]:
        if not self._config.enabled:
            self._logger.info("backup_skipped", file=str(file_path), reason="disabled")
            return None
        return self._manager.create_backup(file_path, operation, self._base_path)

    def list(self, file_name: str) -> List[BackupVersion]:
        return self._manager.list_backups(file_name, self._base_path)

    def info(self, file_name: str, version: int) -> BackupVersion:
        return self._manager.get_backup(file_name, version, self._base_path)

    def tracked_files(self) -> List[str]:
        return self._manager.tracked_files(self._base_path)

    # ------------------------------------------------------------------
    def diff(self, file_name: str, version_a: int, version_b: int, *, include_unchanged: bool = False) -> DiffResult:
        return self._diff.compare_versions(
            file_name, version_a, version_b, self._base_path, include_unchanged=include_unchanged
        )

    def diff_with_current(
        self,
        file_name: str,
        version: int,
        live_file_path: Path | str,
        *,
        include_unchanged: bool = False,
    ) -> DiffResult:
        return self._diff.compare_with_current(
            file_name, version, live_file_path, self._base_path, include_unchanged=include_unchanged
        )

    def preview_restore(self, file_name: str, version: int, target_file_path: Path | str) -> DiffResult:
        return self._restore.preview_restore(file_name, version, target_file_path, self._base_path)

    def validate_restore(self, file_name: str, version: int, target_file_path: Path | str) -> RestoreValidation:
        return self._restore.validate_restore(file_name, version, target_file_path, self._base_path)

    def restore(
        self,
        file_name: str,
        version: int,
        target_file_path: Path | str,
        *,
        create_backup_before_restore: bool = True,
    ) -> RestoreResult:
        return self._restore.restore(
            file_name, version, target_file_path, self._base_path, create_backup_before_restore
        )

    def restore_keys(
        self,
        file_name: str,
        version: int,
        keys: Iterable[str],
        target_file_path: Path | str,
        *,
        create_backup_before_restore: bool = True,
    ) -> RestoreResult:
        return self._restore.restore_keys(
            file_name, version, keys, target_file_path, self._base_path, create_backup_before_restore
        )

    # ------------------------------------------------------------------
    def delete(self, file_name: str, version: int) -> bool:
        return self._manager.delete_backup(file_name, version, self._base_path)

    def prune(
        self,
        file_name: str,
        *,
        version: Optional[int] = None,
        older_than_days: Optional[int] = None,
        keep: Optional[int] = None,
        dry_run: bool = False,
    ) -> RetentionSummary:
        return self._manager.prune(
            file_name,
            self._base_path,
            version=version,
            older_than_days=older_than_days,
            keep=keep,
            dry_run=dry_run,
        )

    def prune_all(
        self,
        *,
        older_than_days: Optional[int] = None,
        keep: Optional[int] = None,
        dry_run: bool = False,
    ) -> Dict[str, RetentionSummary]:
        """Prune every tracked file; one file failing does not stop the others."""

        results: Dict[str, RetentionSummary] = {}
        for file_name in self.tracked_files():
            try:
                results[file_name] = self.prune(
                    file_name, older_than_days=older_than_days, keep=keep, dry_run=dry_run
                )
            except BackupError as exc:
                self._logger.error("prune_failed", file=file_name, error=str(exc))
                results[file_name] = RetentionSummary(removed=[], kept=[], freed_bytes=0, error=str(exc))
        return results

    def verify(self, file_name: str) -> Dict[str, object]:
        return verify_backups(self._base_path, file_name, logger=self._logger)


__all__ = [
    "BackupService",
]
