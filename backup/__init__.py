"""Versioned backup and restore of localization resource files."""
from __future__ import annotations

from .api import BackupService
from .config import BackupConfig
from .diff import DiffEngine
from .errors import (
    BackupError,
    BackupIntegrityError,
    BackupIOError,
    BackupNotFoundError,
    BackupSerializationError,
)
from .manager import VersionManager
from .restore import RestoreService
from .retention import RotationPolicy
from .store import SnapshotStore
from .types import BackupVersion, ChangeRecord, ChangeType, DiffResult, RestoreResult, RetentionSummary

__all__ = [
    "BackupConfig",
    "BackupError",
    "BackupIOError",
    "BackupIntegrityError",
    "BackupNotFoundError",
    "BackupSerializationError",
    "BackupService",
    "BackupVersion",
    "ChangeRecord",
    "ChangeType",
    "DiffEngine",
    "DiffResult",
    "RestoreResult",
    "RestoreService",
    "RetentionSummary",
    "RotationPolicy",
    "SnapshotStore",
    "VersionManager",
]
