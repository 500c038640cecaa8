"""Error hierarchy for backup operations."""
from __future__ import annotations

from typing import Optional


class BackupError(RuntimeError):
    """Base exception for backup related failures.

    Carries the tracked file name, the version and the operation involved so
    callers can log the failure before aborting the higher level command.
    """

    def __init__(
        self,
        message: str,
        *,
        file_name: Optional[str] = None,
        version: Optional[int] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.file_name = file_name
        self.version = version
        self.operation = operation

    def context(self) -> dict:
        return {
            "file_name": self.file_name,
            "version": self.version,
            "operation": self.operation,
        }


class BackupNotFoundError(BackupError):
    """Raised when a requested version or source file does not exist."""


class BackupIOError(BackupError):
    """Raised when reading, writing or deleting backup data fails."""


class BackupSerializationError(BackupError):
    """Raised when resource content cannot be extracted or re-emitted."""


class BackupIntegrityError(BackupError):
    """Raised when the manifest and the stored snapshots disagree."""


__all__ = [
    "BackupError",
    "BackupIOError",
    "BackupIntegrityError",
    "BackupNotFoundError",
    "BackupSerializationError",
]
