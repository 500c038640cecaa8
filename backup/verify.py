"""Verify stored snapshots against their manifest."""
from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Dict, List

from core.paths import tracked_name

from .errors import BackupIntegrityError, BackupIOError
from .logs import BackupLogger
from .store import SnapshotStore


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_backups(base_path: Path, file_name: str, *, logger: BackupLogger) -> Dict[str, object]:
    """Re-hash every snapshot of ``file_name``.

    Missing content or a hash/size mismatch raises ``BackupIntegrityError``.
    Snapshot files the manifest does not know about are only reported.
    """

    name = tracked_name(file_name)
    store = SnapshotStore(Path(base_path))
    manifest = store.load_manifest(name)
    directory = store.backup_dir(name)

    verified: List[int] = []
    for record in manifest.newest_first():
        source = directory / record.file
        if not source.is_file():
            logger.error("backup_verify_failed", file=name, version=record.version, reason="missing")
            raise BackupIntegrityError(
                f"missing snapshot file {record.file}", file_name=name, version=record.version, operation="verify"
            )
        try:
            actual_size = source.stat().st_size
            actual_hash = _sha256(source)
        except OSError as exc:
            raise BackupIOError(
                f"cannot read {source}: {exc}", file_name=name, version=record.version, operation="verify"
            ) from exc
        if actual_size != record.size_bytes:
            logger.error("backup_verify_failed", file=name, version=record.version, reason="size")
            raise BackupIntegrityError(
                f"size mismatch for {record.file}", file_name=name, version=record.version, operation="verify"
            )
        if actual_hash != record.hash:
            logger.error("backup_verify_failed", file=name, version=record.version, reason="checksum")
            raise BackupIntegrityError(
                f"checksum mismatch for {record.file}", file_name=name, version=record.version, operation="verify"
            )
        verified.append(record.version)

    known = {record.file for record in manifest.backups}
    orphans = [entry for entry in store.stored_files(name) if entry not in known]
    if orphans:
        logger.warning("orphan_snapshots", file=name, orphans=orphans)

    logger.event(event="backup_verified", phase="verify", ok=True, file=name, versions=len(verified))
    return {
        "file_name": name,
        "verified": verified,
        "orphans": orphans,
    }


__all__ = ["verify_backups"]
