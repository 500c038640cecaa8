"""Create, list and delete versioned backups of resource files."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set, Tuple

from core.paths import tracked_name

from .content import extract, read_live_file, sha256_bytes
from .errors import BackupError, BackupIOError, BackupNotFoundError
from .logs import BackupLogger
from .retention import RotationPolicy, select_beyond_count, select_for_deletion, select_older_than
from .store import SnapshotStore, snapshot_name
from .types import BackupManifest, BackupVersion, RetentionSummary

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VersionManager:
    """Owns the manifest read/modify/write cycle of every tracked file.

    The manifest is re-read from disk on every call; nothing is cached between
    calls because other processes may have written in the meantime.
    """

    def __init__(
        self,
        policy: Optional[RotationPolicy] = None,
        *,
        max_versions: int = 10,
        logger: Optional[BackupLogger] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._policy = policy or RotationPolicy.flat_cap(max_versions)
        self._logger = logger or BackupLogger()
        self._clock = clock or _utcnow

    @property
    def policy(self) -> RotationPolicy:
        return self._policy

    @property
    def logger(self) -> BackupLogger:
        return self._logger

    # ------------------------------------------------------------------
    def create_backup(self, file_path: Path | str, operation: str, base_path: Path | str) -> BackupVersion:
        source = Path(file_path)
        file_name = tracked_name(source.name)
        content = read_live_file(source, file_name=file_name, operation="create_backup")

        store = SnapshotStore(Path(base_path))
        manifest = store.load_manifest(file_name)
        version = manifest.next_version()
        self._clear_orphan(store, file_name, version, source.suffix)

        key_count, changed = self._describe(store, manifest, content, source.suffix)
        path = store.store(file_name, version, content, suffix=source.suffix)
        record = BackupVersion(
            version=version,
            timestamp=self._clock(),
            operation=operation,
            hash=sha256_bytes(content),
            size_bytes=len(content),
            file=path.name,
            key_count=key_count,
            changed_keys=len(changed),
            changed_key_names=tuple(changed),
        )
        manifest.backups.append(record)
        try:
            store.save_manifest(manifest)
        except BackupError:
            path.unlink(missing_ok=True)
            raise

        self._logger.event(
            event="backup_created",
            phase="create",
            ok=True,
            file=file_name,
            version=version,
            operation=operation,
            size=len(content),
        )
        self._rotate(store, file_name)
        return record

    def list_backups(self, file_name: str, base_path: Path | str) -> List[BackupVersion]:
        store = SnapshotStore(Path(base_path))
        return store.load_manifest(tracked_name(file_name)).newest_first()

    def get_backup(self, file_name: str, version: int, base_path: Path | str) -> BackupVersion:
        name = tracked_name(file_name)
        record = SnapshotStore(Path(base_path)).load_manifest(name).get(version)
        if record is None:
            raise BackupNotFoundError(
                f"backup version {version} not found for {name}", file_name=name, version=version, operation="get"
            )
        return record

    def get_backup_file_path(self, file_name: str, version: int, base_path: Path | str) -> Path:
        return SnapshotStore(Path(base_path)).resolve(tracked_name(file_name), version)

    def read_backup(self, file_name: str, version: int, base_path: Path | str) -> bytes:
        return SnapshotStore(Path(base_path)).read(tracked_name(file_name), version)

    def delete_backup(self, file_name: str, version: int, base_path: Path | str) -> bool:
        name = tracked_name(file_name)
        deleted = SnapshotStore(Path(base_path)).delete(name, version)
        if deleted:
            self._logger.info("backup_deleted", file=name, version=version, reason="manual")
        return deleted

    def delete_all_backups(self, file_name: str, base_path: Path | str) -> bool:
        name = tracked_name(file_name)
        deleted = SnapshotStore(Path(base_path)).delete_all(name)
        if deleted:
            self._logger.info("backup_deleted", file=name, version="all", reason="manual")
        return deleted

    def tracked_files(self, base_path: Path | str) -> List[str]:
        return SnapshotStore(Path(base_path)).tracked_files()

    # ------------------------------------------------------------------
    def apply_rotation(self, file_name: str, base_path: Path | str) -> RetentionSummary:
        return self._rotate(SnapshotStore(Path(base_path)), tracked_name(file_name))

    def prune(
        self,
        file_name: str,
        base_path: Path | str,
        *,
        version: Optional[int] = None,
        older_than_days: Optional[int] = None,
        keep: Optional[int] = None,
        dry_run: bool = False,
    ) -> RetentionSummary:
        """Manually delete versions selected by exactly one criterion."""

        chosen = [value for value in (version, older_than_days, keep) if value is not None]
        if len(chosen) != 1:
            raise ValueError("specify exactly one of version, older_than_days or keep")

        name = tracked_name(file_name)
        store = SnapshotStore(Path(base_path))
        manifest = store.load_manifest(name)
        if version is not None:
            if manifest.get(version) is None:
                raise BackupNotFoundError(
                    f"backup version {version} not found for {name}", file_name=name, version=version, operation="prune"
                )
            doomed: Set[int] = {version}
        elif older_than_days is not None:
            doomed = select_older_than(manifest.backups, older_than_days, now=self._clock())
        else:
            doomed = select_beyond_count(manifest.backups, int(keep or 0))
        return self._delete(store, manifest, doomed, reason="prune", dry_run=dry_run)

    # ------------------------------------------------------------------
    def _rotate(self, store: SnapshotStore, file_name: str) -> RetentionSummary:
        try:
            manifest = store.load_manifest(file_name)
            doomed = select_for_deletion(manifest.backups, self._policy, now=self._clock())
            return self._delete(store, manifest, doomed, reason="rotation")
        except BackupError as exc:
            # The new version is already durable; pruning is best effort.
            self._logger.error("rotation_prune_failed", file=file_name, error=str(exc))
            return RetentionSummary(removed=[], kept=[], freed_bytes=0, error=str(exc))

    def _delete(
        self,
        store: SnapshotStore,
        manifest: BackupManifest,
        doomed: Iterable[int],
        *,
        reason: str,
        dry_run: bool = False,
    ) -> RetentionSummary:
        doomed = set(doomed)
        file_name = manifest.file_name
        candidates = [item for item in manifest.newest_first() if item.version in doomed]
        kept = [item.version for item in manifest.newest_first() if item.version not in doomed]
        if dry_run or not candidates:
            return RetentionSummary(
                removed=[item.version for item in candidates],
                kept=kept,
                freed_bytes=sum(item.size_bytes for item in candidates),
                dry_run=dry_run,
            )

        removed, failed = store.delete_many(file_name, doomed)
        for version, error in failed.items():
            self._logger.warning("rotation_prune_failed", file=file_name, version=version, error=error)
        for item in removed:
            if item.version not in failed:
                self._logger.info("backup_deleted", file=file_name, version=item.version, reason=reason)

        freed = sum(item.size_bytes for item in removed if item.version not in failed)
        self._logger.event(
            event="rotation_applied" if reason == "rotation" else "prune_applied",
            phase=reason,
            ok=not failed,
            file=file_name,
            removed=len(removed),
            kept=len(kept),
        )
        return RetentionSummary(
            removed=sorted((item.version for item in removed), reverse=True),
            kept=kept,
            freed_bytes=freed,
            failed=failed,
        )

    def _clear_orphan(self, store: SnapshotStore, file_name: str, version: int, suffix: str) -> None:
        # Content left behind by an interrupted delete is not referenced by the
        # manifest and may sit exactly where the next version goes.
        orphan = store.backup_dir(file_name) / snapshot_name(version, suffix)
        if not orphan.exists():
            return
        self._logger.warning("orphan_snapshot_replaced", file=file_name, version=version, path=str(orphan))
        try:
            orphan.unlink()
        except OSError as exc:
            raise BackupIOError(
                f"cannot remove orphaned snapshot {orphan}: {exc}",
                file_name=file_name,
                version=version,
                operation="create_backup",
            ) from exc

    def _describe(
        self,
        store: SnapshotStore,
        manifest: BackupManifest,
        content: bytes,
        suffix: str,
    ) -> Tuple[Optional[int], List[str]]:
        """Key count of ``content`` and the keys changed since the latest version."""

        file_name = manifest.file_name
        try:
            entries = extract(content, suffix, file_name=file_name, operation="create_backup")
        except BackupError as exc:
            self._logger.warning("key_count_unavailable", file=file_name, error=str(exc))
            return None, []

        previous = manifest.latest()
        if previous is None:
            return len(entries), []
        try:
            old = extract(
                store.read(file_name, previous.version),
                Path(previous.file).suffix,
                file_name=file_name,
                version=previous.version,
                operation="create_backup",
            )
        except BackupError as exc:
            self._logger.warning("changed_keys_unavailable", file=file_name, version=previous.version, error=str(exc))
            return len(entries), []

        changed = sorted(set(entries) ^ set(old))
        changed.extend(key for key in entries if key in old and entries[key] != old[key])
        return len(entries), sorted(set(changed))


__all__ = ["VersionManager"]
