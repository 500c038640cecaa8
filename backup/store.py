"""On-disk snapshot storage and manifest persistence."""
from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from core.paths import get_backup_dir, get_backups_root

from .errors import BackupIntegrityError, BackupIOError, BackupNotFoundError
from .types import MANIFEST_FORMAT, BackupManifest, BackupVersion

MANIFEST_NAME = "manifest.json"


def snapshot_name(version: int, suffix: str) -> str:
    return f"v{version}{suffix}"


class SnapshotStore:
    """Byte-exact snapshot copies plus one manifest per tracked file.

    Layout: ``<base>/.lrm/backups/<file_name>/v<version><ext>`` and
    ``manifest.json`` beside them. Manifest writes go through a temporary file
    and ``os.replace``.
    """

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def backup_dir(self, file_name: str) -> Path:
        return get_backup_dir(self._base_path, file_name)

    def manifest_path(self, file_name: str) -> Path:
        return self.backup_dir(file_name) / MANIFEST_NAME

    # ------------------------------------------------------------------
    def load_manifest(self, file_name: str) -> BackupManifest:
        path = self.manifest_path(file_name)
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return BackupManifest(file_name=file_name)
        except json.JSONDecodeError as exc:
            raise BackupIntegrityError(
                f"manifest at {path} is corrupt: {exc}", file_name=file_name, operation="load_manifest"
            ) from exc
        except OSError as exc:
            raise BackupIOError(
                f"cannot read manifest at {path}: {exc}", file_name=file_name, operation="load_manifest"
            ) from exc
        entries = data.get("backups") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise BackupIntegrityError(
                f"manifest at {path} has no backups list", file_name=file_name, operation="load_manifest"
            )
        try:
            backups = [BackupVersion.from_json(entry) for entry in entries]
        except (KeyError, TypeError, ValueError) as exc:
            raise BackupIntegrityError(
                f"manifest at {path} has an invalid entry: {exc}", file_name=file_name, operation="load_manifest"
            ) from exc
        return BackupManifest(file_name=file_name, backups=backups)

    def save_manifest(self, manifest: BackupManifest) -> None:
        directory = self.backup_dir(manifest.file_name)
        payload = {
            "format": MANIFEST_FORMAT,
            "file_name": manifest.file_name,
            "backups": [item.to_json() for item in manifest.newest_first()],
        }
        tmp_name: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".manifest-", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, directory / MANIFEST_NAME)
            tmp_name = None
        except OSError as exc:
            raise BackupIOError(
                f"cannot write manifest for {manifest.file_name}: {exc}",
                file_name=manifest.file_name,
                operation="save_manifest",
            ) from exc
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

    # ------------------------------------------------------------------
    def store(self, file_name: str, version: int, content: bytes, *, suffix: str) -> Path:
        """Write ``content`` for a new version and return its path."""

        directory = self.backup_dir(file_name)
        target = directory / snapshot_name(version, suffix)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with target.open("xb") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
        except FileExistsError as exc:
            raise BackupIntegrityError(
                f"snapshot {target.name} already exists", file_name=file_name, version=version, operation="store"
            ) from exc
        except OSError as exc:
            raise BackupIOError(
                f"cannot write snapshot {target}: {exc}", file_name=file_name, version=version, operation="store"
            ) from exc
        return target

    def resolve(self, file_name: str, version: int, *, manifest: Optional[BackupManifest] = None) -> Path:
        """Return the snapshot path of ``version`` after checking both sides exist."""

        manifest = manifest or self.load_manifest(file_name)
        record = manifest.get(version)
        if record is None:
            raise BackupNotFoundError(
                f"backup version {version} not found for {file_name}",
                file_name=file_name,
                version=version,
                operation="resolve",
            )
        path = self.backup_dir(file_name) / record.file
        if not path.is_file():
            raise BackupIntegrityError(
                f"manifest lists version {version} but {path} is missing",
                file_name=file_name,
                version=version,
                operation="resolve",
            )
        return path

    def read(self, file_name: str, version: int) -> bytes:
        path = self.resolve(file_name, version)
        try:
            with path.open("rb") as handle:
                return handle.read()
        except FileNotFoundError as exc:
            raise BackupIntegrityError(
                f"snapshot {path} vanished while reading", file_name=file_name, version=version, operation="read"
            ) from exc
        except OSError as exc:
            raise BackupIOError(
                f"cannot read snapshot {path}: {exc}", file_name=file_name, version=version, operation="read"
            ) from exc

    def delete(self, file_name: str, version: int) -> bool:
        removed, failed = self.delete_many(file_name, [version])
        if version in failed:
            raise BackupIOError(
                f"cannot delete snapshot v{version} of {file_name}: {failed[version]}",
                file_name=file_name,
                version=version,
                operation="delete",
            )
        return any(item.version == version for item in removed)

    def delete_many(self, file_name: str, versions: Iterable[int]) -> Tuple[List[BackupVersion], Dict[int, str]]:
        """Drop ``versions`` from the manifest, then remove their content.

        The manifest is rewritten first so an interruption can only orphan
        content. Unlink failures are returned per version instead of raised.
        """

        wanted = set(versions)
        manifest = self.load_manifest(file_name)
        removed = [item for item in manifest.backups if item.version in wanted]
        if not removed:
            return [], {}
        manifest.backups = [item for item in manifest.backups if item.version not in wanted]
        self.save_manifest(manifest)

        failed: Dict[int, str] = {}
        directory = self.backup_dir(file_name)
        for item in removed:
            try:
                (directory / item.file).unlink(missing_ok=True)
            except OSError as exc:
                failed[item.version] = str(exc)
        if not manifest.backups and not failed:
            # Last version gone: the history itself ends here.
            self.delete_all(file_name)
        return removed, failed

    def delete_all(self, file_name: str) -> bool:
        directory = self.backup_dir(file_name)
        if not directory.exists():
            return False
        try:
            shutil.rmtree(directory)
        except OSError as exc:
            raise BackupIOError(
                f"cannot remove {directory}: {exc}", file_name=file_name, operation="delete_all"
            ) from exc
        return True

    def tracked_files(self) -> List[str]:
        root = get_backups_root(self._base_path)
        if not root.is_dir():
            return []
        return sorted(child.name for child in root.iterdir() if (child / MANIFEST_NAME).is_file())

    def stored_files(self, file_name: str) -> List[str]:
        directory = self.backup_dir(file_name)
        if not directory.is_dir():
            return []
        return sorted(
            child.name
            for child in directory.iterdir()
            if child.is_file() and child.name != MANIFEST_NAME and not child.name.startswith(".")
        )


__all__ = ["MANIFEST_NAME", "SnapshotStore", "snapshot_name"]
