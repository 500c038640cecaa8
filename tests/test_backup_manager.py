import hashlib
import json
from datetime import datetime, timedelta, timezone

import pytest

from backup.errors import BackupError, BackupIntegrityError, BackupIOError, BackupNotFoundError
from backup.manager import VersionManager
from backup.retention import RotationPolicy


class StubLogger:
    def __init__(self) -> None:
        self.events = []

    def info(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("info", event, extra))

    def warning(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("warning", event, extra))

    def error(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("error", event, extra))

    def event(self, *, event: str, phase: str, ok: bool, **extra):  # pragma: no cover - recorder
        self.events.append(("event", event, phase, ok, extra))

    def names(self):
        return [entry[1] for entry in self.events]


class FixedClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


def _resx(values) -> str:
    items = "".join(
        f'  <data name="{key}" xml:space="preserve">\n    <value>{value}</value>\n  </data>\n'
        for key, value in values.items()
    )
    return f'<?xml version="1.0" encoding="utf-8"?>\n<root>\n{items}</root>\n'


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def logger():
    return StubLogger()


def _manager(logger, clock, max_versions: int = 10) -> VersionManager:
    return VersionManager(RotationPolicy.flat_cap(max_versions), logger=logger, clock=clock)


def test_create_backup_stores_exact_copy(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    source.write_text(_resx({"Hello": "World", "Bye": "Now"}), encoding="utf-8")
    manager = _manager(logger, clock)

    record = manager.create_backup(source, "initial", tmp_path)

    snapshot = tmp_path / ".lrm" / "backups" / "strings.resx" / "v1.resx"
    assert record.version == 1
    assert record.operation == "initial"
    assert record.timestamp == clock.now
    assert snapshot.read_bytes() == source.read_bytes()
    assert record.hash == hashlib.sha256(source.read_bytes()).hexdigest()
    assert record.size_bytes == len(source.read_bytes())
    assert record.key_count == 2
    assert manager.get_backup_file_path("strings.resx", 1, tmp_path) == snapshot
    assert "backup_created" in logger.names()

    manifest = json.loads((snapshot.parent / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["format"] == 1
    assert manifest["file_name"] == "strings.resx"
    assert [item["version"] for item in manifest["backups"]] == [1]


def test_versions_increase_and_list_newest_first(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    manager = _manager(logger, clock)
    for index in range(3):
        source.write_text(_resx({"Key": str(index)}), encoding="utf-8")
        manager.create_backup(source, "edit", tmp_path)
        clock.advance(minutes=1)

    listed = manager.list_backups("strings.resx", tmp_path)

    assert [item.version for item in listed] == [3, 2, 1]
    assert listed[0].timestamp > listed[-1].timestamp


def test_identical_content_has_identical_hash(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    source.write_text(_resx({"Key": "same"}), encoding="utf-8")
    manager = _manager(logger, clock)

    first = manager.create_backup(source, "a", tmp_path)
    second = manager.create_backup(source, "b", tmp_path)
    source.write_text(_resx({"Key": "different"}), encoding="utf-8")
    third = manager.create_backup(source, "c", tmp_path)

    assert first.hash == second.hash
    assert third.hash != first.hash


def test_changed_keys_are_recorded_against_previous_version(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    source.write_text(_resx({"A": "1", "B": "2", "C": "3"}), encoding="utf-8")
    manager = _manager(logger, clock)
    first = manager.create_backup(source, "initial", tmp_path)

    source.write_text(_resx({"A": "1", "B": "9", "D": "4"}), encoding="utf-8")
    second = manager.create_backup(source, "edit", tmp_path)

    assert first.changed_keys == 0
    assert second.changed_key_names == ("B", "C", "D")
    assert second.changed_keys == 3
    assert second.key_count == 3
    assert len({first, second}) == 2


def test_recorded_versions_are_hashable_after_reload(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    source.write_text(_resx({"A": "1"}), encoding="utf-8")
    manager = _manager(logger, clock)
    manager.create_backup(source, "initial", tmp_path)
    source.write_text(_resx({"A": "2"}), encoding="utf-8")
    manager.create_backup(source, "edit", tmp_path)

    reloaded = manager.get_backup("strings.resx", 2, tmp_path)

    assert reloaded.changed_key_names == ("A",)
    assert reloaded in {reloaded}


def test_unparseable_content_is_still_backed_up(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    source.write_text("<root><data", encoding="utf-8")
    manager = _manager(logger, clock)

    record = manager.create_backup(source, "broken", tmp_path)

    assert record.key_count is None
    assert manager.read_backup("strings.resx", 1, tmp_path) == b"<root><data"
    assert "key_count_unavailable" in logger.names()


def test_flat_cap_keeps_largest_versions(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    manager = _manager(logger, clock, max_versions=3)
    for index in range(5):
        source.write_text(_resx({"Key": str(index)}), encoding="utf-8")
        manager.create_backup(source, "edit", tmp_path)

    listed = manager.list_backups("strings.resx", tmp_path)
    backup_dir = tmp_path / ".lrm" / "backups" / "strings.resx"

    assert [item.version for item in listed] == [5, 4, 3]
    assert not (backup_dir / "v1.resx").exists()
    assert not (backup_dir / "v2.resx").exists()
    assert "rotation_applied" in logger.names()


def test_create_backup_missing_source(tmp_path, logger, clock):
    manager = _manager(logger, clock)

    with pytest.raises(BackupNotFoundError) as excinfo:
        manager.create_backup(tmp_path / "missing.resx", "initial", tmp_path)

    assert excinfo.value.file_name == "missing.resx"
    assert not (tmp_path / ".lrm" / "backups" / "missing.resx").exists()


def test_delete_backup_then_lookup_is_not_found(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    manager = _manager(logger, clock)
    for index in range(3):
        source.write_text(_resx({"Key": str(index)}), encoding="utf-8")
        manager.create_backup(source, "edit", tmp_path)

    assert manager.delete_backup("strings.resx", 2, tmp_path) is True

    with pytest.raises(BackupNotFoundError):
        manager.get_backup_file_path("strings.resx", 2, tmp_path)
    assert [item.version for item in manager.list_backups("strings.resx", tmp_path)] == [3, 1]
    assert manager.delete_backup("strings.resx", 2, tmp_path) is False

    record = manager.create_backup(source, "edit", tmp_path)
    assert record.version == 4


def test_deleting_last_version_removes_history(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    source.write_text(_resx({"Key": "v"}), encoding="utf-8")
    manager = _manager(logger, clock)
    manager.create_backup(source, "initial", tmp_path)

    manager.delete_backup("strings.resx", 1, tmp_path)

    assert not (tmp_path / ".lrm" / "backups" / "strings.resx").exists()
    assert manager.list_backups("strings.resx", tmp_path) == []
    assert manager.tracked_files(tmp_path) == []
    assert manager.create_backup(source, "again", tmp_path).version == 1


def test_delete_all_backups(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    source.write_text(_resx({"Key": "v"}), encoding="utf-8")
    manager = _manager(logger, clock)
    manager.create_backup(source, "initial", tmp_path)
    manager.create_backup(source, "second", tmp_path)

    assert manager.delete_all_backups("strings.resx", tmp_path) is True
    assert manager.delete_all_backups("strings.resx", tmp_path) is False
    assert manager.list_backups("strings.resx", tmp_path) == []


def test_tracked_files_lists_every_history(tmp_path, logger, clock):
    manager = _manager(logger, clock)
    for name in ("b.resx", "a.json"):
        source = tmp_path / name
        source.write_text("{}" if name.endswith(".json") else _resx({}), encoding="utf-8")
        manager.create_backup(source, "initial", tmp_path)

    assert manager.tracked_files(tmp_path) == ["a.json", "b.resx"]


def test_rotation_failure_does_not_fail_create(tmp_path, logger, clock, monkeypatch):
    source = tmp_path / "strings.resx"
    manager = _manager(logger, clock, max_versions=1)
    source.write_text(_resx({"Key": "1"}), encoding="utf-8")
    manager.create_backup(source, "first", tmp_path)

    def boom(self, file_name, versions):
        raise BackupIOError("simulated failure", file_name=file_name, operation="delete")

    monkeypatch.setattr("backup.store.SnapshotStore.delete_many", boom)
    source.write_text(_resx({"Key": "2"}), encoding="utf-8")

    record = manager.create_backup(source, "second", tmp_path)

    assert record.version == 2
    assert [item.version for item in manager.list_backups("strings.resx", tmp_path)] == [2, 1]
    assert ("error", "rotation_prune_failed") in [(entry[0], entry[1]) for entry in logger.events]


def test_manifest_failure_leaves_no_content(tmp_path, logger, clock, monkeypatch):
    source = tmp_path / "strings.resx"
    source.write_text(_resx({"Key": "1"}), encoding="utf-8")
    manager = _manager(logger, clock)

    def boom(self, manifest):
        raise BackupIOError("disk full", file_name=manifest.file_name, operation="save_manifest")

    monkeypatch.setattr("backup.store.SnapshotStore.save_manifest", boom)

    with pytest.raises(BackupIOError):
        manager.create_backup(source, "initial", tmp_path)

    assert not (tmp_path / ".lrm" / "backups" / "strings.resx" / "v1.resx").exists()


def test_orphaned_content_is_replaced(tmp_path, logger, clock):
    backup_dir = tmp_path / ".lrm" / "backups" / "strings.resx"
    backup_dir.mkdir(parents=True)
    (backup_dir / "v1.resx").write_bytes(b"stale")
    source = tmp_path / "strings.resx"
    source.write_text(_resx({"Key": "fresh"}), encoding="utf-8")
    manager = _manager(logger, clock)

    record = manager.create_backup(source, "initial", tmp_path)

    assert record.version == 1
    assert (backup_dir / "v1.resx").read_bytes() == source.read_bytes()
    assert "orphan_snapshot_replaced" in logger.names()


def test_corrupt_manifest_is_an_integrity_error(tmp_path, logger, clock):
    backup_dir = tmp_path / ".lrm" / "backups" / "strings.resx"
    backup_dir.mkdir(parents=True)
    (backup_dir / "manifest.json").write_text("{not json", encoding="utf-8")
    manager = _manager(logger, clock)

    with pytest.raises(BackupIntegrityError):
        manager.list_backups("strings.resx", tmp_path)


def test_missing_snapshot_content_is_an_integrity_error(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    source.write_text(_resx({"Key": "1"}), encoding="utf-8")
    manager = _manager(logger, clock)
    manager.create_backup(source, "initial", tmp_path)
    (tmp_path / ".lrm" / "backups" / "strings.resx" / "v1.resx").unlink()

    with pytest.raises(BackupIntegrityError) as excinfo:
        manager.read_backup("strings.resx", 1, tmp_path)

    assert excinfo.value.context() == {"file_name": "strings.resx", "version": 1, "operation": "resolve"}


def test_get_backup_unknown_version(tmp_path, logger, clock):
    manager = _manager(logger, clock)

    with pytest.raises(BackupNotFoundError):
        manager.get_backup("strings.resx", 7, tmp_path)


def test_file_name_must_be_bare(tmp_path, logger, clock):
    manager = _manager(logger, clock)

    with pytest.raises(ValueError):
        manager.list_backups("../strings.resx", tmp_path)


def test_prune_by_count_and_age(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    manager = _manager(logger, clock)
    for index in range(4):
        source.write_text(_resx({"Key": str(index)}), encoding="utf-8")
        manager.create_backup(source, "edit", tmp_path)
        clock.advance(days=3)

    preview = manager.prune("strings.resx", tmp_path, older_than_days=7, dry_run=True)
    assert preview.dry_run is True
    assert preview.removed == [2, 1]
    assert len(manager.list_backups("strings.resx", tmp_path)) == 4

    summary = manager.prune("strings.resx", tmp_path, keep=1)
    assert summary.removed == [3, 2, 1]
    assert summary.kept == [4]
    assert summary.freed_bytes > 0
    assert [item.version for item in manager.list_backups("strings.resx", tmp_path)] == [4]
    assert "prune_applied" in logger.names()


def test_prune_single_version(tmp_path, logger, clock):
    source = tmp_path / "strings.resx"
    source.write_text(_resx({"Key": "1"}), encoding="utf-8")
    manager = _manager(logger, clock)
    manager.create_backup(source, "a", tmp_path)
    manager.create_backup(source, "b", tmp_path)

    summary = manager.prune("strings.resx", tmp_path, version=1)

    assert summary.removed == [1]
    with pytest.raises(BackupNotFoundError):
        manager.prune("strings.resx", tmp_path, version=1)


@pytest.mark.parametrize(
    "criteria",
    [{}, {"version": 1, "keep": 2}, {"older_than_days": 3, "keep": 1}],
)
def test_prune_requires_exactly_one_criterion(tmp_path, logger, clock, criteria):
    manager = _manager(logger, clock)

    with pytest.raises(ValueError):
        manager.prune("strings.resx", tmp_path, **criteria)


def test_errors_share_a_base_class():
    assert issubclass(BackupNotFoundError, BackupError)
    assert issubclass(BackupIntegrityError, RuntimeError)
