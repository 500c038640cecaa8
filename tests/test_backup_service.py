import json
from datetime import datetime, timedelta, timezone

import pytest

from backup import BackupService, ChangeType
from backup.errors import BackupNotFoundError
from backup.report import format_as_text
from core.settings import save_settings
from resfiles import extract_entries


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


def _values(path):
    return {key: entry.value for key, entry in extract_entries(path.read_text(encoding="utf-8"), ".resx").items()}


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 7, 1, 10, 0, tzinfo=timezone.utc))


def test_end_to_end_backup_diff_restore(tmp_path, clock):
    service = BackupService(base_path=tmp_path, clock=clock)
    target = tmp_path / "Resources.resx"
    target.write_text(_resx({"Key1": "Value1", "Key2": "Value2", "Key3": "Value3"}), encoding="utf-8")
    original = target.read_bytes()

    first = service.create(target, "initial")
    clock.advance(minutes=5)
    target.write_text(_resx({"Key1": "Changed", "Key2": "Value2", "Key4": "Value4"}), encoding="utf-8")
    second = service.create(target, "edit")

    assert (first.version, second.version) == (1, 2)

    diff = service.diff("Resources.resx", 1, 2)
    assert {c.key: c.change_type for c in diff.changes} == {
        "Key1": ChangeType.MODIFIED,
        "Key3": ChangeType.DELETED,
        "Key4": ChangeType.ADDED,
    }
    full = service.diff("Resources.resx", 1, 2, include_unchanged=True)
    assert full.by_key()["Key2"].change_type is ChangeType.UNCHANGED
    assert format_as_text(diff).startswith("Diff: Version 1 -> Version 2")

    result = service.restore("Resources.resx", 1, target)

    assert target.read_bytes() == original
    assert _values(target) == {"Key1": "Value1", "Key2": "Value2", "Key3": "Value3"}
    assert result.pre_restore_backup.operation == "pre-restore"
    assert [item.version for item in service.list("Resources.resx")] == [3, 2, 1]
    assert service.info("Resources.resx", 3).hash == second.hash


def test_preview_matches_reverse_compare_and_mutates_nothing(tmp_path, clock):
    service = BackupService(base_path=tmp_path, clock=clock)
    target = tmp_path / "Resources.resx"
    target.write_text(_resx({"A": "1", "B": "2"}), encoding="utf-8")
    service.create(target, "initial")
    target.write_text(_resx({"A": "changed", "C": "3"}), encoding="utf-8")
    before = target.read_bytes()

    preview = service.preview_restore("Resources.resx", 1, target)
    forward = service.diff_with_current("Resources.resx", 1, target)

    assert [(c.key, c.old_value, c.new_value) for c in preview.changes] == [
        (c.key, c.new_value, c.old_value) for c in forward.changes
    ]
    assert target.read_bytes() == before
    assert len(service.list("Resources.resx")) == 1


def test_settings_drive_flat_cap(tmp_path, clock):
    save_settings({"backup": {"max_versions": 2}}, tmp_path)
    service = BackupService(base_path=tmp_path, clock=clock)
    target = tmp_path / "Resources.resx"
    for index in range(4):
        target.write_text(_resx({"Key": str(index)}), encoding="utf-8")
        service.create(target, "edit")

    assert service.config.max_versions == 2
    assert [item.version for item in service.list("Resources.resx")] == [4, 3]


def test_tiered_rotation_from_settings(tmp_path, clock):
    settings = {
        "backup": {
            "rotation": {"mode": "tiered", "keep_all_for_hours": 1, "keep_daily_for_days": 0,
                         "keep_weekly_for_weeks": 0, "keep_monthly_for_months": 0},
        },
        "logging": {"json_file": False},
    }
    service = BackupService(base_path=tmp_path, settings=settings, clock=clock)
    target = tmp_path / "Resources.resx"
    for index in range(3):
        target.write_text(_resx({"Key": str(index)}), encoding="utf-8")
        service.create(target, "edit")
        clock.advance(hours=2)

    # Only the newest survives once the others leave the one-hour window.
    assert [item.version for item in service.list("Resources.resx")] == [3]
    assert not service.config.rotation_policy().is_flat


def test_disabled_backups_create_nothing(tmp_path, clock):
    service = BackupService(base_path=tmp_path, settings={"backup": {"enabled": False}}, clock=clock)
    target = tmp_path / "Resources.resx"
    target.write_text(_resx({"A": "1"}), encoding="utf-8")

    assert service.create(target) is None
    assert service.list("Resources.resx") == []


def test_restore_keys_through_service(tmp_path, clock):
    service = BackupService(base_path=tmp_path, clock=clock)
    target = tmp_path / "Resources.resx"
    target.write_text(_resx({"K1": "a", "K2": "b", "K3": "c"}), encoding="utf-8")
    service.create(target, "initial")
    target.write_text(_resx({"K1": "x", "K2": "y", "K3": "z"}), encoding="utf-8")

    result = service.restore_keys("Resources.resx", 1, {"K1", "K2"}, target)

    assert _values(target) == {"K1": "a", "K2": "b", "K3": "z"}
    assert sorted(result.restored_keys) == ["K1", "K2"]
    assert service.validate_restore("Resources.resx", 1, target).warnings == ["This will modify 1 key(s)"]


def test_delete_prune_and_verify(tmp_path, clock):
    service = BackupService(base_path=tmp_path, clock=clock)
    for name in ("a.resx", "b.resx"):
        target = tmp_path / name
        for index in range(3):
            target.write_text(_resx({"Key": str(index)}), encoding="utf-8")
            service.create(target, "edit")

    assert service.delete("a.resx", 1) is True
    with pytest.raises(BackupNotFoundError):
        service.info("a.resx", 1)

    results = service.prune_all(keep=1)
    assert sorted(results) == ["a.resx", "b.resx"]
    assert results["a.resx"].removed == [2]
    assert results["b.resx"].removed == [2, 1]
    assert service.verify("b.resx")["verified"] == [3]


def test_service_writes_json_logs(tmp_path, clock):
    service = BackupService(base_path=tmp_path, clock=clock)
    target = tmp_path / "Resources.resx"
    target.write_text(_resx({"A": "1"}), encoding="utf-8")

    service.create(target, "initial")

    log_path = tmp_path / ".lrm" / "logs" / "backup.jsonl"
    entries = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    created = [entry for entry in entries if entry["event"] == "backup_created"]
    assert created and created[0]["version"] == 1 and created[0]["ok"] is True


def test_base_path_from_environment(tmp_path, monkeypatch, clock):
    monkeypatch.setenv("LRM_PATH", str(tmp_path))

    service = BackupService(settings={"logging": {"json_file": False}}, clock=clock)

    assert service.base_path == tmp_path.resolve()
