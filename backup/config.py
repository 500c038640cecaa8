from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional

from .retention import RotationPolicy

RotationMode = Literal["flat", "tiered"]

_DEFAULT_TIERS = RotationPolicy.default()


def _optional_int(value: Any, default: Optional[int]) -> Optional[int]:
    if value is None:
        return default
    return int(value)


@dataclass(slots=True)
class RotationSettings:
    mode: RotationMode = "flat"
    keep_all_for_hours: Optional[int] = _DEFAULT_TIERS.keep_all_for_hours
    keep_daily_for_days: Optional[int] = _DEFAULT_TIERS.keep_daily_for_days
    keep_weekly_for_weeks: Optional[int] = _DEFAULT_TIERS.keep_weekly_for_weeks
    keep_monthly_for_months: Optional[int] = _DEFAULT_TIERS.keep_monthly_for_months
    max_total_backups: Optional[int] = _DEFAULT_TIERS.max_total_backups


@dataclass(slots=True)
class BackupConfig:
    """Typed view over the ``backup`` section of the settings."""

    enabled: bool = True
    max_versions: int = 10
    rotation: RotationSettings = field(default_factory=RotationSettings)

    @classmethod
    def from_settings(cls, payload: Dict[str, Any]) -> "BackupConfig":
        section = payload.get("backup") or {}
        rotation = section.get("rotation") or {}
        mode = str(rotation.get("mode", "flat")).lower()
        if mode not in ("flat", "tiered"):
            raise ValueError(f"unknown backup.rotation.mode {mode!r}")
        return cls(
            enabled=bool(section.get("enabled", True)),
            max_versions=int(section.get("max_versions", 10)),
            rotation=RotationSettings(
                mode=mode,  # type: ignore[arg-type]
                keep_all_for_hours=_optional_int(rotation.get("keep_all_for_hours"), _DEFAULT_TIERS.keep_all_for_hours),
                keep_daily_for_days=_optional_int(rotation.get("keep_daily_for_days"), _DEFAULT_TIERS.keep_daily_for_days),
                keep_weekly_for_weeks=_optional_int(
                    rotation.get("keep_weekly_for_weeks"), _DEFAULT_TIERS.keep_weekly_for_weeks
                ),
                keep_monthly_for_months=_optional_int(
                    rotation.get("keep_monthly_for_months"), _DEFAULT_TIERS.keep_monthly_for_months
                ),
                max_total_backups=_optional_int(rotation.get("max_total_backups"), _DEFAULT_TIERS.max_total_backups),
            ),
        )

    def rotation_policy(self) -> RotationPolicy:
        if self.rotation.mode == "flat":
            return RotationPolicy.flat_cap(self.max_versions)
        return RotationPolicy(
            keep_all_for_hours=self.rotation.keep_all_for_hours,
            keep_daily_for_days=self.rotation.keep_daily_for_days,
            keep_weekly_for_weeks=self.rotation.keep_weekly_for_weeks,
            keep_monthly_for_months=self.rotation.keep_monthly_for_months,
            max_total_backups=self.rotation.max_total_backups,
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "max_versions": self.max_versions,
            "rotation": {
                "mode": self.rotation.mode,
                "keep_all_for_hours": self.rotation.keep_all_for_hours,
                "keep_daily_for_days": self.rotation.keep_daily_for_days,
                "keep_weekly_for_weeks": self.rotation.keep_weekly_for_weeks,
                "keep_monthly_for_months": self.rotation.keep_monthly_for_months,
                "max_total_backups": self.rotation.max_total_backups,
            },
        }


__all__ = ["BackupConfig", "RotationMode", "RotationSettings"]
