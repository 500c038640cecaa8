"""Retention rules deciding which backup versions survive rotation.

Everything here is a pure decision over ``BackupVersion`` records: the
functions return version numbers to delete and never touch the disk.
"""
from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Set

from .types import BackupVersion


@dataclass(frozen=True, slots=True)
class RotationPolicy:
    """Tiered (grandfather-father-son) retention.

    A tier set to ``None`` is disabled. When every age tier is disabled the
    policy degenerates to a flat cap of ``max_total_backups`` versions.
    """

    keep_all_for_hours: Optional[int] = 24
    keep_daily_for_days: Optional[int] = 7
    keep_weekly_for_weeks: Optional[int] = 4
    keep_monthly_for_months: Optional[int] = 6
    max_total_backups: Optional[int] = 100

    @classmethod
    def flat_cap(cls, max_versions: int) -> "RotationPolicy":
        return cls(
            keep_all_for_hours=None,
            keep_daily_for_days=None,
            keep_weekly_for_weeks=None,
            keep_monthly_for_months=None,
            max_total_backups=max_versions,
        )

    @classmethod
    def default(cls) -> "RotationPolicy":
        return cls()

    @classmethod
    def minimal(cls) -> "RotationPolicy":
        return cls(
            keep_all_for_hours=6,
            keep_daily_for_days=3,
            keep_weekly_for_weeks=2,
            keep_monthly_for_months=2,
            max_total_backups=20,
        )

    @classmethod
    def aggressive(cls) -> "RotationPolicy":
        return cls(
            keep_all_for_hours=48,
            keep_daily_for_days=14,
            keep_weekly_for_weeks=8,
            keep_monthly_for_months=12,
            max_total_backups=200,
        )

    @property
    def is_flat(self) -> bool:
        return all(
            tier is None
            for tier in (
                self.keep_all_for_hours,
                self.keep_daily_for_days,
                self.keep_weekly_for_weeks,
                self.keep_monthly_for_months,
            )
        )


def _subtract_months(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _day_key(moment: datetime) -> Hashable:
    return moment.date()


def _week_key(moment: datetime) -> Hashable:
    year, week, _ = moment.isocalendar()
    return (year, week)


def _month_key(moment: datetime) -> Hashable:
    return (moment.year, moment.month)


def _thin(
    items: Sequence[BackupVersion],
    *,
    newer_than: datetime,
    older_than: datetime,
    bucket: Callable[[datetime], Hashable],
) -> Set[int]:
    # ``items`` is newest first, so the first hit per bucket is the one to keep.
    seen: Dict[Hashable, int] = {}
    for item in items:
        stamp = _utc(item.timestamp)
        if not (newer_than <= stamp < older_than):
            continue
        seen.setdefault(bucket(stamp), item.version)
    return set(seen.values())


def _tiered_survivors(items: Sequence[BackupVersion], policy: RotationPolicy, now: datetime) -> Set[int]:
    keep: Set[int] = set()

    recent_cutoff = now - timedelta(hours=policy.keep_all_for_hours or 0)
    for item in items:
        if _utc(item.timestamp) >= recent_cutoff:
            keep.add(item.version)

    daily_cutoff = recent_cutoff - timedelta(days=policy.keep_daily_for_days or 0)
    keep |= _thin(items, newer_than=daily_cutoff, older_than=recent_cutoff, bucket=_day_key)

    weekly_cutoff = daily_cutoff - timedelta(weeks=policy.keep_weekly_for_weeks or 0)
    keep |= _thin(items, newer_than=weekly_cutoff, older_than=daily_cutoff, bucket=_week_key)

    monthly_cutoff = _subtract_months(weekly_cutoff, policy.keep_monthly_for_months or 0)
    keep |= _thin(items, newer_than=monthly_cutoff, older_than=weekly_cutoff, bucket=_month_key)
    return keep


def select_for_deletion(
    versions: Iterable[BackupVersion],
    policy: RotationPolicy,
    *,
    now: Optional[datetime] = None,
) -> Set[int]:
    """Return the version numbers ``policy`` would prune.

    The newest version always survives.
    """

    items = sorted(versions, key=lambda item: (_utc(item.timestamp), item.version), reverse=True)
    if not items:
        return set()
    current = _utc(now or datetime.now(timezone.utc))

    if policy.is_flat:
        keep = {item.version for item in items}
    else:
        keep = _tiered_survivors(items, policy, current)
    keep.add(max(item.version for item in items))

    cap = policy.max_total_backups
    if cap is not None and len(keep) > max(cap, 1):
        ranked = sorted(keep, reverse=True)
        keep = set(ranked[: max(cap, 1)])

    return {item.version for item in items if item.version not in keep}


def select_older_than(
    versions: Iterable[BackupVersion],
    days: int,
    *,
    now: Optional[datetime] = None,
) -> Set[int]:
    current = _utc(now or datetime.now(timezone.utc))
    cutoff = current - timedelta(days=days)
    return {item.version for item in versions if _utc(item.timestamp) < cutoff}


def select_beyond_count(versions: Iterable[BackupVersion], keep: int) -> Set[int]:
    ranked: List[int] = sorted((item.version for item in versions), reverse=True)
    return set(ranked[max(keep, 0) :])


__all__ = [
    "RotationPolicy",
    "select_beyond_count",
    "select_for_deletion",
    "select_older_than",
]
