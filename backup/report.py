"""Render diff results as text, JSON or HTML reports."""
from __future__ import annotations

import html
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .types import BackupVersion, ChangeType, DiffResult

_MAX_VALUE_LENGTH = 100
_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_PREFIX = {
    ChangeType.ADDED: "+ ",
    ChangeType.MODIFIED: "~ ",
    ChangeType.DELETED: "- ",
    ChangeType.UNCHANGED: "  ",
}


class _ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VersionInfo(_ReportModel):
    """Snapshot on one side of a diff; ``None`` fields mean the live file."""

    version: Optional[int] = Field(None, description="Backup version number, null for the live file.")
    timestamp: Optional[datetime] = Field(None, description="Creation time of the snapshot (UTC).")
    operation: str = Field("current", description="Operation label recorded with the snapshot.")
    hash: Optional[str] = Field(None, description="SHA-256 of the snapshot content.")


class KeyChange(_ReportModel):
    key: str
    type: ChangeType
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    old_comment: Optional[str] = None
    new_comment: Optional[str] = None


class Statistics(_ReportModel):
    total_keys: int = Field(..., ge=0)
    added_count: int = Field(..., ge=0)
    modified_count: int = Field(..., ge=0)
    deleted_count: int = Field(..., ge=0)
    unchanged_count: int = Field(..., ge=0)
    total_changes: int = Field(..., ge=0)


class DiffReport(_ReportModel):
    version_a: VersionInfo
    version_b: VersionInfo
    include_unchanged: bool
    statistics: Statistics
    changes: List[KeyChange]


def _version_info(record: Optional[BackupVersion]) -> VersionInfo:
    if record is None:
        return VersionInfo()
    return VersionInfo(
        version=record.version,
        timestamp=record.timestamp,
        operation=record.operation,
        hash=record.hash,
    )


def build_report(diff: DiffResult) -> DiffReport:
    stats = diff.statistics
    return DiffReport(
        version_a=_version_info(diff.version_a),
        version_b=_version_info(diff.version_b),
        include_unchanged=diff.include_unchanged,
        statistics=Statistics(
            total_keys=stats.total_keys,
            added_count=stats.added,
            modified_count=stats.modified,
            deleted_count=stats.deleted,
            unchanged_count=stats.unchanged,
            total_changes=stats.total_changes,
        ),
        changes=[
            KeyChange(
                key=change.key,
                type=change.change_type,
                old_value=change.old_value,
                new_value=change.new_value,
                old_comment=change.old_comment,
                new_comment=change.new_comment,
            )
            for change in diff.changes
        ],
    )


def truncate_value(value: Optional[str], max_length: int = _MAX_VALUE_LENGTH) -> str:
    if not value:
        return ""
    if len(value) <= max_length:
        return value
    return value[:max_length] + "..."


def _label(info: VersionInfo) -> str:
    return f"Version {info.version}" if info.version is not None else "Current"


def _when(info: VersionInfo) -> str:
    return info.timestamp.strftime(_TIME_FORMAT) if info.timestamp else "now"


def format_as_text(diff: DiffResult) -> str:
    report = build_report(diff)
    stats = report.statistics
    lines = [
        f"Diff: {_label(report.version_a)} -> {_label(report.version_b)}",
        f"Time: {_when(report.version_a)} -> {_when(report.version_b)}",
        "",
        "Statistics:",
        f"  Total keys: {stats.total_keys}",
        f"  Added:      {stats.added_count}",
        f"  Modified:   {stats.modified_count}",
        f"  Deleted:    {stats.deleted_count}",
        f"  Unchanged:  {stats.unchanged_count}",
        "",
    ]
    if report.changes:
        lines.extend(["Changes:", ""])
    for change in report.changes:
        lines.append(f"{_PREFIX[change.type]}{change.key}")
        if change.type is ChangeType.ADDED:
            lines.append(f"    New: {truncate_value(change.new_value)}")
            if change.new_comment:
                lines.append(f"    Comment: {change.new_comment}")
        elif change.type is ChangeType.DELETED:
            lines.append(f"    Old: {truncate_value(change.old_value)}")
        elif change.type is ChangeType.MODIFIED:
            lines.append(f"    Old: {truncate_value(change.old_value)}")
            lines.append(f"    New: {truncate_value(change.new_value)}")
        lines.append("")
    return "\n".join(lines)


def format_as_json(diff: DiffResult) -> str:
    return build_report(diff).model_dump_json(by_alias=True, indent=2)


_HTML_CLASS = {
    ChangeType.ADDED: "added",
    ChangeType.MODIFIED: "modified",
    ChangeType.DELETED: "deleted",
    ChangeType.UNCHANGED: "unchanged",
}

_HTML_STYLE = """
    body { font-family: Arial, sans-serif; margin: 20px; }
    .stats { background: #f5f5f5; padding: 15px; border-radius: 5px; margin: 20px 0; }
    .change { margin: 10px 0; padding: 10px; border-left: 4px solid #ccc; }
    .added { border-color: #28a745; background: #d4edda; }
    .modified { border-color: #ffc107; background: #fff3cd; }
    .deleted { border-color: #dc3545; background: #f8d7da; }
    .key { font-weight: bold; }
    .value { font-family: monospace; margin: 5px 0; }
    .old { text-decoration: line-through; color: #999; }
"""


def format_as_html(diff: DiffResult) -> str:
    report = build_report(diff)
    stats = report.statistics
    out = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '  <meta charset="utf-8">',
        "  <title>Backup Diff Report</title>",
        f"  <style>{_HTML_STYLE}  </style>",
        "</head>",
        "<body>",
        "  <h1>Backup Diff Report</h1>",
        f"  <p><strong>{_label(report.version_a)}</strong> ({_when(report.version_a)}) &rarr; "
        f"<strong>{_label(report.version_b)}</strong> ({_when(report.version_b)})</p>",
        '  <div class="stats">',
        "    <table>",
        f"      <tr><td>Total keys:</td><td>{stats.total_keys}</td></tr>",
        f"      <tr><td>Added:</td><td>{stats.added_count}</td></tr>",
        f"      <tr><td>Modified:</td><td>{stats.modified_count}</td></tr>",
        f"      <tr><td>Deleted:</td><td>{stats.deleted_count}</td></tr>",
        f"      <tr><td>Unchanged:</td><td>{stats.unchanged_count}</td></tr>",
        "    </table>",
        "  </div>",
    ]
    for change in report.changes:
        out.append(f'  <div class="change {_HTML_CLASS[change.type]}">')
        out.append(f'    <div class="key">{html.escape(change.key)}</div>')
        if change.type in (ChangeType.DELETED, ChangeType.MODIFIED):
            out.append(f'    <div class="value old">- {html.escape(change.old_value or "")}</div>')
        if change.type in (ChangeType.ADDED, ChangeType.MODIFIED, ChangeType.UNCHANGED):
            out.append(f'    <div class="value">+ {html.escape(change.new_value or "")}</div>')
        out.append("  </div>")
    out.extend(["</body>", "</html>", ""])
    return "\n".join(out)


__all__ = [
    "DiffReport",
    "build_report",
    "format_as_html",
    "format_as_json",
    "format_as_text",
    "truncate_value",
]
