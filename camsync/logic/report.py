"""Per-run outcome aggregation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from camsync.ingest.models import ParseNote


@dataclass(slots=True)
class WriteFailure:
    deployment_id: int
    device_id: str
    error: str


@dataclass(slots=True)
class AttentionEntry:
    deployment_id: int
    device_id: str
    location_name: str
    alert_reason: str
    seen: bool


@dataclass(slots=True)
class OrphanEntry:
    location_id: str
    camera_name: str | None
    reason: str


@dataclass(slots=True)
class CameraOutcome:
    """One registry camera's result, used for the status CSV."""

    deployment_id: int
    device_id: str
    location_name: str
    outcome: str
    consecutive_missing_days: int
    is_missing: bool
    needs_attention: bool
    alert_reason: str | None


@dataclass(slots=True)
class RunReport:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    effective_date: date | None = None
    source_report_timestamp: str | None = None
    rows_received: int = 0
    registry_size: int = 0
    matched: int = 0
    orphan: int = 0
    unseen: int = 0
    newly_missing: int = 0
    status_reports_created: int = 0
    replayed: int = 0
    hardware_records_updated: int = 0
    hardware_fields_updated: int = 0
    snapshots_written: int = 0
    notes: list[ParseNote] = field(default_factory=list)
    orphans: list[OrphanEntry] = field(default_factory=list)
    attention: list[AttentionEntry] = field(default_factory=list)
    failures: list[WriteFailure] = field(default_factory=list)
    outcomes: list[CameraOutcome] = field(default_factory=list)
    success: bool = False
    fatal_error: str | None = None
    exit_code: int = 0

    @property
    def write_failures(self) -> int:
        return len(self.failures)

    @property
    def completeness_score(self) -> float:
        if not self.registry_size:
            return 0.0
        return round(100.0 * self.matched / self.registry_size, 1)

    def finish(self, *, success: bool, fatal_error: str | None = None, exit_code: int = 0) -> "RunReport":
        self.success = success
        self.fatal_error = fatal_error
        self.exit_code = exit_code
        self.finished_at = datetime.now(timezone.utc)
        return self

    def warnings(self) -> list[str]:
        lines = [f"orphan row {o.location_id or '?'} ({o.camera_name or '-'}): {o.reason}" for o in self.orphans]
        lines.extend(f"{a.device_id} @ {a.location_name}: {a.alert_reason}" for a in self.attention)
        lines.extend(f"parse note {note}" for note in self.notes)
        return lines

    def errors(self) -> list[str]:
        lines = [f"write failed for {f.device_id} (deployment {f.deployment_id}): {f.error}" for f in self.failures]
        if self.fatal_error:
            lines.insert(0, self.fatal_error)
        return lines

    def summary_lines(self) -> list[str]:
        status = "SUCCESS" if self.success else "FAILED"
        lines = [
            f"Camera sync {status}",
            f"Effective date: {self.effective_date or '-'}",
            f"Source report time: {self.source_report_timestamp or '-'}",
            f"Rows received: {self.rows_received}; registry cameras: {self.registry_size}",
            f"Matched: {self.matched}; orphan: {self.orphan}; unseen: {self.unseen} ({self.newly_missing} newly missing)",
            f"Status reports created: {self.status_reports_created}; replayed: {self.replayed}",
            f"Hardware records updated: {self.hardware_records_updated} ({self.hardware_fields_updated} fields)",
            f"Daily snapshots written: {self.snapshots_written}",
            f"Cameras needing attention: {len(self.attention)}",
            f"Parse notes: {len(self.notes)}; write failures: {self.write_failures}",
            f"Data completeness: {self.completeness_score:.1f}%",
        ]
        if self.fatal_error:
            lines.append(f"Fatal error: {self.fatal_error}")
        return lines

    def summary(self) -> str:
        return "\n".join(self.summary_lines())

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["write_failures"] = self.write_failures
        payload["completeness_score"] = self.completeness_score
        return _jsonable(payload)


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value
