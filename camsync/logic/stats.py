"""Fleet statistics and attention listings over the registry."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date

import numpy as np
from sqlalchemy.engine import Engine
from sqlalchemy.sql import text

from camsync.ingest.registry import as_date
from camsync.logic.alerts import MISSING_ALERT_THRESHOLD, missing_reason

_PERCENT_RE = re.compile(r"(\d+)%")
ASSUMED_OK_BATTERY_PERCENT = 75

LATEST_REPORTS = """
    SELECT r.deployment_id, r.report_date, r.battery_status, r.signal_level,
           r.sd_images_count, r.needs_attention, r.alert_reason
    FROM camera_status_reports r
    JOIN (
        SELECT deployment_id, MAX(report_date) AS report_date
        FROM camera_status_reports
        GROUP BY deployment_id
    ) latest ON latest.deployment_id = r.deployment_id AND latest.report_date = r.report_date
"""

# Vendor battery text (e.g. "OK (85%)") survives only on the daily snapshot.
LATEST_BATTERY_TEXT = """
    SELECT s.battery_status
    FROM daily_camera_snapshots s
    JOIN (
        SELECT camera_device_id, MAX(date) AS date
        FROM daily_camera_snapshots
        GROUP BY camera_device_id
    ) latest ON latest.camera_device_id = s.camera_device_id AND latest.date = s.date
    JOIN camera_hardware h ON h.device_id = s.camera_device_id
    JOIN camera_deployments d ON d.hardware_id = h.id AND d.active = TRUE
"""


@dataclass(slots=True)
class FleetStats:
    total_hardware: int = 0
    active_deployments: int = 0
    missing_cameras: int = 0
    cameras_with_alerts: int = 0
    average_battery_level: int | None = None
    total_photos_stored: int = 0
    cameras_by_brand: dict[str, int] = field(default_factory=dict)
    alerts_by_type: dict[str, int] = field(default_factory=dict)
    missing_by_days: dict[int, int] = field(default_factory=dict)


@dataclass(slots=True)
class AttentionCamera:
    deployment_id: int
    device_id: str
    location_name: str
    alert_reason: str
    report_date: date | None
    consecutive_missing_days: int


@dataclass(slots=True)
class MissingCamera:
    deployment_id: int
    hardware_id: int
    device_id: str
    location_name: str
    last_seen_date: date | None
    missing_since_date: date | None
    consecutive_missing_days: int


def alert_type(reason: str) -> str:
    lowered = reason.lower()
    for keyword, label in (("battery", "Battery"), ("storage", "Storage"), ("signal", "Signal"), ("missing", "Missing")):
        if keyword in lowered:
            return label
    return "Other"


def battery_percent(status: str | None) -> int | None:
    """Battery level as a percentage when the text carries one; ``ok``/``good`` reads as 75."""
    if not status:
        return None
    match = _PERCENT_RE.search(status)
    if match:
        return int(match.group(1))
    lowered = status.lower()
    if "ok" in lowered or lowered == "good":
        return ASSUMED_OK_BATTERY_PERCENT
    return None


def fleet_stats(engine: Engine) -> FleetStats:
    with engine.connect() as conn:
        hardware = conn.execute(text("SELECT brand, active FROM camera_hardware")).mappings().all()
        deployments = conn.execute(
            text(
                """
                SELECT id, is_missing, consecutive_missing_days
                FROM camera_deployments
                WHERE active = TRUE
                """
            )
        ).mappings().all()
        reports = conn.execute(text(LATEST_REPORTS)).mappings().all()
        batteries = conn.execute(text(LATEST_BATTERY_TEXT)).scalars().all()

    active_ids = {row["id"] for row in deployments}
    reports = [row for row in reports if row["deployment_id"] in active_ids]

    stats = FleetStats(
        total_hardware=len(hardware),
        active_deployments=len(deployments),
        missing_cameras=sum(1 for row in deployments if row["is_missing"]),
    )
    stats.cameras_by_brand = dict(Counter(row["brand"] for row in hardware if row["brand"] and row["active"]))
    stats.missing_by_days = dict(
        sorted(Counter(int(row["consecutive_missing_days"] or 0) for row in deployments if row["is_missing"]).items())
    )
    alerting = [row for row in reports if row["needs_attention"] and row["alert_reason"]]
    stats.alerts_by_type = dict(Counter(alert_type(row["alert_reason"]) for row in alerting))
    stats.cameras_with_alerts = len(alerting)

    levels = [level for level in map(battery_percent, batteries) if level is not None]
    if levels:
        stats.average_battery_level = int(round(float(np.mean(levels))))
    stats.total_photos_stored = int(sum(row["sd_images_count"] or 0 for row in reports))
    return stats


def cameras_needing_attention(engine: Engine, *, missing_threshold: int | None = None) -> list[AttentionCamera]:
    """Active cameras whose latest state needs a visit, missing cameras first."""
    missing_threshold = MISSING_ALERT_THRESHOLD if missing_threshold is None else missing_threshold
    query = text(
        f"""
        SELECT d.id AS deployment_id, h.device_id, d.location_name, d.consecutive_missing_days,
               lr.report_date, lr.needs_attention, lr.alert_reason
        FROM camera_deployments d
        JOIN camera_hardware h ON h.id = d.hardware_id
        LEFT JOIN ({LATEST_REPORTS}) lr ON lr.deployment_id = d.id
        WHERE d.active = TRUE
        ORDER BY h.device_id
        """
    )
    with engine.connect() as conn:
        rows = conn.execute(query).mappings().all()

    cameras: list[AttentionCamera] = []
    for row in rows:
        days = int(row["consecutive_missing_days"] or 0)
        if days >= missing_threshold and days > 0:
            reason = missing_reason(days)
        elif row["needs_attention"] and row["alert_reason"]:
            reason = row["alert_reason"]
        else:
            continue
        cameras.append(
            AttentionCamera(
                deployment_id=int(row["deployment_id"]),
                device_id=row["device_id"],
                location_name=row["location_name"],
                alert_reason=reason,
                report_date=as_date(row["report_date"]),
                consecutive_missing_days=days,
            )
        )
    cameras.sort(key=lambda c: (-c.consecutive_missing_days, c.device_id))
    return cameras


def missing_cameras(engine: Engine) -> list[MissingCamera]:
    query = text(
        """
        SELECT d.id, d.hardware_id, h.device_id, d.location_name, d.last_seen_date,
               d.missing_since_date, d.consecutive_missing_days
        FROM camera_deployments d
        JOIN camera_hardware h ON h.id = d.hardware_id
        WHERE d.active = TRUE AND d.is_missing = TRUE
        ORDER BY d.consecutive_missing_days DESC, h.device_id
        """
    )
    with engine.connect() as conn:
        rows = conn.execute(query).mappings().all()
    return [
        MissingCamera(
            deployment_id=int(row["id"]),
            hardware_id=int(row["hardware_id"]),
            device_id=row["device_id"],
            location_name=row["location_name"],
            last_seen_date=as_date(row["last_seen_date"]),
            missing_since_date=as_date(row["missing_since_date"]),
            consecutive_missing_days=int(row["consecutive_missing_days"] or 0),
        )
        for row in rows
    ]
