"""Attention rules for deployed cameras."""

from __future__ import annotations

import os
from dataclasses import dataclass

from camsync.ingest.models import DeploymentRecord, NormalizedRow, coerce_battery_status

MISSING_ALERT_THRESHOLD = int(os.environ.get("MISSING_ALERT_THRESHOLD", 2))
SIGNAL_ALERT_THRESHOLD = int(os.environ.get("SIGNAL_ALERT_THRESHOLD", 20))

CRITICAL_BATTERY_REASON = "critical battery level — immediate replacement required"
LOW_BATTERY_REASON = "low battery level requires replacement"
LOW_SIGNAL_REASON = "signal level critically low"


@dataclass(slots=True, frozen=True)
class Alert:
    needs_attention: bool
    alert_reason: str | None = None


NO_ALERT = Alert(False, None)


def missing_reason(days: int) -> str:
    return f"camera missing for {days} consecutive days"


def evaluate_alert(
    reading: NormalizedRow | None,
    deployment: DeploymentRecord,
    *,
    missing_threshold: int | None = None,
    signal_threshold: int | None = None,
) -> Alert:
    """First matching rule wins; a missing camera outranks any stale reading."""
    missing_threshold = MISSING_ALERT_THRESHOLD if missing_threshold is None else missing_threshold
    signal_threshold = SIGNAL_ALERT_THRESHOLD if signal_threshold is None else signal_threshold

    days = deployment.consecutive_missing_days
    if days >= missing_threshold and days > 0:
        return Alert(True, missing_reason(days))
    if reading is None:
        return NO_ALERT

    battery = coerce_battery_status(reading.battery_status)
    if battery == "Critical":
        return Alert(True, CRITICAL_BATTERY_REASON)
    if battery == "Low":
        return Alert(True, LOW_BATTERY_REASON)
    if reading.signal_level is not None and reading.signal_level < signal_threshold:
        return Alert(True, LOW_SIGNAL_REASON)
    return NO_ALERT
