"""Snapshot and registry data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping

BATTERY_STATUSES = ("Good", "Low", "Critical", "Unknown")
CAMERA_CONDITIONS = ("good", "questionable", "poor", "retired")

_BATTERY_ALIASES = {
    "full": "Good",
    "good": "Good",
    "ok": "Good",
    "ext ok": "Good",
    "low": "Low",
    "critical": "Critical",
}

RAW_COLUMNS = (
    "sequence_number",
    "location_id",
    "camera_id",
    "level",
    "links",
    "battery",
    "battery_days",
    "image_queue",
    "sd_images",
    "sd_free_space",
    "hw_version",
    "fw_version",
    "cl_version",
)


@dataclass(slots=True, frozen=True)
class RawSnapshotRow:
    sequence_number: str = ""
    location_id: str = ""
    camera_id: str = ""
    level: str = ""
    links: str = ""
    battery: str = ""
    battery_days: str = ""
    image_queue: str = ""
    sd_images: str = ""
    sd_free_space: str = ""
    hw_version: str = ""
    fw_version: str = ""
    cl_version: str = ""
    extracted_at: datetime | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, extracted_at: datetime | None = None) -> "RawSnapshotRow":
        """Build a row from a loosely-typed mapping; every cell becomes text."""
        cells = {name: _cell_text(data.get(name)) for name in RAW_COLUMNS}
        return cls(**cells, extracted_at=extracted_at)


@dataclass(slots=True)
class Snapshot:
    rows: list[RawSnapshotRow]
    last_updated: str | None
    extracted_at: datetime


@dataclass(slots=True, frozen=True)
class ParseNote:
    location_id: str
    field: str
    raw: str
    message: str

    def __str__(self) -> str:
        return f"{self.location_id or '?'}.{self.field}: {self.message} ({self.raw!r})"


@dataclass(slots=True)
class NormalizedRow:
    location_id: str
    camera_name: str | None
    sequence_number: int | None
    signal_level: int | None
    network_links: int | None
    battery_status: str | None
    battery_days: int | None
    image_queue: int | None
    sd_images_count: int | None
    sd_free_space_mb: int | None
    hw_version: str | None
    fw_version: str | None
    cl_version: str | None
    extracted_at: datetime | None = None
    notes: list[ParseNote] = field(default_factory=list)


@dataclass(slots=True)
class DeviceRegistryEntry:
    id: int
    device_id: str
    brand: str | None = None
    model: str | None = None
    serial_number: str | None = None
    fw_version: str | None = None
    cl_version: str | None = None
    hw_version: str | None = None
    condition: str = "good"
    active: bool = True


@dataclass(slots=True)
class DeploymentRecord:
    id: int
    hardware_id: int
    location_name: str
    latitude: float | None = None
    longitude: float | None = None
    active: bool = True
    last_seen_date: date | None = None
    missing_since_date: date | None = None
    is_missing: bool = False
    consecutive_missing_days: int = 0
    missing_checked_date: date | None = None


@dataclass(slots=True)
class RegisteredCamera:
    hardware: DeviceRegistryEntry
    deployment: DeploymentRecord

    @property
    def device_id(self) -> str:
        return self.hardware.device_id


@dataclass(slots=True)
class StatusReport:
    deployment_id: int
    hardware_id: int
    report_date: date
    battery_status: str
    signal_level: int | None
    network_links: int | None
    sd_images_count: int | None
    sd_free_space_mb: int | None
    image_queue: int | None
    needs_attention: bool
    alert_reason: str | None
    report_processing_date: datetime
    source_report_timestamp: str | None


@dataclass(slots=True)
class Device:
    """Seed record for the device registry."""

    device_id: str
    location_name: str
    brand: str | None = None
    model: str | None = None
    serial_number: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    condition: str = "good"


def coerce_battery_status(value: str | None) -> str:
    """Map vendor battery text onto the stored enum; unknown text is ``Unknown``."""
    if not value:
        return "Unknown"
    return _BATTERY_ALIASES.get(" ".join(value.split()).casefold(), "Unknown")


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
