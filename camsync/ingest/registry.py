"""Read access to the camera registry."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Mapping

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import text

from camsync.ingest.models import DeploymentRecord, DeviceRegistryEntry, RegisteredCamera

logger = logging.getLogger(__name__)

DEPLOYMENT_COLUMNS = """
    d.id, d.hardware_id, d.location_name, d.latitude, d.longitude, d.active,
    d.last_seen_date, d.missing_since_date, d.is_missing,
    d.consecutive_missing_days, d.missing_checked_date
"""


class StoreUnavailable(RuntimeError):
    """Raised when the registry store cannot be reached or queried."""


class RegistryStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def load_active_cameras(self) -> list[RegisteredCamera]:
        query = text(
            f"""
            SELECT {DEPLOYMENT_COLUMNS},
                   h.id AS h_id, h.device_id, h.brand, h.model, h.serial_number,
                   h.fw_version, h.cl_version, h.hw_version, h.condition, h.active AS h_active
            FROM camera_deployments d
            JOIN camera_hardware h ON h.id = d.hardware_id
            WHERE d.active = TRUE
            ORDER BY h.device_id, d.id
            """
        )
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(query).mappings().all()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not load camera registry: {exc}") from exc
        cameras = [
            RegisteredCamera(hardware=hardware_from_row(row, prefix="h_"), deployment=deployment_from_row(row))
            for row in rows
        ]
        logger.info("Loaded %s active camera deployments", len(cameras))
        return cameras


def lock_deployment(conn: Connection, deployment_id: int) -> DeploymentRecord | None:
    """Re-read one active deployment inside the caller's transaction.

    On PostgreSQL the row stays locked until the transaction ends, so two
    overlapping runs write the same deployment one after the other.
    """
    sql = f"SELECT {DEPLOYMENT_COLUMNS} FROM camera_deployments d WHERE d.id = :id AND d.active = TRUE"
    if conn.dialect.name != "sqlite":
        sql += " FOR UPDATE"
    row = conn.execute(text(sql), {"id": deployment_id}).mappings().first()
    return deployment_from_row(row) if row is not None else None


def deployment_from_row(row: Mapping[str, Any]) -> DeploymentRecord:
    return DeploymentRecord(
        id=int(row["id"]),
        hardware_id=int(row["hardware_id"]),
        location_name=row["location_name"],
        latitude=row["latitude"],
        longitude=row["longitude"],
        active=bool(row["active"]),
        last_seen_date=as_date(row["last_seen_date"]),
        missing_since_date=as_date(row["missing_since_date"]),
        is_missing=bool(row["is_missing"]),
        consecutive_missing_days=int(row["consecutive_missing_days"] or 0),
        missing_checked_date=as_date(row["missing_checked_date"]),
    )


def hardware_from_row(row: Mapping[str, Any], *, prefix: str = "") -> DeviceRegistryEntry:
    return DeviceRegistryEntry(
        id=int(row[f"{prefix}id"]),
        device_id=row["device_id"],
        brand=row["brand"],
        model=row["model"],
        serial_number=row["serial_number"],
        fw_version=row["fw_version"],
        cl_version=row["cl_version"],
        hw_version=row["hw_version"],
        condition=row["condition"],
        active=bool(row[f"{prefix}active"]),
    )


def as_date(value: Any) -> date | None:
    """Dates come back as strings from SQLite text queries."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])
