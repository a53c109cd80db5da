"""Ingestion helpers."""

from __future__ import annotations

import pathlib
from typing import Iterable

import yaml
from sqlalchemy.engine import Engine
from sqlalchemy.sql import text

from camsync.ingest.models import Device

DEVICES_PATH = pathlib.Path(__file__).with_name("devices.yml")


def load_devices(path: pathlib.Path | None = None, limit: int | None = None) -> list[Device]:
    data = yaml.safe_load((path or DEVICES_PATH).read_text()) or []
    devices = [Device(**{**item, "device_id": str(item["device_id"])}) for item in data]
    if limit:
        return devices[:limit]
    return devices


def seed_devices(engine: Engine, devices: Iterable[Device]) -> int:
    """Register hardware and an active deployment for each device not yet known."""
    created = 0
    with engine.begin() as conn:
        for device in devices:
            conn.execute(
                text(
                    """
                    INSERT INTO camera_hardware (device_id, brand, model, serial_number, condition, active)
                    VALUES (:device_id, :brand, :model, :serial_number, :condition, TRUE)
                    ON CONFLICT (device_id) DO NOTHING
                    """
                ),
                {
                    "device_id": device.device_id,
                    "brand": device.brand,
                    "model": device.model,
                    "serial_number": device.serial_number,
                    "condition": device.condition,
                },
            )
            hardware_id = conn.execute(
                text("SELECT id FROM camera_hardware WHERE device_id = :device_id"),
                {"device_id": device.device_id},
            ).scalar_one()
            deployed = conn.execute(
                text("SELECT id FROM camera_deployments WHERE hardware_id = :id AND active = TRUE"),
                {"id": hardware_id},
            ).scalar_one_or_none()
            if deployed is not None:
                continue
            conn.execute(
                text(
                    """
                    INSERT INTO camera_deployments (hardware_id, location_name, latitude, longitude, active)
                    VALUES (:hardware_id, :location_name, :latitude, :longitude, TRUE)
                    """
                ),
                {
                    "hardware_id": hardware_id,
                    "location_name": device.location_name,
                    "latitude": device.latitude,
                    "longitude": device.longitude,
                },
            )
            created += 1
    return created
