import pytest
from sqlalchemy import create_engine

from camsync.db.migrate import REQUIRED_TABLES, SCHEMA_PATH, load_statements, missing_tables
from camsync.ingest import load_devices, seed_devices
from camsync.ingest.registry import RegistryStore, StoreUnavailable, as_date


def test_load_active_cameras(seeded_engine):
    cameras = RegistryStore(seeded_engine).load_active_cameras()
    assert [c.device_id for c in cameras] == ["001", "002", "003"]
    first = cameras[0]
    assert first.hardware.fw_version == "8.3.1"
    assert first.deployment.location_name == "North Ridge Feeder"
    assert first.deployment.consecutive_missing_days == 0
    assert first.deployment.is_missing is False


def test_inactive_deployments_are_skipped(engine, add_camera):
    add_camera("010", active=False)
    add_camera("011")
    assert [c.device_id for c in RegistryStore(engine).load_active_cameras()] == ["011"]


def test_store_unavailable():
    with pytest.raises(StoreUnavailable):
        RegistryStore(create_engine("sqlite://", future=True)).load_active_cameras()


def test_seed_devices_is_repeatable(engine):
    devices = load_devices()
    assert devices[0].device_id == "001"
    assert seed_devices(engine, devices) == len(devices)
    assert seed_devices(engine, devices) == 0
    cameras = RegistryStore(engine).load_active_cameras()
    assert len(cameras) == len(devices)
    assert cameras[3].hardware.condition == "questionable"


def test_schema_statements():
    statements = list(load_statements(SCHEMA_PATH.read_text()))
    assert len(statements) == 5
    assert all(stmt.rstrip().endswith(";") for stmt in statements)
    assert any("UNIQUE (deployment_id, report_date)" in stmt for stmt in statements)


def test_as_date():
    assert as_date("2024-11-05") == as_date("2024-11-05 00:00:00")
    assert as_date(None) is None
    assert as_date("") is None


def test_missing_tables(engine):
    assert missing_tables(engine) == []
    assert missing_tables(create_engine("sqlite://", future=True)) == list(REQUIRED_TABLES)
