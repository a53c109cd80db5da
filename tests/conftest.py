from datetime import date, datetime, timezone

import pytest
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    text,
)
from sqlalchemy.pool import StaticPool

from camsync.ingest.models import RawSnapshotRow

metadata = MetaData()

camera_hardware = Table(
    "camera_hardware",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("device_id", Text, nullable=False, unique=True),
    Column("brand", Text),
    Column("model", Text),
    Column("serial_number", Text),
    Column("fw_version", Text),
    Column("cl_version", Text),
    Column("hw_version", Text),
    Column("condition", Text, nullable=False, server_default="good"),
    Column("active", Boolean, nullable=False, server_default=text("1")),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
    Column("updated_at", DateTime, server_default=func.current_timestamp()),
)

camera_deployments = Table(
    "camera_deployments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("hardware_id", Integer, ForeignKey("camera_hardware.id"), nullable=False),
    Column("location_name", Text, nullable=False),
    Column("latitude", Numeric),
    Column("longitude", Numeric),
    Column("active", Boolean, nullable=False, server_default=text("1")),
    Column("last_seen_date", Date),
    Column("missing_since_date", Date),
    Column("is_missing", Boolean, nullable=False, server_default=text("0")),
    Column("consecutive_missing_days", Integer, nullable=False, server_default=text("0")),
    Column("missing_checked_date", Date),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
    Column("updated_at", DateTime, server_default=func.current_timestamp()),
)

Index(
    "camera_deployments_active_hardware",
    camera_deployments.c.hardware_id,
    unique=True,
    sqlite_where=camera_deployments.c.active == True,  # noqa: E712
)

camera_status_reports = Table(
    "camera_status_reports",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("deployment_id", Integer, ForeignKey("camera_deployments.id"), nullable=False),
    Column("hardware_id", Integer, ForeignKey("camera_hardware.id"), nullable=False),
    Column("report_date", Date, nullable=False),
    Column("battery_status", Text, nullable=False),
    Column("signal_level", Integer),
    Column("network_links", Integer),
    Column("sd_images_count", Integer),
    Column("sd_free_space_mb", Integer),
    Column("image_queue", Integer),
    Column("needs_attention", Boolean, nullable=False, server_default=text("0")),
    Column("alert_reason", Text),
    Column("report_processing_date", DateTime, nullable=False),
    Column("source_report_timestamp", Text),
    UniqueConstraint("deployment_id", "report_date"),
)

daily_camera_snapshots = Table(
    "daily_camera_snapshots",
    metadata,
    Column("date", Date, primary_key=True),
    Column("camera_device_id", Text, primary_key=True),
    Column("collection_timestamp", DateTime, nullable=False),
    Column("battery_status", Text),
    Column("signal_level", Integer),
    Column("sd_images_count", Integer),
    Column("images_added_today", Integer, nullable=False, server_default=text("0")),
    Column("activity_trend", Text, nullable=False, server_default="insufficient_data"),
)

EXTRACTED_AT = datetime(2024, 11, 5, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def engine(request, tmp_path):
    if getattr(request, "param", None) == "file":
        # Pooled connections, one per writer thread.
        engine = create_engine(
            f"sqlite:///{tmp_path / 'camsync.db'}",
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    else:
        engine = create_engine(
            "sqlite://",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def add_camera(engine):
    """Register one camera (hardware + active deployment) and return the deployment id."""

    def _add(device_id: str, location_name: str | None = None, *, hardware=None, **deployment):
        with engine.begin() as conn:
            hardware_id = conn.execute(
                camera_hardware.insert().values(
                    device_id=device_id,
                    brand="Cuddeback",
                    model="CuddeLink J",
                    **(hardware or {}),
                )
            ).inserted_primary_key[0]
            return conn.execute(
                camera_deployments.insert().values(
                    hardware_id=hardware_id,
                    location_name=location_name or f"Stand {device_id}",
                    **deployment,
                )
            ).inserted_primary_key[0]

    return _add


@pytest.fixture()
def seeded_engine(engine, add_camera):
    add_camera("001", "North Ridge Feeder", hardware={"fw_version": "8.3.1", "cl_version": "5.2.0", "hw_version": "3"})
    add_camera("002", "Creek Bottom Stand", hardware={"fw_version": "8.3.1"})
    add_camera("003", "Pine Thicket Trail")
    return engine


def make_row(location_id: str, **cells) -> RawSnapshotRow:
    values = {
        "sequence_number": "1",
        "camera_id": f"Camera {location_id}",
        "level": "85%",
        "links": "3",
        "battery": "OK",
        "battery_days": "120",
        "image_queue": "0",
        "sd_images": "1,204",
        "sd_free_space": "14,800 MB",
    }
    values.update(cells)
    return RawSnapshotRow.from_mapping({"location_id": location_id, **values}, extracted_at=EXTRACTED_AT)


@pytest.fixture()
def row_factory():
    return make_row


@pytest.fixture()
def fleet_engine(seeded_engine):
    """Registry with one missing camera and a low-battery alert on the latest report."""
    with seeded_engine.begin() as conn:
        ids = dict(conn.execute(text("SELECT device_id, id FROM camera_hardware")).all())
        deployments = dict(conn.execute(text("SELECT hardware_id, id FROM camera_deployments")).all())
        conn.execute(
            camera_deployments.update()
            .where(camera_deployments.c.hardware_id == ids["003"])
            .values(
                is_missing=True,
                consecutive_missing_days=3,
                missing_since_date=date(2024, 11, 3),
                last_seen_date=date(2024, 11, 2),
            )
        )
        processed = datetime(2024, 11, 5, 12, 0)
        conn.execute(
            camera_status_reports.insert(),
            [
                {
                    "deployment_id": deployments[ids["001"]],
                    "hardware_id": ids["001"],
                    "report_date": date(2024, 11, 5),
                    "battery_status": "Low",
                    "signal_level": 60,
                    "sd_images_count": 1200,
                    "needs_attention": True,
                    "alert_reason": "low battery level requires replacement",
                    "report_processing_date": processed,
                },
                {
                    "deployment_id": deployments[ids["002"]],
                    "hardware_id": ids["002"],
                    "report_date": date(2024, 11, 4),
                    "battery_status": "Critical",
                    "signal_level": 80,
                    "sd_images_count": 300,
                    "needs_attention": True,
                    "alert_reason": "critical battery level — immediate replacement required",
                    "report_processing_date": processed,
                },
                {
                    "deployment_id": deployments[ids["002"]],
                    "hardware_id": ids["002"],
                    "report_date": date(2024, 11, 5),
                    "battery_status": "Good",
                    "signal_level": 80,
                    "sd_images_count": 350,
                    "needs_attention": False,
                    "alert_reason": None,
                    "report_processing_date": processed,
                },
            ],
        )
        conn.execute(
            daily_camera_snapshots.insert(),
            [
                {"date": date(2024, 11, 5), "camera_device_id": "001", "collection_timestamp": processed, "battery_status": "OK (40%)"},
                {"date": date(2024, 11, 4), "camera_device_id": "002", "collection_timestamp": processed, "battery_status": "Low"},
                {"date": date(2024, 11, 5), "camera_device_id": "002", "collection_timestamp": processed, "battery_status": "OK (90%)"},
                {"date": date(2024, 11, 5), "camera_device_id": "999", "collection_timestamp": processed, "battery_status": "OK (5%)"},
            ],
        )
    return seeded_engine
