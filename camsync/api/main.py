"""FastAPI application exposing reconciled camera status."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from camsync.db.session import create_engine_from_env
from camsync.logic.stats import cameras_needing_attention, fleet_stats, missing_cameras

logger = logging.getLogger(__name__)

app = FastAPI(title="Camera Sync Status API")


class AttentionCameraResponse(BaseModel):
    deployment_id: int
    device_id: str
    location_name: str
    alert_reason: str
    report_date: date | None = None
    consecutive_missing_days: int


class MissingCameraResponse(BaseModel):
    deployment_id: int
    hardware_id: int
    device_id: str
    location_name: str
    last_seen_date: date | None = None
    missing_since_date: date | None = None
    consecutive_missing_days: int


class FleetStatsResponse(BaseModel):
    total_hardware: int
    active_deployments: int
    missing_cameras: int
    cameras_with_alerts: int
    average_battery_level: int | None = None
    total_photos_stored: int
    cameras_by_brand: dict[str, int]
    alerts_by_type: dict[str, int]
    missing_by_days: dict[int, int]


class HealthResponse(BaseModel):
    status: str
    database: bool


def get_engine() -> Engine:
    return create_engine_from_env()


@app.get("/cameras/attention", response_model=list[AttentionCameraResponse])
async def attention(engine: Engine = Depends(get_engine)) -> list[AttentionCameraResponse]:
    cameras = _query(cameras_needing_attention, engine)
    return [AttentionCameraResponse(**asdict(camera)) for camera in cameras]


@app.get("/cameras/missing", response_model=list[MissingCameraResponse])
async def missing(engine: Engine = Depends(get_engine)) -> list[MissingCameraResponse]:
    cameras = _query(missing_cameras, engine)
    return [MissingCameraResponse(**asdict(camera)) for camera in cameras]


@app.get("/cameras/stats", response_model=FleetStatsResponse)
async def stats(engine: Engine = Depends(get_engine)) -> FleetStatsResponse:
    return FleetStatsResponse(**asdict(_query(fleet_stats, engine)))


@app.get("/health", response_model=HealthResponse)
async def health(engine: Engine = Depends(get_engine)) -> HealthResponse:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Health check failed: %s", exc)
        return HealthResponse(status="degraded", database=False)
    return HealthResponse(status="ok", database=True)


def _query(func, engine: Engine):
    try:
        return func(engine)
    except SQLAlchemyError as exc:
        logger.error("Registry query failed: %s", exc)
        raise HTTPException(status_code=503, detail="Registry store unavailable") from exc
