"""Celery configuration for the scheduled camera sync."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from camsync.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

celery_app = Celery("camsync", broker=broker_url, backend=backend_url, include=["camsync.jobs.camera_sync"])
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "daily-camera-sync": {
        "task": "camsync.jobs.camera_sync.run",
        "schedule": crontab(hour=int(os.environ.get("SYNC_HOUR", "6")), minute=int(os.environ.get("SYNC_MINUTE", "15"))),
    },
}


@celery_app.task(name="camsync.jobs.camera_sync.run")
def run_camera_sync_task() -> dict:  # pragma: no cover - executed by worker
    import asyncio

    from camsync.jobs.camera_sync import run_camera_sync

    report = asyncio.run(run_camera_sync())
    return {"success": report.success, "exit_code": report.exit_code, "summary": report.summary()}
