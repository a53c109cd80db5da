"""Advance per-deployment state from one matched snapshot."""

from __future__ import annotations

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import text

from camsync.ingest.models import (
    DeploymentRecord,
    DeviceRegistryEntry,
    NormalizedRow,
    RegisteredCamera,
    StatusReport,
    coerce_battery_status,
)
from camsync.ingest.registry import lock_deployment
from camsync.logic.activity import image_activity
from camsync.logic.alerts import Alert, evaluate_alert
from camsync.logic.matching import MatchResult
from camsync.logic.report import AttentionEntry, CameraOutcome, RunReport, WriteFailure

logger = logging.getLogger(__name__)

MISSING_FLAG_THRESHOLD = int(os.environ.get("MISSING_FLAG_THRESHOLD", 1))
SYNC_WRITE_CONCURRENCY = int(os.environ.get("SYNC_WRITE_CONCURRENCY", 4))

VERSION_FIELDS = ("fw_version", "cl_version", "hw_version")


def is_backfill(state: DeploymentRecord, effective: date) -> bool:
    return state.last_seen_date is not None and effective < state.last_seen_date


def advance_matched(state: DeploymentRecord, effective: date) -> DeploymentRecord:
    """Mark the deployment seen on ``effective``.

    A backfilled sighting older than ``last_seen_date`` leaves the state as
    it is; the newer runs already decided the missing streak.
    """
    if is_backfill(state, effective):
        return state
    return replace(
        state,
        last_seen_date=effective,
        missing_since_date=None,
        is_missing=False,
        consecutive_missing_days=0,
        missing_checked_date=None,
    )


def advance_unseen(
    state: DeploymentRecord, effective: date, *, flag_threshold: int | None = None
) -> DeploymentRecord:
    """Count one more missing day, at most once per effective date.

    A snapshot that is not newer than the last sighting says nothing about
    the camera, so the state is returned unchanged.
    """
    flag_threshold = MISSING_FLAG_THRESHOLD if flag_threshold is None else flag_threshold
    if state.last_seen_date is not None and effective <= state.last_seen_date:
        return state
    if state.consecutive_missing_days == 0:
        days = 1
    elif state.missing_checked_date is None or effective > state.missing_checked_date:
        days = state.consecutive_missing_days + 1
    else:
        return state
    return replace(
        state,
        missing_since_date=state.missing_since_date or effective,
        consecutive_missing_days=days,
        missing_checked_date=effective,
        is_missing=days >= flag_threshold,
    )


def hardware_drift(hardware: DeviceRegistryEntry, row: NormalizedRow) -> dict[str, str]:
    changes: dict[str, str] = {}
    for name in VERSION_FIELDS:
        value = getattr(row, name)
        if value and value != getattr(hardware, name):
            changes[name] = value
    return changes


@dataclass(slots=True)
class DeploymentResult:
    camera: RegisteredCamera
    state: DeploymentRecord
    alert: Alert
    outcome: str
    seen: bool
    newly_missing: bool = False
    report_created: bool = False
    hardware_fields: tuple[str, ...] = ()
    snapshot_written: bool = False


class Reconciler:
    """Writes one transaction per deployment through a bounded worker pool."""

    def __init__(
        self,
        engine: Engine,
        *,
        effective_date: date,
        source_report_timestamp: str | None = None,
        concurrency: int | None = None,
        missing_flag_threshold: int | None = None,
        missing_alert_threshold: int | None = None,
        signal_alert_threshold: int | None = None,
    ) -> None:
        self.engine = engine
        self.effective_date = effective_date
        self.source_report_timestamp = source_report_timestamp
        self.concurrency = max(1, concurrency or SYNC_WRITE_CONCURRENCY)
        self.missing_flag_threshold = (
            MISSING_FLAG_THRESHOLD if missing_flag_threshold is None else missing_flag_threshold
        )
        self.missing_alert_threshold = missing_alert_threshold
        self.signal_alert_threshold = signal_alert_threshold

    async def reconcile(self, match: MatchResult, report: RunReport) -> RunReport:
        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="camsync-write") as pool:
            tasks = [
                loop.run_in_executor(pool, self._guarded, camera, row)
                for camera, row in match.matched
            ]
            tasks.extend(
                loop.run_in_executor(pool, self._guarded, camera, None) for camera in match.unseen
            )
            results = await asyncio.gather(*tasks)
        for result in results:
            self._record(report, result)
        return report

    def _guarded(self, camera: RegisteredCamera, row: NormalizedRow | None) -> DeploymentResult | WriteFailure:
        try:
            if row is None:
                return self.persist_unseen(camera)
            return self.persist_matched(camera, row)
        except SQLAlchemyError as exc:
            logger.error(
                "Write failed for device %s (deployment %s): %s",
                camera.device_id,
                camera.deployment.id,
                exc,
            )
            return self._failure(camera, exc)
        except Exception as exc:
            logger.exception("Reconciliation failed for device %s (deployment %s)", camera.device_id, camera.deployment.id)
            return self._failure(camera, exc)

    @staticmethod
    def _failure(camera: RegisteredCamera, exc: Exception) -> WriteFailure:
        return WriteFailure(
            deployment_id=camera.deployment.id,
            device_id=camera.device_id,
            error=str(exc).splitlines()[0] if str(exc) else type(exc).__name__,
        )

    def persist_matched(self, camera: RegisteredCamera, row: NormalizedRow) -> DeploymentResult:
        with self.engine.begin() as conn:
            current = lock_deployment(conn, camera.deployment.id) or camera.deployment
            advanced = advance_matched(current, self.effective_date)
            # The report describes a day the camera was seen, backfilled or not.
            alert = self._alert(row, replace(advanced, consecutive_missing_days=0))
            status = self._status_report(camera, row, alert)
            created = self._insert_status_report(conn, status)
            result = DeploymentResult(
                camera=camera,
                state=advanced if created else current,
                alert=alert,
                outcome="reported" if created else "replayed",
                seen=True,
                report_created=created,
            )
            if created:
                if advanced != current:
                    self._update_deployment(conn, advanced)
                result.snapshot_written = self._upsert_daily_snapshot(conn, camera, row)
            # Backfilled rows carry older firmware strings.
            changes = {} if is_backfill(current, self.effective_date) else hardware_drift(camera.hardware, row)
            if changes:
                self._update_hardware(conn, camera.hardware.id, changes)
                result.hardware_fields = tuple(changes)
        return result

    def persist_unseen(self, camera: RegisteredCamera) -> DeploymentResult:
        with self.engine.begin() as conn:
            current = lock_deployment(conn, camera.deployment.id) or camera.deployment
            advanced = advance_unseen(current, self.effective_date, flag_threshold=self.missing_flag_threshold)
            if advanced != current:
                self._update_deployment(conn, advanced)
        return DeploymentResult(
            camera=camera,
            state=advanced,
            alert=self._alert(None, advanced),
            outcome="missing" if advanced.consecutive_missing_days else "unseen",
            seen=False,
            newly_missing=advanced.is_missing and not current.is_missing,
        )

    def _alert(self, row: NormalizedRow | None, state: DeploymentRecord) -> Alert:
        return evaluate_alert(
            row,
            state,
            missing_threshold=self.missing_alert_threshold,
            signal_threshold=self.signal_alert_threshold,
        )

    def _status_report(self, camera: RegisteredCamera, row: NormalizedRow, alert: Alert) -> StatusReport:
        return StatusReport(
            deployment_id=camera.deployment.id,
            hardware_id=camera.hardware.id,
            report_date=self.effective_date,
            battery_status=coerce_battery_status(row.battery_status),
            signal_level=row.signal_level,
            network_links=row.network_links,
            sd_images_count=row.sd_images_count,
            sd_free_space_mb=row.sd_free_space_mb,
            image_queue=row.image_queue,
            needs_attention=alert.needs_attention,
            alert_reason=alert.alert_reason,
            report_processing_date=datetime.now(timezone.utc),
            source_report_timestamp=self.source_report_timestamp,
        )

    def _insert_status_report(self, conn: Connection, status: StatusReport) -> bool:
        result = conn.execute(
            text(
                """
                INSERT INTO camera_status_reports (
                  deployment_id, hardware_id, report_date, battery_status, signal_level,
                  network_links, sd_images_count, sd_free_space_mb, image_queue,
                  needs_attention, alert_reason, report_processing_date, source_report_timestamp
                )
                VALUES (
                  :deployment_id, :hardware_id, :report_date, :battery_status, :signal_level,
                  :network_links, :sd_images_count, :sd_free_space_mb, :image_queue,
                  :needs_attention, :alert_reason, :report_processing_date, :source_report_timestamp
                )
                ON CONFLICT (deployment_id, report_date) DO NOTHING
                """
            ),
            {
                "deployment_id": status.deployment_id,
                "hardware_id": status.hardware_id,
                "report_date": status.report_date,
                "battery_status": status.battery_status,
                "signal_level": status.signal_level,
                "network_links": status.network_links,
                "sd_images_count": status.sd_images_count,
                "sd_free_space_mb": status.sd_free_space_mb,
                "image_queue": status.image_queue,
                "needs_attention": status.needs_attention,
                "alert_reason": status.alert_reason,
                "report_processing_date": status.report_processing_date,
                "source_report_timestamp": status.source_report_timestamp,
            },
        )
        return result.rowcount == 1

    def _update_deployment(self, conn: Connection, state: DeploymentRecord) -> None:
        conn.execute(
            text(
                """
                UPDATE camera_deployments SET
                  last_seen_date = :last_seen_date,
                  missing_since_date = :missing_since_date,
                  is_missing = :is_missing,
                  consecutive_missing_days = :consecutive_missing_days,
                  missing_checked_date = :missing_checked_date,
                  updated_at = :updated_at
                WHERE id = :id
                """
            ),
            {
                "id": state.id,
                "last_seen_date": state.last_seen_date,
                "missing_since_date": state.missing_since_date,
                "is_missing": state.is_missing,
                "consecutive_missing_days": state.consecutive_missing_days,
                "missing_checked_date": state.missing_checked_date,
                "updated_at": datetime.now(timezone.utc),
            },
        )

    def _update_hardware(self, conn: Connection, hardware_id: int, changes: dict[str, str]) -> None:
        # Column names come from VERSION_FIELDS only.
        assignments = ", ".join(f"{name} = :{name}" for name in changes)
        conn.execute(
            text(f"UPDATE camera_hardware SET {assignments}, updated_at = :updated_at WHERE id = :id"),
            {**changes, "updated_at": datetime.now(timezone.utc), "id": hardware_id},
        )

    def _upsert_daily_snapshot(self, conn: Connection, camera: RegisteredCamera, row: NormalizedRow) -> bool:
        previous = conn.execute(
            text(
                """
                SELECT sd_images_count FROM daily_camera_snapshots
                WHERE camera_device_id = :device_id AND date < :date
                ORDER BY date DESC
                LIMIT 1
                """
            ),
            {"device_id": camera.device_id, "date": self.effective_date},
        ).scalar_one_or_none()
        activity = image_activity(row.sd_images_count, previous)
        conn.execute(
            text(
                """
                INSERT INTO daily_camera_snapshots (
                  date, camera_device_id, collection_timestamp, battery_status,
                  signal_level, sd_images_count, images_added_today, activity_trend
                )
                VALUES (
                  :date, :device_id, :collected_at, :battery_status,
                  :signal_level, :sd_images_count, :images_added_today, :activity_trend
                )
                ON CONFLICT (date, camera_device_id) DO UPDATE SET
                  collection_timestamp = EXCLUDED.collection_timestamp,
                  battery_status = EXCLUDED.battery_status,
                  signal_level = EXCLUDED.signal_level,
                  sd_images_count = EXCLUDED.sd_images_count,
                  images_added_today = EXCLUDED.images_added_today,
                  activity_trend = EXCLUDED.activity_trend
                """
            ),
            {
                "date": self.effective_date,
                "device_id": camera.device_id,
                "collected_at": row.extracted_at or datetime.now(timezone.utc),
                "battery_status": row.battery_status,
                "signal_level": row.signal_level,
                "sd_images_count": row.sd_images_count,
                "images_added_today": activity.images_added_today,
                "activity_trend": activity.activity_trend,
            },
        )
        return True

    def _record(self, report: RunReport, result: DeploymentResult | WriteFailure) -> None:
        if isinstance(result, WriteFailure):
            report.failures.append(result)
            report.outcomes.append(
                CameraOutcome(
                    deployment_id=result.deployment_id,
                    device_id=result.device_id,
                    location_name="",
                    outcome="failed",
                    consecutive_missing_days=0,
                    is_missing=False,
                    needs_attention=False,
                    alert_reason=None,
                )
            )
            return
        camera, state, alert = result.camera, result.state, result.alert
        if result.report_created:
            report.status_reports_created += 1
        elif result.seen:
            report.replayed += 1
            logger.info("Deployment %s already reported for %s; skipping", state.id, self.effective_date)
        if result.newly_missing:
            report.newly_missing += 1
            logger.warning("Camera %s at %s flagged missing", camera.device_id, state.location_name)
        if result.hardware_fields:
            report.hardware_records_updated += 1
            report.hardware_fields_updated += len(result.hardware_fields)
            logger.info("Updated %s on hardware %s", ", ".join(result.hardware_fields), camera.device_id)
        if result.snapshot_written:
            report.snapshots_written += 1
        if alert.needs_attention and alert.alert_reason:
            report.attention.append(
                AttentionEntry(
                    deployment_id=state.id,
                    device_id=camera.device_id,
                    location_name=state.location_name,
                    alert_reason=alert.alert_reason,
                    seen=result.seen,
                )
            )
        report.outcomes.append(
            CameraOutcome(
                deployment_id=state.id,
                device_id=camera.device_id,
                location_name=state.location_name,
                outcome=result.outcome,
                consecutive_missing_days=state.consecutive_missing_days,
                is_missing=state.is_missing,
                needs_attention=alert.needs_attention,
                alert_reason=alert.alert_reason,
            )
        )
