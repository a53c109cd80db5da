"""Run artifact export helpers."""

from __future__ import annotations

import csv
import json
import logging
import os
from dataclasses import asdict
from pathlib import Path

import boto3

from camsync.logic.report import RunReport
from camsync.utils.dates import format_date, today_in_tz

logger = logging.getLogger(__name__)

OUTPUT_DIR = Path(os.environ.get("SYNC_OUTPUT_DIR", "artifacts/sync"))

RESULTS_FILE = "sync-results.json"
LOG_FILE = "sync-log.txt"

CSV_COLUMNS = [
    "date",
    "device_id",
    "location_name",
    "deployment_id",
    "outcome",
    "consecutive_missing_days",
    "is_missing",
    "needs_attention",
    "alert_reason",
]


def write_run_artifacts(report: RunReport, output_dir: Path | None = None, *, upload: bool = True) -> list[Path]:
    directory = Path(output_dir) if output_dir else OUTPUT_DIR
    directory.mkdir(parents=True, exist_ok=True)
    paths = [
        write_results_json(report, directory),
        write_log_text(report, directory),
        write_status_csv(report, directory),
    ]
    if upload:
        for path in paths:
            _upload_to_s3(path)
    return paths


def write_results_json(report: RunReport, directory: Path) -> Path:
    path = directory / RESULTS_FILE
    path.write_text(json.dumps(report.as_dict(), indent=2), encoding="utf-8")
    return path


def write_log_text(report: RunReport, directory: Path) -> Path:
    path = directory / LOG_FILE
    lines = report.summary_lines()
    warnings = report.warnings()
    if warnings:
        lines.extend(["", "WARNINGS:"])
        lines.extend(f"  {line}" for line in warnings)
    errors = report.errors()
    if errors:
        lines.extend(["", "ERRORS:"])
        lines.extend(f"  {line}" for line in errors)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_status_csv(report: RunReport, directory: Path) -> Path:
    as_of = report.effective_date or today_in_tz()
    path = directory / f"camera-status-{format_date(as_of)}.csv"
    with path.open("w", newline="") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for outcome in sorted(report.outcomes, key=lambda o: (o.device_id, o.deployment_id)):
            writer.writerow({"date": format_date(as_of), **asdict(outcome)})
    return path


def _upload_to_s3(path: Path) -> None:
    bucket = os.environ.get("AWS_S3_BUCKET")
    if not bucket:
        return
    endpoint = os.environ.get("AWS_S3_ENDPOINT")
    session = boto3.session.Session()
    client = session.client(
        "s3",
        endpoint_url=endpoint,
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
    )
    prefix = os.environ.get("AWS_S3_PREFIX", "camera-sync")
    client.upload_file(str(path), bucket, f"{prefix}/{path.name}")
    logger.info("Uploaded %s to s3://%s/%s/", path.name, bucket, prefix)
