"""Daily camera sync orchestration."""

from __future__ import annotations

import argparse
import asyncio
import logging
import pathlib
from datetime import date

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from camsync.db.session import create_engine_from_env
from camsync.ingest.acquirer import (
    AcquisitionFailure,
    ConfigurationError,
    FileSnapshotAcquirer,
    SnapshotAcquirer,
    acquirer_from_env,
)
from camsync.ingest.registry import RegistryStore, StoreUnavailable
from camsync.logic.export import write_run_artifacts
from camsync.logic.matching import match_snapshot
from camsync.logic.normalize import normalize_snapshot
from camsync.logic.reconcile import Reconciler
from camsync.logic.report import OrphanEntry, RunReport
from camsync.utils.dates import effective_date, parse_iso_date
from camsync.utils.logs import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_ACQUISITION = 2
EXIT_STORE = 3


async def run_camera_sync(
    *,
    engine: Engine | None = None,
    acquirer: SnapshotAcquirer | None = None,
    as_of: date | None = None,
    output_dir: pathlib.Path | None = None,
    dry_run: bool = False,
    concurrency: int | None = None,
    upload: bool = True,
) -> RunReport:
    """Run one sync and return its report; fatal errors end up on the report, not raised."""
    load_dotenv()
    report = RunReport()
    try:
        await _sync(report, engine, acquirer, as_of, dry_run, concurrency)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        report.finish(success=False, fatal_error=str(exc), exit_code=EXIT_CONFIG)
    except AcquisitionFailure as exc:
        logger.error("Snapshot acquisition failed: %s", exc)
        report.finish(success=False, fatal_error=str(exc), exit_code=EXIT_ACQUISITION)
    except StoreUnavailable as exc:
        logger.error("Registry store unavailable: %s", exc)
        report.finish(success=False, fatal_error=str(exc), exit_code=EXIT_STORE)
    else:
        report.finish(success=True)

    paths = write_run_artifacts(report, output_dir, upload=upload)
    logger.info("Wrote run artifacts: %s", ", ".join(path.name for path in paths))
    return report


async def _sync(
    report: RunReport,
    engine: Engine | None,
    acquirer: SnapshotAcquirer | None,
    as_of: date | None,
    dry_run: bool,
    concurrency: int | None,
) -> None:
    if engine is None:
        try:
            engine = create_engine_from_env()
        except KeyError as exc:
            raise ConfigurationError(f"Missing environment variable: {exc}") from exc
        except (SQLAlchemyError, ImportError) as exc:
            raise StoreUnavailable(f"Could not create database engine: {exc}") from exc
    acquirer = acquirer or acquirer_from_env()

    snapshot = await acquirer.acquire()
    report.rows_received = len(snapshot.rows)
    report.source_report_timestamp = snapshot.last_updated
    report.effective_date = as_of or effective_date(snapshot.last_updated, snapshot.extracted_at)
    logger.info(
        "Reconciling %s rows for %s (report time %r)",
        report.rows_received,
        report.effective_date,
        snapshot.last_updated,
    )

    rows = normalize_snapshot(snapshot.rows)
    for row in rows:
        report.notes.extend(row.notes)

    cameras = await asyncio.get_running_loop().run_in_executor(
        None, RegistryStore(engine).load_active_cameras
    )
    report.registry_size = len(cameras)

    match = match_snapshot(rows, cameras)
    report.matched = len(match.matched)
    report.orphan = len(match.orphans)
    report.unseen = len(match.unseen)
    for orphan in match.orphans:
        logger.warning("Orphan row %r (%s): %s", orphan.row.location_id, orphan.row.camera_name, orphan.reason)
        report.orphans.append(
            OrphanEntry(location_id=orphan.row.location_id, camera_name=orphan.row.camera_name, reason=orphan.reason)
        )

    if dry_run:
        logger.info("Dry run: skipping registry writes")
        return

    reconciler = Reconciler(
        engine,
        effective_date=report.effective_date,
        source_report_timestamp=snapshot.last_updated,
        concurrency=concurrency,
    )
    await reconciler.reconcile(match, report)
    if report.failures:
        logger.warning("%s deployment writes failed", report.write_failures)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="camera-sync", description="Reconcile the fleet report with the camera registry.")
    parser.add_argument("--as-of", type=parse_iso_date, help="Effective report date (YYYY-MM-DD).")
    parser.add_argument("--snapshot-file", help="Read the fleet report JSON from this file.")
    parser.add_argument("--output-dir", type=pathlib.Path, help="Directory for run artifacts.")
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs in JSON format.")
    parser.add_argument("--dry-run", action="store_true", help="Normalize and match only; write nothing to the registry.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(level=args.log_level, json_format=args.json_logs)

    acquirer = FileSnapshotAcquirer(args.snapshot_file) if args.snapshot_file else None
    report = asyncio.run(
        run_camera_sync(
            acquirer=acquirer,
            as_of=args.as_of,
            output_dir=args.output_dir,
            dry_run=args.dry_run,
        )
    )
    print(report.summary())
    return report.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
