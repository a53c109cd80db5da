"""Database migration helpers."""

from __future__ import annotations

import logging
import pathlib
import sys
from typing import Iterable

from dotenv import load_dotenv
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from camsync.db.session import create_engine_from_env

logger = logging.getLogger(__name__)

SCHEMA_PATH = pathlib.Path(__file__).with_name("schema.sql")

REQUIRED_TABLES = (
    "camera_hardware",
    "camera_deployments",
    "camera_status_reports",
    "daily_camera_snapshots",
)


def run_migrations(engine: Engine, schema: str | None = None) -> int:
    """Apply schema.sql and return the number of statements executed."""
    statements = list(load_statements(schema if schema is not None else SCHEMA_PATH.read_text()))
    with engine.begin() as conn:
        for stmt in statements:
            conn.execute(text(stmt))
    logger.info("Applied %s schema statements", len(statements))
    return len(statements)


def missing_tables(engine: Engine) -> list[str]:
    existing = set(inspect(engine).get_table_names())
    return [name for name in REQUIRED_TABLES if name not in existing]


def load_statements(sql: str) -> Iterable[str]:
    buffer: list[str] = []
    for line in sql.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("--"):
            continue
        buffer.append(line)
        if stripped.endswith(";"):
            yield "\n".join(buffer)
            buffer.clear()
    if buffer:
        yield "\n".join(buffer)


def main() -> None:
    load_dotenv()
    try:
        engine = create_engine_from_env()
    except KeyError as exc:
        print(f"Missing environment variable: {exc}", file=sys.stderr)
        sys.exit(1)
    try:
        run_migrations(engine)
        absent = missing_tables(engine)
    except SQLAlchemyError as exc:
        print(f"Migration failed: {exc}", file=sys.stderr)
        sys.exit(3)
    if absent:
        print(f"Schema incomplete, missing tables: {', '.join(absent)}", file=sys.stderr)
        sys.exit(3)
    print("Camera registry schema is up to date")


if __name__ == "__main__":
    main()
