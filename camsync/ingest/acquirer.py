"""Snapshot acquisition from the fleet report export."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import pathlib
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from camsync.ingest.models import RAW_COLUMNS, RawSnapshotRow, Snapshot
from camsync.utils.retry import RETRY_EXCEPTIONS, retry_async

logger = logging.getLogger(__name__)

SNAPSHOT_TIMEOUT = float(os.environ.get("SNAPSHOT_TIMEOUT", 300))
ACQUIRE_ATTEMPTS = 2


class AcquisitionFailure(RuntimeError):
    """The fleet report could not be fetched or read."""


class ConfigurationError(RuntimeError):
    """A required setting is missing."""


class ServerError(Exception):
    """A 5xx answer from the fleet report endpoint."""


class SnapshotAcquirer(Protocol):
    async def acquire(self) -> Snapshot: ...


def build_snapshot(payload: Any, extracted_at: datetime | None = None) -> Snapshot:
    """Turn a decoded fleet report into a :class:`Snapshot`.

    Rows may be objects keyed by column name or lists of cells in report
    column order.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("rows"), list):
        raise AcquisitionFailure("Fleet report payload must be an object with a 'rows' list")
    extracted_at = extracted_at or datetime.now(timezone.utc)
    rows: list[RawSnapshotRow] = []
    for index, item in enumerate(payload["rows"]):
        if isinstance(item, (list, tuple)):
            item = dict(zip(RAW_COLUMNS, item))
        if not isinstance(item, dict):
            raise AcquisitionFailure(f"Fleet report row {index} is not an object or list")
        rows.append(RawSnapshotRow.from_mapping(item, extracted_at=extracted_at))
    last_updated = payload.get("last_updated")
    return Snapshot(
        rows=rows,
        last_updated=str(last_updated).strip() if last_updated not in (None, "") else None,
        extracted_at=extracted_at,
    )


class HttpSnapshotAcquirer:
    def __init__(
        self,
        url: str,
        token: str | None = None,
        *,
        timeout: float = SNAPSHOT_TIMEOUT,
        session: httpx.AsyncClient | None = None,
        attempts: int = ACQUIRE_ATTEMPTS,
        base_delay: float = 1.0,
    ) -> None:
        self.url = url
        self.token = token
        self.attempts = attempts
        self.base_delay = base_delay
        self._owns_session = session is None
        self.session = session or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        if self._owns_session:
            await self.session.aclose()

    async def acquire(self) -> Snapshot:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = await retry_async(
                self._get,
                attempts=self.attempts,
                base_delay=self.base_delay,
                retry_on=RETRY_EXCEPTIONS + (ServerError,),
            )(headers)
            payload = response.json()
        except (httpx.HTTPError, ServerError, OSError, asyncio.TimeoutError, ValueError) as exc:
            raise AcquisitionFailure(f"Fleet report fetch from {self.url} failed: {exc}") from exc
        finally:
            await self.close()
        snapshot = build_snapshot(payload)
        logger.info("Fetched %s fleet report rows (last updated %s)", len(snapshot.rows), snapshot.last_updated)
        return snapshot

    async def _get(self, headers: dict[str, str]) -> httpx.Response:
        response = await self.session.get(self.url, headers=headers)
        if response.status_code >= 500:
            raise ServerError(f"fleet report returned HTTP {response.status_code}")
        response.raise_for_status()
        return response


class FileSnapshotAcquirer:
    def __init__(self, path: str | pathlib.Path) -> None:
        self.path = pathlib.Path(path)

    async def acquire(self) -> Snapshot:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise AcquisitionFailure(f"Could not read fleet report {self.path}: {exc}") from exc
        extracted_at = datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)
        snapshot = build_snapshot(payload, extracted_at)
        logger.info("Loaded %s fleet report rows from %s", len(snapshot.rows), self.path)
        return snapshot


def acquirer_from_env(snapshot_file: str | None = None) -> SnapshotAcquirer:
    path = snapshot_file or os.environ.get("SNAPSHOT_FILE")
    if path:
        return FileSnapshotAcquirer(path)
    url = os.environ.get("SNAPSHOT_SOURCE_URL")
    if not url:
        raise ConfigurationError("Set SNAPSHOT_SOURCE_URL or SNAPSHOT_FILE")
    return HttpSnapshotAcquirer(url, os.environ.get("SNAPSHOT_SOURCE_TOKEN"))
