"""Resolve snapshot rows to registry cameras."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from camsync.ingest.models import NormalizedRow, RegisteredCamera

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Orphan:
    row: NormalizedRow
    reason: str


@dataclass(slots=True)
class MatchResult:
    matched: list[tuple[RegisteredCamera, NormalizedRow]] = field(default_factory=list)
    orphans: list[Orphan] = field(default_factory=list)
    unseen: list[RegisteredCamera] = field(default_factory=list)


def identity_key(value: str | None) -> str:
    return (value or "").strip().casefold()


def numeric_key(key: str) -> int | None:
    if key and key.isdecimal():
        return int(key)
    return None


class DeviceIndex:
    """Lookup of registry cameras by exact and numeric identity."""

    def __init__(self, cameras: Iterable[RegisteredCamera]) -> None:
        self._exact: dict[str, RegisteredCamera] = {}
        self._numeric: dict[int, RegisteredCamera] = {}
        for camera in sorted(cameras, key=lambda c: (identity_key(c.device_id), c.deployment.id)):
            key = identity_key(camera.device_id)
            if key in self._exact:
                logger.warning(
                    "Duplicate registry device_id %r (deployments %s and %s); keeping the first",
                    camera.device_id,
                    self._exact[key].deployment.id,
                    camera.deployment.id,
                )
                continue
            self._exact[key] = camera
            number = numeric_key(key)
            if number is not None:
                self._numeric.setdefault(number, camera)

    def lookup(self, location_id: str) -> RegisteredCamera | None:
        key = identity_key(location_id)
        if not key:
            return None
        camera = self._exact.get(key)
        if camera is not None:
            return camera
        number = numeric_key(key)
        if number is None:
            return None
        return self._numeric.get(number)


def match_snapshot(rows: Sequence[NormalizedRow], cameras: Sequence[RegisteredCamera]) -> MatchResult:
    """Partition rows and cameras into matched, orphan and unseen.

    Rows are taken in snapshot order; when two rows resolve to the same camera
    the first one wins and the second is an orphan.
    """
    index = DeviceIndex(cameras)
    result = MatchResult()
    claimed: dict[int, NormalizedRow] = {}

    for row in rows:
        if not identity_key(row.location_id):
            result.orphans.append(Orphan(row=row, reason="missing location id"))
            continue
        camera = index.lookup(row.location_id)
        if camera is None:
            result.orphans.append(Orphan(row=row, reason="not in registry"))
            continue
        deployment_id = camera.deployment.id
        if deployment_id in claimed:
            result.orphans.append(
                Orphan(row=row, reason=f"duplicate row for device {camera.device_id}")
            )
            continue
        claimed[deployment_id] = row
        result.matched.append((camera, row))

    result.unseen = [
        camera
        for camera in sorted(cameras, key=lambda c: (identity_key(c.device_id), c.deployment.id))
        if camera.deployment.id not in claimed
    ]
    return result
