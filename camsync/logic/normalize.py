"""Field normalization for raw fleet-report rows.

Every cell of a :class:`RawSnapshotRow` is text scraped from the vendor
report. ``normalize_row`` turns a row into a :class:`NormalizedRow` through a
declared table of named field parsers. Parsers never raise: a cell that
cannot be read becomes ``None`` and, when the cell held something other than
a blank marker, a :class:`ParseNote` is attached to the row.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable

from camsync.ingest.models import NormalizedRow, ParseNote, RawSnapshotRow

logger = logging.getLogger(__name__)

BLANK_MARKERS = frozenset({"", "n/a", "-"})
MAX_SIGNAL_LEVEL = 100

_NON_DIGIT_RE = re.compile(r"\D")
_FIRST_INT_RE = re.compile(r"(\d+)")


@dataclass(slots=True)
class ParseOutcome:
    value: object
    note: str | None = None


FieldParser = Callable[[str], ParseOutcome]


def is_blank(raw: str) -> bool:
    return raw.strip().casefold() in BLANK_MARKERS


def parse_count(raw: str) -> ParseOutcome:
    """Strip every non-digit and read what is left as an integer."""
    if is_blank(raw):
        return ParseOutcome(None)
    digits = _NON_DIGIT_RE.sub("", raw)
    if not digits:
        return ParseOutcome(None, "no digits found")
    return ParseOutcome(int(digits))


def parse_signal(raw: str) -> ParseOutcome:
    """First integer in the text, so ``"85% (Good)"`` reads as 85."""
    if is_blank(raw):
        return ParseOutcome(None)
    match = _FIRST_INT_RE.search(raw)
    if not match:
        return ParseOutcome(None, "no signal value found")
    level = int(match.group(1))
    if level > MAX_SIGNAL_LEVEL:
        return ParseOutcome(None, f"signal level {level} out of range")
    return ParseOutcome(level)


def parse_text(raw: str) -> ParseOutcome:
    if is_blank(raw):
        return ParseOutcome(None)
    return ParseOutcome(" ".join(raw.split()))


def parse_verbatim(raw: str) -> ParseOutcome:
    stripped = raw.strip()
    return ParseOutcome(stripped or None)


# NormalizedRow field -> (RawSnapshotRow column, parser)
FIELD_PARSERS: dict[str, tuple[str, FieldParser]] = {
    "camera_name": ("camera_id", parse_text),
    "sequence_number": ("sequence_number", parse_count),
    "signal_level": ("level", parse_signal),
    "network_links": ("links", parse_count),
    "battery_status": ("battery", parse_verbatim),
    "battery_days": ("battery_days", parse_count),
    "image_queue": ("image_queue", parse_count),
    "sd_images_count": ("sd_images", parse_count),
    "sd_free_space_mb": ("sd_free_space", parse_count),
    "hw_version": ("hw_version", parse_text),
    "fw_version": ("fw_version", parse_text),
    "cl_version": ("cl_version", parse_text),
}


def normalize_row(row: RawSnapshotRow) -> NormalizedRow:
    location_id = row.location_id.strip()
    values: dict[str, object] = {}
    notes: list[ParseNote] = []
    for target, (source, parser) in FIELD_PARSERS.items():
        raw = getattr(row, source) or ""
        outcome = parser(raw)
        values[target] = outcome.value
        if outcome.note:
            notes.append(ParseNote(location_id=location_id, field=source, raw=raw, message=outcome.note))
            logger.debug("Parse note for %s.%s: %s (%r)", location_id, source, outcome.note, raw)
    return NormalizedRow(location_id=location_id, extracted_at=row.extracted_at, notes=notes, **values)


def normalize_snapshot(rows: Iterable[RawSnapshotRow]) -> list[NormalizedRow]:
    return [normalize_row(row) for row in rows]
