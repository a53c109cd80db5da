"""Day-over-day image activity for the daily camera snapshots."""

from __future__ import annotations

from dataclasses import dataclass

INCREASING_DELTA = 5
DECREASING_DELTA = -2


@dataclass(slots=True, frozen=True)
class Activity:
    images_added_today: int
    activity_trend: str


def image_activity(current: int | None, previous: int | None) -> Activity:
    if current is None or previous is None:
        return Activity(0, "insufficient_data")
    difference = current - previous
    if difference > INCREASING_DELTA:
        trend = "increasing"
    elif difference < DECREASING_DELTA:
        trend = "decreasing"
    else:
        trend = "stable"
    return Activity(max(0, difference), trend)
