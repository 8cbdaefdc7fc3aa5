"""Occupancy trajectory model for the parking simulator.

Resolves the local time context of an instant, maps it to a target occupancy
ratio following a weekday demand profile, and moves the current ratio toward
that target at a bounded rate per tick.
"""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass
from typing import Callable, Tuple

from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Europe/Paris"

NIGHT_RATIO = 0.02
DAY_START_HOUR = 7.5
DAY_END_HOUR = 18.0

DAY_MAX_STEP = 0.01  # 1% per tick
LOW_ACTIVITY_MAX_STEP = 0.001  # 0.1% per tick at night and on weekends
# Float noise only; far below the smallest step.
SNAP_TOLERANCE = 1e-12


@dataclass(frozen=True)
class TimeContext:
    local_time: dt.datetime
    hour_fraction: float  # [0, 24)
    is_weekend: bool

    @property
    def period_label(self) -> str:
        return "Weekend" if self.is_weekend else "Weekday"


def resolve_time_context(instant: dt.datetime, tz_name: str = DEFAULT_TIMEZONE) -> TimeContext:
    """Localize ``instant`` to ``tz_name`` and derive the hour and weekend flag.

    Naive instants are treated as UTC so the result never depends on the
    process timezone.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=dt.timezone.utc)
    local = instant.astimezone(ZoneInfo(tz_name))
    return TimeContext(
        local_time=local,
        hour_fraction=local.hour + local.minute / 60,
        is_weekend=local.weekday() >= 5,
    )


def _morning_ramp(hour: float) -> float:
    return (hour - DAY_START_HOUR) / 1.5


def _evening_ramp(hour: float) -> float:
    return 0.5 - (hour - 16.5) / 3


def _flat(value: float) -> Callable[[float], float]:
    return lambda _hour: value


# Evaluated in order; the lunch dip splits the 9:00-16:30 plateau.
WEEKDAY_PROFILE: Tuple[Tuple[float, float, Callable[[float], float]], ...] = (
    (DAY_START_HOUR, 9.0, _morning_ramp),
    (9.0, 11.75, _flat(0.9)),
    (11.75, 12.5, _flat(0.7)),
    (12.5, 13.5, _flat(0.9)),
    (13.5, 16.5, _flat(0.9)),
    (16.5, DAY_END_HOUR, _evening_ramp),
)


def target_occupancy(hour_fraction: float, is_weekend: bool) -> float:
    if is_weekend:
        return NIGHT_RATIO
    target = NIGHT_RATIO
    for start, end, shape in WEEKDAY_PROFILE:
        if start <= hour_fraction < end:
            target = shape(hour_fraction)
            break
    return min(1.0, max(0.0, target))


def is_low_activity(context: TimeContext) -> bool:
    """Night hours and weekends evolve at a tenth of the daytime rate."""
    return (
        context.is_weekend
        or context.hour_fraction < DAY_START_HOUR
        or context.hour_fraction >= DAY_END_HOUR
    )


def max_step(low_activity: bool) -> float:
    return LOW_ACTIVITY_MAX_STEP if low_activity else DAY_MAX_STEP


def advance_ratio(previous: float, target: float, low_activity: bool) -> float:
    """Move ``previous`` toward ``target`` by at most one step, snapping when close."""
    step = max_step(low_activity)
    delta = target - previous
    if abs(delta) <= step + SNAP_TOLERANCE:
        return target
    moved = previous + math.copysign(step, delta)
    return min(1.0, max(0.0, moved))


def occupied_spaces(capacity: int, ratio: float) -> int:
    # Half-up rounding: 2.5 spaces means 3 occupied.
    occupied = int(math.floor(capacity * ratio + 0.5))
    return min(capacity, max(0, occupied))

