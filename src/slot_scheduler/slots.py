"""Candidate time grid for a booking day.

Each weekday gets one group per working hour (lunch excluded); every group
holds the ``HH:MM`` labels at the configured interval.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from slot_scheduler.models import HourGroup, SchedulerConfig, TimeSlot


DEFAULT_CONFIG = SchedulerConfig()


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def generate_slots(day: date, config: SchedulerConfig = DEFAULT_CONFIG) -> list[HourGroup]:
    """Return the ordered hour groups for ``day``; weekends get no groups."""
    if is_weekend(day):
        return []

    groups: list[HourGroup] = []
    for hour in range(config.start_hour, config.end_hour):
        if hour in config.excluded_hours:
            continue
        slots = [f"{hour:02d}:{minute:02d}" for minute in range(0, 60, config.interval)]
        groups.append(HourGroup(hour=f"{hour}:00", slots=slots))
    return groups


def all_slots(groups: Iterable[HourGroup]) -> list[TimeSlot]:
    return [slot for group in groups for slot in group.slots]
