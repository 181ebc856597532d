"""Which slots of a day's grid can still be picked.

A slot is disabled when it already lies in the past (only ever true for
today) or when the selected doctor holds an active appointment at that time.
Disabled slots stay in the grid so the user can see them.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, time

from slot_scheduler.models import AnnotatedHourGroup, Appointment, HourGroup, SchedulerConfig, SlotView, TimeSlot
from slot_scheduler.slots import DEFAULT_CONFIG, all_slots, generate_slots


def _slot_time(slot: TimeSlot) -> time:
    hour, minute = slot.split(":")
    return time(int(hour), int(minute))


def past_slots(day: date, now: datetime, slots: Iterable[TimeSlot]) -> set[TimeSlot]:
    if day != now.date():
        return set()
    return {slot for slot in slots if datetime.combine(day, _slot_time(slot)) < now}


def booked_slots(day: date, doctor_appointments: Iterable[Appointment]) -> set[TimeSlot]:
    return {appt.slot for appt in doctor_appointments if appt.is_active and appt.date == day}


def compute_disabled_slots(
    day: date,
    now: datetime,
    doctor_appointments: Iterable[Appointment],
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> set[TimeSlot]:
    """Union of past and booked slots of ``day``'s grid."""
    grid = all_slots(generate_slots(day, config))
    return past_slots(day, now, grid) | (booked_slots(day, doctor_appointments) & set(grid))


def is_slot_disabled(
    slot: TimeSlot,
    disabled: set[TimeSlot],
    doctor_appointments: Iterable[Appointment],
    day: date,
) -> bool:
    if slot in disabled:
        return True
    return slot in booked_slots(day, doctor_appointments)


def annotate_slots(groups: Iterable[HourGroup], disabled: set[TimeSlot]) -> list[AnnotatedHourGroup]:
    return [
        AnnotatedHourGroup(
            hour=group.hour,
            slots=[SlotView(time=slot, disabled=slot in disabled) for slot in group.slots],
        )
        for group in groups
    ]
