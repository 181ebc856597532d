"""Reusable choice definitions for the booking form.

Each choice knows
    • its public name
    • which earlier choices it depends on
    • how to list its options, given the current booking context
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol

from slot_scheduler.availability import compute_disabled_slots
from slot_scheduler.models import Appointment, Clinic, Doctor, SchedulerConfig
from slot_scheduler.slots import DEFAULT_CONFIG, all_slots, generate_slots


class SelectionContext(Protocol):
    clinics: list[Clinic]
    doctors: list[Doctor]
    clinic_id: int | None
    doctor_id: int | None
    selected_date: date | None

    def current_doctor_appointments(self) -> list[Appointment] | None: ...


@dataclass(frozen=True, slots=True)
class Choice:
    name: str
    dependencies: Sequence[str]
    options_fn: Callable[[SelectionContext], list[str]]

    def options(self, ctx: SelectionContext) -> list[str]:
        return self.options_fn(ctx)


# A new date keeps clinic and doctor but invalidates the picked time.
_DEPENDENTS: dict[str, tuple[str, ...]] = {
    "clinic": ("doctor", "time"),
    "doctor": ("time",),
    "date": ("time",),
    "time": (),
}


def downstream_of(name: str) -> tuple[str, ...]:
    """Choices that must be cleared when ``name`` changes."""
    return _DEPENDENTS[name]


# --------------------------------------------------------------------------- #
#  Default choice chain used by GraphManager
# --------------------------------------------------------------------------- #
def build_default_choices(
    clock: Callable[[], datetime] = datetime.now,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> list[Choice]:
    """Return the canonical clinic → doctor → date → time chain."""

    def clinic_options(ctx: SelectionContext) -> list[str]:
        return [str(clinic.id) for clinic in ctx.clinics if clinic.is_active]

    def doctor_options(ctx: SelectionContext) -> list[str]:
        if ctx.clinic_id is not None:
            return [str(doctor.id) for doctor in ctx.doctors]
        return []

    def date_options(_: SelectionContext) -> list[str]:
        # Any weekday from today on; the calendar is open-ended.
        return []

    def time_options(ctx: SelectionContext) -> list[str]:
        day = ctx.selected_date
        if ctx.doctor_id is None or day is None or day < clock().date():
            return []
        booked = ctx.current_doctor_appointments()
        if booked is None:
            return []
        disabled = compute_disabled_slots(day, clock(), booked, config)
        return [slot for slot in all_slots(generate_slots(day, config)) if slot not in disabled]

    return [
        Choice("clinic", [], clinic_options),
        Choice("doctor", ["clinic"], doctor_options),
        Choice("date", [], date_options),
        Choice("time", ["clinic", "doctor", "date"], time_options),
    ]
