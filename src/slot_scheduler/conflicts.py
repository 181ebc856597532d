"""Decide whether a booking request may go ahead.

The checks run in a fixed order:

1. the request must name a patient, a doctor and a time;
2. the patient must not already hold an active appointment at the same
   date and time, whichever clinic or doctor it is with;
3. an active appointment in the same clinic is replaced only after the user
   confirms, since a patient keeps at most one active booking per clinic.

Nothing here raises or performs I/O; callers act on the returned verdict.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum, auto

from pydantic import BaseModel

from slot_scheduler.models import Appointment, BookingRequest


class VerdictKind(Enum):
    PROCEED = auto()
    BLOCK = auto()
    CONFIRM_REPLACE = auto()


class BlockReason(str, Enum):
    INCOMPLETE_SELECTION = "incomplete selection"
    DUPLICATE_ACTIVE_SLOT = "duplicate active slot"


class Verdict(BaseModel):
    kind: VerdictKind
    reason: BlockReason | None = None
    superseded: Appointment | None = None

    @classmethod
    def proceed(cls) -> Verdict:
        return cls(kind=VerdictKind.PROCEED)

    @classmethod
    def block(cls, reason: BlockReason) -> Verdict:
        return cls(kind=VerdictKind.BLOCK, reason=reason)

    @classmethod
    def confirm_replace(cls, superseded: Appointment) -> Verdict:
        return cls(kind=VerdictKind.CONFIRM_REPLACE, superseded=superseded)


def evaluate(request: BookingRequest, patient_appointments: Iterable[Appointment]) -> Verdict:
    if request.patient_id is None or request.doctor_id is None or not request.time:
        return Verdict.block(BlockReason.INCOMPLETE_SELECTION)

    active = [appt for appt in patient_appointments if appt.is_active]
    slot = request.time[:5]

    if any(appt.date == request.date and appt.slot == slot for appt in active):
        return Verdict.block(BlockReason.DUPLICATE_ACTIVE_SLOT)

    same_clinic = next((appt for appt in active if appt.clinic == request.clinic_name), None)
    if same_clinic is not None:
        return Verdict.confirm_replace(same_clinic)

    return Verdict.proceed()
