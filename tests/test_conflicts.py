from datetime import date

import pytest

from slot_scheduler.conflicts import BlockReason, VerdictKind, evaluate
from slot_scheduler.models import Appointment, AppointmentStatus, BookingRequest


def _appt(clinic="Dermatology", day=date(2024, 1, 1), time="09:00", status=AppointmentStatus.ACTIVE, id=1):
    return Appointment(id=id, date=day, time=time, clinic=clinic, status=status)


def _request(**overrides) -> BookingRequest:
    fields = dict(
        clinic_id=2,
        clinic_name="Dermatology",
        doctor_id=20,
        patient_id=1,
        date=date(2024, 1, 5),
        time="10:00",
    )
    fields.update(overrides)
    return BookingRequest(**fields)


def test_active_booking_in_same_clinic_needs_confirmation():
    existing = _appt()
    verdict = evaluate(_request(), [existing])

    assert verdict.kind is VerdictKind.CONFIRM_REPLACE
    assert verdict.superseded == existing


def test_duplicate_slot_blocks_before_clinic_check():
    """Same date and time as an active booking is blocked, whatever the clinic."""
    history = [_appt(clinic="Dermatology", time="09:00:00")]

    for clinic in ("Dermatology", "Cardiology"):
        verdict = evaluate(_request(clinic_name=clinic, date=date(2024, 1, 1), time="09:00"), history)
        assert verdict.kind is VerdictKind.BLOCK
        assert verdict.reason is BlockReason.DUPLICATE_ACTIVE_SLOT
        assert verdict.reason.value == "duplicate active slot"


def test_no_active_appointments_proceeds():
    history = [
        _appt(status=AppointmentStatus.CANCELLED),
        _appt(status=AppointmentStatus.COMPLETED, id=2, day=date(2024, 1, 5), time="10:00"),
    ]
    assert evaluate(_request(), history).kind is VerdictKind.PROCEED
    assert evaluate(_request(), []).kind is VerdictKind.PROCEED


def test_active_booking_in_other_clinic_proceeds():
    assert evaluate(_request(), [_appt(clinic="Cardiology")]).kind is VerdictKind.PROCEED


@pytest.mark.parametrize(
    "overrides",
    [{"doctor_id": None}, {"time": ""}, {"patient_id": None}],
)
def test_incomplete_selection_blocks_regardless_of_history(overrides):
    history = [_appt(day=date(2024, 1, 5), time="10:00")]
    verdict = evaluate(_request(**overrides), history)

    assert verdict.kind is VerdictKind.BLOCK
    assert verdict.reason is BlockReason.INCOMPLETE_SELECTION
    assert verdict.reason.value == "incomplete selection"
