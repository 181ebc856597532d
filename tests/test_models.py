from datetime import date

import pytest
from pydantic import ValidationError

from slot_scheduler.models import DEFAULT_DESCRIPTION, Appointment, AppointmentStatus, BookingRequest


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("ACTIVE", AppointmentStatus.ACTIVE),
        ("active", AppointmentStatus.ACTIVE),
        ("AKTIF", AppointmentStatus.ACTIVE),
        ("IPTAL", AppointmentStatus.CANCELLED),
        ("TAMAMLANDI", AppointmentStatus.COMPLETED),
    ],
)
def test_status_aliases(raw, expected):
    appt = Appointment(id=1, date="2024-01-01", time="09:00:00", clinic="Cardiology", status=raw)
    assert appt.status is expected


def test_unknown_status_is_rejected():
    with pytest.raises(ValidationError):
        Appointment(id=1, date="2024-01-01", time="09:00", clinic="Cardiology", status="PENDING")


def test_nested_clinic_is_reduced_to_its_name():
    appt = Appointment(
        id=1,
        date="2024-01-01",
        time="14:00:00",
        clinic={"id": 2, "name": "Dermatology"},
        status="AKTIF",
    )
    assert appt.clinic == "Dermatology"
    assert appt.slot == "14:00"
    assert appt.date == date(2024, 1, 1)


def test_empty_description_falls_back_to_default():
    request = BookingRequest(date=date(2024, 1, 1), description="   ")
    assert request.submission_description() == DEFAULT_DESCRIPTION
    assert BookingRequest(date=date(2024, 1, 1), description="Rash").submission_description() == "Rash"
