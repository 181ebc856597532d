from __future__ import annotations

import itertools
import logging
from datetime import date
from typing import Protocol

from slot_scheduler.errors import RemoteFailure
from slot_scheduler.models import (
    Appointment,
    AppointmentStatus,
    BookingRequest,
    Clinic,
    Doctor,
    Patient,
)

logger = logging.getLogger(__name__)


class SchedulingApi(Protocol):
    """Clinic directory, doctor directory, appointment records and user lookup."""

    def get_clinics(self) -> list[Clinic]: ...

    def get_doctors(self, clinic_id: int) -> list[Doctor]: ...

    def get_doctor_appointments(self, doctor_id: int, day: date) -> list[Appointment]: ...

    def get_patient_appointments(self, patient_id: int) -> list[Appointment]: ...

    def get_current_user(self, token: str) -> Patient: ...

    def create_appointment(self, request: BookingRequest) -> Appointment: ...


class MockApiClient:
    """Fake appointment-service client used for development and tests.

    Keeps every record in memory. ``fail_on`` names operations that should
    raise :class:`RemoteFailure`, to exercise the error paths.
    """

    def __init__(self) -> None:
        self.clinics: list[Clinic] = [
            Clinic(id=1, name="Cardiology", is_active=True),
            Clinic(id=2, name="Dermatology", is_active=True),
            Clinic(id=3, name="Radiology", is_active=False),
        ]
        self.doctors: dict[int, list[Doctor]] = {
            1: [Doctor(id=10, name="Ayse", surname="Yilmaz"), Doctor(id=11, name="Mehmet", surname="Kaya")],
            2: [Doctor(id=20, name="Elif", surname="Demir")],
            3: [Doctor(id=30, name="Can", surname="Ozturk")],
        }
        self.patients: dict[str, Patient] = {
            "patient-1-token": Patient(id=1, email="patient1@example.com"),
            "patient-2-token": Patient(id=2, email="patient2@example.com"),
        }
        # appointment id -> (record, doctor id, patient id)
        self.records: dict[int, tuple[Appointment, int, int]] = {}
        self.fail_on: set[str] = set()
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------ #
    #  Directory lookups
    # ------------------------------------------------------------------ #
    def get_clinics(self) -> list[Clinic]:
        """Return every clinic, active or not."""
        self._maybe_fail("get_clinics")
        return list(self.clinics)

    def get_doctors(self, clinic_id: int) -> list[Doctor]:
        """Return the doctors working at the clinic."""
        self._maybe_fail("get_doctors")
        return list(self.doctors.get(clinic_id, []))

    def get_current_user(self, token: str) -> Patient:
        self._maybe_fail("get_current_user")
        try:
            return self.patients[token]
        except KeyError:
            raise RemoteFailure("get_current_user", "unknown token") from None

    # ------------------------------------------------------------------ #
    #  Appointment records
    # ------------------------------------------------------------------ #
    def get_doctor_appointments(self, doctor_id: int, day: date) -> list[Appointment]:
        self._maybe_fail("get_doctor_appointments")
        return [appt for appt, doc, _ in self.records.values() if doc == doctor_id and appt.date == day]

    def get_patient_appointments(self, patient_id: int) -> list[Appointment]:
        self._maybe_fail("get_patient_appointments")
        return [appt for appt, _, pat in self.records.values() if pat == patient_id]

    def add_appointment(
        self,
        *,
        doctor_id: int,
        patient_id: int,
        clinic: str,
        day: date,
        time: str,
        status: AppointmentStatus = AppointmentStatus.ACTIVE,
        description: str | None = None,
    ) -> Appointment:
        """Seed a record directly, bypassing the booking rules."""
        appt = Appointment(
            id=next(self._ids),
            date=day,
            time=time,
            clinic=clinic,
            status=status,
            description=description,
        )
        self.records[appt.id] = (appt, doctor_id, patient_id)
        return appt

    def create_appointment(self, request: BookingRequest) -> Appointment:
        """Store a new active appointment.

        A patient keeps one active appointment per clinic: any earlier active
        one in the same clinic is cancelled.
        """
        self._maybe_fail("create_appointment")
        clinic = next((c for c in self.clinics if c.id == request.clinic_id), None)
        if clinic is None or request.doctor_id is None or request.patient_id is None:
            raise RemoteFailure("create_appointment", "incomplete request")

        for appt_id, (appt, doc, pat) in list(self.records.items()):
            if pat == request.patient_id and appt.clinic == clinic.name and appt.is_active:
                cancelled = appt.model_copy(update={"status": AppointmentStatus.CANCELLED})
                self.records[appt_id] = (cancelled, doc, pat)
                logger.info("Cancelled appointment %s superseded in clinic %s", appt_id, clinic.name)

        appt = self.add_appointment(
            doctor_id=request.doctor_id,
            patient_id=request.patient_id,
            clinic=clinic.name,
            day=request.date,
            time=f"{request.time[:5]}:00",
            description=request.submission_description(),
        )
        logger.info("Created appointment %s for patient %s", appt.id, request.patient_id)
        return appt

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RemoteFailure(operation, "service unavailable")
