"""Domain records shared by the scheduler, the booking graph and the API client."""

from __future__ import annotations

import datetime
from enum import Enum
from typing import Any, TypeAlias

from pydantic import BaseModel, Field, field_validator, model_validator


TimeSlot: TypeAlias = str  # "HH:MM"

DEFAULT_DESCRIPTION = "Online appointment booked."


class AppointmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

    @classmethod
    def _missing_(cls, value: object) -> AppointmentStatus | None:
        # The appointment-record service reports statuses in its own vocabulary.
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
            return _STATUS_ALIASES.get(key)
        return None


_STATUS_ALIASES: dict[str, AppointmentStatus] = {
    "AKTIF": AppointmentStatus.ACTIVE,
    "IPTAL": AppointmentStatus.CANCELLED,
    "IPTAL_EDILDI": AppointmentStatus.CANCELLED,
    "TAMAMLANDI": AppointmentStatus.COMPLETED,
}


class Clinic(BaseModel):
    id: int
    name: str
    is_active: bool = True


class Doctor(BaseModel):
    id: int
    name: str
    surname: str

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}"


class Patient(BaseModel):
    id: int
    email: str


class Appointment(BaseModel):
    """An appointment record as returned by the appointment-record service."""

    id: int
    date: datetime.date
    time: str
    clinic: str
    status: AppointmentStatus
    description: str | None = None

    @field_validator("clinic", mode="before")
    @classmethod
    def _clinic_name(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return value.get("name")
        if isinstance(value, Clinic):
            return value.name
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return AppointmentStatus(value)
        return value

    @property
    def slot(self) -> TimeSlot:
        """Stored times may carry seconds; slots compare on ``HH:MM``."""
        return self.time[:5]

    @property
    def is_active(self) -> bool:
        return self.status is AppointmentStatus.ACTIVE


class BookingRequest(BaseModel):
    """Transient request built right before submission."""

    clinic_id: int | None = None
    clinic_name: str | None = None
    doctor_id: int | None = None
    patient_id: int | None = None
    date: datetime.date
    time: str = ""
    description: str = ""

    def submission_description(self) -> str:
        return self.description.strip() or DEFAULT_DESCRIPTION


class HourGroup(BaseModel):
    hour: str
    slots: list[TimeSlot] = Field(default_factory=list)


class SlotView(BaseModel):
    time: TimeSlot
    disabled: bool = False


class AnnotatedHourGroup(BaseModel):
    hour: str
    slots: list[SlotView] = Field(default_factory=list)


class SchedulerConfig(BaseModel):
    """Working hours and slot granularity for the generated grid."""

    start_hour: int = 8
    end_hour: int = 17
    interval: int = 20
    excluded_hours: tuple[int, ...] = (12,)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_bounds(self) -> SchedulerConfig:
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if 60 % self.interval:
            raise ValueError(f"interval must divide 60 evenly, got {self.interval}")
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValueError(
                f"expected 0 <= start_hour < end_hour <= 24, got {self.start_hour}..{self.end_hour}"
            )
        for hour in self.excluded_hours:
            if not self.start_hour < hour < self.end_hour:
                raise ValueError(
                    f"excluded hour {hour} must lie strictly between {self.start_hour} and {self.end_hour}"
                )
        return self
