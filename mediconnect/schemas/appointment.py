from datetime import date, datetime, time
from typing import Optional
import enum

from pydantic import BaseModel, Field

class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    RESCHEDULED = "RESCHEDULED"

    @classmethod
    def from_stored(cls, value: Optional[str]) -> "AppointmentStatus":
        """Map a persisted status string, including legacy values, onto the enum."""
        normalized = (value or "").strip().upper()
        if normalized in ("SCHEDULED", "APPROVED"):
            # Older rows: SCHEDULED meant booked, APPROVED meant confirmed
            return cls.PENDING if normalized == "SCHEDULED" else cls.CONFIRMED
        try:
            return cls(normalized)
        except ValueError:
            return cls.PENDING

# Statuses that still hold the (doctor, date, slot) triple
ACTIVE_STATUSES = frozenset({
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.RESCHEDULED,
})

TERMINAL_STATUSES = frozenset({
    AppointmentStatus.REJECTED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.COMPLETED,
})

class Appointment(BaseModel):
    appointment_id: str
    doctor_id: str
    patient_id: str
    appointment_date: date
    appointment_time: time
    time_slot: str
    reason: str
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: str = ""
    cancellation_reason: Optional[str] = None
    denial_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def occupies(self, doctor_id: str, on: date, time_slot: str) -> bool:
        return (
            self.is_active
            and self.doctor_id == doctor_id
            and self.appointment_date == on
            and self.time_slot == time_slot
        )

    def with_note(self, note: str) -> "Appointment":
        """Copy of this appointment with ``note`` appended to the notes log."""
        notes = note if not self.notes else f"{self.notes}\n{note}"
        return self.model_copy(update={"notes": notes})

    def is_past(self, today: Optional[date] = None) -> bool:
        return self.appointment_date < (today or date.today())

    def is_upcoming(self, today: Optional[date] = None) -> bool:
        return self.appointment_date >= (today or date.today())

    def __repr__(self):
        return (
            f"<Appointment(id='{self.appointment_id}', doctor_id='{self.doctor_id}', "
            f"patient_id='{self.patient_id}', date='{self.appointment_date}', "
            f"slot='{self.time_slot}', status='{self.status.value}')>"
        )
