"""
Appointment lifecycle.

::

    PENDING   --approve-->          CONFIRMED
    PENDING   --reject(reason)-->   REJECTED
    PENDING|CONFIRMED --cancel(reason)--> CANCELLED
    CONFIRMED --complete-->         COMPLETED
    PENDING|CONFIRMED --reschedule-->  same status, new date/slot

With ``STRICT_TRANSITIONS`` off (the default) approve, reject and cancel are
applied whatever the current status, matching the behaviour existing clients
rely on; leaving a terminal status that way is logged as a warning. With it
on, the diagram above is enforced.

Every operation works on a copy and writes it back through the store, so the
caller only ever sees the updated record inside the returned result.
"""
from dataclasses import dataclass
from datetime import date
from typing import Dict, FrozenSet, List, Optional, Union
import logging

from ..core.config import Settings
from ..core.errors import ErrorKind
from ..core.validators import (
    is_future_date, is_not_empty, is_valid_appointment_reason,
    is_valid_time_slot, parse_date, slot_start,
)
from ..schemas.appointment import Appointment, AppointmentStatus
from .scheduling import SchedulingService, SlotState
from .store import ClinicStore

logger = logging.getLogger(__name__)

_PENDING = AppointmentStatus.PENDING
_CONFIRMED = AppointmentStatus.CONFIRMED
_RESCHEDULED = AppointmentStatus.RESCHEDULED

# Source statuses each action accepts when transitions are strict
STRICT_SOURCES: Dict[str, FrozenSet[AppointmentStatus]] = {
    "approve": frozenset({_PENDING, _RESCHEDULED}),
    "reject": frozenset({_PENDING, _RESCHEDULED}),
    "cancel": frozenset({_PENDING, _CONFIRMED, _RESCHEDULED}),
    "complete": frozenset({_CONFIRMED, _RESCHEDULED}),
    "reschedule": frozenset({_PENDING, _CONFIRMED, _RESCHEDULED}),
}

@dataclass(frozen=True)
class TransitionResult:
    appointment: Optional[Appointment] = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and self.appointment is not None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, appointment: Appointment, message: str = ""):
        return cls(appointment=appointment, message=message)

    @classmethod
    def failure(cls, error: ErrorKind, message: str):
        return cls(error=error, message=message)

class BookingResult(TransitionResult):
    """Outcome of a booking request; carries the new appointment on success."""

class AppointmentService:
    def __init__(
        self,
        store: ClinicStore,
        scheduling: Optional[SchedulingService] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.scheduling = scheduling or SchedulingService(store)
        self.settings = settings or store.settings

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------
    def book(
        self,
        doctor_id: str,
        patient_id: str,
        appointment_date: Union[str, date],
        time_slot: str,
        reason: str,
        today: Optional[date] = None,
    ) -> BookingResult:
        """Create a PENDING appointment if the doctor's slot is free."""
        if not is_not_empty(doctor_id) or not is_not_empty(patient_id):
            return BookingResult.failure(ErrorKind.VALIDATION, "Doctor and patient IDs are required")

        on = parse_date(appointment_date)
        if on is None:
            return BookingResult.failure(ErrorKind.VALIDATION, "Date must use the YYYY-MM-DD format")
        if not is_future_date(on, today):
            return BookingResult.failure(ErrorKind.VALIDATION, "Appointment date cannot be in the past")
        if not is_valid_time_slot(time_slot):
            return BookingResult.failure(ErrorKind.VALIDATION, "Time slot must use the HH:MM-HH:MM format")
        if not is_valid_appointment_reason(reason):
            return BookingResult.failure(
                ErrorKind.VALIDATION, "Reason must be between 10 and 500 characters"
            )

        if self.store.get_doctor(doctor_id) is None:
            return BookingResult.failure(ErrorKind.NOT_FOUND, f"Doctor {doctor_id} not found")
        if self.store.get_patient(patient_id) is None:
            return BookingResult.failure(ErrorKind.NOT_FOUND, f"Patient {patient_id} not found")

        time_slot = time_slot.strip()
        with self.store.booking_guard():
            check = self.scheduling.check_slot(doctor_id, on, time_slot)
            if check.state == SlotState.NOT_IN_TEMPLATE:
                logger.info(f"Booking denied: {doctor_id} does not offer {time_slot}")
                return BookingResult.failure(
                    ErrorKind.CONFLICT, f"Doctor {doctor_id} does not offer the {time_slot} slot"
                )
            if not check:
                logger.info(f"Booking denied: {doctor_id} {on} {time_slot} is taken")
                return BookingResult.failure(ErrorKind.CONFLICT, "Time slot is not available")

            appointment = Appointment(
                appointment_id=self.store.generate_appointment_id(),
                doctor_id=doctor_id,
                patient_id=patient_id,
                appointment_date=on,
                appointment_time=slot_start(time_slot),
                time_slot=time_slot,
                reason=reason.strip(),
            )
            if not self.store.add_appointment(appointment):
                return BookingResult.failure(
                    ErrorKind.CONFLICT, f"Appointment {appointment.appointment_id} already exists"
                )

        logger.info(f"Booked {appointment.appointment_id} with {doctor_id} on {on} at {time_slot}")
        return BookingResult.success(appointment, "Appointment booked")

    def create_by_doctor(
        self,
        doctor_id: str,
        patient_id: str,
        appointment_date: Union[str, date],
        time_slot: str,
        reason: str,
        today: Optional[date] = None,
    ) -> BookingResult:
        """Doctor-initiated booking; same rules as :meth:`book`."""
        return self.book(doctor_id, patient_id, appointment_date, time_slot, reason, today=today)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def _load(self, appointment_id: str):
        appointment = self.store.get_appointment(appointment_id)
        if appointment is None:
            return None, TransitionResult.failure(
                ErrorKind.NOT_FOUND, f"Appointment {appointment_id} not found"
            )
        return appointment, None

    def _permits(self, appointment: Appointment, action: str) -> bool:
        if appointment.status in STRICT_SOURCES[action]:
            return True
        if self.settings.STRICT_TRANSITIONS:
            logger.info(
                f"Refusing to {action} {appointment.appointment_id} in status {appointment.status.value}"
            )
            return False
        if appointment.is_terminal:
            logger.warning(
                f"{action} applied to {appointment.appointment_id} "
                f"in terminal status {appointment.status.value}"
            )
        return True

    def _refuse(self, appointment: Appointment, action: str) -> TransitionResult:
        return TransitionResult.failure(
            ErrorKind.INVALID_TRANSITION,
            f"Cannot {action} an appointment that is {appointment.status.value}",
        )

    def _save(self, updated: Appointment, message: str) -> TransitionResult:
        self.store.update_appointment(updated)
        logger.info(f"{updated.appointment_id}: {message}")
        return TransitionResult.success(updated, message)

    def approve(self, appointment_id: str) -> TransitionResult:
        appointment, failure = self._load(appointment_id)
        if failure is not None:
            return failure
        if not self._permits(appointment, "approve"):
            return self._refuse(appointment, "approve")
        updated = appointment.model_copy(update={"status": AppointmentStatus.CONFIRMED})
        if appointment.is_active:
            return self._save(updated, "Appointment approved")

        # Reviving an inactive appointment must not double book its slot
        with self.store.booking_guard():
            if not self.store.is_time_slot_available(
                appointment.doctor_id,
                appointment.appointment_date,
                appointment.time_slot,
                exclude_appointment_id=appointment.appointment_id,
            ):
                return TransitionResult.failure(ErrorKind.CONFLICT, "Time slot is no longer available")
            return self._save(updated, "Appointment approved")

    def reject(self, appointment_id: str, reason: str = "") -> TransitionResult:
        appointment, failure = self._load(appointment_id)
        if failure is not None:
            return failure
        if not self._permits(appointment, "reject"):
            return self._refuse(appointment, "reject")

        updated = appointment.model_copy(update={"status": AppointmentStatus.REJECTED})
        if is_not_empty(reason):
            reason = reason.strip()
            updated = updated.with_note(f"Rejection reason: {reason}")
            updated = updated.model_copy(update={"denial_reason": reason})
        return self._save(updated, "Appointment rejected")

    def cancel(self, appointment_id: str, reason: str = "") -> TransitionResult:
        appointment, failure = self._load(appointment_id)
        if failure is not None:
            return failure
        if not self._permits(appointment, "cancel"):
            return self._refuse(appointment, "cancel")

        updated = appointment.model_copy(update={"status": AppointmentStatus.CANCELLED})
        if is_not_empty(reason):
            reason = reason.strip()
            updated = updated.with_note(f"Cancellation reason: {reason}")
            updated = updated.model_copy(update={"cancellation_reason": reason})
        return self._save(updated, "Appointment cancelled")

    def complete(self, appointment_id: str) -> TransitionResult:
        appointment, failure = self._load(appointment_id)
        if failure is not None:
            return failure
        if appointment.status == AppointmentStatus.COMPLETED:
            return TransitionResult.failure(ErrorKind.INVALID_TRANSITION, "Appointment is already completed")
        if not self._permits(appointment, "complete"):
            return self._refuse(appointment, "complete")

        updated = appointment.model_copy(update={"status": AppointmentStatus.COMPLETED})
        return self._save(updated, "Appointment completed")

    def reschedule(
        self,
        appointment_id: str,
        new_date: Union[str, date],
        new_time_slot: str,
        today: Optional[date] = None,
    ) -> TransitionResult:
        """Move an appointment to a free slot; the status is left unchanged."""
        appointment, failure = self._load(appointment_id)
        if failure is not None:
            return failure
        if appointment.status == AppointmentStatus.CANCELLED or not self._permits(appointment, "reschedule"):
            return self._refuse(appointment, "reschedule")

        on = parse_date(new_date)
        if on is None or not is_valid_time_slot(new_time_slot):
            return TransitionResult.failure(ErrorKind.VALIDATION, "Invalid date or time slot format")
        if not is_future_date(on, today):
            return TransitionResult.failure(ErrorKind.VALIDATION, "Appointment date cannot be in the past")

        new_time_slot = new_time_slot.strip()
        with self.store.booking_guard():
            check = self.scheduling.check_slot(
                appointment.doctor_id, on, new_time_slot, exclude_appointment_id=appointment_id
            )
            if check.state == SlotState.DOCTOR_NOT_FOUND:
                return TransitionResult.failure(
                    ErrorKind.NOT_FOUND, f"Doctor {appointment.doctor_id} not found"
                )
            if check.state == SlotState.NOT_IN_TEMPLATE:
                return TransitionResult.failure(
                    ErrorKind.CONFLICT,
                    f"Doctor {appointment.doctor_id} does not offer the {new_time_slot} slot",
                )
            if not check:
                return TransitionResult.failure(ErrorKind.CONFLICT, "New time slot is not available")

            previous = f"{appointment.appointment_date.isoformat()} {appointment.time_slot}"
            updated = appointment.model_copy(update={
                "appointment_date": on,
                "appointment_time": slot_start(new_time_slot),
                "time_slot": new_time_slot,
            }).with_note(f"Rescheduled from {previous} to {on.isoformat()} {new_time_slot}")
            return self._save(updated, "Appointment rescheduled")

    def add_notes(self, appointment_id: str, notes: str) -> TransitionResult:
        appointment, failure = self._load(appointment_id)
        if failure is not None:
            return failure
        if not is_not_empty(notes):
            return TransitionResult.failure(ErrorKind.VALIDATION, "Notes cannot be empty")
        return self._save(appointment.with_note(notes.strip()), "Notes added")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        return self.store.get_appointment(appointment_id)

    def get_all_appointments(self) -> List[Appointment]:
        return self.store.get_all_appointments()

    def get_appointments_by_doctor(self, doctor_id: str) -> List[Appointment]:
        return self.store.get_appointments_by_doctor(doctor_id)

    def get_appointments_by_patient(self, patient_id: str) -> List[Appointment]:
        return self.store.get_appointments_by_patient(patient_id)

    def get_appointments_by_date(self, on: date) -> List[Appointment]:
        return self.store.get_appointments_by_date(on)

    def get_appointments_by_status(self, status: Union[str, AppointmentStatus]) -> List[Appointment]:
        try:
            wanted = AppointmentStatus(status.upper() if isinstance(status, str) else status)
        except ValueError:
            return []
        return [a for a in self.store.get_all_appointments() if a.status == wanted]

    def get_pending_appointments_for_doctor(self, doctor_id: str) -> List[Appointment]:
        return [
            a for a in self.store.get_appointments_by_doctor(doctor_id)
            if a.status == AppointmentStatus.PENDING
        ]

    def get_confirmed_appointments_for_patient(self, patient_id: str) -> List[Appointment]:
        return [
            a for a in self.store.get_appointments_by_patient(patient_id)
            if a.status == AppointmentStatus.CONFIRMED
        ]

    def get_upcoming_appointments_by_doctor(self, doctor_id: str, today: Optional[date] = None) -> List[Appointment]:
        return [
            a for a in self.store.get_appointments_by_doctor(doctor_id)
            if a.is_upcoming(today) and a.status != AppointmentStatus.CANCELLED
        ]

    def get_upcoming_appointments_by_patient(self, patient_id: str, today: Optional[date] = None) -> List[Appointment]:
        return [
            a for a in self.store.get_appointments_by_patient(patient_id)
            if a.is_upcoming(today) and a.status != AppointmentStatus.CANCELLED
        ]

    def get_past_appointments_by_patient(self, patient_id: str, today: Optional[date] = None) -> List[Appointment]:
        return [a for a in self.store.get_appointments_by_patient(patient_id) if a.is_past(today)]

    def get_available_time_slots(self, doctor_id: str, on: date) -> List[str]:
        return self.scheduling.get_available_time_slots(doctor_id, on)

    def get_appointment_statistics(self) -> Dict[str, int]:
        stats = {"total_appointments": self.store.count_total_appointments()}
        for status in AppointmentStatus:
            stats[f"{status.value.lower()}_appointments"] = self.store.count_appointments_by_status(status)
        return stats
