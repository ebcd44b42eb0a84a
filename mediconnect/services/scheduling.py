from dataclasses import dataclass
from datetime import date
from typing import List, Optional
import enum

from ..schemas.user import DoctorProfile
from .store import ClinicStore

class SlotState(str, enum.Enum):
    AVAILABLE = "available"
    DOCTOR_NOT_FOUND = "doctor_not_found"
    NOT_IN_TEMPLATE = "not_in_template"
    OCCUPIED = "occupied"

@dataclass(frozen=True)
class SlotCheck:
    state: SlotState

    @property
    def available(self) -> bool:
        return self.state == SlotState.AVAILABLE

    def __bool__(self) -> bool:
        return self.available

class SchedulingService:
    """Free slots are a doctor's template minus slots held by active appointments."""

    def __init__(self, store: ClinicStore):
        self.store = store

    def _doctor_profile(self, doctor_id: str) -> Optional[DoctorProfile]:
        doctor = self.store.get_doctor(doctor_id)
        return doctor.profile if doctor else None

    def find_available_time_slots(self, doctor_id: str, on: date) -> Optional[List[str]]:
        """Free slots in template order, or None when the doctor is unknown."""
        profile = self._doctor_profile(doctor_id)
        if profile is None:
            return None
        return [
            slot for slot in profile.time_slots
            if self.store.is_time_slot_available(doctor_id, on, slot)
        ]

    def get_available_time_slots(self, doctor_id: str, on: date) -> List[str]:
        return self.find_available_time_slots(doctor_id, on) or []

    def check_slot(
        self,
        doctor_id: str,
        on: date,
        time_slot: str,
        exclude_appointment_id: Optional[str] = None,
    ) -> SlotCheck:
        profile = self._doctor_profile(doctor_id)
        if profile is None:
            return SlotCheck(SlotState.DOCTOR_NOT_FOUND)
        if not profile.is_available_at(time_slot):
            return SlotCheck(SlotState.NOT_IN_TEMPLATE)
        if not self.store.is_time_slot_available(doctor_id, on, time_slot, exclude_appointment_id):
            return SlotCheck(SlotState.OCCUPIED)
        return SlotCheck(SlotState.AVAILABLE)
