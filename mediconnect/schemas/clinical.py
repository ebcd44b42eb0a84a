from datetime import date, datetime
from typing import List, Optional
import enum

from pydantic import BaseModel, Field

class RecordStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"

class PrescriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"

class MedicalRecord(BaseModel):
    record_id: str
    patient_id: str
    doctor_id: str
    diagnosis: str
    prescription: str = ""
    treatment: str = ""
    notes: str = ""
    status: RecordStatus = RecordStatus.ACTIVE
    symptoms: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)
    follow_up_required: bool = False
    follow_up_date: Optional[date] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_archived(self) -> bool:
        return self.status == RecordStatus.ARCHIVED

    def is_follow_up_due(self, today: Optional[date] = None) -> bool:
        if not self.follow_up_required or self.follow_up_date is None:
            return False
        return (today or date.today()) >= self.follow_up_date

class Medication(BaseModel):
    medication_name: str
    dosage: str
    frequency: str
    duration: str
    instructions: str = ""

class Prescription(BaseModel):
    prescription_id: str
    patient_id: str
    doctor_id: str
    instructions: str = ""
    status: PrescriptionStatus = PrescriptionStatus.ACTIVE
    valid_until: Optional[date] = None
    refills_remaining: int = 0
    notes: str = ""
    medications: List[Medication] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def is_expired(self, today: Optional[date] = None) -> bool:
        if self.valid_until is None:
            return False
        return (today or date.today()) > self.valid_until

    def is_valid(self, today: Optional[date] = None) -> bool:
        return self.status == PrescriptionStatus.ACTIVE and not self.is_expired(today)

class Scan(BaseModel):
    """Metadata for an uploaded diagnostic file; the bytes live elsewhere."""

    scan_id: str
    patient_id: str
    appointment_id: Optional[str] = None
    file_path: str
    file_type: str = ""
    file_size: int = 0
    description: str = ""
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)
