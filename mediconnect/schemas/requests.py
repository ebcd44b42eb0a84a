"""Request and response bodies for the HTTP API."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .clinical import Medication
from .user import RoleProfile, User

class PatientRegister(BaseModel):
    username: str
    password: str
    confirm_password: Optional[str] = None
    full_name: str
    email: str
    contact_number: str = ""
    address: str = ""
    age: int
    gender: str
    blood_type: str
    emergency_contact: str
    medical_history: str = ""

class DoctorRegister(BaseModel):
    username: str
    password: str
    full_name: str
    email: str
    contact_number: str = ""
    address: str = ""
    specialization: str
    license_number: str
    experience_years: int = 0
    qualifications: List[str] = Field(default_factory=list)
    time_slots: Optional[List[str]] = None

class UserResponse(BaseModel):
    """An account as shown to API clients; the password never leaves the store."""

    username: str
    full_name: str
    email: str
    contact_number: str
    address: str
    is_active: bool
    created_at: datetime
    role: str
    entity_id: str
    profile: RoleProfile

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            username=user.username,
            full_name=user.full_name,
            email=user.email,
            contact_number=user.contact_number,
            address=user.address,
            is_active=user.is_active,
            created_at=user.created_at,
            role=user.role.value,
            entity_id=user.entity_id,
            profile=user.profile,
        )

class ContactUpdate(BaseModel):
    email: Optional[str] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None

class ChangePassword(BaseModel):
    current_password: str
    new_password: str

class ListUpdate(BaseModel):
    items: List[str] = Field(default_factory=list)

class BookingRequest(BaseModel):
    doctor_id: Optional[str] = None
    patient_id: Optional[str] = None
    appointment_date: str = Field(..., description="YYYY-MM-DD")
    time_slot: str = Field(..., description="HH:MM-HH:MM")
    reason: str

class ReasonRequest(BaseModel):
    reason: str = ""

class RescheduleRequest(BaseModel):
    new_date: str
    new_time_slot: str

class NotesRequest(BaseModel):
    notes: str

class MedicalRecordCreate(BaseModel):
    patient_id: str
    doctor_id: Optional[str] = None
    diagnosis: str
    prescription: str
    treatment: str = ""
    notes: str = ""
    symptoms: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)

class MedicalRecordUpdate(BaseModel):
    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    notes: Optional[str] = None

class FollowUpRequest(BaseModel):
    follow_up_date: str

class PrescriptionCreate(BaseModel):
    patient_id: str
    doctor_id: Optional[str] = None
    instructions: str
    valid_until: str
    refills: int = 0
    medications: List[Medication] = Field(default_factory=list)

class ScanRegister(BaseModel):
    patient_id: Optional[str] = None
    appointment_id: Optional[str] = None
    file_path: str
    file_type: str = ""
    file_size: int = 0
    description: str = ""
