from datetime import date, datetime
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field

from ..core.config import DEFAULT_TIME_SLOTS
from ..core.security import DEFAULT_ADMIN_PERMISSIONS, UserRole

class AdminProfile(BaseModel):
    role: Literal["admin"] = "admin"
    admin_id: str
    permissions: List[str] = Field(default_factory=lambda: list(DEFAULT_ADMIN_PERMISSIONS))

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

class DoctorProfile(BaseModel):
    role: Literal["doctor"] = "doctor"
    doctor_id: str
    specialization: str
    license_number: str
    experience_years: int = 0
    qualifications: List[str] = Field(default_factory=list)
    # Declared slot template, in booking order
    time_slots: List[str] = Field(default_factory=lambda: list(DEFAULT_TIME_SLOTS))

    def is_available_at(self, time_slot: str) -> bool:
        return time_slot in self.time_slots

class PatientProfile(BaseModel):
    role: Literal["patient"] = "patient"
    patient_id: str
    age: int
    gender: str
    blood_type: str
    emergency_contact: str
    medical_history: str = ""
    allergies: List[str] = Field(default_factory=list)
    current_medications: List[str] = Field(default_factory=list)
    registration_date: date = Field(default_factory=date.today)

RoleProfile = Annotated[
    Union[AdminProfile, DoctorProfile, PatientProfile],
    Field(discriminator="role"),
]

class User(BaseModel):
    """An account: shared identity fields plus exactly one role payload."""

    username: str
    password: str
    full_name: str
    email: str
    contact_number: str = ""
    address: str = ""
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    profile: RoleProfile

    @property
    def role(self) -> UserRole:
        return UserRole(self.profile.role)

    @property
    def entity_id(self) -> str:
        """The role identifier: ADMxxx, DOCxxx or PATxxx."""
        match self.profile:
            case AdminProfile(admin_id=admin_id):
                return admin_id
            case DoctorProfile(doctor_id=doctor_id):
                return doctor_id
            case PatientProfile(patient_id=patient_id):
                return patient_id
        raise TypeError(f"Unknown profile type: {type(self.profile).__name__}")

    @property
    def is_admin(self) -> bool:
        return isinstance(self.profile, AdminProfile)

    @property
    def is_doctor(self) -> bool:
        return isinstance(self.profile, DoctorProfile)

    @property
    def is_patient(self) -> bool:
        return isinstance(self.profile, PatientProfile)

    def __repr__(self):
        return f"<User(username='{self.username}', role='{self.role.value}', id='{self.entity_id}')>"
