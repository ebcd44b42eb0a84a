"""Relational tables mirrored by the persistence adapter."""
from .user import User, Admin
from .doctor import Doctor
from .patient import Patient
from .appointment import Appointment
from .medical_record import MedicalRecord
from .prescription import Prescription, PrescriptionMedication
from .scan import Scan

__all__ = [
    "User",
    "Admin",
    "Doctor",
    "Patient",
    "Appointment",
    "MedicalRecord",
    "Prescription",
    "PrescriptionMedication",
    "Scan",
]
