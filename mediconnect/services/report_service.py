from collections import Counter
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from ..schemas.appointment import Appointment, AppointmentStatus
from ..schemas.clinical import MedicalRecord, Prescription, PrescriptionStatus, RecordStatus
from .store import ClinicStore

class ReportService:
    """Read-only aggregates over the store. Formatting is left to the caller."""

    def __init__(self, store: ClinicStore):
        self.store = store

    def system_summary(self, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()
        summary = self.store.get_statistics()
        summary["upcoming_appointments"] = sum(
            1 for a in self.store.get_all_appointments()
            if a.is_upcoming(today) and a.is_active
        )
        summary["active_medical_records"] = len(self.active_medical_records())
        summary["active_prescriptions"] = len(self.active_prescriptions())
        summary["generated_at"] = datetime.utcnow().isoformat()
        return summary

    def appointment_statistics(self) -> Dict[str, int]:
        stats = {"total": self.store.count_total_appointments()}
        for status in AppointmentStatus:
            stats[status.value.lower()] = self.store.count_appointments_by_status(status)
        return stats

    def appointments_by_date_range(self, start: date, end: date) -> List[Appointment]:
        """Inclusive on both ends, ordered by date then slot."""
        selected = [
            a for a in self.store.get_all_appointments()
            if start <= a.appointment_date <= end
        ]
        return sorted(selected, key=lambda a: (a.appointment_date, a.appointment_time))

    def doctor_performance(self, doctor_id: str) -> Optional[Dict[str, Any]]:
        """None when the doctor is unknown."""
        doctor = self.store.get_doctor(doctor_id)
        if doctor is None:
            return None

        appointments = self.store.get_appointments_by_doctor(doctor_id)
        records = self.store.get_medical_records_by_doctor(doctor_id)
        prescriptions = self.store.get_prescriptions_by_doctor(doctor_id)
        by_status = Counter(a.status.value for a in appointments)

        return {
            "doctor_id": doctor_id,
            "full_name": doctor.full_name,
            "specialization": doctor.profile.specialization,
            "experience_years": doctor.profile.experience_years,
            "total_appointments": len(appointments),
            "appointments_by_status": dict(by_status),
            "total_medical_records": len(records),
            "active_medical_records": sum(1 for r in records if r.status == RecordStatus.ACTIVE),
            "total_prescriptions": len(prescriptions),
            "active_prescriptions": sum(1 for p in prescriptions if p.status == PrescriptionStatus.ACTIVE),
        }

    def patient_history(self, patient_id: str) -> Optional[Dict[str, Any]]:
        patient = self.store.get_patient(patient_id)
        if patient is None:
            return None

        appointments = sorted(
            self.store.get_appointments_by_patient(patient_id),
            key=lambda a: (a.appointment_date, a.appointment_time),
        )
        return {
            "patient_id": patient_id,
            "full_name": patient.full_name,
            "age": patient.profile.age,
            "blood_type": patient.profile.blood_type,
            "allergies": list(patient.profile.allergies),
            "current_medications": list(patient.profile.current_medications),
            "appointments": appointments,
            "medical_records": self.store.get_medical_records_by_patient(patient_id),
            "prescriptions": self.store.get_prescriptions_by_patient(patient_id),
            "scans": self.store.get_scans_by_patient(patient_id),
        }

    def active_medical_records(self) -> List[MedicalRecord]:
        return [r for r in self.store.get_all_medical_records() if r.status == RecordStatus.ACTIVE]

    def archived_medical_records(self) -> List[MedicalRecord]:
        return [r for r in self.store.get_all_medical_records() if r.status == RecordStatus.ARCHIVED]

    def active_prescriptions(self) -> List[Prescription]:
        return [p for p in self.store.get_all_prescriptions() if p.status == PrescriptionStatus.ACTIVE]

    def expired_prescriptions(self, today: Optional[date] = None) -> List[Prescription]:
        return [p for p in self.store.get_all_prescriptions() if p.is_expired(today)]
