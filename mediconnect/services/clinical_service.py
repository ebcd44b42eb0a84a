"""
Medical records, prescriptions and scan metadata.

Scan files themselves are stored by the upload collaborator; only the
metadata row passes through here.
"""
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union
import logging

from ..core.errors import ErrorKind
from ..core.validators import (
    is_future_date, is_not_empty, is_valid_diagnosis, is_valid_prescription, parse_date,
)
from ..schemas.clinical import (
    MedicalRecord, Medication, Prescription, PrescriptionStatus, RecordStatus, Scan,
)
from .store import ClinicStore

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class ClinicalResult:
    value: Any = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Any, message: str = ""):
        return cls(value=value, message=message)

    @classmethod
    def failure(cls, error: ErrorKind, message: str):
        return cls(error=error, message=message)

def _clean(values: Iterable[str]) -> List[str]:
    return [v.strip() for v in values if is_not_empty(v)]

class ClinicalRecordService:
    def __init__(self, store: ClinicStore):
        self.store = store

    def _check_parties(self, patient_id: str, doctor_id: str) -> Optional[ClinicalResult]:
        if self.store.get_patient(patient_id) is None:
            return ClinicalResult.failure(ErrorKind.NOT_FOUND, f"Patient {patient_id} not found")
        if self.store.get_doctor(doctor_id) is None:
            return ClinicalResult.failure(ErrorKind.NOT_FOUND, f"Doctor {doctor_id} not found")
        return None

    # ------------------------------------------------------------------
    # Medical records
    # ------------------------------------------------------------------
    def create_medical_record(
        self,
        patient_id: str,
        doctor_id: str,
        diagnosis: str,
        prescription: str,
        treatment: str = "",
        notes: str = "",
        symptoms: Iterable[str] = (),
        medications: Iterable[str] = (),
    ) -> ClinicalResult:
        if not is_valid_diagnosis(diagnosis):
            return ClinicalResult.failure(ErrorKind.VALIDATION, "Diagnosis must be between 5 and 1000 characters")
        if not is_valid_prescription(prescription):
            return ClinicalResult.failure(ErrorKind.VALIDATION, "Prescription must be between 5 and 500 characters")
        missing = self._check_parties(patient_id, doctor_id)
        if missing is not None:
            return missing

        record = MedicalRecord(
            record_id=self.store.generate_medical_record_id(),
            patient_id=patient_id,
            doctor_id=doctor_id,
            diagnosis=diagnosis.strip(),
            prescription=prescription.strip(),
            treatment=(treatment or "").strip(),
            notes=(notes or "").strip(),
            symptoms=_clean(symptoms),
            medications=_clean(medications),
        )
        if not self.store.add_medical_record(record):
            return ClinicalResult.failure(ErrorKind.CONFLICT, f"Medical record {record.record_id} already exists")
        logger.info(f"Created medical record {record.record_id} for {patient_id}")
        return ClinicalResult.success(record, "Medical record created")

    def _load_record(self, record_id: str):
        record = self.store.get_medical_record(record_id)
        if record is None:
            return None, ClinicalResult.failure(ErrorKind.NOT_FOUND, f"Medical record {record_id} not found")
        return record, None

    def update_medical_record(
        self,
        record_id: str,
        diagnosis: Optional[str] = None,
        treatment: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ClinicalResult:
        """Edit an active record; archived records are read-only."""
        record, failure = self._load_record(record_id)
        if failure is not None:
            return failure
        if record.is_archived:
            return ClinicalResult.failure(ErrorKind.INVALID_TRANSITION, "Archived records cannot be modified")

        changes: Dict[str, Any] = {}
        if diagnosis is not None:
            if not is_valid_diagnosis(diagnosis):
                return ClinicalResult.failure(
                    ErrorKind.VALIDATION, "Diagnosis must be between 5 and 1000 characters"
                )
            changes["diagnosis"] = diagnosis.strip()
        if treatment is not None:
            changes["treatment"] = treatment.strip()
        if notes is not None and is_not_empty(notes):
            changes["notes"] = f"{record.notes}\n{notes.strip()}" if record.notes else notes.strip()

        updated = record.model_copy(update=changes)
        self.store.update_medical_record(updated)
        return ClinicalResult.success(updated, "Medical record updated")

    def archive_medical_record(self, record_id: str) -> ClinicalResult:
        record, failure = self._load_record(record_id)
        if failure is not None:
            return failure
        if record.is_archived:
            return ClinicalResult.failure(ErrorKind.INVALID_TRANSITION, "Medical record is already archived")
        updated = record.model_copy(update={"status": RecordStatus.ARCHIVED})
        self.store.update_medical_record(updated)
        logger.info(f"Archived medical record {record_id}")
        return ClinicalResult.success(updated, "Medical record archived")

    def schedule_follow_up(
        self,
        record_id: str,
        follow_up_date: Union[str, date],
        today: Optional[date] = None,
    ) -> ClinicalResult:
        record, failure = self._load_record(record_id)
        if failure is not None:
            return failure
        on = parse_date(follow_up_date)
        if on is None or not is_future_date(on, today):
            return ClinicalResult.failure(ErrorKind.VALIDATION, "Follow-up date must be today or later")
        updated = record.model_copy(update={"follow_up_required": True, "follow_up_date": on})
        self.store.update_medical_record(updated)
        return ClinicalResult.success(updated, "Follow-up scheduled")

    def get_medical_records_for_patient(self, patient_id: str) -> List[MedicalRecord]:
        return self.store.get_medical_records_by_patient(patient_id)

    def get_medical_records_by_doctor(self, doctor_id: str) -> List[MedicalRecord]:
        return self.store.get_medical_records_by_doctor(doctor_id)

    def get_follow_ups_due(self, today: Optional[date] = None) -> List[MedicalRecord]:
        return [r for r in self.store.get_all_medical_records() if r.is_follow_up_due(today)]

    # ------------------------------------------------------------------
    # Prescriptions
    # ------------------------------------------------------------------
    def create_prescription(
        self,
        patient_id: str,
        doctor_id: str,
        instructions: str,
        valid_until: Union[str, date],
        refills: int = 0,
        medications: Iterable[Medication] = (),
        today: Optional[date] = None,
    ) -> ClinicalResult:
        if not is_not_empty(instructions):
            return ClinicalResult.failure(ErrorKind.VALIDATION, "Instructions are required")
        until = parse_date(valid_until)
        if until is None or not is_future_date(until, today):
            return ClinicalResult.failure(ErrorKind.VALIDATION, "Valid-until date cannot be in the past")
        if refills is None or refills < 0:
            return ClinicalResult.failure(ErrorKind.VALIDATION, "Refills cannot be negative")
        missing = self._check_parties(patient_id, doctor_id)
        if missing is not None:
            return missing

        prescription = Prescription(
            prescription_id=self.store.generate_prescription_id(),
            patient_id=patient_id,
            doctor_id=doctor_id,
            instructions=instructions.strip(),
            valid_until=until,
            refills_remaining=refills,
            medications=list(medications),
        )
        if not self.store.add_prescription(prescription):
            return ClinicalResult.failure(
                ErrorKind.CONFLICT, f"Prescription {prescription.prescription_id} already exists"
            )
        logger.info(f"Created prescription {prescription.prescription_id} for {patient_id}")
        return ClinicalResult.success(prescription, "Prescription created")

    def _load_prescription(self, prescription_id: str):
        prescription = self.store.get_prescription(prescription_id)
        if prescription is None:
            return None, ClinicalResult.failure(
                ErrorKind.NOT_FOUND, f"Prescription {prescription_id} not found"
            )
        return prescription, None

    def add_medication(
        self,
        prescription_id: str,
        medication_name: str,
        dosage: str,
        frequency: str,
        duration: str,
        instructions: str = "",
    ) -> ClinicalResult:
        prescription, failure = self._load_prescription(prescription_id)
        if failure is not None:
            return failure
        if not all(is_not_empty(v) for v in (medication_name, dosage, frequency, duration)):
            return ClinicalResult.failure(
                ErrorKind.VALIDATION, "Medication name, dosage, frequency and duration are required"
            )
        if prescription.status != PrescriptionStatus.ACTIVE:
            return ClinicalResult.failure(ErrorKind.INVALID_TRANSITION, "Prescription is not active")

        medication = Medication(
            medication_name=medication_name.strip(),
            dosage=dosage.strip(),
            frequency=frequency.strip(),
            duration=duration.strip(),
            instructions=(instructions or "").strip(),
        )
        updated = prescription.model_copy(update={"medications": prescription.medications + [medication]})
        self.store.update_prescription(updated)
        return ClinicalResult.success(updated, "Medication added")

    def cancel_prescription(self, prescription_id: str, reason: str = "") -> ClinicalResult:
        prescription, failure = self._load_prescription(prescription_id)
        if failure is not None:
            return failure
        if prescription.status == PrescriptionStatus.CANCELLED:
            return ClinicalResult.failure(ErrorKind.INVALID_TRANSITION, "Prescription is already cancelled")

        changes: Dict[str, Any] = {"status": PrescriptionStatus.CANCELLED}
        if is_not_empty(reason):
            note = f"Cancellation reason: {reason.strip()}"
            changes["notes"] = f"{prescription.notes}\n{note}" if prescription.notes else note
        updated = prescription.model_copy(update=changes)
        self.store.update_prescription(updated)
        logger.info(f"Cancelled prescription {prescription_id}")
        return ClinicalResult.success(updated, "Prescription cancelled")

    def process_refill(self, prescription_id: str, today: Optional[date] = None) -> ClinicalResult:
        prescription, failure = self._load_prescription(prescription_id)
        if failure is not None:
            return failure
        if prescription.refills_remaining <= 0:
            return ClinicalResult.failure(ErrorKind.CONFLICT, "No refills remaining")
        if prescription.is_expired(today):
            return ClinicalResult.failure(ErrorKind.CONFLICT, "Prescription has expired")
        if prescription.status != PrescriptionStatus.ACTIVE:
            return ClinicalResult.failure(ErrorKind.INVALID_TRANSITION, "Prescription is not active")

        updated = prescription.model_copy(
            update={"refills_remaining": prescription.refills_remaining - 1}
        )
        self.store.update_prescription(updated)
        logger.info(f"Refill processed for {prescription_id}, {updated.refills_remaining} left")
        return ClinicalResult.success(updated, "Refill processed")

    def get_prescriptions_for_patient(self, patient_id: str) -> List[Prescription]:
        return self.store.get_prescriptions_by_patient(patient_id)

    def get_prescriptions_by_doctor(self, doctor_id: str) -> List[Prescription]:
        return self.store.get_prescriptions_by_doctor(doctor_id)

    def get_active_prescriptions_for_patient(
        self, patient_id: str, today: Optional[date] = None
    ) -> List[Prescription]:
        return [p for p in self.store.get_prescriptions_by_patient(patient_id) if p.is_valid(today)]

    def get_prescription_statistics(self, today: Optional[date] = None) -> Dict[str, int]:
        prescriptions = self.store.get_all_prescriptions()
        return {
            "total_prescriptions": len(prescriptions),
            "active_prescriptions": sum(1 for p in prescriptions if p.status == PrescriptionStatus.ACTIVE),
            "expired_prescriptions": sum(1 for p in prescriptions if p.is_expired(today)),
        }

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------
    def register_scan(
        self,
        patient_id: str,
        file_path: str,
        file_type: str = "",
        file_size: int = 0,
        description: str = "",
        appointment_id: Optional[str] = None,
    ) -> ClinicalResult:
        if not is_not_empty(file_path):
            return ClinicalResult.failure(ErrorKind.VALIDATION, "File path is required")
        if file_size is None or file_size < 0:
            return ClinicalResult.failure(ErrorKind.VALIDATION, "File size cannot be negative")
        if self.store.get_patient(patient_id) is None:
            return ClinicalResult.failure(ErrorKind.NOT_FOUND, f"Patient {patient_id} not found")
        if appointment_id and self.store.get_appointment(appointment_id) is None:
            return ClinicalResult.failure(ErrorKind.NOT_FOUND, f"Appointment {appointment_id} not found")

        scan = Scan(
            scan_id=self.store.generate_scan_id(),
            patient_id=patient_id,
            appointment_id=appointment_id or None,
            file_path=file_path.strip(),
            file_type=(file_type or "").strip(),
            file_size=file_size,
            description=(description or "").strip(),
        )
        if not self.store.add_scan(scan):
            return ClinicalResult.failure(ErrorKind.CONFLICT, f"Scan {scan.scan_id} already exists")
        logger.info(f"Registered scan {scan.scan_id} for {patient_id}")
        return ClinicalResult.success(scan, "Scan registered")

    def get_scans_for_patient(self, patient_id: str) -> List[Scan]:
        return self.store.get_scans_by_patient(patient_id)

    def get_scans_for_appointment(self, appointment_id: str) -> List[Scan]:
        return self.store.get_scans_by_appointment(appointment_id)
