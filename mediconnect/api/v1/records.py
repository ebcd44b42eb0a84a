from fastapi import APIRouter, Depends, status
from typing import List, Optional

from ...core.errors import ErrorKind
from ...core.security import AuthorizationError, ServiceError
from ...api.deps import (
    get_context, get_current_user, get_doctor_user, own_doctor_id,
    own_patient_id, parse_date_param, raise_for,
)
from ...schemas.clinical import Medication, MedicalRecord, Prescription, Scan
from ...schemas.requests import (
    FollowUpRequest, MedicalRecordCreate, MedicalRecordUpdate, PrescriptionCreate,
    ReasonRequest, ScanRegister,
)
from ...schemas.user import User
from ...services.context import ClinicContext

router = APIRouter(prefix="/records", tags=["Clinical records"])

def _ensure_patient_access(user: User, patient_id: str) -> None:
    if user.is_patient and user.entity_id != patient_id:
        raise AuthorizationError("Patients can only view their own records")

# Medical records
@router.post("/medical", response_model=MedicalRecord, status_code=status.HTTP_201_CREATED)
async def create_medical_record(
    body: MedicalRecordCreate,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    result = context.clinical.create_medical_record(
        patient_id=body.patient_id,
        doctor_id=own_doctor_id(current_user, body.doctor_id),
        diagnosis=body.diagnosis,
        prescription=body.prescription,
        treatment=body.treatment,
        notes=body.notes,
        symptoms=body.symptoms,
        medications=body.medications,
    )
    return raise_for(result).value

@router.get("/medical", response_model=List[MedicalRecord])
async def list_medical_records(
    patient_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    if current_user.is_patient:
        return context.clinical.get_medical_records_for_patient(current_user.entity_id)
    if patient_id:
        return context.clinical.get_medical_records_for_patient(patient_id)
    if current_user.is_doctor:
        return context.clinical.get_medical_records_by_doctor(current_user.entity_id)
    return context.store.get_all_medical_records()

@router.get("/medical/{record_id}", response_model=MedicalRecord)
async def get_medical_record(
    record_id: str,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    record = context.store.get_medical_record(record_id)
    if record is None:
        raise ServiceError(ErrorKind.NOT_FOUND, f"Medical record {record_id} not found")
    _ensure_patient_access(current_user, record.patient_id)
    return record

@router.put("/medical/{record_id}", response_model=MedicalRecord)
async def update_medical_record(
    record_id: str,
    body: MedicalRecordUpdate,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    result = context.clinical.update_medical_record(
        record_id, diagnosis=body.diagnosis, treatment=body.treatment, notes=body.notes
    )
    return raise_for(result).value

@router.post("/medical/{record_id}/archive", response_model=MedicalRecord)
async def archive_medical_record(
    record_id: str,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    return raise_for(context.clinical.archive_medical_record(record_id)).value

@router.post("/medical/{record_id}/follow-up", response_model=MedicalRecord)
async def schedule_follow_up(
    record_id: str,
    body: FollowUpRequest,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    on = parse_date_param(body.follow_up_date, "follow_up_date")
    return raise_for(context.clinical.schedule_follow_up(record_id, on)).value

# Prescriptions
@router.post("/prescriptions", response_model=Prescription, status_code=status.HTTP_201_CREATED)
async def create_prescription(
    body: PrescriptionCreate,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    result = context.clinical.create_prescription(
        patient_id=body.patient_id,
        doctor_id=own_doctor_id(current_user, body.doctor_id),
        instructions=body.instructions,
        valid_until=body.valid_until,
        refills=body.refills,
        medications=body.medications,
    )
    return raise_for(result).value

@router.get("/prescriptions", response_model=List[Prescription])
async def list_prescriptions(
    patient_id: Optional[str] = None,
    active_only: bool = False,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    if current_user.is_patient or patient_id:
        target = own_patient_id(current_user, patient_id)
        if active_only:
            return context.clinical.get_active_prescriptions_for_patient(target)
        return context.clinical.get_prescriptions_for_patient(target)
    if current_user.is_doctor:
        return context.clinical.get_prescriptions_by_doctor(current_user.entity_id)
    return context.store.get_all_prescriptions()

@router.post("/prescriptions/{prescription_id}/medications", response_model=Prescription)
async def add_medication(
    prescription_id: str,
    medication: Medication,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    result = context.clinical.add_medication(
        prescription_id,
        medication.medication_name,
        medication.dosage,
        medication.frequency,
        medication.duration,
        medication.instructions,
    )
    return raise_for(result).value

@router.post("/prescriptions/{prescription_id}/cancel", response_model=Prescription)
async def cancel_prescription(
    prescription_id: str,
    body: ReasonRequest,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    return raise_for(context.clinical.cancel_prescription(prescription_id, body.reason)).value

@router.post("/prescriptions/{prescription_id}/refill", response_model=Prescription)
async def process_refill(
    prescription_id: str,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    prescription = context.store.get_prescription(prescription_id)
    if prescription is None:
        raise ServiceError(ErrorKind.NOT_FOUND, f"Prescription {prescription_id} not found")
    _ensure_patient_access(current_user, prescription.patient_id)
    return raise_for(context.clinical.process_refill(prescription_id)).value

# Scans
@router.post("/scans", response_model=Scan, status_code=status.HTTP_201_CREATED)
async def register_scan(
    body: ScanRegister,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    """Record metadata for a file already stored by the upload service."""
    result = context.clinical.register_scan(
        patient_id=own_patient_id(current_user, body.patient_id),
        file_path=body.file_path,
        file_type=body.file_type,
        file_size=body.file_size,
        description=body.description,
        appointment_id=body.appointment_id,
    )
    return raise_for(result).value

@router.get("/scans", response_model=List[Scan])
async def list_scans(
    patient_id: Optional[str] = None,
    appointment_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    if appointment_id and not current_user.is_patient:
        return context.clinical.get_scans_for_appointment(appointment_id)
    return context.clinical.get_scans_for_patient(own_patient_id(current_user, patient_id))
