from fastapi import APIRouter, Depends, Query, status
from typing import List

from ...core.errors import ErrorKind
from ...core.security import ServiceError
from ...api.deps import get_admin_user, get_context, parse_date_param, raise_for
from ...schemas.appointment import Appointment
from ...schemas.clinical import MedicalRecord, Prescription
from ...schemas.requests import DoctorRegister, UserResponse
from ...schemas.user import User
from ...services.context import ClinicContext

router = APIRouter(prefix="/admin", tags=["Administration"])

@router.post("/doctors", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_doctor(
    body: DoctorRegister,
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    result = raise_for(context.accounts.register_doctor(
        username=body.username,
        password=body.password,
        full_name=body.full_name,
        email=body.email,
        contact_number=body.contact_number,
        address=body.address,
        specialization=body.specialization,
        license_number=body.license_number,
        experience_years=body.experience_years,
        qualifications=body.qualifications,
        time_slots=body.time_slots,
    ))
    return UserResponse.from_user(result.user)

@router.get("/users", response_model=List[UserResponse])
async def list_users(
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    return [UserResponse.from_user(u) for u in context.store.get_all_users()]

@router.post("/users/{username}/deactivate", response_model=UserResponse)
async def deactivate_user(
    username: str,
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    if username == current_user.username:
        raise ServiceError(ErrorKind.CONFLICT, "Administrators cannot deactivate themselves")
    result = raise_for(context.accounts.deactivate_user(username))
    return UserResponse.from_user(result.user)

@router.get("/statistics")
async def statistics(
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    return {
        "store": context.store.get_statistics(),
        "appointments": context.appointments.get_appointment_statistics(),
        "prescriptions": context.clinical.get_prescription_statistics(),
    }

@router.get("/persistence")
async def persistence_status(
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    """Whether writes are being mirrored and whether the backing store answers."""
    store = context.store
    reachable = bool(store.adapter.ping()) if store.mirroring else False
    return {
        "mirroring": store.mirroring,
        "reachable": reachable,
        "mirror_failures": store.mirror_failures,
        "last_error": store.last_mirror_error,
    }

@router.post("/persistence/reload")
async def reload_from_backing_store(
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    """Pull rows written by other processes into memory; 503 when the store is out of reach."""
    store = context.store
    if not store.mirroring:
        raise ServiceError(ErrorKind.PERSISTENCE_UNAVAILABLE, "Backing store is disabled")
    check = store.adapter.ping()
    if not check:
        raise ServiceError(check.error_kind, f"Backing store unreachable: {check.message}")
    if not store.load_from_backing_store():
        raise ServiceError(ErrorKind.PERSISTENCE_UNAVAILABLE, "Backing store load failed")
    return {"reloaded": True, "statistics": store.get_statistics()}

# Reports
@router.get("/reports/summary")
async def system_summary(
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    return context.reports.system_summary()

@router.get("/reports/appointments", response_model=List[Appointment])
async def appointments_by_date_range(
    start: str = Query(..., description="YYYY-MM-DD"),
    end: str = Query(..., description="YYYY-MM-DD"),
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    start_date = parse_date_param(start, "start")
    end_date = parse_date_param(end, "end")
    if end_date < start_date:
        raise ServiceError(ErrorKind.VALIDATION, "end must not be before start")
    return context.reports.appointments_by_date_range(start_date, end_date)

@router.get("/reports/doctors/{doctor_id}")
async def doctor_performance(
    doctor_id: str,
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    report = context.reports.doctor_performance(doctor_id)
    if report is None:
        raise ServiceError(ErrorKind.NOT_FOUND, f"Doctor {doctor_id} not found")
    return report

@router.get("/reports/patients/{patient_id}")
async def patient_history(
    patient_id: str,
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    report = context.reports.patient_history(patient_id)
    if report is None:
        raise ServiceError(ErrorKind.NOT_FOUND, f"Patient {patient_id} not found")
    return report

@router.get("/reports/medical-records", response_model=List[MedicalRecord])
async def medical_records_report(
    archived: bool = False,
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    if archived:
        return context.reports.archived_medical_records()
    return context.reports.active_medical_records()

@router.get("/reports/prescriptions", response_model=List[Prescription])
async def prescriptions_report(
    expired: bool = False,
    current_user: User = Depends(get_admin_user),
    context: ClinicContext = Depends(get_context),
):
    if expired:
        return context.reports.expired_prescriptions()
    return context.reports.active_prescriptions()
