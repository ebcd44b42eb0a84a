from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from ...core.errors import ErrorKind
from ...core.security import AuthorizationError, ServiceError
from ...api.deps import (
    get_context, get_current_user, get_doctor_user, own_doctor_id,
    own_patient_id, parse_date_param, raise_for,
)
from ...schemas.appointment import Appointment
from ...schemas.requests import (
    BookingRequest, NotesRequest, ReasonRequest, RescheduleRequest, UserResponse
)
from ...schemas.user import User
from ...services.context import ClinicContext

router = APIRouter(prefix="/appointments", tags=["Appointments"])

def _ensure_access(user: User, appointment: Appointment) -> None:
    if user.is_admin:
        return
    if user.is_doctor and appointment.doctor_id == user.entity_id:
        return
    if user.is_patient and appointment.patient_id == user.entity_id:
        return
    raise AuthorizationError("Not allowed to access this appointment")

def _load(context: ClinicContext, user: User, appointment_id: str) -> Appointment:
    appointment = context.appointments.get_appointment(appointment_id)
    if appointment is None:
        raise ServiceError(ErrorKind.NOT_FOUND, f"Appointment {appointment_id} not found")
    _ensure_access(user, appointment)
    return appointment

@router.get("/doctors", response_model=List[UserResponse])
async def list_doctors(
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    """Active doctors with their slot templates."""
    return [UserResponse.from_user(d) for d in context.store.get_all_doctors() if d.is_active]

@router.get("/availability/{doctor_id}")
async def availability(
    doctor_id: str,
    date: str = Query(..., description="YYYY-MM-DD"),
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    """Free slots for a doctor on a date, in template order."""
    on = parse_date_param(date)
    slots = context.scheduling.find_available_time_slots(doctor_id, on)
    if slots is None:
        raise ServiceError(ErrorKind.NOT_FOUND, f"Doctor {doctor_id} not found")
    return {"doctor_id": doctor_id, "date": on.isoformat(), "available_slots": slots}

@router.post("", response_model=Appointment, status_code=status.HTTP_201_CREATED)
async def book(
    booking: BookingRequest,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    """Book an appointment; patients book for themselves, doctors with themselves."""
    if current_user.is_doctor:
        result = context.appointments.create_by_doctor(
            own_doctor_id(current_user, booking.doctor_id),
            own_patient_id(current_user, booking.patient_id),
            booking.appointment_date,
            booking.time_slot,
            booking.reason,
        )
    else:
        if not booking.doctor_id:
            raise ServiceError(ErrorKind.VALIDATION, "doctor_id is required")
        result = context.appointments.book(
            booking.doctor_id,
            own_patient_id(current_user, booking.patient_id),
            booking.appointment_date,
            booking.time_slot,
            booking.reason,
        )
    return raise_for(result).appointment

@router.get("", response_model=List[Appointment])
async def list_appointments(
    status_filter: Optional[str] = Query(None, alias="status"),
    upcoming: bool = False,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    """Appointments visible to the caller, optionally filtered."""
    service = context.appointments
    if current_user.is_patient:
        appointments = (
            service.get_upcoming_appointments_by_patient(current_user.entity_id)
            if upcoming else service.get_appointments_by_patient(current_user.entity_id)
        )
    elif current_user.is_doctor:
        appointments = (
            service.get_upcoming_appointments_by_doctor(current_user.entity_id)
            if upcoming else service.get_appointments_by_doctor(current_user.entity_id)
        )
    else:
        appointments = service.get_all_appointments()

    if status_filter:
        wanted = status_filter.upper()
        appointments = [a for a in appointments if a.status.value == wanted]
    return appointments

@router.get("/{appointment_id}", response_model=Appointment)
async def get_appointment(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    return _load(context, current_user, appointment_id)

@router.post("/{appointment_id}/approve", response_model=Appointment)
async def approve(
    appointment_id: str,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    _load(context, current_user, appointment_id)
    return raise_for(context.appointments.approve(appointment_id)).appointment

@router.post("/{appointment_id}/reject", response_model=Appointment)
async def reject(
    appointment_id: str,
    body: ReasonRequest,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    _load(context, current_user, appointment_id)
    return raise_for(context.appointments.reject(appointment_id, body.reason)).appointment

@router.post("/{appointment_id}/cancel", response_model=Appointment)
async def cancel(
    appointment_id: str,
    body: ReasonRequest,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    _load(context, current_user, appointment_id)
    return raise_for(context.appointments.cancel(appointment_id, body.reason)).appointment

@router.post("/{appointment_id}/complete", response_model=Appointment)
async def complete(
    appointment_id: str,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    _load(context, current_user, appointment_id)
    return raise_for(context.appointments.complete(appointment_id)).appointment

@router.post("/{appointment_id}/reschedule", response_model=Appointment)
async def reschedule(
    appointment_id: str,
    body: RescheduleRequest,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    _load(context, current_user, appointment_id)
    return raise_for(
        context.appointments.reschedule(appointment_id, body.new_date, body.new_time_slot)
    ).appointment

@router.post("/{appointment_id}/notes", response_model=Appointment)
async def add_notes(
    appointment_id: str,
    body: NotesRequest,
    current_user: User = Depends(get_doctor_user),
    context: ClinicContext = Depends(get_context),
):
    _load(context, current_user, appointment_id)
    return raise_for(context.appointments.add_notes(appointment_id, body.notes)).appointment
