from fastapi import APIRouter, Depends, status

from ...core.errors import ErrorKind
from ...core.security import ServiceError
from ...api.deps import get_context, get_current_user, get_patient_user, raise_for
from ...schemas.requests import (
    ChangePassword, ContactUpdate, ListUpdate, PatientRegister, UserResponse
)
from ...schemas.user import User
from ...services.context import ClinicContext

router = APIRouter(prefix="/auth", tags=["Authentication"])

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: PatientRegister,
    context: ClinicContext = Depends(get_context),
):
    """Register a new patient account."""
    if user_data.confirm_password is not None and user_data.confirm_password != user_data.password:
        raise ServiceError(ErrorKind.VALIDATION, "Passwords do not match")

    result = raise_for(context.accounts.register_patient(
        username=user_data.username,
        password=user_data.password,
        full_name=user_data.full_name,
        email=user_data.email,
        contact_number=user_data.contact_number,
        address=user_data.address,
        age=user_data.age,
        gender=user_data.gender,
        blood_type=user_data.blood_type,
        emergency_contact=user_data.emergency_contact,
        medical_history=user_data.medical_history,
    ))
    return UserResponse.from_user(result.user)

@router.get("/username-available/{username}")
async def username_available(
    username: str,
    context: ClinicContext = Depends(get_context),
):
    return {"username": username, "available": context.accounts.is_username_available(username)}

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return UserResponse.from_user(current_user)

@router.put("/me/contact", response_model=UserResponse)
async def update_contact(
    contact: ContactUpdate,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    result = raise_for(context.accounts.update_contact(
        current_user.username,
        email=contact.email,
        contact_number=contact.contact_number,
        address=contact.address,
    ))
    return UserResponse.from_user(result.user)

@router.post("/change-password")
async def change_password(
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    context: ClinicContext = Depends(get_context),
):
    """Change the current user's password."""
    raise_for(context.accounts.change_password(
        current_user.username, password_data.current_password, password_data.new_password
    ))
    return {"message": "Password changed successfully"}

@router.put("/me/allergies", response_model=UserResponse)
async def set_allergies(
    update: ListUpdate,
    current_user: User = Depends(get_patient_user),
    context: ClinicContext = Depends(get_context),
):
    result = raise_for(context.accounts.set_allergies(current_user.username, update.items))
    return UserResponse.from_user(result.user)

@router.put("/me/medications", response_model=UserResponse)
async def set_current_medications(
    update: ListUpdate,
    current_user: User = Depends(get_patient_user),
    context: ClinicContext = Depends(get_context),
):
    result = raise_for(context.accounts.set_current_medications(current_user.username, update.items))
    return UserResponse.from_user(result.user)
