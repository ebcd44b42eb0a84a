from fastapi import Depends, Request
from fastapi.security import HTTPBasicCredentials
from typing import List, Optional
from datetime import date

from ..core.errors import ErrorKind
from ..core.security import (
    security, AuthenticationError, AuthorizationError, ServiceError, UserRole
)
from ..core.validators import parse_date
from ..schemas.user import User
from ..services.context import ClinicContext

def get_context(request: Request) -> ClinicContext:
    """The clinic context built for this application."""
    return request.app.state.context

async def get_current_user(
    credentials: HTTPBasicCredentials = Depends(security),
    context: ClinicContext = Depends(get_context),
) -> User:
    """Resolve HTTP Basic credentials to an active account."""
    user = context.accounts.authenticate(credentials.username, credentials.password)
    if user is None:
        raise AuthenticationError("Invalid username or password")
    return user

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles."""
    async def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return current_user

    return role_checker

async def get_admin_user(
    current_user: User = Depends(require_role([UserRole.ADMIN]))
) -> User:
    """Require admin role."""
    return current_user

async def get_doctor_user(
    current_user: User = Depends(require_role([UserRole.DOCTOR, UserRole.ADMIN]))
) -> User:
    """Require doctor or admin role."""
    return current_user

async def get_patient_user(
    current_user: User = Depends(require_role([UserRole.PATIENT, UserRole.ADMIN]))
) -> User:
    """Require patient or admin role."""
    return current_user

def raise_for(result):
    """Turn a failed core result into an HTTP error; pass successes through."""
    if not result:
        raise ServiceError(result.error, result.message)
    return result

def parse_date_param(value: Optional[str], name: str = "date") -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise ServiceError(ErrorKind.VALIDATION, f"{name} must use the YYYY-MM-DD format")
    return parsed

def own_patient_id(user: User, requested: Optional[str]) -> str:
    """Patients act on their own record; staff must name the patient."""
    if user.is_patient:
        if requested and requested != user.entity_id:
            raise AuthorizationError("Patients can only act on their own records")
        return user.entity_id
    if not requested:
        raise ServiceError(ErrorKind.VALIDATION, "patient_id is required")
    return requested

def own_doctor_id(user: User, requested: Optional[str]) -> str:
    """Doctors act as themselves; admins must name the doctor."""
    if user.is_doctor:
        if requested and requested != user.entity_id:
            raise AuthorizationError("Doctors can only act as themselves")
        return user.entity_id
    if not requested:
        raise ServiceError(ErrorKind.VALIDATION, "doctor_id is required")
    return requested
