from typing import Optional
from fastapi import HTTPException, status
from fastapi.security import HTTPBasic
from enum import Enum
import secrets

from .errors import ErrorKind

# Plaintext credentials over HTTP Basic
security = HTTPBasic()

class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"

DEFAULT_ADMIN_PERMISSIONS = (
    "MANAGE_DOCTORS",
    "MANAGE_PATIENTS",
    "VIEW_ALL_APPOINTMENTS",
    "GENERATE_REPORTS",
    "SYSTEM_ADMINISTRATION",
)

# Password utilities
def verify_password(plain_password: str, stored_password: Optional[str]) -> bool:
    """Exact match of a plaintext password against the stored one."""
    if stored_password is None or plain_password is None:
        return False
    return secrets.compare_digest(plain_password.encode(), stored_password.encode())

# Security exceptions
class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Basic"},
        )

class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.PERSISTENCE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}

class ServiceError(HTTPException):
    """A core result that failed, surfaced to an HTTP caller."""

    def __init__(self, kind: Optional[ErrorKind], detail: str):
        super().__init__(
            status_code=_STATUS_BY_KIND.get(kind, status.HTTP_400_BAD_REQUEST),
            detail=detail,
        )
        self.kind = kind
