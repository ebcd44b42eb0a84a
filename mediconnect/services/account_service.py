from dataclasses import dataclass, field
from typing import Iterable, List, Optional
import logging

from ..core.errors import ErrorKind
from ..core.security import DEFAULT_ADMIN_PERMISSIONS
from ..core.validators import (
    is_not_empty, is_valid_age, is_valid_blood_type, is_valid_email,
    is_valid_password, is_valid_username,
)
from ..schemas.user import AdminProfile, DoctorProfile, PatientProfile, User
from .store import ClinicStore

logger = logging.getLogger(__name__)

MAX_EXPERIENCE_YEARS = 50

@dataclass(frozen=True)
class AccountResult:
    user: Optional[User] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and self.user is not None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, user: User, message: str = ""):
        return cls(user=user, message=message)

    @classmethod
    def failure(cls, error: ErrorKind, message: str, problems: Optional[List[str]] = None):
        return cls(error=error, message=message, problems=problems or [])

def _identity_problems(username, password, full_name, email) -> List[str]:
    problems = []
    if not is_valid_username(username):
        problems.append("Username must be 3-20 letters, digits or underscores")
    if not is_valid_password(password):
        problems.append(
            "Password must be at least 8 characters with upper case, lower case and a digit"
        )
    if not is_not_empty(full_name):
        problems.append("Full name is required")
    if not is_valid_email(email):
        problems.append("Email address is not valid")
    return problems

class AccountService:
    """Registration, login and profile maintenance for all three roles."""

    def __init__(self, store: ClinicStore):
        self.store = store

    def is_username_available(self, username: str) -> bool:
        return not self.store.user_exists(username)

    def _email_taken(self, email: str) -> bool:
        wanted = email.strip().lower()
        return any(u.email.lower() == wanted for u in self.store.get_all_users())

    def _register(self, user: User, problems: List[str]) -> AccountResult:
        if problems:
            return AccountResult.failure(ErrorKind.VALIDATION, "; ".join(problems), problems)
        if not self.is_username_available(user.username):
            return AccountResult.failure(
                ErrorKind.CONFLICT, "Username already exists. Please choose a different username."
            )
        if self._email_taken(user.email):
            return AccountResult.failure(ErrorKind.CONFLICT, "Email already registered")
        if not self.store.add_user(user):
            return AccountResult.failure(ErrorKind.CONFLICT, f"Could not register {user.username}")

        logger.info(f"Registered {user.role.value} {user.username} as {user.entity_id}")
        return AccountResult.success(self.store.get_user(user.username), "Registration successful")

    def register_patient(
        self,
        username: str,
        password: str,
        full_name: str,
        email: str,
        contact_number: str,
        address: str,
        age: int,
        gender: str,
        blood_type: str,
        emergency_contact: str,
        medical_history: str = "",
    ) -> AccountResult:
        problems = _identity_problems(username, password, full_name, email)
        if not is_valid_age(age):
            problems.append("Age must be between 0 and 150")
        if not is_not_empty(gender):
            problems.append("Gender is required")
        if not is_valid_blood_type(blood_type):
            problems.append("Blood type must be one of A, B, AB or O followed by + or -")
        if not is_not_empty(emergency_contact):
            problems.append("Emergency contact is required")
        if problems:
            return self._register_failed(problems)

        user = User(
            username=username,
            password=password,
            full_name=full_name.strip(),
            email=email.strip(),
            contact_number=contact_number or "",
            address=address or "",
            profile=PatientProfile(
                patient_id=self.store.generate_patient_id(),
                age=age,
                gender=gender.strip(),
                blood_type=blood_type.strip().upper(),
                emergency_contact=emergency_contact.strip(),
                medical_history=medical_history or "",
            ),
        )
        return self._register(user, problems)

    def register_doctor(
        self,
        username: str,
        password: str,
        full_name: str,
        email: str,
        contact_number: str,
        address: str,
        specialization: str,
        license_number: str,
        experience_years: int,
        qualifications: Iterable[str] = (),
        time_slots: Optional[List[str]] = None,
    ) -> AccountResult:
        problems = _identity_problems(username, password, full_name, email)
        if not is_not_empty(specialization):
            problems.append("Specialization is required")
        if not is_not_empty(license_number):
            problems.append("License number is required")
        if experience_years is None or not 0 <= experience_years <= MAX_EXPERIENCE_YEARS:
            problems.append(f"Experience years must be between 0 and {MAX_EXPERIENCE_YEARS}")
        if problems:
            return self._register_failed(problems)

        if any(d.profile.license_number == license_number.strip() for d in self.store.get_all_doctors()):
            return AccountResult.failure(ErrorKind.CONFLICT, "License number already registered")

        user = User(
            username=username,
            password=password,
            full_name=full_name.strip(),
            email=email.strip(),
            contact_number=contact_number or "",
            address=address or "",
            profile=DoctorProfile(
                doctor_id=self.store.generate_doctor_id(),
                specialization=specialization.strip(),
                license_number=license_number.strip(),
                experience_years=experience_years,
                qualifications=[q.strip() for q in qualifications if is_not_empty(q)],
                time_slots=list(time_slots or self.store.settings.DEFAULT_TIME_SLOTS),
            ),
        )
        return self._register(user, problems)

    def register_admin(
        self,
        username: str,
        password: str,
        full_name: str,
        email: str,
        contact_number: str = "",
        address: str = "",
        permissions: Optional[Iterable[str]] = None,
    ) -> AccountResult:
        problems = _identity_problems(username, password, full_name, email)
        if problems:
            return self._register_failed(problems)

        user = User(
            username=username,
            password=password,
            full_name=full_name.strip(),
            email=email.strip(),
            contact_number=contact_number or "",
            address=address or "",
            profile=AdminProfile(
                admin_id=self.store.generate_admin_id(),
                permissions=list(permissions if permissions is not None else DEFAULT_ADMIN_PERMISSIONS),
            ),
        )
        return self._register(user, problems)

    @staticmethod
    def _register_failed(problems: List[str]) -> AccountResult:
        logger.info(f"Registration refused: {'; '.join(problems)}")
        return AccountResult.failure(ErrorKind.VALIDATION, "; ".join(problems), problems)

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """The matching active account, or None."""
        if not is_not_empty(username) or password is None:
            return None
        if not self.store.validate_credentials(username, password):
            logger.info(f"Failed login for {username}")
            return None
        user = self.store.get_user(username)
        if not user.is_active:
            logger.info(f"Login refused for deactivated account {username}")
            return None
        return user

    # ------------------------------------------------------------------
    # Profile maintenance
    # ------------------------------------------------------------------
    def _change(self, username: str, update) -> AccountResult:
        user = self.store.get_user(username)
        if user is None:
            return AccountResult.failure(ErrorKind.NOT_FOUND, f"User {username} not found")
        updated = update(user)
        if isinstance(updated, AccountResult):
            return updated
        self.store.update_user(updated)
        return AccountResult.success(updated, "Profile updated")

    def update_contact(
        self,
        username: str,
        email: Optional[str] = None,
        contact_number: Optional[str] = None,
        address: Optional[str] = None,
    ) -> AccountResult:
        def update(user: User):
            changes = {}
            if email is not None:
                if not is_valid_email(email):
                    return AccountResult.failure(ErrorKind.VALIDATION, "Email address is not valid")
                if email.strip().lower() != user.email.lower() and self._email_taken(email):
                    return AccountResult.failure(ErrorKind.CONFLICT, "Email already registered")
                changes["email"] = email.strip()
            if contact_number is not None:
                changes["contact_number"] = contact_number.strip()
            if address is not None:
                changes["address"] = address.strip()
            return user.model_copy(update=changes)
        return self._change(username, update)

    def change_password(self, username: str, current_password: str, new_password: str) -> AccountResult:
        def update(user: User):
            if not self.store.validate_credentials(username, current_password):
                return AccountResult.failure(ErrorKind.VALIDATION, "Current password is incorrect")
            if not is_valid_password(new_password):
                return AccountResult.failure(
                    ErrorKind.VALIDATION,
                    "Password must be at least 8 characters with upper case, lower case and a digit",
                )
            return user.model_copy(update={"password": new_password})
        return self._change(username, update)

    def _patient_lists(self, username: str, field_name: str, values: Iterable[str]) -> AccountResult:
        def update(user: User):
            if not user.is_patient:
                return AccountResult.failure(ErrorKind.VALIDATION, f"{username} is not a patient")
            cleaned = [v.strip() for v in values if is_not_empty(v)]
            profile = user.profile.model_copy(update={field_name: cleaned})
            return user.model_copy(update={"profile": profile})
        return self._change(username, update)

    def set_allergies(self, username: str, allergies: Iterable[str]) -> AccountResult:
        return self._patient_lists(username, "allergies", allergies)

    def set_current_medications(self, username: str, medications: Iterable[str]) -> AccountResult:
        return self._patient_lists(username, "current_medications", medications)

    def deactivate_user(self, username: str) -> AccountResult:
        """Soft removal; the account and its history stay in the store."""
        def update(user: User):
            return user.model_copy(update={"is_active": False})
        result = self._change(username, update)
        if result:
            logger.info(f"Deactivated {username}")
        return result
