"""
Input checks the scheduling core needs before it touches state.

Pattern checks for presentation fields (phone formats, name casing and the
like) belong to the callers; only what guards an invariant lives here.
"""
import re
from datetime import date, datetime, time
from typing import Optional

DATE_FORMAT = "%Y-%m-%d"

TIME_SLOT_PATTERN = re.compile(
    r"^([01]?[0-9]|2[0-3]):[0-5][0-9]-([01]?[0-9]|2[0-3]):[0-5][0-9]$"
)
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,20}$")
EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
BLOOD_TYPE_PATTERN = re.compile(r"^(A|B|AB|O)[+-]$")

REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 500
DIAGNOSIS_MIN_LENGTH = 5
DIAGNOSIS_MAX_LENGTH = 1000
PRESCRIPTION_MIN_LENGTH = 5
PRESCRIPTION_MAX_LENGTH = 500
PASSWORD_MIN_LENGTH = 8

def is_not_empty(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(value.strip())

def parse_date(value) -> Optional[date]:
    """Accept a ``date`` or a ``YYYY-MM-DD`` string; None if it does not parse."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not is_not_empty(value):
        return None
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        return None

def is_valid_date(value) -> bool:
    return parse_date(value) is not None

def is_future_date(value, today: Optional[date] = None) -> bool:
    """True when the date is today or later."""
    parsed = parse_date(value)
    if parsed is None:
        return False
    return parsed >= (today or date.today())

def is_valid_time_slot(slot: Optional[str]) -> bool:
    if not is_not_empty(slot):
        return False
    return TIME_SLOT_PATTERN.match(slot.strip()) is not None

def slot_start(slot: str) -> time:
    """Start time of an ``HH:MM-HH:MM`` slot label."""
    start = slot.strip().split("-")[0]
    hours, minutes = start.split(":")
    return time(int(hours), int(minutes))

def _length_between(value: Optional[str], low: int, high: int) -> bool:
    if not isinstance(value, str):
        return False
    length = len(value.strip())
    return low <= length <= high

def is_valid_appointment_reason(reason: Optional[str]) -> bool:
    return _length_between(reason, REASON_MIN_LENGTH, REASON_MAX_LENGTH)

def is_valid_diagnosis(diagnosis: Optional[str]) -> bool:
    return _length_between(diagnosis, DIAGNOSIS_MIN_LENGTH, DIAGNOSIS_MAX_LENGTH)

def is_valid_prescription(prescription: Optional[str]) -> bool:
    return _length_between(prescription, PRESCRIPTION_MIN_LENGTH, PRESCRIPTION_MAX_LENGTH)

def is_valid_username(username: Optional[str]) -> bool:
    return isinstance(username, str) and USERNAME_PATTERN.match(username) is not None

def is_valid_email(email: Optional[str]) -> bool:
    return isinstance(email, str) and EMAIL_PATTERN.match(email.strip()) is not None

def is_valid_password(password: Optional[str]) -> bool:
    """At least 8 characters with an upper case letter, a lower case letter and a digit."""
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        return False
    return (
        any(c.isupper() for c in password)
        and any(c.islower() for c in password)
        and any(c.isdigit() for c in password)
    )

def is_valid_age(age: Optional[int]) -> bool:
    return isinstance(age, int) and not isinstance(age, bool) and 0 <= age <= 150

def is_valid_blood_type(blood_type: Optional[str]) -> bool:
    if not is_not_empty(blood_type):
        return False
    return BLOOD_TYPE_PATTERN.match(blood_type.strip().upper()) is not None
