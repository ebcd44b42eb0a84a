"""
The coordinating store.

Memory is the single source of truth. Every mutating call commits to the
in-memory collections first and then mirrors the write to the optional
:class:`BackingStoreAdapter`; a failed mirror is logged and otherwise ignored.
Entities handed out are copies, so callers change state only through the
``update_*`` methods.
"""
from contextlib import nullcontext
from datetime import date, time, timedelta
from typing import Callable, Dict, List, Optional
import logging
import re
import threading

from ..core.config import Settings, settings as default_settings
from ..core.security import UserRole, verify_password
from ..schemas.appointment import Appointment, AppointmentStatus
from ..schemas.clinical import MedicalRecord, Medication, Prescription, Scan
from ..schemas.user import AdminProfile, DoctorProfile, PatientProfile, User
from .persistence import BackingStoreAdapter, PersistenceResult

logger = logging.getLogger(__name__)

ADMIN_PREFIX = "ADM"
DOCTOR_PREFIX = "DOC"
PATIENT_PREFIX = "PAT"
APPOINTMENT_PREFIX = "APT"
MEDICAL_RECORD_PREFIX = "REC"
PRESCRIPTION_PREFIX = "PRES"
SCAN_PREFIX = "SCAN"

ID_PREFIXES = (
    ADMIN_PREFIX,
    DOCTOR_PREFIX,
    PATIENT_PREFIX,
    APPOINTMENT_PREFIX,
    MEDICAL_RECORD_PREFIX,
    PRESCRIPTION_PREFIX,
    SCAN_PREFIX,
)

_ID_PATTERN = re.compile(r"^([A-Z]+)(\d+)$")

class ClinicStore:
    """Authoritative in-memory collections mirrored to an optional backing store."""

    def __init__(
        self,
        adapter: Optional[BackingStoreAdapter] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self._adapter = adapter

        # dicts keep insertion order, which is the listing order
        self._users: Dict[str, User] = {}
        self._appointments: Dict[str, Appointment] = {}
        self._medical_records: Dict[str, MedicalRecord] = {}
        self._prescriptions: Dict[str, Prescription] = {}
        self._scans: Dict[str, Scan] = {}
        # role id (ADMxxx/DOCxxx/PATxxx) -> username
        self._role_index: Dict[str, str] = {}
        # highest sequence ever stored per prefix
        self._high_water: Dict[str, int] = {prefix: 0 for prefix in ID_PREFIXES}

        self.booking_lock = threading.Lock()
        self.mirror_failures = 0
        self.last_mirror_error: Optional[str] = None

    @property
    def adapter(self) -> Optional[BackingStoreAdapter]:
        return self._adapter

    @property
    def mirroring(self) -> bool:
        return self._adapter is not None and self._adapter.enabled

    def booking_guard(self):
        """The booking lock when bookings are serialised, otherwise a no-op."""
        if self.settings.SERIALIZE_BOOKINGS:
            return self.booking_lock
        return nullcontext()

    # ------------------------------------------------------------------
    # Mirroring
    # ------------------------------------------------------------------
    def _mirror(self, operation: str, call: Callable[[BackingStoreAdapter], PersistenceResult]) -> Optional[PersistenceResult]:
        if not self.mirroring:
            return None

        result = call(self._adapter)
        if result.duplicate:
            logger.debug(f"{operation}: already present in backing store")
        elif not result:
            self.mirror_failures += 1
            self.last_mirror_error = f"{operation}: {result.error.value}: {result.message}"
            logger.warning(
                f"Backing store {operation} failed ({result.error.value}); "
                f"continuing with in-memory data: {result.message}"
            )
        return result

    # ------------------------------------------------------------------
    # Identifier generation
    # ------------------------------------------------------------------
    def _note_id(self, entity_id: str) -> None:
        match = _ID_PATTERN.match(entity_id or "")
        if match and match.group(1) in self._high_water:
            prefix, seq = match.group(1), int(match.group(2))
            self._high_water[prefix] = max(self._high_water[prefix], seq)

    def _next_id(self, prefix: str, count: int, taken: Callable[[str], bool]) -> str:
        seq = max(self._high_water[prefix], count) + 1
        candidate = f"{prefix}{seq:03d}"
        while taken(candidate):
            seq += 1
            candidate = f"{prefix}{seq:03d}"
        return candidate

    def generate_admin_id(self) -> str:
        return self._next_id(ADMIN_PREFIX, self.count_total_admins(), self._role_index.__contains__)

    def generate_doctor_id(self) -> str:
        return self._next_id(DOCTOR_PREFIX, self.count_total_doctors(), self._role_index.__contains__)

    def generate_patient_id(self) -> str:
        return self._next_id(PATIENT_PREFIX, self.count_total_patients(), self._role_index.__contains__)

    def generate_appointment_id(self) -> str:
        return self._next_id(APPOINTMENT_PREFIX, len(self._appointments), self._appointments.__contains__)

    def generate_medical_record_id(self) -> str:
        return self._next_id(MEDICAL_RECORD_PREFIX, len(self._medical_records), self._medical_records.__contains__)

    def generate_prescription_id(self) -> str:
        return self._next_id(PRESCRIPTION_PREFIX, len(self._prescriptions), self._prescriptions.__contains__)

    def generate_scan_id(self) -> str:
        return self._next_id(SCAN_PREFIX, len(self._scans), self._scans.__contains__)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def _insert_user(self, user: User) -> bool:
        if user.username in self._users or user.entity_id in self._role_index:
            return False
        self._users[user.username] = user.model_copy(deep=True)
        self._role_index[user.entity_id] = user.username
        self._note_id(user.entity_id)
        return True

    def add_user(self, user: User) -> bool:
        if not self._insert_user(user):
            logger.info(f"User {user.username} ({user.entity_id}) already exists")
            return False
        stored = self._users[user.username]
        self._mirror(f"save_user({user.username})", lambda adapter: adapter.save_user(stored))
        return True

    def update_user(self, user: User) -> bool:
        """Replace an existing account; the role id cannot change."""
        current = self._users.get(user.username)
        if current is None or current.entity_id != user.entity_id:
            return False
        stored = user.model_copy(deep=True)
        self._users[user.username] = stored
        self._mirror(f"update_user({user.username})", lambda adapter: adapter.update_user(stored))
        return True

    def get_user(self, username: str) -> Optional[User]:
        user = self._users.get(username)
        return user.model_copy(deep=True) if user else None

    def _get_by_role_id(self, entity_id: str, profile_type) -> Optional[User]:
        username = self._role_index.get(entity_id)
        if username is None:
            return None
        user = self._users[username]
        if not isinstance(user.profile, profile_type):
            return None
        return user.model_copy(deep=True)

    def get_admin(self, admin_id: str) -> Optional[User]:
        return self._get_by_role_id(admin_id, AdminProfile)

    def get_doctor(self, doctor_id: str) -> Optional[User]:
        return self._get_by_role_id(doctor_id, DoctorProfile)

    def get_patient(self, patient_id: str) -> Optional[User]:
        return self._get_by_role_id(patient_id, PatientProfile)

    def get_all_users(self) -> List[User]:
        return [u.model_copy(deep=True) for u in self._users.values()]

    def _users_with(self, profile_type) -> List[User]:
        return [
            u.model_copy(deep=True)
            for u in self._users.values()
            if isinstance(u.profile, profile_type)
        ]

    def get_all_admins(self) -> List[User]:
        return self._users_with(AdminProfile)

    def get_all_doctors(self) -> List[User]:
        return self._users_with(DoctorProfile)

    def get_all_patients(self) -> List[User]:
        return self._users_with(PatientProfile)

    def user_exists(self, username: str) -> bool:
        return username in self._users

    def validate_credentials(self, username: str, password: str) -> bool:
        user = self._users.get(username)
        return user is not None and verify_password(password, user.password)

    def get_user_role(self, username: str) -> Optional[UserRole]:
        user = self._users.get(username)
        return user.role if user else None

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------
    def _insert_appointment(self, appointment: Appointment) -> bool:
        if appointment.appointment_id in self._appointments:
            return False
        self._appointments[appointment.appointment_id] = appointment.model_copy(deep=True)
        self._note_id(appointment.appointment_id)
        return True

    def add_appointment(self, appointment: Appointment) -> bool:
        if not self._insert_appointment(appointment):
            logger.info(f"Appointment {appointment.appointment_id} already exists")
            return False
        stored = self._appointments[appointment.appointment_id]
        self._mirror(
            f"save_appointment({stored.appointment_id})",
            lambda adapter: adapter.save_appointment(stored),
        )
        return True

    def update_appointment(self, appointment: Appointment) -> bool:
        if appointment.appointment_id not in self._appointments:
            return False
        stored = appointment.model_copy(deep=True)
        self._appointments[appointment.appointment_id] = stored
        self._mirror(
            f"update_appointment({stored.appointment_id})",
            lambda adapter: adapter.update_appointment(stored),
        )
        return True

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        appointment = self._appointments.get(appointment_id)
        return appointment.model_copy(deep=True) if appointment else None

    def get_all_appointments(self) -> List[Appointment]:
        return [a.model_copy(deep=True) for a in self._appointments.values()]

    def _appointments_where(self, predicate: Callable[[Appointment], bool]) -> List[Appointment]:
        return [a.model_copy(deep=True) for a in self._appointments.values() if predicate(a)]

    def get_appointments_by_doctor(self, doctor_id: str) -> List[Appointment]:
        return self._appointments_where(lambda a: a.doctor_id == doctor_id)

    def get_appointments_by_patient(self, patient_id: str) -> List[Appointment]:
        return self._appointments_where(lambda a: a.patient_id == patient_id)

    def get_appointments_by_date(self, on: date) -> List[Appointment]:
        return self._appointments_where(lambda a: a.appointment_date == on)

    def is_time_slot_available(
        self,
        doctor_id: str,
        on: date,
        time_slot: str,
        exclude_appointment_id: Optional[str] = None,
    ) -> bool:
        """True when no active appointment holds (doctor, date, slot)."""
        for appointment in list(self._appointments.values()):
            if appointment.appointment_id == exclude_appointment_id:
                continue
            if appointment.occupies(doctor_id, on, time_slot):
                return False
        return True

    # ------------------------------------------------------------------
    # Medical records
    # ------------------------------------------------------------------
    def _insert_medical_record(self, record: MedicalRecord) -> bool:
        if record.record_id in self._medical_records:
            return False
        self._medical_records[record.record_id] = record.model_copy(deep=True)
        self._note_id(record.record_id)
        return True

    def add_medical_record(self, record: MedicalRecord) -> bool:
        if not self._insert_medical_record(record):
            logger.info(f"Medical record {record.record_id} already exists")
            return False
        stored = self._medical_records[record.record_id]
        self._mirror(
            f"save_medical_record({stored.record_id})",
            lambda adapter: adapter.save_medical_record(stored),
        )
        return True

    def update_medical_record(self, record: MedicalRecord) -> bool:
        if record.record_id not in self._medical_records:
            return False
        stored = record.model_copy(deep=True)
        self._medical_records[record.record_id] = stored
        self._mirror(
            f"update_medical_record({stored.record_id})",
            lambda adapter: adapter.update_medical_record(stored),
        )
        return True

    def get_medical_record(self, record_id: str) -> Optional[MedicalRecord]:
        record = self._medical_records.get(record_id)
        return record.model_copy(deep=True) if record else None

    def get_all_medical_records(self) -> List[MedicalRecord]:
        return [r.model_copy(deep=True) for r in self._medical_records.values()]

    def get_medical_records_by_patient(self, patient_id: str) -> List[MedicalRecord]:
        return [r.model_copy(deep=True) for r in self._medical_records.values() if r.patient_id == patient_id]

    def get_medical_records_by_doctor(self, doctor_id: str) -> List[MedicalRecord]:
        return [r.model_copy(deep=True) for r in self._medical_records.values() if r.doctor_id == doctor_id]

    # ------------------------------------------------------------------
    # Prescriptions
    # ------------------------------------------------------------------
    def _insert_prescription(self, prescription: Prescription) -> bool:
        if prescription.prescription_id in self._prescriptions:
            return False
        self._prescriptions[prescription.prescription_id] = prescription.model_copy(deep=True)
        self._note_id(prescription.prescription_id)
        return True

    def add_prescription(self, prescription: Prescription) -> bool:
        if not self._insert_prescription(prescription):
            logger.info(f"Prescription {prescription.prescription_id} already exists")
            return False
        stored = self._prescriptions[prescription.prescription_id]
        self._mirror(
            f"save_prescription({stored.prescription_id})",
            lambda adapter: adapter.save_prescription(stored),
        )
        return True

    def update_prescription(self, prescription: Prescription) -> bool:
        if prescription.prescription_id not in self._prescriptions:
            return False
        stored = prescription.model_copy(deep=True)
        self._prescriptions[prescription.prescription_id] = stored
        self._mirror(
            f"update_prescription({stored.prescription_id})",
            lambda adapter: adapter.update_prescription(stored),
        )
        return True

    def get_prescription(self, prescription_id: str) -> Optional[Prescription]:
        prescription = self._prescriptions.get(prescription_id)
        return prescription.model_copy(deep=True) if prescription else None

    def get_all_prescriptions(self) -> List[Prescription]:
        return [p.model_copy(deep=True) for p in self._prescriptions.values()]

    def get_prescriptions_by_patient(self, patient_id: str) -> List[Prescription]:
        return [p.model_copy(deep=True) for p in self._prescriptions.values() if p.patient_id == patient_id]

    def get_prescriptions_by_doctor(self, doctor_id: str) -> List[Prescription]:
        return [p.model_copy(deep=True) for p in self._prescriptions.values() if p.doctor_id == doctor_id]

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------
    def _insert_scan(self, scan: Scan) -> bool:
        if scan.scan_id in self._scans:
            return False
        self._scans[scan.scan_id] = scan.model_copy(deep=True)
        self._note_id(scan.scan_id)
        return True

    def add_scan(self, scan: Scan) -> bool:
        if not self._insert_scan(scan):
            logger.info(f"Scan {scan.scan_id} already exists")
            return False
        stored = self._scans[scan.scan_id]
        self._mirror(f"save_scan({stored.scan_id})", lambda adapter: adapter.save_scan(stored))
        return True

    def get_scan(self, scan_id: str) -> Optional[Scan]:
        scan = self._scans.get(scan_id)
        return scan.model_copy(deep=True) if scan else None

    def get_all_scans(self) -> List[Scan]:
        return [s.model_copy(deep=True) for s in self._scans.values()]

    def get_scans_by_patient(self, patient_id: str) -> List[Scan]:
        return [s.model_copy(deep=True) for s in self._scans.values() if s.patient_id == patient_id]

    def get_scans_by_appointment(self, appointment_id: str) -> List[Scan]:
        return [s.model_copy(deep=True) for s in self._scans.values() if s.appointment_id == appointment_id]

    # ------------------------------------------------------------------
    # Counting helpers (memory only)
    # ------------------------------------------------------------------
    def count_total_users(self) -> int:
        return len(self._users)

    def count_total_admins(self) -> int:
        return sum(1 for u in self._users.values() if isinstance(u.profile, AdminProfile))

    def count_total_doctors(self) -> int:
        return sum(1 for u in self._users.values() if isinstance(u.profile, DoctorProfile))

    def count_total_patients(self) -> int:
        return sum(1 for u in self._users.values() if isinstance(u.profile, PatientProfile))

    def count_total_appointments(self) -> int:
        return len(self._appointments)

    def count_appointments_by_status(self, status: AppointmentStatus) -> int:
        return sum(1 for a in self._appointments.values() if a.status == status)

    def count_upcoming_appointments_by_patient(self, patient_id: str, today: Optional[date] = None) -> int:
        """Today or later and not cancelled."""
        return sum(
            1 for a in self._appointments.values()
            if a.patient_id == patient_id
            and a.is_upcoming(today)
            and a.status != AppointmentStatus.CANCELLED
        )

    def count_appointments_by_patient(self, patient_id: str) -> int:
        return sum(1 for a in self._appointments.values() if a.patient_id == patient_id)

    def count_medical_records_by_patient(self, patient_id: str) -> int:
        return sum(1 for r in self._medical_records.values() if r.patient_id == patient_id)

    def count_prescriptions_by_patient(self, patient_id: str) -> int:
        return sum(1 for p in self._prescriptions.values() if p.patient_id == patient_id)

    def get_statistics(self) -> Dict[str, object]:
        return {
            "total_users": self.count_total_users(),
            "total_admins": self.count_total_admins(),
            "total_doctors": self.count_total_doctors(),
            "total_patients": self.count_total_patients(),
            "total_appointments": self.count_total_appointments(),
            "appointments_by_status": {
                status.value: self.count_appointments_by_status(status)
                for status in AppointmentStatus
            },
            "total_medical_records": len(self._medical_records),
            "total_prescriptions": len(self._prescriptions),
            "total_scans": len(self._scans),
        }

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------
    def load_from_backing_store(self) -> bool:
        """Hydrate memory from the backing store without mirroring back.

        Rows already in memory are kept. Returns False, leaving whatever was
        loaded so far in place, when any loader fails.
        """
        if not self.mirroring:
            return False

        loaders = (
            ("users", self._adapter.load_users, self._insert_user),
            ("appointments", self._adapter.load_appointments, self._insert_appointment),
            ("medical records", self._adapter.load_medical_records, self._insert_medical_record),
            ("prescriptions", self._adapter.load_prescriptions, self._insert_prescription),
            ("scans", self._adapter.load_scans, self._insert_scan),
        )
        for label, load, insert in loaders:
            result = load()
            if not result:
                logger.warning(f"Could not load {label} from backing store: {result.message}")
                return False
            loaded = sum(1 for entity in result.value if insert(entity))
            logger.info(f"Loaded {loaded} {label} from backing store")
        return True

    def seed_defaults(self, today: Optional[date] = None) -> int:
        """Add the demonstration accounts and records that are missing.

        Safe to call repeatedly; returns how many entities were added.
        """
        today = today or date.today()
        added = 0

        for user in _default_users(self.settings.DEFAULT_TIME_SLOTS):
            if not self.user_exists(user.username) and user.entity_id not in self._role_index:
                added += self.add_user(user)

        for appointment in _default_appointments(today):
            if appointment.appointment_id not in self._appointments:
                added += self.add_appointment(appointment)

        for record in _default_medical_records():
            if record.record_id not in self._medical_records:
                added += self.add_medical_record(record)

        for prescription in _default_prescriptions(today):
            if prescription.prescription_id not in self._prescriptions:
                added += self.add_prescription(prescription)

        if added:
            logger.info(f"Seeded {added} default entities")
        return added

def _default_users(time_slots: List[str]) -> List[User]:
    doctors = (
        ("doctor", "Dr. John Smith", "DOC001", "General Medicine", "LIC001", 10, "0987654321", "456 Doctor Ave"),
        ("doctor2", "Dr. Sarah Johnson", "DOC002", "Cardiology", "LIC002", 8, "0987654322", "457 Doctor Ave"),
        ("doctor3", "Dr. Michael Brown", "DOC003", "Dermatology", "LIC003", 12, "0987654323", "458 Doctor Ave"),
    )
    users = [
        User(
            username="admin",
            password="Admin123!",
            full_name="System Administrator",
            email="admin@mediconnect.com",
            contact_number="1234567890",
            address="123 Admin St",
            profile=AdminProfile(admin_id="ADM001"),
        )
    ]
    for username, name, doctor_id, specialization, license_number, years, phone, address in doctors:
        users.append(User(
            username=username,
            password="Doctor123!",
            full_name=name,
            email=f"{username}@mediconnect.com",
            contact_number=phone,
            address=address,
            profile=DoctorProfile(
                doctor_id=doctor_id,
                specialization=specialization,
                license_number=license_number,
                experience_years=years,
                time_slots=list(time_slots),
            ),
        ))
    users.append(User(
        username="patient",
        password="Patient123!",
        full_name="Jane Doe",
        email="patient@mediconnect.com",
        contact_number="1122334455",
        address="789 Patient Blvd",
        profile=PatientProfile(
            patient_id="PAT001",
            age=30,
            gender="Female",
            blood_type="A+",
            emergency_contact="9998887777",
        ),
    ))
    return users

def _default_appointments(today: date) -> List[Appointment]:
    samples = (
        ("APT001", "DOC001", 1, time(9, 0), "09:00-10:00", "Regular checkup"),
        ("APT002", "DOC002", 3, time(14, 0), "14:00-15:00", "Follow-up consultation"),
        ("APT003", "DOC003", 2, time(10, 0), "10:00-11:00", "Dermatology consultation"),
    )
    return [
        Appointment(
            appointment_id=appointment_id,
            doctor_id=doctor_id,
            patient_id="PAT001",
            appointment_date=today + timedelta(days=days),
            appointment_time=start,
            time_slot=slot,
            reason=reason,
        )
        for appointment_id, doctor_id, days, start, slot, reason in samples
    ]

def _default_medical_records() -> List[MedicalRecord]:
    return [
        MedicalRecord(
            record_id="REC001",
            patient_id="PAT001",
            doctor_id="DOC001",
            diagnosis="Hypertension",
            prescription="Lisinopril 10mg daily",
        ),
        MedicalRecord(
            record_id="REC002",
            patient_id="PAT001",
            doctor_id="DOC001",
            diagnosis="Diabetes Type 2",
            prescription="Metformin 500mg twice daily",
        ),
    ]

def _default_prescriptions(today: date) -> List[Prescription]:
    return [
        Prescription(
            prescription_id="PRES001",
            patient_id="PAT001",
            doctor_id="DOC001",
            instructions="Continue current treatment plan",
            valid_until=today + timedelta(days=90),
            refills_remaining=2,
            medications=[
                Medication(
                    medication_name="Lisinopril",
                    dosage="10mg",
                    frequency="Once daily",
                    duration="30 days",
                    instructions="Take with food",
                ),
                Medication(
                    medication_name="Metformin",
                    dosage="500mg",
                    frequency="Twice daily",
                    duration="30 days",
                    instructions="Take with meals",
                ),
            ],
        )
    ]
