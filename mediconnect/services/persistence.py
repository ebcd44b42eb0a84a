"""
Relational mirror for the in-memory clinic store.

Every public method returns a :class:`PersistenceResult` and never raises:
the store calls in here after it has already committed to memory, so a fault
on this side must only ever be reported, never propagated.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Iterable, List, Optional
import enum
import logging

from sqlalchemy import func, select, text
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..core.config import DEFAULT_TIME_SLOTS
from ..core.database import Base, SessionFactory, session_scope
from ..core.errors import ErrorKind
from ..schemas.appointment import Appointment, AppointmentStatus
from ..schemas.clinical import (
    MedicalRecord, Medication, Prescription, PrescriptionStatus, RecordStatus, Scan
)
from ..schemas.user import AdminProfile, DoctorProfile, PatientProfile, User

logger = logging.getLogger(__name__)

class PersistenceError(str, enum.Enum):
    UNAVAILABLE = "unavailable"
    DUPLICATE = "duplicate"
    FAILURE = "failure"

@dataclass(frozen=True)
class PersistenceResult:
    ok: bool
    value: Any = None
    error: Optional[PersistenceError] = None
    message: str = ""

    @property
    def duplicate(self) -> bool:
        return self.error == PersistenceError.DUPLICATE

    @property
    def unavailable(self) -> bool:
        return self.error == PersistenceError.UNAVAILABLE

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        """The core error kind this fault reports as, None on a clean success."""
        if self.error is None:
            return None
        if self.error == PersistenceError.DUPLICATE:
            return ErrorKind.DUPLICATE_ON_MIRROR
        return ErrorKind.PERSISTENCE_UNAVAILABLE

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Any = None) -> "PersistenceResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: PersistenceError, message: str) -> "PersistenceResult":
        return cls(ok=False, error=error, message=message)

# Error text each supported driver uses for a unique-key violation
_DUPLICATE_MARKERS = (
    "unique constraint",   # sqlite
    "duplicate key",       # postgresql
    "duplicate entry",     # mysql
)

def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) == "23505":
        return True
    args = getattr(orig, "args", ())
    if args and args[0] == 1062:  # MySQL ER_DUP_ENTRY
        return True
    message = str(orig).lower()
    return any(marker in message for marker in _DUPLICATE_MARKERS)

def _join(values: Iterable[str]) -> str:
    return ",".join(v for v in values if v)

def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]

class BackingStoreAdapter:
    """Translate entity writes and queries into SQL through SQLAlchemy sessions."""

    def __init__(
        self,
        session_factory: Optional[SessionFactory],
        default_time_slots: Optional[List[str]] = None,
    ):
        self._session_factory = session_factory
        self._default_time_slots = list(default_time_slots or DEFAULT_TIME_SLOTS)

    @property
    def enabled(self) -> bool:
        return self._session_factory is not None

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    def _run(
        self,
        operation: str,
        work: Callable[[Session], Any],
        insert: bool = False,
    ) -> PersistenceResult:
        if self._session_factory is None:
            return PersistenceResult.failure(PersistenceError.UNAVAILABLE, "backing store disabled")

        try:
            with session_scope(self._session_factory) as db:
                value = work(db)
            return PersistenceResult.success(value)
        except IntegrityError as exc:
            if insert and _is_unique_violation(exc):
                # Row already present: a reseed or a retried insert
                logger.debug(f"{operation}: row already present, treating as saved")
                return PersistenceResult(
                    ok=True, error=PersistenceError.DUPLICATE, message=str(exc.orig)
                )
            logger.debug(f"{operation}: integrity error: {exc.orig}")
            return PersistenceResult.failure(PersistenceError.FAILURE, str(exc.orig))
        except (OperationalError, InterfaceError) as exc:
            logger.debug(f"{operation}: backing store unreachable: {exc.orig}")
            return PersistenceResult.failure(PersistenceError.UNAVAILABLE, str(exc.orig))
        except DBAPIError as exc:
            kind = PersistenceError.UNAVAILABLE if exc.connection_invalidated else PersistenceError.FAILURE
            logger.debug(f"{operation}: database error: {exc.orig}")
            return PersistenceResult.failure(kind, str(exc.orig))
        except SQLAlchemyError as exc:
            logger.debug(f"{operation}: {exc}")
            return PersistenceResult.failure(PersistenceError.FAILURE, str(exc))
        except Exception as exc:
            logger.exception(f"{operation}: unexpected error")
            return PersistenceResult.failure(PersistenceError.FAILURE, str(exc))

    def ping(self) -> PersistenceResult:
        """Round trip to the backing store."""
        return self._run("ping", lambda db: db.execute(text("SELECT 1")).scalar())

    def create_schema(self) -> PersistenceResult:
        """Create any missing tables."""
        def work(db: Session):
            Base.metadata.create_all(bind=db.connection())
        return self._run("create_schema", work)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @staticmethod
    def _user_row(user: User) -> models.User:
        return models.User(
            username=user.username,
            password=user.password,
            full_name=user.full_name,
            email=user.email,
            contact_number=user.contact_number,
            address=user.address,
            is_active=user.is_active,
            created_at=user.created_at,
        )

    @staticmethod
    def _role_row(user: User):
        match user.profile:
            case AdminProfile() as admin:
                return models.Admin(
                    admin_id=admin.admin_id,
                    username=user.username,
                    permissions=_join(admin.permissions),
                )
            case DoctorProfile() as doctor:
                return models.Doctor(
                    doctor_id=doctor.doctor_id,
                    username=user.username,
                    specialization=doctor.specialization,
                    license_number=doctor.license_number,
                    experience_years=doctor.experience_years,
                    qualifications=_join(doctor.qualifications),
                    time_slots=_join(doctor.time_slots),
                )
            case PatientProfile() as patient:
                return models.Patient(
                    patient_id=patient.patient_id,
                    username=user.username,
                    age=patient.age,
                    gender=patient.gender,
                    blood_type=patient.blood_type,
                    emergency_contact=patient.emergency_contact,
                    medical_history=patient.medical_history,
                    allergies=_join(patient.allergies),
                    current_medications=_join(patient.current_medications),
                )
        raise TypeError(f"Unknown profile type: {type(user.profile).__name__}")

    def save_user(self, user: User) -> PersistenceResult:
        """Insert the users row and its role row in one transaction."""
        def work(db: Session):
            db.add(self._user_row(user))
            db.flush()
            db.add(self._role_row(user))
        return self._run(f"save_user({user.username})", work, insert=True)

    def update_user(self, user: User) -> PersistenceResult:
        """Overwrite an existing account; inserts it when the row is missing."""
        def work(db: Session):
            row = db.get(models.User, user.username)
            if row is None:
                db.add(self._user_row(user))
                db.flush()
            else:
                row.password = user.password
                row.full_name = user.full_name
                row.email = user.email
                row.contact_number = user.contact_number
                row.address = user.address
                row.is_active = user.is_active
            db.merge(self._role_row(user))
        return self._run(f"update_user({user.username})", work)

    def _to_user(self, row: models.User, profile) -> User:
        return User(
            username=row.username,
            password=row.password,
            full_name=row.full_name,
            email=row.email,
            contact_number=row.contact_number or "",
            address=row.address or "",
            is_active=bool(row.is_active),
            created_at=row.created_at or datetime.utcnow(),
            profile=profile,
        )

    def load_users(self) -> PersistenceResult:
        """All accounts with a role row: admins, then doctors, then patients."""
        def work(db: Session) -> List[User]:
            users: List[User] = []
            for admin in db.scalars(select(models.Admin).order_by(models.Admin.admin_id)):
                users.append(self._to_user(admin.user, AdminProfile(
                    admin_id=admin.admin_id,
                    permissions=_split(admin.permissions),
                )))
            for doctor in db.scalars(select(models.Doctor).order_by(models.Doctor.doctor_id)):
                users.append(self._to_user(doctor.user, DoctorProfile(
                    doctor_id=doctor.doctor_id,
                    specialization=doctor.specialization,
                    license_number=doctor.license_number,
                    experience_years=doctor.experience_years or 0,
                    qualifications=_split(doctor.qualifications),
                    time_slots=_split(doctor.time_slots) or list(self._default_time_slots),
                )))
            for patient in db.scalars(select(models.Patient).order_by(models.Patient.patient_id)):
                users.append(self._to_user(patient.user, PatientProfile(
                    patient_id=patient.patient_id,
                    age=patient.age,
                    gender=patient.gender,
                    blood_type=patient.blood_type,
                    emergency_contact=patient.emergency_contact,
                    medical_history=patient.medical_history or "",
                    allergies=_split(patient.allergies),
                    current_medications=_split(patient.current_medications),
                )))
            return users
        return self._run("load_users", work)

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------
    @staticmethod
    def _apply_appointment(row: models.Appointment, appointment: Appointment) -> None:
        row.doctor_id = appointment.doctor_id
        row.patient_id = appointment.patient_id
        row.appointment_date = appointment.appointment_date
        row.appointment_time = appointment.appointment_time
        row.time_slot = appointment.time_slot
        row.reason = appointment.reason
        row.status = appointment.status.value
        row.notes = appointment.notes
        row.cancellation_reason = appointment.cancellation_reason
        row.denial_reason = appointment.denial_reason

    def save_appointment(self, appointment: Appointment) -> PersistenceResult:
        def work(db: Session):
            row = models.Appointment(
                appointment_id=appointment.appointment_id,
                created_date=appointment.created_at,
            )
            self._apply_appointment(row, appointment)
            db.add(row)
        return self._run(f"save_appointment({appointment.appointment_id})", work, insert=True)

    def update_appointment(self, appointment: Appointment) -> PersistenceResult:
        """Write status, notes, reasons and date/slot; inserts when missing."""
        def work(db: Session):
            row = db.get(models.Appointment, appointment.appointment_id)
            if row is None:
                row = models.Appointment(
                    appointment_id=appointment.appointment_id,
                    created_date=appointment.created_at,
                )
                db.add(row)
            self._apply_appointment(row, appointment)
        return self._run(f"update_appointment({appointment.appointment_id})", work)

    def load_appointments(self) -> PersistenceResult:
        def work(db: Session) -> List[Appointment]:
            rows = db.scalars(select(models.Appointment).order_by(models.Appointment.appointment_id))
            return [
                Appointment(
                    appointment_id=row.appointment_id,
                    doctor_id=row.doctor_id,
                    patient_id=row.patient_id,
                    appointment_date=row.appointment_date,
                    appointment_time=row.appointment_time,
                    time_slot=row.time_slot,
                    reason=row.reason,
                    status=AppointmentStatus.from_stored(row.status),
                    notes=row.notes or "",
                    cancellation_reason=row.cancellation_reason,
                    denial_reason=row.denial_reason,
                    created_at=row.created_date or datetime.utcnow(),
                )
                for row in rows
            ]
        return self._run("load_appointments", work)

    # ------------------------------------------------------------------
    # Medical records
    # ------------------------------------------------------------------
    @staticmethod
    def _apply_record(row: models.MedicalRecord, record: MedicalRecord) -> None:
        row.patient_id = record.patient_id
        row.doctor_id = record.doctor_id
        row.diagnosis = record.diagnosis
        row.prescription = record.prescription
        row.treatment = record.treatment
        row.notes = record.notes
        row.status = record.status.value
        row.symptoms = _join(record.symptoms)
        row.medications = _join(record.medications)

    def save_medical_record(self, record: MedicalRecord) -> PersistenceResult:
        def work(db: Session):
            row = models.MedicalRecord(record_id=record.record_id, created_date=record.created_at)
            self._apply_record(row, record)
            db.add(row)
        return self._run(f"save_medical_record({record.record_id})", work, insert=True)

    def update_medical_record(self, record: MedicalRecord) -> PersistenceResult:
        def work(db: Session):
            row = db.get(models.MedicalRecord, record.record_id)
            if row is None:
                row = models.MedicalRecord(record_id=record.record_id, created_date=record.created_at)
                db.add(row)
            self._apply_record(row, record)
        return self._run(f"update_medical_record({record.record_id})", work)

    def load_medical_records(self) -> PersistenceResult:
        def work(db: Session) -> List[MedicalRecord]:
            rows = db.scalars(select(models.MedicalRecord).order_by(models.MedicalRecord.record_id))
            return [
                MedicalRecord(
                    record_id=row.record_id,
                    patient_id=row.patient_id,
                    doctor_id=row.doctor_id,
                    diagnosis=row.diagnosis,
                    prescription=row.prescription or "",
                    treatment=row.treatment or "",
                    notes=row.notes or "",
                    status=RecordStatus.ARCHIVED if (row.status or "").upper() == "ARCHIVED" else RecordStatus.ACTIVE,
                    symptoms=_split(row.symptoms),
                    medications=_split(row.medications),
                    created_at=row.created_date or datetime.utcnow(),
                )
                for row in rows
            ]
        return self._run("load_medical_records", work)

    # ------------------------------------------------------------------
    # Prescriptions
    # ------------------------------------------------------------------
    @staticmethod
    def _apply_prescription(row: models.Prescription, prescription: Prescription) -> None:
        row.patient_id = prescription.patient_id
        row.doctor_id = prescription.doctor_id
        row.instructions = prescription.instructions
        row.status = prescription.status.value
        row.valid_until = prescription.valid_until
        row.refills_remaining = prescription.refills_remaining
        row.notes = prescription.notes
        row.medications = [
            models.PrescriptionMedication(
                medication_name=medication.medication_name,
                dosage=medication.dosage,
                frequency=medication.frequency,
                duration=medication.duration,
            )
            for medication in prescription.medications
        ]

    def save_prescription(self, prescription: Prescription) -> PersistenceResult:
        """Insert the prescription and its medication lines together."""
        def work(db: Session):
            row = models.Prescription(
                prescription_id=prescription.prescription_id,
                created_date=prescription.created_at,
            )
            self._apply_prescription(row, prescription)
            db.add(row)
        return self._run(f"save_prescription({prescription.prescription_id})", work, insert=True)

    def update_prescription(self, prescription: Prescription) -> PersistenceResult:
        """Overwrite the prescription and replace its medication lines."""
        def work(db: Session):
            row = db.get(models.Prescription, prescription.prescription_id)
            if row is None:
                row = models.Prescription(
                    prescription_id=prescription.prescription_id,
                    created_date=prescription.created_at,
                )
                db.add(row)
            self._apply_prescription(row, prescription)
        return self._run(f"update_prescription({prescription.prescription_id})", work)

    def load_prescriptions(self) -> PersistenceResult:
        def work(db: Session) -> List[Prescription]:
            rows = db.scalars(select(models.Prescription).order_by(models.Prescription.prescription_id))
            return [
                Prescription(
                    prescription_id=row.prescription_id,
                    patient_id=row.patient_id,
                    doctor_id=row.doctor_id,
                    instructions=row.instructions or "",
                    status=(
                        PrescriptionStatus.CANCELLED
                        if (row.status or "").upper() == "CANCELLED"
                        else PrescriptionStatus.ACTIVE
                    ),
                    valid_until=row.valid_until,
                    refills_remaining=row.refills_remaining or 0,
                    notes=row.notes or "",
                    medications=[
                        Medication(
                            medication_name=line.medication_name,
                            dosage=line.dosage,
                            frequency=line.frequency,
                            duration=line.duration,
                        )
                        for line in row.medications
                    ],
                    created_at=row.created_date or datetime.utcnow(),
                )
                for row in rows
            ]
        return self._run("load_prescriptions", work)

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------
    def save_scan(self, scan: Scan) -> PersistenceResult:
        def work(db: Session):
            db.add(models.Scan(
                scan_id=scan.scan_id,
                patient_id=scan.patient_id,
                appointment_id=scan.appointment_id,
                file_path=scan.file_path,
                file_type=scan.file_type,
                file_size=scan.file_size,
                uploaded_at=scan.uploaded_at,
                description=scan.description,
            ))
        return self._run(f"save_scan({scan.scan_id})", work, insert=True)

    @staticmethod
    def _to_scan(row: models.Scan) -> Scan:
        return Scan(
            scan_id=row.scan_id,
            patient_id=row.patient_id,
            appointment_id=row.appointment_id,
            file_path=row.file_path,
            file_type=row.file_type or "",
            file_size=row.file_size or 0,
            description=row.description or "",
            uploaded_at=row.uploaded_at or datetime.utcnow(),
        )

    def load_scans(self) -> PersistenceResult:
        def work(db: Session) -> List[Scan]:
            rows = db.scalars(select(models.Scan).order_by(models.Scan.uploaded_at, models.Scan.scan_id))
            return [self._to_scan(row) for row in rows]
        return self._run("load_scans", work)

    def get_scans_by_patient(self, patient_id: str) -> PersistenceResult:
        """Newest first."""
        def work(db: Session) -> List[Scan]:
            rows = db.scalars(
                select(models.Scan)
                .where(models.Scan.patient_id == patient_id)
                .order_by(models.Scan.uploaded_at.desc())
            )
            return [self._to_scan(row) for row in rows]
        return self._run(f"get_scans_by_patient({patient_id})", work)

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------
    def _count(self, operation: str, statement) -> PersistenceResult:
        return self._run(operation, lambda db: int(db.execute(statement).scalar() or 0))

    def count_users(self) -> PersistenceResult:
        return self._count("count_users", select(func.count()).select_from(models.User))

    def count_doctors(self) -> PersistenceResult:
        return self._count("count_doctors", select(func.count()).select_from(models.Doctor))

    def count_patients(self) -> PersistenceResult:
        return self._count("count_patients", select(func.count()).select_from(models.Patient))

    def count_appointments(self) -> PersistenceResult:
        return self._count("count_appointments", select(func.count()).select_from(models.Appointment))

    def count_appointments_by_status(self, status: str) -> PersistenceResult:
        statement = (
            select(func.count())
            .select_from(models.Appointment)
            .where(func.upper(models.Appointment.status) == (status or "").upper())
        )
        return self._count("count_appointments_by_status", statement)

    def count_upcoming_appointments_by_patient(
        self, patient_id: str, today: Optional[date] = None
    ) -> PersistenceResult:
        statement = (
            select(func.count())
            .select_from(models.Appointment)
            .where(
                models.Appointment.patient_id == patient_id,
                models.Appointment.appointment_date >= (today or date.today()),
                func.upper(models.Appointment.status) != AppointmentStatus.CANCELLED.value,
            )
        )
        return self._count("count_upcoming_appointments_by_patient", statement)

    def count_appointments_by_patient(self, patient_id: str) -> PersistenceResult:
        statement = (
            select(func.count())
            .select_from(models.Appointment)
            .where(models.Appointment.patient_id == patient_id)
        )
        return self._count("count_appointments_by_patient", statement)

    def count_medical_records_by_patient(self, patient_id: str) -> PersistenceResult:
        statement = (
            select(func.count())
            .select_from(models.MedicalRecord)
            .where(models.MedicalRecord.patient_id == patient_id)
        )
        return self._count("count_medical_records_by_patient", statement)

    def count_prescriptions_by_patient(self, patient_id: str) -> PersistenceResult:
        statement = (
            select(func.count())
            .select_from(models.Prescription)
            .where(models.Prescription.patient_id == patient_id)
        )
        return self._count("count_prescriptions_by_patient", statement)
