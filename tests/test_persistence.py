from datetime import datetime, time

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from mediconnect.schemas.appointment import Appointment, AppointmentStatus
from mediconnect.services.persistence import BackingStoreAdapter, PersistenceError
from mediconnect.services.store import ClinicStore

from .helpers import future, sqlite_adapter

def sample_appointment(appointment_id="APT001", status=AppointmentStatus.PENDING) -> Appointment:
    return Appointment(
        appointment_id=appointment_id,
        doctor_id="DOC001",
        patient_id="PAT001",
        appointment_date=future(5),
        appointment_time=time(10, 0),
        time_slot="10:00-11:00",
        reason="Persistent booking",
        status=status,
    )

class TestBackingStoreAdapter:

    def test_ping_and_schema(self, adapter):
        assert adapter.ping()
        assert adapter.create_schema()

    def test_save_and_load_users_by_role(self, adapter, seeded_store):
        for user in seeded_store.get_all_users():
            assert adapter.save_user(user)

        result = adapter.load_users()
        assert result
        loaded = {u.username: u for u in result.value}
        assert loaded["admin"].entity_id == "ADM001"
        assert "GENERATE_REPORTS" in loaded["admin"].profile.permissions
        assert loaded["doctor2"].profile.license_number == "LIC002"
        assert loaded["patient"].profile.blood_type == "A+"
        assert adapter.count_users().value == 5
        assert adapter.count_doctors().value == 3
        assert adapter.count_patients().value == 1

    def test_duplicate_insert_is_success(self, adapter):
        """Inserting the same row twice reports success both times."""
        first = adapter.save_appointment(sample_appointment())
        second = adapter.save_appointment(sample_appointment())
        assert first and not first.duplicate
        assert second and second.duplicate
        assert second.error == PersistenceError.DUPLICATE
        assert adapter.count_appointments().value == 1

    def test_update_writes_status_and_reasons(self, adapter):
        adapter.save_appointment(sample_appointment())
        cancelled = sample_appointment(status=AppointmentStatus.CANCELLED).model_copy(
            update={"cancellation_reason": "Travel", "notes": "Cancellation reason: Travel"}
        )
        assert adapter.update_appointment(cancelled)

        loaded = adapter.load_appointments().value[0]
        assert loaded.status == AppointmentStatus.CANCELLED
        assert loaded.cancellation_reason == "Travel"
        assert adapter.count_appointments_by_status("cancelled").value == 1
        assert adapter.count_upcoming_appointments_by_patient("PAT001").value == 0

    def test_update_inserts_missing_row(self, adapter):
        assert adapter.update_appointment(sample_appointment("APT042"))
        assert adapter.count_appointments_by_patient("PAT001").value == 1

    def test_legacy_statuses_are_normalised(self, adapter):
        adapter.save_appointment(sample_appointment("APT001"))
        adapter.save_appointment(sample_appointment("APT002"))
        engine = adapter._session_factory.kw["bind"]
        with engine.begin() as conn:
            conn.execute(text("UPDATE appointments SET status = 'SCHEDULED' WHERE appointment_id = 'APT001'"))
            conn.execute(text("UPDATE appointments SET status = 'APPROVED' WHERE appointment_id = 'APT002'"))

        statuses = {a.appointment_id: a.status for a in adapter.load_appointments().value}
        assert statuses == {"APT001": AppointmentStatus.PENDING, "APT002": AppointmentStatus.CONFIRMED}

    def test_prescription_lines_round_trip_in_order(self, adapter, seeded_store):
        prescription = seeded_store.get_prescription("PRES001")
        assert adapter.save_prescription(prescription)

        trimmed = prescription.model_copy(update={"medications": prescription.medications[1:]})
        assert adapter.update_prescription(trimmed)

        loaded = adapter.load_prescriptions().value[0]
        assert [m.medication_name for m in loaded.medications] == ["Metformin"]
        assert loaded.refills_remaining == 2
        assert adapter.count_prescriptions_by_patient("PAT001").value == 1

    def test_scans_newest_first(self, adapter):
        from mediconnect.schemas.clinical import Scan

        adapter.save_scan(Scan(scan_id="SCAN001", patient_id="PAT001", file_path="/scans/a.png",
                               uploaded_at=datetime(2024, 1, 1)))
        adapter.save_scan(Scan(scan_id="SCAN002", patient_id="PAT001", file_path="/scans/b.png",
                               uploaded_at=datetime(2024, 6, 1)))
        scans = adapter.get_scans_by_patient("PAT001").value
        assert [s.scan_id for s in scans] == ["SCAN002", "SCAN001"]

    def test_unreachable_store_reports_instead_of_raising(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'clinic.db'}")
        adapter = BackingStoreAdapter(sessionmaker(bind=engine))

        result = adapter.save_appointment(sample_appointment())
        assert not result
        assert result.error == PersistenceError.UNAVAILABLE
        assert not adapter.ping()
        assert not adapter.load_users()

    def test_disabled_adapter(self):
        adapter = BackingStoreAdapter(None)
        assert not adapter.enabled
        result = adapter.count_users()
        assert not result
        assert result.unavailable

class TestMirroring:

    def test_reseed_against_populated_database(self, tmp_path, settings):
        """A fresh process seeding into an already seeded database still succeeds."""
        path = tmp_path / "seeded.db"
        first = ClinicStore(adapter=sqlite_adapter(path), settings=settings)
        first.adapter.create_schema()
        first.seed_defaults()

        second = ClinicStore(adapter=sqlite_adapter(path), settings=settings)
        assert second.seed_defaults() == 11
        assert second.mirror_failures == 0
        assert second.adapter.count_users().value == 5

    def test_hydration_restores_memory(self, tmp_path, settings):
        path = tmp_path / "hydrate.db"
        first = ClinicStore(adapter=sqlite_adapter(path), settings=settings)
        first.adapter.create_schema()
        first.seed_defaults()
        first.add_appointment(sample_appointment("APT009"))

        second = ClinicStore(adapter=sqlite_adapter(path), settings=settings)
        assert second.load_from_backing_store()
        assert second.count_total_users() == 5
        assert second.get_appointment("APT009").time_slot == "10:00-11:00"
        assert second.get_doctor("DOC001").profile.time_slots == settings.DEFAULT_TIME_SLOTS
        # ids continue past what was loaded
        assert second.generate_appointment_id() == "APT010"

    def test_outage_keeps_serving_from_memory(self, tmp_path, settings):
        engine = create_engine(f"sqlite:///{tmp_path / 'nowhere' / 'clinic.db'}")
        store = ClinicStore(adapter=BackingStoreAdapter(sessionmaker(bind=engine)), settings=settings)

        assert store.seed_defaults() == 11
        assert store.add_appointment(sample_appointment("APT020"))
        assert store.get_appointment("APT020") is not None
        assert store.mirror_failures == 12
        assert "unavailable" in store.last_mirror_error

@pytest.mark.parametrize("message", [
    "UNIQUE constraint failed: users.username",
    'duplicate key value violates unique constraint "users_pkey"',
    "(1062, \"Duplicate entry 'admin' for key 'PRIMARY'\")",
])
def test_unique_violation_markers(message):
    from sqlalchemy.exc import IntegrityError
    from mediconnect.services.persistence import _is_unique_violation

    assert _is_unique_violation(IntegrityError("INSERT", {}, Exception(message)))

class TestRestartFidelity:

    def _restart(self, path, settings) -> ClinicStore:
        store = ClinicStore(adapter=sqlite_adapter(path), settings=settings)
        assert store.load_from_backing_store()
        return store

    def test_custom_slot_template_survives_restart(self, tmp_path, settings):
        from mediconnect.services.context import build_context

        path = tmp_path / "slots.db"
        first = build_context(settings, adapter=sqlite_adapter(path))
        first.store.adapter.create_schema()
        first.store.seed_defaults()
        doctor = first.accounts.register_doctor(
            "earlybird", "Early1234", "Dr. Early Bird", "early@example.com", "", "",
            "Sleep Medicine", "LIC808", 4, time_slots=["07:00-08:00", "18:00-19:00"],
        ).user
        booked = first.appointments.book(
            doctor.entity_id, "PAT001", future(12), "07:00-08:00", "Sleep study review"
        ).appointment

        second = build_context(settings, adapter=sqlite_adapter(path))
        assert second.store.load_from_backing_store()

        restored = second.store.get_doctor(doctor.entity_id)
        assert restored.profile.time_slots == ["07:00-08:00", "18:00-19:00"]
        assert second.scheduling.get_available_time_slots(doctor.entity_id, future(12)) == ["18:00-19:00"]
        assert second.appointments.reschedule(booked.appointment_id, future(12), "07:00-08:00")
        # seeded doctors had no custom template and still get the defaults
        assert second.store.get_doctor("DOC001").profile.time_slots == settings.DEFAULT_TIME_SLOTS

    def test_prescription_notes_survive_restart(self, tmp_path, settings):
        from mediconnect.services.clinical_service import ClinicalRecordService

        path = tmp_path / "notes.db"
        first = ClinicStore(adapter=sqlite_adapter(path), settings=settings)
        first.adapter.create_schema()
        first.seed_defaults()
        assert ClinicalRecordService(first).cancel_prescription("PRES001", "Side effects")

        restored = self._restart(path, settings).get_prescription("PRES001")
        assert restored.notes == "Cancellation reason: Side effects"
        assert restored.status.value == "CANCELLED"

class TestErrorKinds:

    def test_faults_map_onto_core_error_kinds(self):
        from mediconnect.core.errors import ErrorKind
        from mediconnect.services.persistence import PersistenceResult

        assert PersistenceResult.success().error_kind is None
        duplicate = PersistenceResult(ok=True, error=PersistenceError.DUPLICATE)
        assert duplicate.error_kind == ErrorKind.DUPLICATE_ON_MIRROR
        for fault in (PersistenceError.UNAVAILABLE, PersistenceError.FAILURE):
            assert PersistenceResult.failure(fault, "down").error_kind == ErrorKind.PERSISTENCE_UNAVAILABLE

    def test_disabled_adapter_reports_unavailable(self):
        from mediconnect.core.errors import ErrorKind

        assert BackingStoreAdapter(None).ping().error_kind == ErrorKind.PERSISTENCE_UNAVAILABLE
