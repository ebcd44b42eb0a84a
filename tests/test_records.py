from datetime import timedelta

import pytest

from mediconnect.core.errors import ErrorKind
from mediconnect.schemas.clinical import Medication, PrescriptionStatus, RecordStatus

from .helpers import future

def patient_fields(**overrides):
    fields = dict(
        username="newpatient",
        password="Newpass123",
        full_name="New Patient",
        email="new@example.com",
        contact_number="5551112222",
        address="12 Elm St",
        age=41,
        gender="Female",
        blood_type="ab-",
        emergency_contact="5553334444",
    )
    fields.update(overrides)
    return fields

def doctor_fields(**overrides):
    fields = dict(
        username="drnew",
        password="Doctor456",
        full_name="Dr. New Person",
        email="drnew@example.com",
        contact_number="5557778888",
        address="9 Clinic Rd",
        specialization="Neurology",
        license_number="LIC900",
        experience_years=5,
        qualifications=["MD", " ", "PhD"],
    )
    fields.update(overrides)
    return fields

class TestRegistration:

    def test_patient_gets_next_id(self, context):
        result = context.accounts.register_patient(**patient_fields())
        assert result
        assert result.user.entity_id == "PAT002"
        assert result.user.profile.blood_type == "AB-"
        assert context.store.get_patient("PAT002").username == "newpatient"

    @pytest.mark.parametrize("overrides", [
        {"username": "ab"},
        {"username": "has space"},
        {"password": "alllowercase1"},
        {"password": "Short1"},
        {"email": "not-an-email"},
        {"age": 151},
        {"blood_type": "C+"},
        {"emergency_contact": ""},
    ])
    def test_invalid_patient_fields(self, context, overrides):
        result = context.accounts.register_patient(**patient_fields(**overrides))
        assert result.error == ErrorKind.VALIDATION
        assert result.problems
        assert context.store.count_total_patients() == 1

    def test_all_problems_are_reported(self, context):
        result = context.accounts.register_patient(**patient_fields(username="x", email="bad", age=-1))
        assert len(result.problems) == 3

    def test_duplicate_username_and_email(self, context):
        taken = context.accounts.register_patient(**patient_fields(username="patient"))
        assert taken.error == ErrorKind.CONFLICT
        assert "Username already exists" in taken.message

        email = context.accounts.register_patient(**patient_fields(email="PATIENT@mediconnect.com"))
        assert email.error == ErrorKind.CONFLICT

    def test_doctor_registration(self, context):
        result = context.accounts.register_doctor(**doctor_fields())
        doctor = result.user
        assert doctor.entity_id == "DOC004"
        assert doctor.profile.qualifications == ["MD", "PhD"]
        assert doctor.profile.time_slots == context.settings.DEFAULT_TIME_SLOTS

    def test_doctor_experience_and_license(self, context):
        assert context.accounts.register_doctor(**doctor_fields(experience_years=51)).error == ErrorKind.VALIDATION
        assert context.accounts.register_doctor(**doctor_fields(license_number="LIC001")).error == ErrorKind.CONFLICT

    def test_admin_registration_defaults_permissions(self, context):
        result = context.accounts.register_admin("admin2", "Admin456x", "Second Admin", "admin2@example.com")
        assert result.user.entity_id == "ADM002"
        assert "GENERATE_REPORTS" in result.user.profile.permissions

class TestAuthentication:

    def test_valid_and_invalid_credentials(self, context):
        assert context.accounts.authenticate("doctor", "Doctor123!").entity_id == "DOC001"
        assert context.accounts.authenticate("doctor", "wrong") is None
        assert context.accounts.authenticate("", "Doctor123!") is None

    def test_deactivated_account_cannot_log_in(self, context):
        assert context.accounts.deactivate_user("doctor3")
        assert context.accounts.authenticate("doctor3", "Doctor123!") is None
        # history is kept
        assert context.store.get_doctor("DOC003") is not None

    def test_username_availability(self, context):
        assert not context.accounts.is_username_available("admin")
        assert context.accounts.is_username_available("someone_new")

class TestProfileMaintenance:

    def test_update_contact(self, context):
        result = context.accounts.update_contact("patient", email="jane@example.org", address="1 Lake Rd")
        assert result.user.email == "jane@example.org"
        assert context.store.get_user("patient").address == "1 Lake Rd"

    def test_update_contact_rejects_taken_email(self, context):
        result = context.accounts.update_contact("patient", email="doctor@mediconnect.com")
        assert result.error == ErrorKind.CONFLICT

    def test_change_password(self, context):
        assert context.accounts.change_password("patient", "wrong", "Another123").error == ErrorKind.VALIDATION
        assert context.accounts.change_password("patient", "Patient123!", "weak").error == ErrorKind.VALIDATION
        assert context.accounts.change_password("patient", "Patient123!", "Another123")
        assert context.accounts.authenticate("patient", "Another123") is not None

    def test_patient_lists(self, context):
        context.accounts.set_allergies("patient", ["Penicillin", " ", "Peanuts"])
        context.accounts.set_current_medications("patient", ["Metformin"])
        profile = context.store.get_patient("PAT001").profile
        assert profile.allergies == ["Penicillin", "Peanuts"]
        assert profile.current_medications == ["Metformin"]

    def test_lists_only_for_patients(self, context):
        assert context.accounts.set_allergies("doctor", ["Latex"]).error == ErrorKind.VALIDATION

    def test_unknown_user(self, context):
        assert context.accounts.update_contact("ghost", address="x").error == ErrorKind.NOT_FOUND

class TestMedicalRecords:

    def test_create_and_list(self, context):
        result = context.clinical.create_medical_record(
            "PAT001", "DOC002", "Mild arrhythmia", "Beta blocker 25mg",
            symptoms=["Palpitations", ""], medications=["Metoprolol"],
        )
        assert result.value.record_id == "REC003"
        assert result.value.symptoms == ["Palpitations"]
        assert [r.record_id for r in context.clinical.get_medical_records_by_doctor("DOC002")] == ["REC003"]
        assert len(context.clinical.get_medical_records_for_patient("PAT001")) == 3

    def test_create_validation(self, context):
        clinical = context.clinical
        assert clinical.create_medical_record("PAT001", "DOC001", "Flu", "Rest and fluids").error == ErrorKind.VALIDATION
        assert clinical.create_medical_record("PAT001", "DOC001", "Influenza", "Rest").error == ErrorKind.VALIDATION
        assert clinical.create_medical_record("PAT404", "DOC001", "Influenza", "Rest and fluids").error == ErrorKind.NOT_FOUND

    def test_update_appends_notes(self, context):
        context.clinical.update_medical_record("REC001", notes="Blood pressure stable")
        result = context.clinical.update_medical_record("REC001", treatment="Low sodium diet", notes="Review in 3 months")
        assert result.value.notes == "Blood pressure stable\nReview in 3 months"
        assert result.value.treatment == "Low sodium diet"

    def test_archived_records_are_read_only(self, context):
        assert context.clinical.archive_medical_record("REC002").value.status == RecordStatus.ARCHIVED
        assert context.clinical.archive_medical_record("REC002").error == ErrorKind.INVALID_TRANSITION
        assert context.clinical.update_medical_record("REC002", diagnosis="Changed diagnosis").error == ErrorKind.INVALID_TRANSITION

    def test_follow_up(self, context):
        assert context.clinical.schedule_follow_up("REC001", "2000-01-01").error == ErrorKind.VALIDATION
        assert context.clinical.schedule_follow_up("REC001", future(7))
        assert context.clinical.get_follow_ups_due() == []
        due = context.clinical.get_follow_ups_due(today=future(7))
        assert [r.record_id for r in due] == ["REC001"]

class TestPrescriptions:

    def test_create_with_medications(self, context):
        result = context.clinical.create_prescription(
            "PAT001", "DOC002", "Take after meals", future(30), refills=1,
            medications=[Medication(medication_name="Aspirin", dosage="81mg", frequency="Daily", duration="30 days")],
        )
        assert result.value.prescription_id == "PRES002"
        assert result.value.medications[0].medication_name == "Aspirin"

    @pytest.mark.parametrize("instructions, valid_until, refills", [
        ("", future(30), 0),
        ("Take daily", "2000-01-01", 0),
        ("Take daily", "someday", 0),
        ("Take daily", future(30), -1),
    ])
    def test_create_validation(self, context, instructions, valid_until, refills):
        result = context.clinical.create_prescription("PAT001", "DOC001", instructions, valid_until, refills)
        assert result.error == ErrorKind.VALIDATION

    def test_add_medication_keeps_order(self, context):
        result = context.clinical.add_medication("PRES001", "Atorvastatin", "20mg", "Nightly", "90 days")
        names = [m.medication_name for m in result.value.medications]
        assert names == ["Lisinopril", "Metformin", "Atorvastatin"]
        assert context.clinical.add_medication("PRES001", "", "1mg", "Daily", "1 day").error == ErrorKind.VALIDATION

    def test_refills_count_down(self, context):
        assert context.clinical.process_refill("PRES001").value.refills_remaining == 1
        assert context.clinical.process_refill("PRES001").value.refills_remaining == 0
        assert context.clinical.process_refill("PRES001").error == ErrorKind.CONFLICT

    def test_expired_prescription_cannot_be_refilled(self, context):
        later = future(91)
        assert context.clinical.process_refill("PRES001", today=later).error == ErrorKind.CONFLICT
        assert [p.prescription_id for p in context.clinical.get_active_prescriptions_for_patient("PAT001", today=later)] == []

    def test_cancel(self, context):
        result = context.clinical.cancel_prescription("PRES001", "Side effects")
        assert result.value.status == PrescriptionStatus.CANCELLED
        assert "Cancellation reason: Side effects" in result.value.notes
        assert context.clinical.cancel_prescription("PRES001").error == ErrorKind.INVALID_TRANSITION
        assert context.clinical.process_refill("PRES001").error == ErrorKind.INVALID_TRANSITION
        assert context.clinical.add_medication("PRES001", "Aspirin", "81mg", "Daily", "30 days").error == ErrorKind.INVALID_TRANSITION

    def test_statistics(self, context):
        stats = context.clinical.get_prescription_statistics(today=future(0) + timedelta(days=100))
        assert stats == {"total_prescriptions": 1, "active_prescriptions": 1, "expired_prescriptions": 1}

    def test_missing_prescription(self, context):
        assert context.clinical.process_refill("PRES404").error == ErrorKind.NOT_FOUND

class TestScans:

    def test_register_and_filter(self, context):
        result = context.clinical.register_scan(
            "PAT001", "/scans/chest.png", file_type="image/png", file_size=2048, appointment_id="APT001"
        )
        assert result.value.scan_id == "SCAN001"
        assert [s.scan_id for s in context.clinical.get_scans_for_appointment("APT001")] == ["SCAN001"]
        assert len(context.clinical.get_scans_for_patient("PAT001")) == 1

    def test_register_validation(self, context):
        clinical = context.clinical
        assert clinical.register_scan("PAT001", "").error == ErrorKind.VALIDATION
        assert clinical.register_scan("PAT001", "/scans/a.png", file_size=-1).error == ErrorKind.VALIDATION
        assert clinical.register_scan("PAT404", "/scans/a.png").error == ErrorKind.NOT_FOUND
        assert clinical.register_scan("PAT001", "/scans/a.png", appointment_id="APT404").error == ErrorKind.NOT_FOUND
