import pytest
from fastapi.testclient import TestClient

from mediconnect.main import create_app

from .helpers import ADMIN, DOCTOR, DOCTOR2, PATIENT, future

API = "/api/v1"

def booking(days=14, slot="09:00-10:00", doctor_id="DOC001", reason="Annual checkup visit"):
    return {
        "doctor_id": doctor_id,
        "appointment_date": future(days).isoformat(),
        "time_slot": slot,
        "reason": reason,
    }

class TestHealthAndInfo:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["mirroring"] is False

    def test_root_and_info(self, client):
        assert "Welcome" in client.get("/").json()["message"]
        endpoints = client.get(f"{API}/info").json()["endpoints"]
        assert endpoints["appointments"] == "/api/v1/appointments"

    def test_unknown_route(self, client):
        response = client.get("/nowhere")
        assert response.status_code == 404
        assert response.json()["error"] == "Not Found"

class TestAuthEndpoints:

    def test_register_patient(self, client):
        payload = {
            "username": "apiuser",
            "password": "Apiuser123",
            "confirm_password": "Apiuser123",
            "full_name": "Api User",
            "email": "apiuser@example.com",
            "age": 35,
            "gender": "Male",
            "blood_type": "O-",
            "emergency_contact": "5550009999",
        }
        response = client.post(f"{API}/auth/register", json=payload)
        assert response.status_code == 201
        data = response.json()
        assert data["entity_id"] == "PAT002"
        assert "password" not in data

        again = client.post(f"{API}/auth/register", json=payload)
        assert again.status_code == 409

    def test_register_password_mismatch(self, client):
        payload = {
            "username": "mismatch",
            "password": "Mismatch123",
            "confirm_password": "Different123",
            "full_name": "Mis Match",
            "email": "mismatch@example.com",
            "age": 35,
            "gender": "Male",
            "blood_type": "O-",
            "emergency_contact": "5550009999",
        }
        assert client.post(f"{API}/auth/register", json=payload).status_code == 422

    def test_me(self, client):
        response = client.get(f"{API}/auth/me", auth=DOCTOR)
        assert response.status_code == 200
        assert response.json()["profile"]["specialization"] == "General Medicine"

    def test_bad_credentials(self, client):
        assert client.get(f"{API}/auth/me", auth=("doctor", "nope")).status_code == 401
        assert client.get(f"{API}/auth/me").status_code == 401

    def test_username_available(self, client):
        assert client.get(f"{API}/auth/username-available/admin").json()["available"] is False

    def test_patient_allergies(self, client):
        response = client.put(f"{API}/auth/me/allergies", json={"items": ["Latex"]}, auth=PATIENT)
        assert response.status_code == 200
        assert response.json()["profile"]["allergies"] == ["Latex"]

class TestAppointmentEndpoints:

    def test_booking_flow(self, client):
        created = client.post(f"{API}/appointments", json=booking(), auth=PATIENT)
        assert created.status_code == 201
        appointment = created.json()
        assert appointment["status"] == "PENDING"
        assert appointment["patient_id"] == "PAT001"
        appointment_id = appointment["appointment_id"]

        approved = client.post(f"{API}/appointments/{appointment_id}/approve", auth=DOCTOR)
        assert approved.json()["status"] == "CONFIRMED"

        completed = client.post(f"{API}/appointments/{appointment_id}/complete", auth=DOCTOR)
        assert completed.json()["status"] == "COMPLETED"

        again = client.post(f"{API}/appointments/{appointment_id}/complete", auth=DOCTOR)
        assert again.status_code == 409

    def test_double_booking_is_409(self, client):
        assert client.post(f"{API}/appointments", json=booking(), auth=PATIENT).status_code == 201
        response = client.post(f"{API}/appointments", json=booking(), auth=PATIENT)
        assert response.status_code == 409
        assert response.json()["detail"] == "Time slot is not available"

    def test_invalid_booking_is_422(self, client):
        response = client.post(f"{API}/appointments", json=booking(reason="short"), auth=PATIENT)
        assert response.status_code == 422

    def test_unknown_doctor_is_404(self, client):
        response = client.post(f"{API}/appointments", json=booking(doctor_id="DOC404"), auth=PATIENT)
        assert response.status_code == 404

    def test_doctor_books_for_patient(self, client):
        payload = booking(slot="15:00-16:00")
        payload.pop("doctor_id")
        payload["patient_id"] = "PAT001"
        response = client.post(f"{API}/appointments", json=payload, auth=DOCTOR2)
        assert response.status_code == 201
        assert response.json()["doctor_id"] == "DOC002"

    def test_availability(self, client):
        day = future(14).isoformat()
        client.post(f"{API}/appointments", json=booking(), auth=PATIENT)
        response = client.get(f"{API}/appointments/availability/DOC001", params={"date": day}, auth=PATIENT)
        assert response.status_code == 200
        assert "09:00-10:00" not in response.json()["available_slots"]

        missing = client.get(f"{API}/appointments/availability/DOC404", params={"date": day}, auth=PATIENT)
        assert missing.status_code == 404
        bad = client.get(f"{API}/appointments/availability/DOC001", params={"date": "soon"}, auth=PATIENT)
        assert bad.status_code == 422

    def test_cancel_with_reason(self, client):
        response = client.post(f"{API}/appointments/APT001/cancel", json={"reason": "Feeling better"}, auth=PATIENT)
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert "Cancellation reason: Feeling better" in response.json()["notes"]

    def test_reject_and_reschedule(self, client):
        rejected = client.post(f"{API}/appointments/APT001/reject", json={"reason": "Doctor unavailable"}, auth=DOCTOR)
        assert rejected.json()["denial_reason"] == "Doctor unavailable"

        body = {"new_date": future(20).isoformat(), "new_time_slot": "14:00-15:00"}
        moved = client.post(f"{API}/appointments/APT002/reschedule", json=body, auth=PATIENT)
        assert moved.status_code == 200
        assert moved.json()["time_slot"] == "14:00-15:00"

    def test_listing_by_role_and_status(self, client):
        client.post(f"{API}/appointments/APT001/approve", auth=DOCTOR)
        assert [a["appointment_id"] for a in client.get(f"{API}/appointments", auth=DOCTOR).json()] == ["APT001"]
        assert len(client.get(f"{API}/appointments", auth=PATIENT).json()) == 3
        confirmed = client.get(f"{API}/appointments", params={"status": "confirmed"}, auth=ADMIN).json()
        assert [a["appointment_id"] for a in confirmed] == ["APT001"]

    def test_access_is_limited_to_parties(self, client):
        assert client.get(f"{API}/appointments/APT001", auth=DOCTOR2).status_code == 403
        assert client.post(f"{API}/appointments/APT001/approve", auth=DOCTOR2).status_code == 403
        assert client.post(f"{API}/appointments/APT001/approve", auth=PATIENT).status_code == 403
        assert client.get(f"{API}/appointments/APT001", auth=ADMIN).status_code == 200
        assert client.get(f"{API}/appointments/APT404", auth=ADMIN).status_code == 404

    def test_relaxed_cancel_after_complete(self, client):
        client.post(f"{API}/appointments/APT001/approve", auth=DOCTOR)
        client.post(f"{API}/appointments/APT001/complete", auth=DOCTOR)
        response = client.post(f"{API}/appointments/APT001/cancel", json={"reason": "late"}, auth=PATIENT)
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    def test_strict_cancel_after_complete(self, strict_settings):
        app = create_app(strict_settings.model_copy(update={"SEED_DEFAULTS": True}))
        with TestClient(app) as strict_client:
            strict_client.post(f"{API}/appointments/APT001/approve", auth=DOCTOR)
            strict_client.post(f"{API}/appointments/APT001/complete", auth=DOCTOR)
            response = strict_client.post(f"{API}/appointments/APT001/cancel", json={"reason": "late"}, auth=PATIENT)
            assert response.status_code == 409

class TestRecordEndpoints:

    def test_doctor_creates_record(self, client):
        payload = {"patient_id": "PAT001", "diagnosis": "Seasonal allergies", "prescription": "Antihistamine daily"}
        response = client.post(f"{API}/records/medical", json=payload, auth=DOCTOR2)
        assert response.status_code == 201
        assert response.json()["doctor_id"] == "DOC002"

        assert client.post(f"{API}/records/medical", json=payload, auth=PATIENT).status_code == 403

    def test_patient_sees_own_records(self, client):
        records = client.get(f"{API}/records/medical", auth=PATIENT).json()
        assert [r["record_id"] for r in records] == ["REC001", "REC002"]

    def test_refill(self, client):
        response = client.post(f"{API}/records/prescriptions/PRES001/refill", auth=PATIENT)
        assert response.json()["refills_remaining"] == 1

    def test_scans(self, client):
        response = client.post(f"{API}/records/scans", json={"file_path": "/scans/xray.png"}, auth=PATIENT)
        assert response.status_code == 201
        assert response.json()["patient_id"] == "PAT001"
        assert len(client.get(f"{API}/records/scans", auth=PATIENT).json()) == 1

class TestAdminEndpoints:

    def test_admin_only(self, client):
        assert client.get(f"{API}/admin/users", auth=DOCTOR).status_code == 403
        assert len(client.get(f"{API}/admin/users", auth=ADMIN).json()) == 5

    def test_register_doctor(self, client):
        payload = {
            "username": "drapi",
            "password": "Drapi1234",
            "full_name": "Dr. Api",
            "email": "drapi@example.com",
            "specialization": "Oncology",
            "license_number": "LIC777",
            "experience_years": 7,
        }
        response = client.post(f"{API}/admin/doctors", json=payload, auth=ADMIN)
        assert response.status_code == 201
        assert response.json()["entity_id"] == "DOC004"

    def test_deactivate(self, client):
        assert client.post(f"{API}/admin/users/admin/deactivate", auth=ADMIN).status_code == 409
        assert client.post(f"{API}/admin/users/doctor3/deactivate", auth=ADMIN).status_code == 200
        assert client.get(f"{API}/auth/me", auth=("doctor3", "Doctor123!")).status_code == 401

    def test_statistics_and_reports(self, client):
        stats = client.get(f"{API}/admin/statistics", auth=ADMIN).json()
        assert stats["appointments"]["total_appointments"] == 3
        assert client.get(f"{API}/admin/reports/summary", auth=ADMIN).json()["total_users"] == 5

        params = {"start": future(1).isoformat(), "end": future(3).isoformat()}
        ranged = client.get(f"{API}/admin/reports/appointments", params=params, auth=ADMIN).json()
        assert [a["appointment_id"] for a in ranged] == ["APT001", "APT003", "APT002"]

        assert client.get(f"{API}/admin/reports/doctors/DOC404", auth=ADMIN).status_code == 404

    def test_persistence_without_database(self, client):
        data = client.get(f"{API}/admin/persistence", auth=ADMIN).json()
        assert data == {"mirroring": False, "reachable": False, "mirror_failures": 0, "last_error": None}

    def test_reload_without_database_is_503(self, client):
        response = client.post(f"{API}/admin/persistence/reload", auth=ADMIN)
        assert response.status_code == 503
        assert response.json()["detail"] == "Backing store is disabled"

class TestWithDatabase:

    @pytest.fixture
    def db_client(self, db_settings):
        with TestClient(create_app(db_settings)) as test_client:
            yield test_client

    def test_persistence_reports_mirroring(self, db_client):
        data = db_client.get(f"{API}/admin/persistence", auth=ADMIN).json()
        assert data["mirroring"] is True
        assert data["reachable"] is True
        assert data["mirror_failures"] == 0

    def test_bookings_survive_restart(self, db_settings, db_client):
        created = db_client.post(f"{API}/appointments", json=booking(), auth=PATIENT)
        assert created.status_code == 201

        with TestClient(create_app(db_settings)) as restarted:
            response = restarted.get(f"{API}/appointments/{created.json()['appointment_id']}", auth=PATIENT)
            assert response.status_code == 200
            assert response.json()["time_slot"] == "09:00-10:00"

    def test_reload_picks_up_rows_written_elsewhere(self, db_settings, db_client):
        with TestClient(create_app(db_settings)) as other:
            created = other.post(f"{API}/appointments", json=booking(days=18), auth=PATIENT)
            assert created.status_code == 201
        appointment_id = created.json()["appointment_id"]

        assert db_client.get(f"{API}/appointments/{appointment_id}", auth=PATIENT).status_code == 404
        response = db_client.post(f"{API}/admin/persistence/reload", auth=ADMIN)
        assert response.status_code == 200
        assert response.json()["reloaded"] is True
        assert db_client.get(f"{API}/appointments/{appointment_id}", auth=PATIENT).status_code == 200
