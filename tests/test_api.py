"""
HTTP surface tests: routing, dependency wiring and the error envelope.
"""

import pytest
from conftest import actor_for
from fastapi.testclient import TestClient

from app.auth import get_current_actor
from app.database import get_db
from app.domain.appointments.router import get_appointment_service
from app.domain.appointments.service import AppointmentService
from app.main import app


@pytest.fixture
def current(customer):
    return {"actor": actor_for(customer)}


@pytest.fixture
def client(db_session, current, reservations, calendar, fee_service):
    def override_db():
        yield db_session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_actor] = lambda: current["actor"]
    app.dependency_overrides[get_appointment_service] = lambda: AppointmentService(
        db_session, reservations=reservations, calendar=calendar, fee_service=fee_service
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


BOOKING = {"type": "office", "date": "2030-01-07", "slotCode": "10:00", "purpose": "Railings"}


@pytest.mark.api
class TestAppointmentEndpoints:
    def test_slots_for_bookable_day(self, client):
        response = client.get("/appointments/slots", params={"date": "2030-01-07", "type": "office"})

        assert response.status_code == 200
        body = response.json()
        assert len(body["slots"]) == 7
        assert body["slots"][0]["slotCode"] == "09:00"
        assert all(slot["available"] for slot in body["slots"])

    def test_request_then_duplicate(self, client, customer):
        created = client.post("/appointments", json=BOOKING)
        assert created.status_code == 201
        assert created.json()["customer_id"] == customer.id
        assert created.json()["status"] == "requested"

        again = client.post("/appointments", json={**BOOKING, "slotCode": "11:00"})
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "DUPLICATE_ENTRY"

    def test_customer_cannot_confirm(self, client, sales_staff):
        appointment_id = client.post("/appointments", json=BOOKING).json()["id"]

        response = client.post(
            f"/appointments/{appointment_id}/confirm", json={"salesStaffId": sales_staff.id}
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    def test_agent_confirms(self, client, current, agent, sales_staff):
        appointment_id = client.post("/appointments", json=BOOKING).json()["id"]
        current["actor"] = actor_for(agent)

        response = client.post(
            f"/appointments/{appointment_id}/confirm", json={"salesStaffId": sales_staff.id}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        assert response.json()["sales_staff_id"] == sales_staff.id

    def test_invalid_body_uses_error_envelope(self, client):
        response = client.post("/appointments", json={**BOOKING, "slotCode": "25:00"})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["errors"]


@pytest.mark.api
class TestMisc:
    def test_missing_project(self, client):
        response = client.get("/projects/9999")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
