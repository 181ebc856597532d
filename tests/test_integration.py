import json
from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

from slot_scheduler import app as app_module
from slot_scheduler.graph_manager import GraphManager
from slot_scheduler.mock_client import MockApiClient
from slot_scheduler.models import AppointmentStatus

NOW = datetime(2024, 1, 3, 10, 5)
TOKEN = "patient-1-token"


@pytest.fixture
def mock_client():
    """Create a MockApiClient instance for testing."""
    return MockApiClient()


@pytest.fixture
def client(monkeypatch, mock_client):
    """Create a FastAPI TestClient backed by a fixed-clock GraphManager."""
    monkeypatch.setattr(app_module, "graph_manager", GraphManager(api=mock_client, clock=lambda: NOW))
    return TestClient(app_module.app)


def _send(websocket, thread_id, action, payload=None, token=TOKEN):
    websocket.send_text(json.dumps({
        "thread_id": thread_id,
        "token": token,
        "action": action,
        "payload": payload or {},
    }))
    return json.loads(websocket.receive_text())


def test_e2e_complete_flow(client, mock_client):
    """Test a complete end-to-end booking through the WebSocket API."""
    thread_id = "e2e_complete_flow"

    with client.websocket_connect("/ws") as websocket:
        response = _send(websocket, thread_id, "start")
        assert "clinic" in response["message"].lower()

        response = _send(websocket, thread_id, "select_clinic", {"clinic_id": 2})
        assert "doctor" in response["message"].lower()

        _send(websocket, thread_id, "select_doctor", {"doctor_id": 20})
        response = _send(websocket, thread_id, "select_date", {"date": "2024-01-08"})
        assert len(response["view"]["hour_groups"]) == 8

        response = _send(websocket, thread_id, "select_time", {"time": "14:40"})
        assert response["phase"] == "SLOT_CHOSEN"

        response = _send(websocket, thread_id, "describe", {"description": "Skin check"})
        assert response["view"]["description"] == "Skin check"

        response = _send(websocket, thread_id, "submit")
        assert response["phase"] == "SUBMITTED"
        assert "booked" in response["message"].lower()

    [booked] = mock_client.get_doctor_appointments(20, date(2024, 1, 8))
    assert booked.slot == "14:40"
    assert booked.description == "Skin check"


def test_booked_slot_shows_as_disabled_for_next_patient(client):
    with client.websocket_connect("/ws") as websocket:
        for action, payload in [
            ("select_clinic", {"clinic_id": 2}),
            ("select_doctor", {"doctor_id": 20}),
            ("select_date", {"date": "2024-01-08"}),
            ("select_time", {"time": "14:40"}),
            ("submit", None),
        ]:
            _send(websocket, "first_patient", action, payload)

        for action, payload in [
            ("select_clinic", {"clinic_id": 2}),
            ("select_doctor", {"doctor_id": 20}),
        ]:
            _send(websocket, "second_patient", action, payload, token="patient-2-token")
        response = _send(
            websocket, "second_patient", "select_date", {"date": "2024-01-08"}, token="patient-2-token"
        )

    slots = {s["time"]: s["disabled"] for g in response["view"]["hour_groups"] for s in g["slots"]}
    assert slots["14:40"] is True
    assert slots["14:20"] is False


def test_replace_flow_over_websocket(client, mock_client):
    old = mock_client.add_appointment(
        doctor_id=20, patient_id=1, clinic="Dermatology", day=date(2024, 1, 10), time="09:00:00"
    )

    with client.websocket_connect("/ws") as websocket:
        for action, payload in [
            ("select_clinic", {"clinic_id": 2}),
            ("select_doctor", {"doctor_id": 20}),
            ("select_date", {"date": "2024-01-08"}),
            ("select_time", {"time": "10:00"}),
        ]:
            _send(websocket, "replace_flow", action, payload)

        response = _send(websocket, "replace_flow", "submit")
        assert response["phase"] == "AWAITING_CONFIRMATION"

        response = _send(websocket, "replace_flow", "confirm")
        assert response["phase"] == "SUBMITTED"

    statuses = {a.id: a.status for a in mock_client.get_patient_appointments(1)}
    assert statuses[old.id] is AppointmentStatus.CANCELLED


def test_mock_client_integration():
    """Test integration with the MockApiClient."""
    mock = MockApiClient()

    clinics = mock.get_clinics()
    assert len(clinics) > 0
    assert any(not c.is_active for c in clinics)

    doctors = mock.get_doctors(1)
    assert len(doctors) > 0
    assert mock.get_doctors(99) == []

    assert mock.get_current_user(TOKEN).id == 1
    assert mock.get_patient_appointments(1) == []


def test_session_persistence(client):
    """Test that the session state persists between connections."""
    thread_id = "persistence_session_test"

    with client.websocket_connect("/ws") as websocket:
        first_response = _send(websocket, thread_id, "select_clinic", {"clinic_id": 1})
        assert "doctor" in first_response["message"].lower()

    with client.websocket_connect("/ws") as websocket:
        second_response = _send(websocket, thread_id, "view")

        assert second_response["view"]["clinic_id"] == 1
        assert "doctor" in second_response["message"].lower()


def test_slots_endpoint_uses_scheduler_clock(client):
    """'Past' is judged by the scheduler's clock, not the host's date."""
    assert client.get("/slots/2024-01-02").status_code == 400

    response = client.get("/slots/2024-01-04")
    assert response.status_code == 200
    assert response.json()["hour_groups"][0]["slots"] == ["08:00", "08:20", "08:40"]
