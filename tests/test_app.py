import json
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from slot_scheduler.app import app


@pytest.fixture
def client():
    """Create a FastAPI TestClient for testing the API."""
    return TestClient(app)


def _next_weekday(weekday: int) -> date:
    today = date.today()
    return today + timedelta(days=(weekday - today.weekday()) % 7 or 7)


def test_root_endpoint(client):
    """Test the root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert "message" in response.json()


def test_slots_endpoint(client):
    monday = _next_weekday(0)
    response = client.get(f"/slots/{monday.isoformat()}")

    assert response.status_code == 200
    body = response.json()
    assert body["date"] == monday.isoformat()
    assert body["hour_groups"][0] == {"hour": "8:00", "slots": ["08:00", "08:20", "08:40"]}
    assert "12:00" not in [g["hour"] for g in body["hour_groups"]]


def test_slots_endpoint_weekend_and_past(client):
    saturday = _next_weekday(5)
    assert client.get(f"/slots/{saturday.isoformat()}").json()["hour_groups"] == []

    yesterday = date.today() - timedelta(days=1)
    assert client.get(f"/slots/{yesterday.isoformat()}").status_code == 400
    assert client.get("/slots/not-a-date").status_code == 422


def test_websocket_contract(client):
    """Test the WebSocket contract with proper JSON message shape."""
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text(json.dumps({
            "thread_id": "test_websocket_contract",
            "token": "patient-1-token",
            "action": "select_clinic",
            "payload": {"clinic_id": 1},
        }))

        response_data = json.loads(websocket.receive_text())

        assert response_data["thread_id"] == "test_websocket_contract"
        assert response_data["phase"] == "IDLE"
        assert "doctor" in response_data["message"].lower()
        assert response_data["view"]["clinic_id"] == 1


def test_error_handling(client):
    """Test error handling for malformed messages."""
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text(json.dumps({"action": "start"}))

        response_data = json.loads(websocket.receive_text())

        assert "error" in response_data
        assert "missing" in response_data["error"].lower()
