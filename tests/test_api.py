"""
Tests for the HTTP API and the seating canvas WebSocket
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from starlette.websockets import WebSocketDisconnect

from app.core.config import settings
from app.core.db import Base, get_db, get_session_factory
from app.services.seating_service import SeatingService
from app.utils.security import rate_limiter
from main import app

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_api.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN_HEADERS = {"Authorization": f"Bearer {settings.ADMIN_TOKEN}"}

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def client():
    """Test client backed by a throwaway database"""
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    rate_limiter.clear()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)

def create_guest(client, first_name="Anna", phone="+972501111111", party_size=2, language="he"):
    response = client.post("/admin/guests", headers=ADMIN_HEADERS, json={
        "first_name": first_name,
        "last_name": "Levi",
        "phone": phone,
        "party_size": party_size,
        "language": language,
    })
    assert response.status_code == 201
    return response.json()["data"]

def add_table(client, **fields):
    response = client.post("/admin/seating/tables", headers=ADMIN_HEADERS, json=fields)
    assert response.status_code == 201
    return response.json()["data"]["tables"][-1]

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

def test_admin_requires_token(client):
    assert client.get("/admin/guests").status_code in (401, 403)

    response = client.get("/admin/guests", headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401

def test_guest_crud_and_reason_codes(client):
    guest = create_guest(client)

    duplicate = client.post("/admin/guests", headers=ADMIN_HEADERS, json={
        "first_name": "Other", "last_name": "Guest", "phone": guest["phone"], "language": "ru",
    })
    assert duplicate.status_code == 409
    assert duplicate.json()["error_code"] == "duplicate-phone"

    response = client.patch(f"/admin/guests/{guest['id']}", headers=ADMIN_HEADERS, json={"party_size": 5})
    assert response.status_code == 200
    assert response.json()["data"]["party_size"] == 5
    assert response.json()["data"]["first_name"] == "Anna"

    missing = client.get("/admin/guests/nope", headers=ADMIN_HEADERS)
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "guest-not-found"

    deleted = client.delete(f"/admin/guests/{guest['id']}", headers=ADMIN_HEADERS)
    assert deleted.json()["data"]["removed"] is True
    again = client.delete(f"/admin/guests/{guest['id']}", headers=ADMIN_HEADERS)
    assert again.status_code == 200
    assert again.json()["data"]["removed"] is False

def test_guest_list_with_filters_and_stats(client):
    anna = create_guest(client)
    create_guest(client, first_name="Ivan", phone="+79161234567", party_size=1, language="ru")
    client.post(f"/admin/guests/{anna['id']}/invite-sent", headers=ADMIN_HEADERS)

    response = client.get("/admin/guests", headers=ADMIN_HEADERS, params={"status": "invited"})
    data = response.json()["data"]
    assert [guest["id"] for guest in data["guests"]] == [anna["id"]]
    assert data["stats"]["total"] == 2
    assert data["stats"]["invited"] == 1

    bad = client.get("/admin/guests", headers=ADMIN_HEADERS, params={"status": "maybe"})
    assert bad.status_code == 422
    assert bad.json()["error_code"] == "invalid-filter"

def test_invite_links(client):
    guest = create_guest(client)

    response = client.get(f"/admin/guests/{guest['id']}/invite", headers=ADMIN_HEADERS)
    data = response.json()["data"]
    assert data["invite_url"].endswith(f"/guest/invite/{guest['id']}")
    assert data["whatsapp_url"].startswith("https://wa.me/972501111111?text=")

    qr = client.get(f"/admin/guests/{guest['id']}/qr.png", headers=ADMIN_HEADERS)
    assert qr.status_code == 200
    assert qr.headers["content-type"] == "image/png"

def test_guest_rsvp_flow(client):
    guest = create_guest(client, party_size=1)

    invite = client.get(f"/guest/invite/{guest['id']}").json()["data"]
    assert invite["has_response"] is False
    assert "phone" not in invite

    response = client.post(f"/guest/invite/{guest['id']}/rsvp", json={"party_size": 3, "attending": "yes"})
    assert response.status_code == 200
    assert response.json()["data"] == {"guest_id": guest["id"], "attending": True, "party_size": 3}

    missing = client.post("/guest/invite/nope/rsvp", json={"party_size": 1, "attending": "no"})
    assert missing.status_code == 404

def test_rsvp_rate_limited(client, monkeypatch):
    guest = create_guest(client)
    monkeypatch.setattr(settings, "RATE_LIMIT_PER_MINUTE", 1)

    first = client.post(f"/guest/invite/{guest['id']}/rsvp", json={"party_size": 1, "attending": "yes"})
    second = client.post(f"/guest/invite/{guest['id']}/rsvp", json={"party_size": 1, "attending": "yes"})

    assert first.status_code == 200
    assert second.status_code == 429

def test_seating_assignment_reason_codes(client):
    big = create_guest(client, party_size=3)
    small = create_guest(client, first_name="Ivan", phone="+79161234567", party_size=2, language="ru")
    table = add_table(client, label="Family", capacity=4)

    seated = client.post(
        f"/admin/seating/tables/{table['id']}/guests", headers=ADMIN_HEADERS, json={"guest_id": big["id"]}
    )
    assert seated.status_code == 200

    full = client.post(
        f"/admin/seating/tables/{table['id']}/guests", headers=ADMIN_HEADERS, json={"guest_id": small["id"]}
    )
    assert full.status_code == 409
    assert full.json()["error_code"] == "table-capacity"
    assert full.json()["details"]["occupied_seats"] == 3

    unknown = client.post(
        "/admin/seating/tables/nope/guests", headers=ADMIN_HEADERS, json={"guest_id": small["id"]}
    )
    assert unknown.status_code == 404
    assert unknown.json()["error_code"] == "unknown-table"

    overview = client.get("/admin/seating", headers=ADMIN_HEADERS).json()["data"]
    assert overview["assigned_seat_count"] == 3
    assert overview["unassigned_seat_count"] == 2
    assert overview["tables"][0]["remaining_seats"] == 1
    assert [guest["id"] for guest in overview["unassigned_guests"]] == [small["id"]]

    response = client.delete(f"/admin/seating/tables/{table['id']}/guests/{big['id']}", headers=ADMIN_HEADERS)
    assert response.json()["data"]["tables"][0]["guest_ids"] == []

def test_plan_details_and_table_edits(client):
    invalid = client.put("/admin/seating", headers=ADMIN_HEADERS, json={"name": " ", "width": 900, "height": 600})
    assert invalid.status_code == 422
    assert invalid.json()["error_code"] == "invalid-plan"

    plan = client.put("/admin/seating", headers=ADMIN_HEADERS, json={"name": "Garden", "width": 900, "height": 100})
    assert plan.json()["data"]["height"] == 200

    table = add_table(client)
    assert table["label"] == "Table 1"
    assert table["x"] == 450

    edited = client.patch(
        f"/admin/seating/tables/{table['id']}", headers=ADMIN_HEADERS, json={"capacity": 50, "type": "rect"}
    )
    assert edited.json()["data"]["tables"][0]["capacity"] == 30
    assert edited.json()["data"]["tables"][0]["type"] == "rect"

    moved = client.post(f"/admin/seating/tables/{table['id']}/move", headers=ADMIN_HEADERS, json={"x": 1000.4, "y": 10.6})
    assert moved.json()["data"]["tables"][0]["x"] == 900
    assert moved.json()["data"]["tables"][0]["y"] == 11

    removed = client.delete(f"/admin/seating/tables/{table['id']}", headers=ADMIN_HEADERS)
    assert removed.json()["data"]["tables"] == []

    missing = client.delete(f"/admin/seating/tables/{table['id']}", headers=ADMIN_HEADERS)
    assert missing.status_code == 404

def test_canvas_websocket_drag(client):
    table = add_table(client, x=600, y=400)
    rect = {"left": 0, "top": 0, "width": 600, "height": 400}

    with client.websocket_connect(f"/ws/plans/{settings.DEFAULT_PLAN_SLUG}?token={settings.ADMIN_TOKEN}") as websocket:
        hello = websocket.receive_json()
        assert hello["type"] == "connection"
        assert hello["plan"]["tables"][0]["id"] == table["id"]

        websocket.send_json({
            "type": "pointerdown", "table_id": table["id"], "pointer_id": 1,
            "client_x": 300, "client_y": 200, "rect": rect,
        })
        assert websocket.receive_json() == {"type": "drag_started", "table_id": table["id"]}

        websocket.send_json({"type": "pointermove", "pointer_id": 1, "client_x": 350, "client_y": 250, "rect": rect})
        preview = websocket.receive_json()
        assert preview == {"type": "table_preview", "table_id": table["id"], "x": 700, "y": 500}

        websocket.send_json({"type": "pointerup", "pointer_id": 1, "client_x": 350, "client_y": 250})
        update = websocket.receive_json()
        assert update["type"] == "plan_updated"
        assert update["plan"]["tables"][0]["x"] == 700
        assert update["plan"]["tables"][0]["y"] == 500

        websocket.send_json({"type": "pointerdown", "table_id": "nope", "pointer_id": 2,
                             "client_x": 0, "client_y": 0, "rect": rect})
        assert websocket.receive_json()["type"] == "drag_rejected"

        websocket.send_json({"type": "pointermove"})
        assert websocket.receive_json()["type"] == "error"

    stored = client.get("/admin/seating", headers=ADMIN_HEADERS).json()["data"]["plan"]
    assert stored["tables"][0]["x"] == 700

def test_canvas_websocket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/ws/plans/{settings.DEFAULT_PLAN_SLUG}?token=wrong") as websocket:
            websocket.receive_json()

def test_canvas_websocket_recovers_after_failed_commit(client, monkeypatch):
    """A storage error on one drag is reported and the next drag still saves"""
    table = add_table(client, x=600, y=400)
    rect = {"left": 0, "top": 0, "width": 600, "height": 400}
    real_move = SeatingService.move_table_position
    calls = {"count": 0}

    def flaky_move(db, table_id, x, y, slug=None):
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("database unavailable")
        return real_move(db, table_id, x, y, slug)

    monkeypatch.setattr(SeatingService, "move_table_position", staticmethod(flaky_move))

    def drag(websocket, pointer_id, client_x, client_y):
        websocket.send_json({
            "type": "pointerdown", "table_id": table["id"], "pointer_id": pointer_id,
            "client_x": 300, "client_y": 200, "rect": rect,
        })
        assert websocket.receive_json()["type"] == "drag_started"
        websocket.send_json({"type": "pointermove", "pointer_id": pointer_id,
                             "client_x": client_x, "client_y": client_y, "rect": rect})
        assert websocket.receive_json()["type"] == "table_preview"
        websocket.send_json({"type": "pointerup", "pointer_id": pointer_id,
                             "client_x": client_x, "client_y": client_y})
        return websocket.receive_json()

    with client.websocket_connect(f"/ws/plans/{settings.DEFAULT_PLAN_SLUG}?token={settings.ADMIN_TOKEN}") as websocket:
        websocket.receive_json()

        failed = drag(websocket, 1, 350, 250)
        assert failed["type"] == "move_failed"
        assert failed["error"] == "database unavailable"
        assert failed["plan"]["tables"][0]["x"] == 600

        saved = drag(websocket, 2, 250, 150)
        assert saved["type"] == "plan_updated"
        assert saved["plan"]["tables"][0]["x"] == 500
        assert saved["plan"]["tables"][0]["y"] == 300

    assert calls["count"] == 2
    stored = client.get("/admin/seating", headers=ADMIN_HEADERS).json()["data"]["plan"]
    assert (stored["tables"][0]["x"], stored["tables"][0]["y"]) == (500, 300)
