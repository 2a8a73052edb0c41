"""
Tests for the demo HTTP API.

These tests drive one in-process client state through the FastAPI endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from api.main import app


@pytest.fixture
def api_client():
    """Test client with the lifespan running, so the app state exists."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def logged_in(api_client):
    response = api_client.post("/session/login", json={"user_id": "user-api", "points": 100})
    assert response.status_code == 200
    return api_client


class TestHealthEndpoint:

    def test_health_check(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestSession:
    """Tests for login and logout."""

    def test_login_seeds_unknown_user(self, api_client):
        response = api_client.post("/session/login", json={"user_id": "user-new", "points": 40})

        assert response.status_code == 200
        assert response.json()["points"] == 40

    def test_resume_without_remembered_session_is_404(self, api_client):
        assert api_client.post("/session/resume").status_code == 404

    def test_resume_remembered_session(self, api_client):
        api_client.post("/session/login", json={"user_id": "user-kept", "points": 60, "remember_me": True})

        response = api_client.post("/session/resume")

        assert response.status_code == 200
        assert response.json()["user_id"] == "user-kept"
        assert response.json()["points"] == 60

    def test_protected_endpoints_require_session(self, api_client):
        assert api_client.post("/points/add", json={"delta": 5}).status_code == 401
        assert api_client.post("/cart/items", json={"id": "r1", "points_required": 5}).status_code == 401

    def test_logout_clears_state(self, logged_in):
        logged_in.post("/points/add", json={"delta": 5, "description": "scan"})

        response = logged_in.post("/session/logout")

        assert response.json() == {"logged_in": False}
        assert logged_in.get("/state").json()["user_id"] is None


class TestPointsEndpoints:

    def test_add_points(self, logged_in):
        response = logged_in.post("/points/add", json={"delta": 25, "description": "quiz"})

        assert response.json() == {"ok": True, "points": 125}
        assert logged_in.get("/state").json()["scan_history"][0]["points"] == 25

    def test_redeem_beyond_balance_rejected(self, logged_in):
        response = logged_in.post("/points/redeem", json={"delta": 500})

        assert response.json() == {"ok": False, "points": 100}

    def test_non_positive_delta_is_validation_error(self, logged_in):
        assert logged_in.post("/points/add", json={"delta": 0}).status_code == 422


class TestPreferenceEndpoints:

    def test_toggle_team(self, logged_in):
        response = logged_in.post("/preferences/teams/team-owls/toggle")

        assert response.json()["favorite_teams"] == ["team-owls"]

    def test_set_notification_switch(self, logged_in):
        response = logged_in.put("/preferences/notifications/email_notifications", json={"enabled": False})

        assert response.json()["email_notifications"] is False

    def test_unknown_switch_is_404(self, logged_in):
        response = logged_in.put("/preferences/notifications/bogus", json={"enabled": True})

        assert response.status_code == 404


class TestCartEndpoints:

    def test_cart_flow(self, logged_in):
        item = {"id": "reward-cap", "title": "Cap", "points_required": 30}

        logged_in.post("/cart/items", json=item)
        body = logged_in.post("/cart/items", json=item).json()
        assert body["total_items"] == 2
        assert body["total_points"] == 60

        body = logged_in.post("/cart/items/reward-cap/remove-one").json()
        assert body["total_items"] == 1

        body = logged_in.put("/cart/items/reward-cap", json={"quantity": 0}).json()
        assert body["items"] == []

    def test_clear_cart(self, logged_in):
        logged_in.post("/cart/items", json={"id": "reward-cap", "points_required": 30})

        body = logged_in.delete("/cart").json()

        assert body["items"] == []
        assert body["total_points"] == 0


class TestRealtimeEndpoints:

    def test_status_after_login(self, logged_in):
        body = logged_in.get("/realtime").json()

        assert body["is_connected"] is True
        assert body["connection_status"]["points_changes_user-api"] == "subscribed"

    def test_broadcast_reaches_inbox(self, logged_in):
        response = logged_in.post("/realtime/broadcast", json={
            "domain": "rewards",
            "kind": "INSERT",
            "payload": {"new": {"title": "Signed Ball"}},
        })

        assert response.json()["delivered"] >= 1
        inbox = logged_in.get("/notifications").json()["inbox"]
        assert inbox[0]["title"] == "New Reward Available!"

    def test_points_broadcast_without_session_is_400(self, api_client):
        response = api_client.post("/realtime/broadcast", json={
            "domain": "points",
            "kind": "INSERT",
        })

        assert response.status_code == 400


class TestNotificationEndpoints:

    def test_show_toast(self, api_client):
        response = api_client.post("/notifications/toasts", json={
            "type": "success",
            "title": "Saved",
            "persistent": True,
        })
        toast_id = response.json()["id"]

        toasts = api_client.get("/notifications").json()["toasts"]
        assert [t["id"] for t in toasts] == [toast_id]

    def test_invalid_toast_type_is_422(self, api_client):
        response = api_client.post("/notifications/toasts", json={"type": "loud", "title": "x"})

        assert response.status_code == 422

    def test_mark_all_read(self, logged_in):
        logged_in.post("/realtime/broadcast", json={
            "domain": "stories",
            "kind": "INSERT",
            "payload": {"new": {"title": "Trade"}},
        })

        assert logged_in.get("/notifications").json()["unread_count"] == 1
        assert logged_in.post("/notifications/inbox/read-all").json() == {"unread_count": 0}
