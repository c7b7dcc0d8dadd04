"""
Integration tests for the FastAPI backend.
Tests API endpoints with an in-memory database.
"""
from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import make_incident, make_warning
from snowshield.db import get_db
from snowshield.config_loader import Settings
from snowshield.main import app, get_app_settings, get_storage, get_weather_client
from snowshield.services import users
from snowshield.storage.local_storage import LocalPhotoStorage
from snowshield.timeutils import utcnow
from snowshield.weather.openweather_client import WeatherClient

client = TestClient(app)

WEATHER_PAYLOAD = {
    "name": "Aspen",
    "sys": {"country": "US"},
    "main": {"temp": 275.15, "feels_like": 272.15, "humidity": 85},
    "wind": {"speed": 3.0},
    "weather": [{"description": "light snow", "icon": "13d"}],
    "dt": 1705276800,
}


def weather_handler(request):
    if request.url.params.get("q") == "Atlantis":
        return httpx.Response(404, json={"message": "city not found"})
    return httpx.Response(200, json=WEATHER_PAYLOAD)


@pytest.fixture(autouse=True)
def overrides(session_factory, tmp_path):
    """Point the app at the test database, a temp media root and a mocked weather API."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: LocalPhotoStorage(str(tmp_path), "/media")
    app.dependency_overrides[get_weather_client] = lambda: WeatherClient(
        api_key="test-key",
        base_url="https://weather.test/data/2.5",
        transport=httpx.MockTransport(weather_handler),
    )
    yield
    app.dependency_overrides.clear()


def signup(email="user@example.com", pincode="12345"):
    response = client.post("/api/auth/signup", json={
        "email": email,
        "password": "secret-pass",
        "name": email.split("@")[0],
        "pincode": pincode,
    })
    assert response.status_code == 201, response.text
    return response.json()


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def user_with_role(db, role, email=None, pincode="12345"):
    data = signup(email or f"{role}@example.com", pincode)
    users.set_user_type(db, data["profile"]["id"], role)
    return auth(data["token"])


class TestHealthEndpoint:
    """Test the root health check endpoint."""

    def test_health_check(self):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "Snow Shield Backend"
        assert "version" in data
        assert data["status"] == "operational"


class TestAuthEndpoints:
    """Sign-up, sign-in, profile."""

    def test_signup_returns_profile(self):
        data = signup()
        assert data["profile"]["userType"] == "user"
        assert data["profile"]["pincode"] == "12345"

    def test_duplicate_signup_message(self):
        signup()
        response = client.post("/api/auth/signup", json={
            "email": "user@example.com", "password": "secret-pass", "name": "x", "pincode": "1",
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "This email is already in use. Please use another email."

    def test_login_bad_password(self):
        signup()
        response = client.post("/api/auth/login", json={"email": "user@example.com", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password. Please try again."

    def test_requires_token(self):
        response = client.get("/api/incidents")
        assert response.status_code == 401
        assert response.json()["detail"] == "You need to be logged in to perform this action."

    def test_logout(self):
        token = signup()["token"]
        assert client.post("/api/auth/logout", headers=auth(token)).status_code == 200
        assert client.get("/api/profile", headers=auth(token)).status_code == 401

    def test_update_profile(self):
        token = signup()["token"]
        response = client.put("/api/profile", json={"pincode": "67890"}, headers=auth(token))
        assert response.status_code == 200
        assert response.json()["pincode"] == "67890"

    def test_role_change_requires_admin(self, db):
        data = signup()
        response = client.put(
            f"/api/users/{data['profile']['id']}/role",
            json={"userType": "admin"},
            headers=auth(data["token"]),
        )
        assert response.status_code == 403

    def test_admin_changes_role(self, db):
        admin = user_with_role(db, "admin")
        target = signup("rescuer@example.com")
        response = client.put(
            f"/api/users/{target['profile']['id']}/role",
            json={"userType": "rescueTeam"},
            headers=admin,
        )
        assert response.status_code == 200
        assert response.json()["userType"] == "rescueTeam"


class TestIncidentsEndpoint:
    """Reporting and listing incidents."""

    def test_report_with_photos(self, tmp_path):
        token = signup()["token"]
        response = client.post(
            "/api/incidents",
            data={"type": "regular", "title": "Slide", "description": "Slide near lift 3", "pincode": "12345"},
            files=[
                ("photos", ("a.jpg", b"jpeg-bytes", "image/jpeg")),
                ("photos", ("b.png", b"png-bytes", "image/png")),
            ],
            headers=auth(token),
        )
        assert response.status_code == 201, response.text
        incident_id = response.json()["id"]

        detail = client.get(f"/api/incidents/{incident_id}", headers=auth(token)).json()
        assert len(detail["photos"]) == 2
        assert detail["photos"][0].startswith("/media/incidents/")
        assert detail["photos"][0].endswith("_a.jpg")
        assert len(list((tmp_path / "incidents").iterdir())) == 2

    def test_report_invalid_type(self, tmp_path):
        token = signup()["token"]
        response = client.post(
            "/api/incidents",
            data={"type": "invalid", "title": "t", "description": "d", "pincode": "12345"},
            files=[("photos", ("a.jpg", b"jpeg-bytes", "image/jpeg"))],
            headers=auth(token),
        )
        assert response.status_code == 400
        assert not (tmp_path / "incidents").exists()
        assert client.get("/api/incidents", headers=auth(token)).json()["incidents"] == []

    def test_report_rejects_gif(self):
        token = signup()["token"]
        response = client.post(
            "/api/incidents",
            data={"title": "t", "description": "d", "pincode": "12345"},
            files=[("photos", ("a.gif", b"gif", "image/gif"))],
            headers=auth(token),
        )
        assert response.status_code == 400
        assert "JPEG or PNG" in response.json()["detail"]

    def test_report_too_many_photos(self, tmp_path):
        token = signup()["token"]
        files = [("photos", (f"p{n}.jpg", b"jpeg-bytes", "image/jpeg")) for n in range(6)]
        response = client.post(
            "/api/incidents",
            data={"title": "t", "description": "d", "pincode": "12345"},
            files=files,
            headers=auth(token),
        )
        assert response.status_code == 400
        assert "At most 5" in response.json()["detail"]
        assert not (tmp_path / "incidents").exists()

    def test_report_oversized_photo(self, tmp_path):
        """A photo past the size limit is rejected before anything is stored."""
        app.dependency_overrides[get_app_settings] = lambda: Settings(max_photo_bytes=4)
        token = signup()["token"]
        response = client.post(
            "/api/incidents",
            data={"title": "t", "description": "d", "pincode": "12345"},
            files=[("photos", ("big.jpg", b"0123456789", "image/jpeg"))],
            headers=auth(token),
        )
        assert response.status_code == 400
        assert "big.jpg" in response.json()["detail"]
        assert not (tmp_path / "incidents").exists()
        assert client.get("/api/incidents", headers=auth(token)).json()["incidents"] == []

    def test_list_hides_sos_from_users(self, db):
        make_incident(db, "regular-1", minutes=-1)
        make_incident(db, "sos-1", type="SOS", minutes=-5)
        token = signup()["token"]

        data = client.get("/api/incidents", headers=auth(token)).json()
        assert [i["id"] for i in data["incidents"]] == ["regular-1"]

    def test_list_for_admin_sos_first(self, db):
        make_incident(db, "regular-1", minutes=-1)
        make_incident(db, "sos-1", type="SOS", minutes=-5)
        admin = user_with_role(db, "admin")

        data = client.get("/api/incidents", headers=admin).json()
        assert [i["id"] for i in data["incidents"]] == ["sos-1", "regular-1"]

    def test_list_by_pincode(self, db):
        make_incident(db, "a", pincode="12345")
        make_incident(db, "b", pincode="99999")
        token = signup()["token"]

        data = client.get("/api/incidents?pincode=99999", headers=auth(token)).json()
        assert [i["id"] for i in data["incidents"]] == ["b"]

    def test_search(self, db):
        make_incident(db, "a", title="Avalanche on ridge")
        make_incident(db, "b", title="Icy road")
        token = signup()["token"]

        data = client.get("/api/incidents?q=avalanche", headers=auth(token)).json()
        assert [i["id"] for i in data["incidents"]] == ["a"]

    def test_get_missing(self):
        token = signup()["token"]
        assert client.get("/api/incidents/nope", headers=auth(token)).status_code == 404

    def test_user_cannot_open_others_sos(self, db):
        make_incident(db, "sos-1", type="SOS", reported_by="someone-else")
        token = signup()["token"]
        assert client.get("/api/incidents/sos-1", headers=auth(token)).status_code == 403

    def test_patch_by_reporter(self):
        token = signup()["token"]
        created = client.post(
            "/api/incidents",
            data={"title": "Slide", "description": "d", "pincode": "12345"},
            headers=auth(token),
        ).json()
        response = client.patch(
            f"/api/incidents/{created['id']}", json={"riskLevel": "High"}, headers=auth(token),
        )
        assert response.status_code == 200
        detail = client.get(f"/api/incidents/{created['id']}", headers=auth(token)).json()
        assert detail["riskLevel"] == "High"
        assert detail["riskColor"] == "danger"
        assert detail["updatedAt"] is not None

    def test_patch_by_stranger(self, db):
        make_incident(db, "a", reported_by="someone-else")
        token = signup()["token"]
        response = client.patch("/api/incidents/a", json={"title": "x"}, headers=auth(token))
        assert response.status_code == 403

    def test_delete_requires_admin(self, db):
        make_incident(db, "a")
        token = signup()["token"]
        assert client.delete("/api/incidents/a", headers=auth(token)).status_code == 403

        admin = user_with_role(db, "admin")
        response = client.delete("/api/incidents/a", headers=admin)
        assert response.json() == {"success": True}


class TestAlertsAndDashboard:
    """Alerts page modes and the home dashboard."""

    def test_alerts_local(self, db):
        make_incident(db, "a", pincode="12345")
        make_incident(db, "b", pincode="99999")
        token = signup()["token"]

        data = client.get("/api/alerts?mode=local", headers=auth(token)).json()
        assert data["pincode"] == "12345"
        assert [i["id"] for i in data["incidents"]] == ["a"]

    def test_alerts_default_to_local_with_pincode(self, db):
        make_incident(db, "a", pincode="12345")
        make_incident(db, "b", pincode="99999")
        token = signup()["token"]

        data = client.get("/api/alerts", headers=auth(token)).json()
        assert data["mode"] == "local"
        assert [i["id"] for i in data["incidents"]] == ["a"]

    def test_alerts_default_to_all_without_pincode(self, db):
        make_incident(db, "a", pincode="12345")
        make_incident(db, "b", pincode="99999", minutes=-1)
        data = signup()
        users.get_profile(db, data["profile"]["id"]).pincode = None
        db.commit()

        response = client.get("/api/alerts", headers=auth(data["token"])).json()
        assert response["mode"] == "all"
        assert [i["id"] for i in response["incidents"]] == ["a", "b"]

    def test_alerts_local_empty_message(self, db):
        make_incident(db, "b", pincode="99999")
        token = signup()["token"]
        data = client.get("/api/alerts?mode=local&pincode=55555", headers=auth(token)).json()
        assert data["incidents"] == []
        assert data["message"] == "No incidents found for pincode 55555"

    def test_alerts_sos_mode_forbidden_for_users(self):
        token = signup()["token"]
        assert client.get("/api/alerts?mode=sos", headers=auth(token)).status_code == 403

    def test_alerts_unknown_mode(self):
        token = signup()["token"]
        assert client.get("/api/alerts?mode=nearby", headers=auth(token)).status_code == 400

    def test_dashboard(self, db):
        make_incident(db, "local", pincode="12345", minutes=-2)
        make_incident(db, "far", pincode="99999", minutes=-1)
        make_incident(db, "sos", type="SOS", pincode="12345")
        make_warning(db, "w-active", ["12345"])
        make_warning(db, "w-expired", ["12345"], expiry=utcnow() - timedelta(hours=1))
        make_warning(db, "w-other", ["99999"])
        token = signup()["token"]

        data = client.get("/api/dashboard", headers=auth(token)).json()
        assert [i["id"] for i in data["incidents"]] == ["far", "local"]
        assert [i["id"] for i in data["nearYou"]] == ["local"]
        assert [w["id"] for w in data["warnings"]] == ["w-active"]


class TestSOSEndpoints:
    """Dedicated SOS list and resolution."""

    def test_rescue_team_sees_sos(self, db):
        make_incident(db, "sos-1", type="SOS", minutes=-5)
        make_incident(db, "sos-2", type="SOS", is_active=False)
        make_incident(db, "regular-1")
        rescuer = user_with_role(db, "rescueTeam")

        data = client.get("/api/sos", headers=rescuer).json()
        assert [i["id"] for i in data["incidents"]] == ["sos-1"]

        data = client.get("/api/sos?include_resolved=true", headers=rescuer).json()
        assert [i["id"] for i in data["incidents"]] == ["sos-2", "sos-1"]

    def test_user_cannot_list_sos(self):
        token = signup()["token"]
        assert client.get("/api/sos", headers=auth(token)).status_code == 403

    def test_resolve(self, db):
        make_incident(db, "sos-1", type="SOS")
        rescuer = user_with_role(db, "rescueTeam")

        assert client.post("/api/sos/sos-1/resolve", headers=rescuer).status_code == 200
        detail = client.get("/api/incidents/sos-1", headers=rescuer).json()
        assert detail["isActive"] is False
        assert detail["resolvedBy"] is not None

    def test_resolve_missing(self, db):
        rescuer = user_with_role(db, "rescueTeam")
        assert client.post("/api/sos/nope/resolve", headers=rescuer).status_code == 404


class TestWarningsEndpoint:
    """Issuing and reading warnings."""

    def test_admin_creates_warning(self, db):
        admin = user_with_role(db, "admin")
        response = client.post("/api/warnings", json={
            "title": "Avalanche danger",
            "description": "North bowl closed",
            "severity": "high",
            "affectedPincodes": "12345, 67890",
        }, headers=admin)
        assert response.status_code == 201, response.text

        token = signup("local@example.com", pincode="67890")["token"]
        data = client.get("/api/warnings", headers=auth(token)).json()
        assert data["pincode"] == "67890"
        assert len(data["warnings"]) == 1
        warning = data["warnings"][0]
        assert warning["affectedPincodes"] == ["12345", "67890"]
        assert warning["createdByName"] == "admin"

    def test_user_cannot_create_warning(self):
        token = signup()["token"]
        response = client.post("/api/warnings", json={
            "title": "t", "description": "d", "affectedPincodes": ["12345"],
        }, headers=auth(token))
        assert response.status_code == 403

    def test_invalid_severity(self, db):
        admin = user_with_role(db, "admin")
        response = client.post("/api/warnings", json={
            "title": "t", "description": "d", "severity": "extreme", "affectedPincodes": ["1"],
        }, headers=admin)
        assert response.status_code == 400

    def test_active_and_resolve(self, db):
        make_warning(db, "w1", ["12345"])
        make_warning(db, "w2", ["99999"], expiry=utcnow() - timedelta(minutes=5))
        admin = user_with_role(db, "admin")

        data = client.get("/api/warnings/active", headers=admin).json()
        assert [w["id"] for w in data["warnings"]] == ["w1"]

        assert client.post("/api/warnings/w1/resolve", headers=admin).status_code == 200
        assert client.get("/api/warnings/active", headers=admin).json()["warnings"] == []


class TestWeatherEndpoint:
    """Weather with risk, via a mocked upstream."""

    def test_by_city(self):
        token = signup()["token"]
        data = client.get("/api/weather?city=Aspen", headers=auth(token)).json()
        assert data["temperature"] == 2
        assert data["iconUrl"] == "https://openweathermap.org/img/wn/13d@2x.png"
        assert data["risk"]["level"] == "High"
        assert data["risk"]["color"] == "red"

    def test_from_profile_pincode(self):
        token = signup()["token"]
        response = client.get("/api/weather", headers=auth(token))
        assert response.status_code == 200
        assert response.json()["location"] == "Aspen"

    def test_upstream_not_found(self):
        token = signup()["token"]
        response = client.get("/api/weather?city=Atlantis", headers=auth(token))
        assert response.status_code == 502
        assert response.json()["detail"] == "The requested document was not found."
