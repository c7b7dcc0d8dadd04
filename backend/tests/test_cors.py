"""
Tests for CORS configuration.
Verify that CORS headers are properly set for preflight and actual requests.
"""
from fastapi.testclient import TestClient

from snowshield.main import app


client = TestClient(app)


class TestCORS:
    """Test CORS headers for various origins."""

    def test_preflight_localhost(self):
        """Test OPTIONS preflight for localhost origin."""
        headers = {
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization,content-type",
        }
        response = client.options("/api/incidents", headers=headers)
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
        assert "POST" in response.headers["access-control-allow-methods"]

    def test_preflight_github_codespaces(self):
        """Test OPTIONS preflight for GitHub Codespaces origin."""
        origin = "https://verbose-train-75g546r7qp9fwpxp-5173.app.github.dev"
        headers = {
            "Origin": origin,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        }
        response = client.options("/api/warnings", headers=headers)
        assert response.status_code == 200
        # Should match the origin via regex
        assert response.headers["access-control-allow-origin"] == origin

    def test_unauthenticated_get_still_has_cors(self):
        """Error responses carry CORS headers too."""
        origin = "http://localhost:5173"
        response = client.get("/api/incidents", headers={"Origin": origin})
        assert response.status_code == 401
        assert response.headers["access-control-allow-origin"] == origin

    def test_unknown_origin(self):
        headers = {
            "Origin": "https://evil.example.com",
            "Access-Control-Request-Method": "GET",
        }
        response = client.options("/api/incidents", headers=headers)
        assert "access-control-allow-origin" not in response.headers
