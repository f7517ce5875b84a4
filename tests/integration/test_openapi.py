"""
Integration tests for OpenAPI documentation.

Verifies OpenAPI schema is correctly generated for all endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from schoolgate.api.main import app


@pytest.fixture
def client() -> TestClient:
    """Create test client for the application."""
    return TestClient(app)


@pytest.fixture
def schema(client: TestClient) -> dict:
    response = client.get("/openapi.json")
    assert response.status_code == 200
    return response.json()


class TestOpenAPISchema:
    """Tests for OpenAPI schema generation."""

    def test_title_and_version(self, schema: dict) -> None:
        assert schema["info"]["title"] == "schoolgate"
        assert schema["info"]["version"] == "0.1.0"

    @pytest.mark.parametrize(
        ("path", "method"),
        [
            ("/api/v1/users/registrations", "post"),
            ("/api/v1/sessions", "post"),
            ("/api/v1/account/phone-verification", "post"),
            ("/api/v1/account/phone-verification/confirm", "post"),
            ("/api/v1/register/flow", "get"),
            ("/api/v1/register/profile", "post"),
            ("/api/v1/register/verify_phone", "post"),
            ("/api/v1/register/resend_code", "post"),
            ("/api/v1/register/set_pin", "post"),
            ("/api/v1/register/confirm_pin", "post"),
            ("/register/profile", "get"),
            ("/register/profile", "post"),
            ("/register/verify-phone", "post"),
            ("/register/verify-phone/resend", "post"),
            ("/register/set-pin", "post"),
            ("/register/set-pin/confirm", "post"),
            ("/register/confirm-email", "get"),
            ("/sign_in", "post"),
            ("/health", "get"),
        ],
    )
    def test_endpoint_documented(self, schema: dict, path: str, method: str) -> None:
        assert method in schema["paths"][path]

    def test_registration_request_schema(self, schema: dict) -> None:
        props = schema["components"]["schemas"]["RegistrationRequest"]["properties"]
        assert {"user", "invite_token", "class_token"} <= set(props)

    def test_session_response_schema(self, schema: dict) -> None:
        props = schema["components"]["schemas"]["SessionResponse"]["properties"]
        assert {"access_token", "id", "email", "phone", "locale"} <= set(props)

    def test_error_responses_documented(self, schema: dict) -> None:
        sessions = schema["paths"]["/api/v1/sessions"]["post"]
        assert "422" in sessions["responses"]
