"""Integration tests for the API: metadata, submission and remote checks."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from veriform.client.dom import Form
from veriform.validation.encoding import decode_attributes
from veriform.validation.problems import PROBLEM_TITLE, PROBLEM_TYPE

METADATA_DIR = Path(__file__).parent.parent / "metadata"

VALID_CONDITIONAL = {
    "AcceptTerms": "false",
    "Country": "Mexico",
    "UserType": "Standard",
    "HasExistingAccount": "true",
    "Email": "someone@example.com",
}


@pytest.fixture
def client(monkeypatch):
    """Create a test client against the repository metadata."""
    monkeypatch.setenv("VERIFORM_METADATA_PATH", str(METADATA_DIR))

    # Import app after setting env vars
    from veriform.api.app import app

    with TestClient(app) as client:
        yield client


class TestFormMetadata:
    def test_list_forms(self, client):
        response = client.get("/api/forms")

        assert response.status_code == 200
        names = {f["name"] for f in response.json()["forms"]}
        assert {"ConditionalValidation", "RemoteValidation", "Register"} <= names

    def test_get_form(self, client):
        response = client.get("/api/forms/ConditionalValidation")

        assert response.status_code == 200
        data = response.json()
        assert data["displayName"] == "Conditional Validation"
        phone = next(f for f in data["fields"] if f["name"] == "PhoneNumber")
        assert phone["attributes"] == {
            "data-val": "true",
            "data-val-requiredif": "Phone number is required when terms are accepted",
            "data-val-requiredif-dependentproperty": "AcceptTerms",
            "data-val-requiredif-expectedvalue": "true",
            "data-val-phone": "Please enter a valid phone number",
        }
        accept = next(f for f in data["fields"] if f["name"] == "AcceptTerms")
        assert accept["attributes"] == {}
        assert accept["type"] == "checkbox"

    def test_get_form_checks(self, client):
        data = client.get("/api/forms/RemoteValidation").json()
        assert data["checks"][0] == {
            "name": "unique",
            "field": "Username",
            "params": {"collection": "usernames"},
            "message": "Username is already taken",
        }

    def test_unknown_form(self, client):
        assert client.get("/api/forms/Nope").status_code == 404
        assert client.post("/api/forms/Nope", json={}).status_code == 404

    def test_markup(self, client):
        response = client.get("/api/forms/ConditionalValidation/markup")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        form = Form.from_html(response.text)
        assert form.action == "/api/forms/ConditionalValidation"
        rules = decode_attributes("NewPassword", form.element("NewPassword").attributes)
        assert rules[0].kind == "requiredUnless"
        assert rules[0].invert is True


class TestSubmission:
    def test_problem_details(self, client):
        response = client.post(
            "/api/forms/ConditionalValidation",
            data={**VALID_CONDITIONAL, "AcceptTerms": "true"},
        )

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json() == {
            "type": PROBLEM_TYPE,
            "title": PROBLEM_TITLE,
            "status": 400,
            "errors": {"PhoneNumber": ["Phone number is required when terms are accepted"]},
        }

    def test_valid_form_post(self, client):
        response = client.post("/api/forms/ConditionalValidation", data=VALID_CONDITIONAL)

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is True
        assert body["data"]["AcceptTerms"] is False
        assert body["data"]["HasExistingAccount"] is True
        assert body["data"]["PhoneNumber"] is None

    def test_valid_json_post(self, client):
        response = client.post(
            "/api/forms/Register",
            json={"Password": "password123", "ConfirmPassword": "password123"},
        )
        assert response.status_code == 200
        assert response.json()["data"] == {"Password": "password123", "ConfirmPassword": "password123"}

    def test_unique_check(self, client):
        response = client.post(
            "/api/forms/RemoteValidation",
            json={"Username": "admin", "Email": "test@example.com", "Password": "password123"},
        )

        assert response.status_code == 400
        assert response.json()["errors"] == {
            "Username": ["Username is already taken"],
            "Email": ["Email is already registered"],
        }

    def test_multiple_errors(self, client):
        response = client.post("/api/forms/ConditionalValidation", json={})

        errors = response.json()["errors"]
        assert set(errors) == {"Country", "UserType", "NewPassword", "Email"}
        assert all(len(messages) == 1 for messages in errors.values())

    def test_query_string_merged(self, client):
        response = client.post(
            "/api/forms/Register?ConfirmPassword=password123",
            data={"Password": "password123"},
        )
        assert response.status_code == 200

    def test_json_body_must_be_object(self, client):
        response = client.post("/api/forms/Register", json=["not", "an", "object"])
        assert response.status_code == 400


class TestRemoteEndpoint:
    def test_taken(self, client):
        response = client.post("/api/remote/RemoteValidation/Username", data={"Username": "admin"})
        assert response.status_code == 200
        assert response.json() == {"valid": False}

    def test_free_via_get(self, client):
        response = client.get("/api/remote/RemoteValidation/Username", params={"Username": "newuser"})
        assert response.json() == {"valid": True}

    def test_email_case_insensitive(self, client):
        response = client.post("/api/remote/RemoteValidation/Email", data={"Email": "TEST@example.com"})
        assert response.json() == {"valid": False}

    def test_field_without_checks(self, client):
        response = client.post("/api/remote/RemoteValidation/Password", data={"Password": "x"})
        assert response.json() == {"valid": True}

    def test_unknown_field(self, client):
        response = client.post("/api/remote/RemoteValidation/Nope", data={})
        assert response.status_code == 404
