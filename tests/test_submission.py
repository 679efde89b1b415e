"""Tests for the client submission round trip."""

from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest

from veriform.client.dom import Form, render_form
from veriform.client.evaluator import ClientEvaluator
from veriform.client.remote import RemoteValidator
from veriform.client.submission import submit_form
from veriform.metadata.loader import MetadataLoader
from veriform.validation.problems import create_problem_response, create_success_response
from veriform.validation.registry import CheckRegistry, RuleRegistry
from veriform.validation.types import StructuredErrorReport
from veriform.validation.validators import register_builtin_rules, register_canned_checks

METADATA_DIR = Path(__file__).parent.parent / "metadata"


@pytest.fixture(autouse=True)
def setup_registries():
    RuleRegistry.clear()
    CheckRegistry.clear()
    register_builtin_rules()
    register_canned_checks()
    yield
    RuleRegistry.clear()
    CheckRegistry.clear()


@pytest.fixture
def form() -> Form:
    loader = MetadataLoader(METADATA_DIR)
    loader.load_all()
    form = Form.from_html(
        render_form(loader.get_form("RemoteValidation"), action="/api/forms/RemoteValidation")
    )
    form.element("Username").value = "alice"
    form.element("Email").value = "test@example.com"
    form.element("Password").value = "password123"
    return form


def make_http(handler, requests: list) -> httpx.AsyncClient:
    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(record), base_url="http://testserver")


@pytest.fixture
def evaluator():
    offline = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=True)),
        base_url="http://testserver",
    )
    return ClientEvaluator(remote=RemoteValidator(client=offline))


class TestSubmitForm:
    @pytest.mark.asyncio
    async def test_server_errors_reconciled(self, form, evaluator):
        problem = create_problem_response(
            StructuredErrorReport({"Email": ["Email is already registered"]})
        )
        requests = []
        http = make_http(lambda request: httpx.Response(400, json=problem.to_dict()), requests)

        result = await submit_form(form, evaluator, http)

        assert result.submitted
        assert result.status_code == 400
        assert result.reconciled
        assert not result.accepted
        assert form.error_target("Email").text == "Email is already registered"

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/forms/RemoteValidation"
        assert request.headers["accept"] == "application/json"
        assert parse_qs(request.content.decode()) == {
            "Username": ["alice"],
            "Email": ["test@example.com"],
            "Password": ["password123"],
        }

    @pytest.mark.asyncio
    async def test_accepted(self, form, evaluator):
        success = create_success_response({"Username": "alice"})
        requests = []
        http = make_http(lambda request: httpx.Response(200, json=success.to_dict()), requests)

        result = await submit_form(form, evaluator, http)

        assert result.accepted
        assert not result.reconciled
        assert result.payload == {"valid": True, "data": {"Username": "alice"}}

    @pytest.mark.asyncio
    async def test_local_errors_block_request(self, form, evaluator):
        form.element("Password").value = ""
        requests = []
        http = make_http(lambda request: httpx.Response(200, json={}), requests)

        result = await submit_form(form, evaluator, http)

        assert not result.submitted
        assert result.errors == {"Password": ["Password is required"]}
        assert requests == []
        assert form.error_target("Password").text == "Password is required"

    @pytest.mark.asyncio
    async def test_non_json_error_not_reconciled(self, form, evaluator):
        requests = []
        http = make_http(lambda request: httpx.Response(400, text="Bad Request"), requests)

        result = await submit_form(form, evaluator, http)

        assert result.submitted
        assert result.payload is None
        assert not result.reconciled

    @pytest.mark.asyncio
    async def test_url_and_method_override(self, form, evaluator):
        requests = []
        http = make_http(lambda request: httpx.Response(200, json={"valid": True}), requests)

        await submit_form(form, evaluator, http, url="/elsewhere", method="put")

        assert requests[0].method == "PUT"
        assert requests[0].url.path == "/elsewhere"
