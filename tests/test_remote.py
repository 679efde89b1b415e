"""Tests for remote checks over HTTP."""

import httpx
import pytest

from veriform.client.remote import (
    RemoteValidator,
    interpret_remote_response,
    parse_additional_fields,
)


def make_validator(handler) -> RemoteValidator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://testserver")
    return RemoteValidator(client=client)


class TestInterpretResponse:
    @pytest.mark.parametrize("payload", [True, "true", "", {"valid": True}])
    def test_valid(self, payload):
        assert interpret_remote_response(payload) is True

    @pytest.mark.parametrize(
        "payload",
        [False, "Username is already taken", {"valid": False}, {"valid": "true"}, {}, None, 1, []],
    )
    def test_invalid(self, payload):
        assert interpret_remote_response(payload) is False


class TestAdditionalFields:
    def test_prefix_stripped(self):
        assert parse_additional_fields("*.Email, *.TenantId") == ["Email", "TenantId"]

    def test_plain_names(self):
        assert parse_additional_fields("Email,,TenantId") == ["Email", "TenantId"]

    def test_empty(self):
        assert parse_additional_fields(None) == []
        assert parse_additional_fields("") == []


class TestRemoteValidator:
    @pytest.mark.asyncio
    async def test_post_sends_form_data(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=True)

        validator = make_validator(handler)
        assert await validator.check("/api/remote/Signup/Username", "Username", "alice", {"TenantId": "7"})

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/remote/Signup/Username"
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert request.content == b"Username=alice&TenantId=7"

    @pytest.mark.asyncio
    async def test_get_sends_query(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"valid": True})

        validator = make_validator(handler)
        assert await validator.check("/check", "Email", "a@b.co", method="get")

        assert requests[0].method == "GET"
        assert requests[0].url.params["Email"] == "a@b.co"

    @pytest.mark.asyncio
    async def test_string_answer_is_an_error(self):
        validator = make_validator(lambda request: httpx.Response(200, json="Username is already taken"))
        assert await validator.check("/check", "Username", "admin") is False

    @pytest.mark.asyncio
    async def test_error_status_fails(self):
        validator = make_validator(lambda request: httpx.Response(500, text="boom"))
        assert await validator.check("/check", "Username", "admin") is False

    @pytest.mark.asyncio
    async def test_not_found_fails(self):
        validator = make_validator(lambda request: httpx.Response(404, json={"detail": "Not Found"}))
        assert await validator.check("/check", "Username", "admin") is False

    @pytest.mark.asyncio
    async def test_non_json_body_passes(self, caplog):
        validator = make_validator(lambda request: httpx.Response(200, text="<html>ok</html>"))
        with caplog.at_level("WARNING"):
            assert await validator.check("/check", "Username", "admin") is True
        assert "non-JSON" in caplog.text

    @pytest.mark.asyncio
    async def test_transport_error_passes(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        validator = make_validator(handler)
        with caplog.at_level("WARNING"):
            assert await validator.check("/check", "Username", "admin") is True
        assert "treating as valid" in caplog.text

    @pytest.mark.asyncio
    async def test_timeout_passes(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        validator = make_validator(handler)
        with caplog.at_level("WARNING"):
            assert await validator.check("/check", "Username", "admin") is True
        assert "timed out" in caplog.text
