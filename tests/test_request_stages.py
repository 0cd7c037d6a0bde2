"""Tests for the individual request-defense stages."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
import structlog
from starlette.datastructures import Headers
from starlette.responses import Response

from lottery_api.config.route_rules import resolve_route
from lottery_api.middleware.auth_gate import AuthGate
from lottery_api.middleware.context_injector import ContextInjector
from lottery_api.middleware.pipeline import InboundRequest, RequestContext
from lottery_api.middleware.request_checks import ContentTypeCheck, HeaderCheck, PayloadSizeCheck
from lottery_api.middleware.request_sanitizer import RequestSanitizer
from lottery_api.models.auth import AuthContext
from lottery_api.validation.result import ErrorKind
from tests.helpers.fakes import basic_auth

JSON = {"content-type": "application/json"}


def _inbound(
    method: str,
    path: str,
    headers: dict[str, str] | None = None,
    body: bytes | None = None,
    query: dict[str, str] | None = None,
) -> InboundRequest:
    return InboundRequest(
        method=method,
        path=path,
        headers=Headers(headers=headers or {}),
        query_params=query or {},
        client_host="10.0.0.1",
        raw_body=body,
    )


def _routed(method: str, path: str) -> RequestContext:
    context = RequestContext()
    context.route, context.path_params = resolve_route(method, path)
    return context


# --- ContextInjector ---


@pytest.mark.asyncio
async def test_context_injector_assigns_request_id():
    context = RequestContext(request_id="preset00")
    assert await ContextInjector().process_request(_inbound("GET", "/"), context) is None
    assert len(context.request_id) == 8
    assert context.request_id != "preset00"

    response = await ContextInjector().process_response(Response(), context)
    assert response.headers["x-request-id"] == context.request_id


@pytest.mark.asyncio
async def test_context_injector_preserves_client_request_id_sanitized():
    context = RequestContext()
    inbound = _inbound("GET", "/", headers={"x-request-id": "abc\x07def" + "x" * 300})
    await ContextInjector().process_request(inbound, context)

    original = context.extra["original_request_id"]
    assert "\x07" not in original
    assert original.startswith("abcdef")
    assert len(original) <= 256

    response = await ContextInjector().process_response(Response(), context)
    assert response.headers["x-original-request-id"] == original


@pytest.mark.asyncio
async def test_context_injector_binds_log_context():
    context = RequestContext()
    await ContextInjector().process_request(_inbound("POST", "/user"), context)
    bound = structlog.contextvars.get_contextvars()
    assert bound["request_id"] == context.request_id
    assert bound["method"] == "POST"
    assert bound["path"] == "/user"
    structlog.contextvars.clear_contextvars()


# --- HeaderCheck ---


@pytest.mark.asyncio
async def test_header_check_never_rejects():
    check = HeaderCheck()
    assert await check.process_request(_inbound("GET", "/"), RequestContext()) is None
    long_agent = _inbound("GET", "/", headers={"user-agent": "x" * 2000})
    with patch("lottery_api.middleware.request_checks.log_validation_error") as log:
        assert await check.process_request(long_agent, RequestContext()) is None
    log.assert_called_once()


# --- ContentTypeCheck ---


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "DELETE"])
async def test_content_type_skipped_for_read_only(method):
    assert await ContentTypeCheck().process_request(_inbound(method, "/user/a@b.com"), RequestContext()) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("content_type", ["application/json", "application/json; charset=utf-8", "Application/JSON"])
async def test_content_type_json_accepted(content_type):
    inbound = _inbound("POST", "/user", headers={"content-type": content_type})
    assert await ContentTypeCheck().process_request(inbound, RequestContext()) is None


@pytest.mark.asyncio
async def test_content_type_rejects_other_types():
    inbound = _inbound("POST", "/user", headers={"content-type": "text/plain"})
    rejection = await ContentTypeCheck().process_request(inbound, RequestContext())
    assert rejection is not None
    assert rejection.status == 400
    assert rejection.message == "Invalid Content-Type"
    assert rejection.field == "content_type"
    assert rejection.details == "Expected 'application/json', got 'text/plain'"


@pytest.mark.asyncio
async def test_content_type_missing_rejected():
    rejection = await ContentTypeCheck().process_request(_inbound("PUT", "/user/a@b.com"), RequestContext())
    assert rejection is not None
    assert rejection.details == "Expected 'application/json', got ''"


# --- PayloadSizeCheck ---


@pytest.mark.asyncio
async def test_declared_size_over_limit_rejected():
    inbound = _inbound("POST", "/user", headers={**JSON, "content-length": "2048"})
    rejection = await PayloadSizeCheck(max_bytes=1024).process_request(inbound, RequestContext())
    assert rejection is not None
    assert rejection.status == 413
    assert rejection.field == "payload_size"
    assert rejection.details == "Maximum allowed size is 1024 bytes"


@pytest.mark.asyncio
async def test_declared_size_at_limit_accepted():
    inbound = _inbound("POST", "/user", headers={**JSON, "content-length": "1024"})
    assert await PayloadSizeCheck(max_bytes=1024).process_request(inbound, RequestContext()) is None


@pytest.mark.asyncio
async def test_malformed_content_length_logged_not_rejected():
    inbound = _inbound("POST", "/user", headers={**JSON, "content-length": "lots"})
    with patch("lottery_api.middleware.request_checks.log_validation_error") as log:
        assert await PayloadSizeCheck(max_bytes=1024).process_request(inbound, RequestContext()) is None
    log.assert_called_once()
    assert log.call_args.args[0] == "payload_size"


@pytest.mark.asyncio
async def test_size_check_skips_read_only():
    inbound = _inbound("GET", "/", headers={"content-length": "999999"})
    assert await PayloadSizeCheck(max_bytes=10).process_request(inbound, RequestContext()) is None


# --- AuthGate ---


def _gate(auth: AuthContext | None = AuthContext(credential_id=1, nickname="admin")) -> AuthGate:
    verifier = AsyncMock()
    verifier.authenticate = AsyncMock(return_value=auth)
    return AuthGate(verifier, realm="lottery")


@pytest.mark.asyncio
async def test_auth_gate_skips_public_route():
    gate = _gate()
    context = _routed("GET", "/results/2024-01-02")
    assert await gate.process_request(_inbound("GET", "/results/2024-01-02"), context) is None
    gate.verifier.authenticate.assert_not_awaited()
    assert context.auth is None


@pytest.mark.asyncio
async def test_auth_gate_success_sets_identity():
    gate = _gate()
    context = _routed("POST", "/user")
    inbound = _inbound("POST", "/user", headers=basic_auth())
    assert await gate.process_request(inbound, context) is None
    assert context.auth == AuthContext(credential_id=1, nickname="admin")
    structlog.contextvars.clear_contextvars()


@pytest.mark.asyncio
async def test_auth_gate_missing_credentials():
    gate = _gate(auth=None)
    rejection = await gate.process_request(_inbound("POST", "/user"), _routed("POST", "/user"))
    assert rejection is not None
    assert rejection.kind is ErrorKind.UNAUTHENTICATED
    assert rejection.status == 401
    assert rejection.message == "Authentication required"
    assert rejection.headers == {"WWW-Authenticate": 'Basic realm="lottery"'}


@pytest.mark.asyncio
async def test_auth_gate_bad_credentials_same_as_missing():
    gate = _gate(auth=None)
    inbound = _inbound("POST", "/user", headers=basic_auth(password="wrong"))
    rejection = await gate.process_request(inbound, _routed("POST", "/user"))
    assert rejection.status == 401
    assert rejection.message == "Authentication required"
    assert rejection.field is None


@pytest.mark.asyncio
@pytest.mark.parametrize("header", ["Basic", "garbage"])
async def test_auth_gate_malformed_header(header):
    gate = _gate()
    inbound = _inbound("POST", "/user", headers={"authorization": header})
    rejection = await gate.process_request(inbound, _routed("POST", "/user"))
    assert rejection is not None
    assert rejection.status == 400
    assert rejection.field == "authorization"
    gate.verifier.authenticate.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("header", ["", "   "])
async def test_auth_gate_blank_header_treated_as_missing(header):
    gate = _gate(auth=None)
    inbound = _inbound("POST", "/user", headers={"authorization": header})
    rejection = await gate.process_request(inbound, _routed("POST", "/user"))
    assert rejection is not None
    assert rejection.status == 401
    assert rejection.field is None
    gate.verifier.authenticate.assert_awaited_once_with(header)


# --- RequestSanitizer ---


@pytest.mark.asyncio
async def test_sanitizer_accepts_valid_combination():
    body = json.dumps({"email": "a@b.com", "balls": [1, 2, 3, 4, 5], "stars": [1, 2]}).encode()
    context = _routed("POST", "/combinations")
    assert await RequestSanitizer().process_request(_inbound("POST", "/combinations", JSON, body), context) is None
    assert context.payload["balls"] == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_sanitizer_missing_fields():
    body = json.dumps({"email": "a@b.com"}).encode()
    context = _routed("POST", "/combinations")
    rejection = await RequestSanitizer().process_request(_inbound("POST", "/combinations", JSON, body), context)
    assert rejection.field == "required_fields"
    assert rejection.extra["missing_fields"] == ["balls", "stars"]
    assert context.payload == {}


@pytest.mark.asyncio
async def test_sanitizer_type_errors():
    body = json.dumps({"email": "nope", "balls": "1,2", "stars": [1, 2]}).encode()
    context = _routed("POST", "/combinations")
    rejection = await RequestSanitizer().process_request(_inbound("POST", "/combinations", JSON, body), context)
    assert rejection.field == "data_types"
    assert rejection.extra["type_errors"] == ["email must be email", "balls must be array_of_integers"]


@pytest.mark.asyncio
async def test_sanitizer_invalid_json():
    context = _routed("POST", "/user")
    rejection = await RequestSanitizer().process_request(_inbound("POST", "/user", JSON, b"{bad"), context)
    assert rejection.field == "json_parse"
    assert rejection.message == "Invalid JSON format"


@pytest.mark.asyncio
async def test_sanitizer_enforces_actual_body_size():
    context = _routed("POST", "/user")
    body = b'{"email": "' + b"a" * 200 + b'@b.com"}'
    rejection = await RequestSanitizer(max_bytes=64).process_request(_inbound("POST", "/user", JSON, body), context)
    assert rejection.status == 413
    assert rejection.field == "payload_size"


@pytest.mark.asyncio
async def test_sanitizer_empty_body_reports_required_fields():
    context = _routed("POST", "/user")
    rejection = await RequestSanitizer().process_request(_inbound("POST", "/user", JSON, b""), context)
    assert rejection.extra["missing_fields"] == ["email"]


@pytest.mark.asyncio
async def test_sanitizer_unknown_route_accepts_any_object():
    context = _routed("POST", "/elsewhere")
    assert await RequestSanitizer().process_request(_inbound("POST", "/elsewhere", JSON, b'{"x": 1}'), context) is None
    assert context.payload == {"x": 1}


@pytest.mark.asyncio
async def test_sanitizer_read_only_sanitizes_params():
    context = _routed("GET", "/user/a%40b.com")
    inbound = _inbound("GET", "/user/a%40b.com", query={"q": "<x>"})
    assert await RequestSanitizer().process_request(inbound, context) is None
    assert context.payload == {"q": "x", "email": "a@b.com"}


@pytest.mark.asyncio
async def test_sanitizer_logs_suspicious_params():
    context = _routed("GET", "/results/1")
    inbound = _inbound("GET", "/results/1", query={"q": "1 UNION SELECT password FROM users"})
    with patch("lottery_api.middleware.request_sanitizer.logger") as log:
        assert await RequestSanitizer().process_request(inbound, context) is None
    log.warning.assert_called_once()
    assert log.warning.call_args.args[0] == "suspicious_parameter"


@pytest.mark.asyncio
async def test_sanitizer_strips_markup_from_string_fields():
    body = json.dumps({"date": " '2024-01-02\" ", "balls": [1, 2, 3, 4, 5], "stars": [1, 2]}).encode()
    context = _routed("POST", "/results")
    assert await RequestSanitizer().process_request(_inbound("POST", "/results", JSON, body), context) is None
    assert context.payload["date"] == "2024-01-02"


@pytest.mark.asyncio
async def test_sanitizer_rejects_suspicious_string_fields():
    body = json.dumps({"date": "2024-01-02; DROP TABLE results", "balls": [1, 2, 3, 4, 5], "stars": [1, 2]}).encode()
    context = _routed("POST", "/results")
    with patch("lottery_api.middleware.request_sanitizer.log_validation_error") as log:
        rejection = await RequestSanitizer().process_request(_inbound("POST", "/results", JSON, body), context)
    assert rejection is not None
    assert rejection.status == 400
    assert rejection.field == "suspicious_content"
    assert rejection.details == "Rejected fields: date"
    log.assert_called_once()
    assert context.payload == {}
