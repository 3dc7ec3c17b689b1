"""Unit tests for the HTTP transport and failure classification"""

import httpx
import pytest

from ledger_sync.domain.exceptions import (
    AbsenceError,
    AuthorizationError,
    FailureKind,
    InvalidResponseError,
    TransientServiceError,
    ValidationFailure,
)
from ledger_sync.infrastructure.clients.debts import DebtsClient
from ledger_sync.infrastructure.clients.transport import ApiTransport, classify_failure, unwrap


def _response(status: int, json=None, content: bytes | None = None) -> httpx.Response:
    request = httpx.Request("GET", "http://ledger.test/api/x")
    if content is not None:
        return httpx.Response(status, content=content, request=request)
    return httpx.Response(status, json=json, request=request)


@pytest.mark.parametrize(
    "status, failure_type",
    [
        (404, AbsenceError),
        (401, AuthorizationError),
        (403, AuthorizationError),
        (500, TransientServiceError),
        (503, TransientServiceError),
        (429, TransientServiceError),
        (400, ValidationFailure),
        (422, ValidationFailure),
    ],
)
def test_classify_failure(status: int, failure_type):
    failure = classify_failure(_response(status, {"message": "nope"}))
    assert isinstance(failure, failure_type)
    assert failure.status_code == status


def test_validation_message_comes_from_server():
    body = {"success": False, "error": {"message": "Payment amount must be positive"}}
    failure = classify_failure(_response(400, body))

    assert failure.kind == FailureKind.VALIDATION
    assert failure.message == "Payment amount must be positive"
    assert classify_failure(_response(400, {"message": "Bad date"})).message == "Bad date"


def test_unwrap_envelope():
    assert unwrap(_response(200, {"success": True, "data": {"a": 1}})) == {"a": 1}
    assert unwrap(_response(200, {"a": 1})) == {"a": 1}
    assert unwrap(_response(204, content=b"")) is None


def test_unwrap_rejects_non_json():
    with pytest.raises(InvalidResponseError):
        unwrap(_response(200, content=b"<html>oops</html>"))


def _transport(handler) -> ApiTransport:
    return ApiTransport(base_url="http://ledger.test/api", transport=httpx.MockTransport(handler))


async def test_request_sends_trace_header_and_unwraps():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "data": {"ok": True}})

    transport = _transport(handler)
    try:
        assert await transport.get("/debts/summary") == {"ok": True}
    finally:
        await transport.aclose()

    assert seen[0].url.path == "/api/debts/summary"
    assert seen[0].headers["X-Request-ID"]


async def test_timeout_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    transport = _transport(handler)
    try:
        with pytest.raises(TransientServiceError):
            await transport.get("/debts/summary")
    finally:
        await transport.aclose()


async def test_connection_error_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = _transport(handler)
    try:
        with pytest.raises(TransientServiceError):
            await transport.post("/debts/customers/c1/payment", json={"amount": 1})
    finally:
        await transport.aclose()


async def test_ping_reports_health():
    healthy = _transport(lambda request: httpx.Response(200, json={"status": "ok"}))
    down = _transport(lambda request: httpx.Response(503, json={"message": "maintenance"}))
    try:
        assert await healthy.ping() is True
        assert await down.ping() is False
    finally:
        await healthy.aclose()
        await down.aclose()


async def test_outstanding_absence_resolves_to_none_without_retry():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(404, json={"message": "No debt record"})

    transport = _transport(handler)
    try:
        assert await DebtsClient(transport).get_customer_outstanding("cust_9") is None
    finally:
        await transport.aclose()

    assert calls == ["/api/customers/cust_9/outstanding"]


async def test_malformed_payload_is_invalid_response():
    transport = _transport(lambda request: httpx.Response(200, json={"success": True, "data": {"nope": 1}}))
    try:
        with pytest.raises(InvalidResponseError):
            await DebtsClient(transport).get_summary()
    finally:
        await transport.aclose()
