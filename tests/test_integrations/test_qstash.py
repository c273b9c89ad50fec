"""
Tests for the QStash dispatcher and signature verifier.

The dispatcher talks to an httpx.MockTransport instead of the network;
signatures are minted with the same HS256 scheme QStash uses.
"""

import json

import httpx
import pytest

from conftest import NEXT_SIGNING_KEY, SIGNING_KEY, make_signature
from integrations.qstash import QStashDispatcher, QStashSignatureVerifier, body_hash
from models.enums import ExternalErrorKind
from models.errors import ExternalServiceError, SignatureError

TARGET = "https://api.example.com/webhooks/qstash/analyze"


def _dispatcher(handler) -> QStashDispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return QStashDispatcher(client, token="qstash-token", base_url="https://qstash.test")


@pytest.mark.asyncio
async def test_schedule_publishes_with_delay_and_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"messageId": "msg_123"})

    message_id = await _dispatcher(handler).schedule(TARGET, {"requestId": "abc"}, 60)

    assert message_id == "msg_123"
    assert seen["url"] == f"https://qstash.test/v2/publish/{TARGET}"
    assert seen["headers"]["authorization"] == "Bearer qstash-token"
    assert seen["headers"]["upstash-delay"] == "60s"
    assert seen["body"] == {"requestId": "abc"}


@pytest.mark.asyncio
@pytest.mark.parametrize("status,kind", [
    (401, ExternalErrorKind.AUTHENTICATION),
    (429, ExternalErrorKind.RATE_LIMITED),
    (400, ExternalErrorKind.MALFORMED_REQUEST),
    (500, ExternalErrorKind.UPSTREAM),
])
async def test_schedule_classifies_http_errors(status, kind):
    dispatcher = _dispatcher(lambda request: httpx.Response(status, text="nope"))

    with pytest.raises(ExternalServiceError) as exc_info:
        await dispatcher.schedule(TARGET, {"requestId": "abc"}, 60)

    assert exc_info.value.kind == kind
    assert exc_info.value.service == "qstash"


@pytest.mark.asyncio
async def test_schedule_classifies_transport_errors():
    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    def refused(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ExternalServiceError) as exc_info:
        await _dispatcher(timeout).schedule(TARGET, {}, 60)
    assert exc_info.value.kind == ExternalErrorKind.TIMEOUT

    with pytest.raises(ExternalServiceError) as exc_info:
        await _dispatcher(refused).schedule(TARGET, {}, 60)
    assert exc_info.value.kind == ExternalErrorKind.CONNECTION


@pytest.mark.asyncio
async def test_schedule_rejects_response_without_message_id():
    dispatcher = _dispatcher(lambda request: httpx.Response(201, json={"unexpected": True}))

    with pytest.raises(ExternalServiceError) as exc_info:
        await dispatcher.schedule(TARGET, {}, 60)
    assert exc_info.value.kind == ExternalErrorKind.MALFORMED_RESPONSE


# ── Signature verification ──────────────────────────────────────

BODY = b'{"requestId":"6f1c1d3e-3f43-4f4e-9a55-2b0d8a0c1f11"}'


def test_verify_accepts_current_key(signature_verifier):
    claims = signature_verifier.verify(BODY, make_signature(BODY))
    assert claims["iss"] == "Upstash"
    assert claims["body"] == body_hash(BODY)


def test_verify_falls_back_to_next_key(signature_verifier):
    signature_verifier.verify(BODY, make_signature(BODY, key=NEXT_SIGNING_KEY))


def test_verify_rejects_unknown_key(signature_verifier):
    with pytest.raises(SignatureError):
        signature_verifier.verify(BODY, make_signature(BODY, key="someone-else"))


def test_verify_rejects_tampered_body(signature_verifier):
    signature = make_signature(BODY)
    with pytest.raises(SignatureError, match="Body hash"):
        signature_verifier.verify(b'{"requestId":"00000000-0000-0000-0000-000000000000"}', signature)


def test_verify_rejects_expired_token(signature_verifier):
    with pytest.raises(SignatureError):
        signature_verifier.verify(BODY, make_signature(BODY, expires_in=-60))


def test_verify_rejects_missing_header(signature_verifier):
    with pytest.raises(SignatureError, match="Missing"):
        signature_verifier.verify(BODY, None)


def test_verify_without_keys_rejects_everything():
    verifier = QStashSignatureVerifier("", "")
    with pytest.raises(SignatureError):
        verifier.verify(BODY, make_signature(BODY, key=SIGNING_KEY))
