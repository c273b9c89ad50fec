"""
QStash integration — delayed dispatch out, signature verification in.

Outbound (QStashDispatcher):
    POST {QSTASH_URL}/v2/publish/{target_url}
        Authorization: Bearer {QSTASH_TOKEN}
        Upstash-Delay: 60s
        {"requestId": "..."}
    → 201 {"messageId": "msg_..."}

    QStash stores the message and POSTs the same body to target_url once the
    delay has passed, redelivering until it gets a 2xx. That is why the
    webhook always answers 200: a non-2xx would turn one job failure into a
    stream of redeliveries.

Inbound (QStashSignatureVerifier):
    Every delivery carries an `Upstash-Signature` header: an HS256 JWT signed
    with the current signing key (or the next one during key rotation). Its
    claims include iss="Upstash" and body=base64url(sha256(raw body)), so the
    signature covers the exact bytes we are about to parse.
"""

import base64
import hashlib
import logging

import httpx
from jose import JWTError, jwt

from integrations.base import DelayedDispatcher
from models.enums import ExternalErrorKind
from models.errors import ExternalServiceError, SignatureError

logger = logging.getLogger(__name__)

QSTASH_ISSUER = "Upstash"


def _classify_status(status_code: int) -> ExternalErrorKind:
    if status_code in (401, 403):
        return ExternalErrorKind.AUTHENTICATION
    if status_code == 429:
        return ExternalErrorKind.RATE_LIMITED
    if 400 <= status_code < 500:
        return ExternalErrorKind.MALFORMED_REQUEST
    return ExternalErrorKind.UPSTREAM


class QStashDispatcher(DelayedDispatcher):

    def __init__(self, http_client: httpx.AsyncClient, token: str, base_url: str = "https://qstash.upstash.io"):
        self._http = http_client
        self._token = token
        self._base_url = base_url.rstrip("/")

    async def schedule(self, target_url: str, payload: dict, delay_seconds: int) -> str:
        try:
            response = await self._http.post(
                f"{self._base_url}/v2/publish/{target_url}",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Upstash-Delay": f"{int(delay_seconds)}s",
                },
            )
        except httpx.TimeoutException as e:
            raise ExternalServiceError(ExternalErrorKind.TIMEOUT, str(e), service="qstash") from e
        except httpx.TransportError as e:
            raise ExternalServiceError(ExternalErrorKind.CONNECTION, str(e), service="qstash") from e

        if response.is_error:
            kind = _classify_status(response.status_code)
            logger.error(
                f"QStash publish to {target_url} rejected: "
                f"{response.status_code} {response.text[:200]}"
            )
            raise ExternalServiceError(
                kind, f"HTTP {response.status_code}: {response.text[:200]}", service="qstash"
            )

        try:
            message_id = response.json()["messageId"]
        except (ValueError, KeyError, TypeError) as e:
            raise ExternalServiceError(
                ExternalErrorKind.MALFORMED_RESPONSE,
                f"Unexpected publish response: {response.text[:200]}",
                service="qstash",
            ) from e

        logger.info(f"Scheduled delivery {message_id} to {target_url} in {delay_seconds}s")
        return message_id


def body_hash(body: bytes) -> str:
    """base64url(sha256(body)) without padding, the form QStash puts in the JWT."""
    digest = hashlib.sha256(body).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")


class QStashSignatureVerifier:

    def __init__(self, current_signing_key: str, next_signing_key: str = "", clock_tolerance: int = 5):
        self._keys = [k for k in (current_signing_key, next_signing_key) if k]
        self._clock_tolerance = clock_tolerance

    def verify(self, body: bytes, signature: str | None) -> dict:
        """
        Check the Upstash-Signature header against the raw body.

        Tries the current key first, then the next key (QStash signs with
        either while keys are being rotated).

        Returns:
            the verified JWT claims

        Raises:
            SignatureError if the header is missing, no key validates the
            token, or the body hash does not match.
        """
        if not signature:
            raise SignatureError("Missing Upstash-Signature header")
        if not self._keys:
            raise SignatureError("No QStash signing keys configured")

        last_error: JWTError | None = None
        for key in self._keys:
            try:
                claims = jwt.decode(
                    signature,
                    key,
                    algorithms=["HS256"],
                    issuer=QSTASH_ISSUER,
                    options={"verify_aud": False, "leeway": self._clock_tolerance},
                )
            except JWTError as e:
                last_error = e
                continue

            if claims.get("body", "").rstrip("=") != body_hash(body):
                raise SignatureError("Body hash does not match signature")
            return claims

        raise SignatureError(f"Invalid QStash signature: {last_error}")
