"""
QStash webhook.

POST /webhooks/qstash/analyze → run one processing attempt for {"requestId": ...}

Contract with QStash:
- Unsigned or badly signed requests get 401. They did not come from QStash,
  so there is no redelivery to worry about.
- Everything that passes the signature check gets 200, whatever happens
  next. A malformed payload will not get better on redelivery, and
  processing failures are recorded on the job itself. Answering non-2xx
  would only make QStash hammer us with the same message.

The signature covers the raw bytes, so the body is read once as bytes,
verified, and only then parsed.
"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError

from api.dependencies import get_orchestrator, get_signature_verifier
from api.schemas.analysis import WebhookAck, WebhookPayload
from integrations.qstash import QStashSignatureVerifier
from models.enums import ProcessOutcome
from models.errors import SignatureError
from worker.orchestrator import AnalysisOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/qstash", tags=["webhooks"])


@router.post("/analyze", response_model=WebhookAck)
async def handle_analyze_webhook(
    request: Request,
    upstash_signature: str | None = Header(default=None),
    verifier: QStashSignatureVerifier = Depends(get_signature_verifier),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> WebhookAck:
    body = await request.body()

    try:
        verifier.verify(body, upstash_signature)
    except SignatureError as e:
        logger.warning(f"QStash signature verification failed: {e}")
        raise HTTPException(status_code=401, detail="QStash signature verification failed")

    try:
        payload = WebhookPayload.model_validate_json(body)
    except ValidationError as e:
        logger.error(f"Invalid QStash webhook payload: {e.errors()}")
        return WebhookAck(success=False, error="Invalid payload")

    try:
        outcome = await orchestrator.process(str(payload.request_id))
    except Exception:
        logger.exception(f"Unexpected error processing analysis {payload.request_id}")
        return WebhookAck(success=False, error="Internal error")

    # still 200: the failure is logged and QStash redelivering would not help
    return WebhookAck(success=outcome != ProcessOutcome.ERROR, outcome=outcome)
