"""
Pydantic schemas for the /analyze and webhook endpoints.

These define the HTTP contract only. The request body for POST /analyze is
AnalysisInput itself and GET /analyze/{id} returns AnalysisView (both in
models/analysis.py), so the records and the API cannot drift apart.

- AnalysisCreated: response body for POST /analyze
- WebhookPayload: what we ask QStash to deliver back to us
- WebhookAck: what the webhook answers (always with HTTP 200)
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from models.enums import ProcessOutcome


class AnalysisCreated(BaseModel):
    """Response body for POST /analyze. Poll GET /analyze/{request_id} with it."""

    request_id: str


class WebhookPayload(BaseModel):
    """Body of a QStash delivery. Same shape the orchestrator publishes."""

    request_id: UUID = Field(..., alias="requestId")

    model_config = {"populate_by_name": True}


class WebhookAck(BaseModel):
    success: bool
    outcome: Optional[ProcessOutcome] = None
    error: Optional[str] = None
