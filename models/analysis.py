"""
Analysis job record — the JSON document stored in Redis under analysis:{request_id}.

Key design decisions:
- UUID request_id: generated server-side, never reused, the only lookup key
- input is immutable after creation; every transition copies the record
  rather than editing it in place
- result / failure_detail are mutually exclusive and tied to the terminal
  status; the model validator refuses anything else, so a half-written or
  hand-edited record fails loudly on read instead of leaking through
- failure_detail is for operators only; the API projection never exposes it
- No expiry field: the record's lifetime is the Redis key TTL
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from models.enums import AnalysisStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisInput(BaseModel):
    """What the user asks us to analyse. Validated at the HTTP boundary."""

    name: str = Field(..., min_length=1, examples=["Ann"])
    age: int = Field(..., gt=0, strict=True, examples=[30])
    description: str = Field(..., min_length=1, examples=["curious"])


class AnalysisJob(BaseModel):

    # ── Identity ────────────────────────────────────────────────
    request_id: str
    owner_id: str

    # ── State ───────────────────────────────────────────────────
    status: AnalysisStatus = AnalysisStatus.QUEUED
    input: AnalysisInput

    # ── Outcome (exactly one, only in the matching terminal status) ──
    result: Optional[str] = None
    failure_detail: Optional[dict[str, Any]] = None

    # ── Lifecycle timestamps ────────────────────────────────────
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _outcome_matches_status(self) -> "AnalysisJob":
        if self.status == AnalysisStatus.DONE:
            if self.result is None or self.failure_detail is not None:
                raise ValueError("a done analysis carries a result and nothing else")
        elif self.status == AnalysisStatus.FAILED:
            if self.failure_detail is None or self.result is not None:
                raise ValueError("a failed analysis carries a failure_detail and nothing else")
        elif self.result is not None or self.failure_detail is not None:
            raise ValueError(f"a {self.status.value} analysis has no outcome yet")
        return self

    def __repr__(self) -> str:
        return f"<AnalysisJob {self.request_id} {self.status.value}>"


ANALYSIS_FAILED_MESSAGE = "We couldn't complete your analysis. Please try again later."


class AnalysisView(BaseModel):
    """
    What users are allowed to see of a job.

    failure_detail is never copied over; a failed job shows the fixed
    ANALYSIS_FAILED_MESSAGE in `error` instead.
    """

    request_id: str
    owner_id: str
    status: AnalysisStatus
    input: AnalysisInput
    result: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: AnalysisJob) -> "AnalysisView":
        return cls(
            request_id=job.request_id,
            owner_id=job.owner_id,
            status=job.status,
            input=job.input,
            result=job.result,
            error=ANALYSIS_FAILED_MESSAGE if job.status == AnalysisStatus.FAILED else None,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )
