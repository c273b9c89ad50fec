"""
Error taxonomy for the analysis pipeline.

- NotFoundError: the job (or a key) is absent. Expected, not a failure.
- StorageError: Redis unreachable or answering garbage.
- InvalidTransitionError: a write would move a job along an edge the
  status state machine does not have.
- ExternalServiceError: OpenAI or QStash failed, classified by kind so the
  retry policy can decide what is worth another attempt.
- SignatureError: a webhook delivery did not carry a valid QStash signature.

Input validation is not here. FastAPI/pydantic reject bad bodies with 422
before they reach the orchestrator.
"""

from models.enums import AnalysisStatus, ExternalErrorKind


class AnalysisError(Exception):
    """Base class for every error raised by the pipeline."""


class NotFoundError(AnalysisError):
    def __init__(self, request_id: str):
        super().__init__(f"Analysis {request_id} not found")
        self.request_id = request_id


class StorageError(AnalysisError):
    pass


class InvalidTransitionError(AnalysisError):
    def __init__(self, request_id: str, current: AnalysisStatus, target: AnalysisStatus):
        super().__init__(
            f"Analysis {request_id} cannot move from {current.value} to {target.value}"
        )
        self.request_id = request_id
        self.current = current
        self.target = target


class ExternalServiceError(AnalysisError):
    def __init__(self, kind: ExternalErrorKind, message: str, service: str = "openai"):
        super().__init__(f"{service} {kind.value}: {message}")
        self.kind = kind
        self.message = message
        self.service = service
        self.attempts = 1  # set by RetryPolicy when it gives up


class SignatureError(AnalysisError):
    pass
