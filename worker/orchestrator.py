"""
Analysis orchestrator — owns the job lifecycle from request to result.

    create()      POST /analyze            → QUEUED + delayed callback scheduled
    process()     POST /webhooks/qstash/…  → PROCESSING → DONE | FAILED
    get_analysis() GET /analyze/{id}       → read-only projection

State machine:

    QUEUED ──process──> PROCESSING ──ok──> DONE
                             │
                             └──error──> FAILED

process() is called once per QStash delivery, and QStash delivers at least
once, so the same request_id can arrive twice, even at the same time on two
API instances. The defence is layered:

    1. Redis lock (SET NX EX): the second concurrent delivery sees the lock
       and returns without touching anything.
    2. Terminal check: a delivery that arrives after a previous one finished
       (and released the lock) sees DONE/FAILED and returns.
    3. Lock TTL: if an attempt dies without releasing, the lock expires and
       the next redelivery picks the job up again from PROCESSING.

Failures inside process() never escape it. Generation errors become a FAILED
job with an operator-only diagnostic; storage errors are logged. The webhook
always answers 200, so QStash does not turn one failure into a retry storm.

Creation is the opposite: errors propagate so the client gets an error
response. The state write and the schedule call are not transactional. If
scheduling fails the record stays QUEUED until its TTL, which is the
accepted trade-off against two-phase coordination.
"""

import logging
import traceback
import uuid
from typing import Any, Optional

from integrations.base import DelayedDispatcher, TextGenerator
from models.analysis import AnalysisInput, AnalysisView, utcnow
from models.enums import ProcessOutcome
from models.errors import AnalysisError, ExternalServiceError, StorageError
from store.analysis_store import AnalysisStateStore
from worker.retry import RetryPolicy

logger = logging.getLogger(__name__)


class AnalysisOrchestrator:

    def __init__(
        self,
        store: AnalysisStateStore,
        generator: TextGenerator,
        dispatcher: DelayedDispatcher,
        retry_policy: RetryPolicy,
        webhook_url: str,
        dispatch_delay: int = 60,
        include_trace: bool = False,
    ):
        self._store = store
        self._generator = generator
        self._dispatcher = dispatcher
        self._retry = retry_policy
        self._webhook_url = webhook_url
        self._dispatch_delay = dispatch_delay
        self._include_trace = include_trace

    async def create(self, owner_id: str, analysis_input: AnalysisInput) -> str:
        """
        Accept a new analysis request.

        Returns:
            the new request_id

        Raises:
            StorageError if the record could not be written,
            ExternalServiceError if QStash refused the delayed callback.
        """
        request_id = str(uuid.uuid4())

        await self._store.create_queued(request_id, owner_id, analysis_input)
        await self._dispatcher.schedule(
            self._webhook_url, {"requestId": request_id}, self._dispatch_delay
        )

        logger.info(f"Created analysis {request_id} for owner {owner_id}")
        return request_id

    async def get_analysis(self, request_id: str) -> Optional[AnalysisView]:
        """Return the user-facing view, or None for unknown/expired ids."""
        job = await self._store.get_state(request_id)
        if job is None:
            return None
        return AnalysisView.from_job(job)

    async def process(self, request_id: str) -> ProcessOutcome:
        """
        Run one processing attempt. Safe to call any number of times,
        concurrently, for the same request_id. Pipeline errors (storage,
        generation, transitions) are reported through the outcome, not raised.
        """
        try:
            async with self._store.processing_lock(request_id) as acquired:
                if not acquired:
                    logger.info(f"Analysis {request_id} is already being processed, skipping")
                    return ProcessOutcome.SKIPPED_LOCKED

                try:
                    return await self._process_locked(request_id)
                except AnalysisError as e:
                    logger.error(f"Analysis {request_id} could not be processed: {e}", exc_info=True)
                    await self._try_mark_failed(request_id, self._failure_detail(e))
                    return ProcessOutcome.ERROR

        except StorageError as e:
            # acquiring the lock itself failed; nothing was touched
            logger.error(f"Could not acquire lock for analysis {request_id}: {e}")
            return ProcessOutcome.ERROR

    async def _process_locked(self, request_id: str) -> ProcessOutcome:
        job = await self._store.get_state(request_id)
        if job is None:
            logger.warning(f"Analysis {request_id} not found (expired or never created)")
            return ProcessOutcome.SKIPPED_MISSING

        if job.status.is_terminal:
            logger.info(f"Analysis {request_id} already {job.status.value}, skipping")
            return ProcessOutcome.SKIPPED_TERMINAL

        await self._store.mark_processing(request_id)
        logger.info(f"Starting analysis {request_id}")

        try:
            result = await self._retry.run(self._generator.generate, job.input)
        except Exception as e:
            await self._store.mark_failed(request_id, self._failure_detail(e))
            logger.error(f"Analysis {request_id} failed: {e}")
            return ProcessOutcome.FAILED

        await self._store.mark_done(request_id, result)
        logger.info(f"Analysis {request_id} completed")
        return ProcessOutcome.DONE

    async def _try_mark_failed(self, request_id: str, detail: dict[str, Any]) -> None:
        try:
            await self._store.mark_failed(request_id, detail)
        except AnalysisError as e:
            logger.warning(f"Could not record failure for analysis {request_id}: {e}")

    def _failure_detail(self, error: Exception) -> dict[str, Any]:
        """Operator-facing diagnostic. The stack trace is left out in production."""
        if isinstance(error, ExternalServiceError):
            kind = error.kind.value
            attempts = error.attempts
        elif isinstance(error, StorageError):
            kind = "storage"
            attempts = 1
        else:
            kind = "internal"
            attempts = 1

        detail: dict[str, Any] = {
            "kind": kind,
            "error_type": type(error).__name__,
            "message": str(error),
            "attempts": attempts,
            "failed_at": utcnow().isoformat(),
        }
        if self._include_trace:
            detail["trace"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        return detail
