"""
Analysis state store — domain persistence for analysis jobs and their locks.

The orchestrator never sees Redis keys, JSON or TTL arithmetic; it calls
create_queued / get_state / mark_* / processing_lock and this class turns
those into KeyValueBackend calls.

Key layout:
    analysis:{request_id}        → AnalysisJob JSON, TTL = state_ttl (1h)
    analysis:lock:{request_id}   → "locked",        TTL = lock_ttl  (2min)

TTL preservation:
    A transition rewrites the whole record, and a plain SET would either drop
    the expiry or reset it to the full window. Instead we read the remaining
    TTL first and write the new record with that same TTL. If Redis cannot
    tell us (key has no expiry, or vanished between the read and the TTL
    call) we fall back to the default window.

    created  ──────────────── 3600s ────────────────────→ expires
                         mark_done at t=3000 → still expires at 3600

Lock:
    SET NX EX on the lock key. No blocking, no retries: "someone else has it"
    is a normal answer. Release failures are logged and swallowed because the
    lock TTL reclaims the key anyway.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from pydantic import ValidationError

from models.analysis import AnalysisInput, AnalysisJob, utcnow
from models.enums import AnalysisStatus
from models.errors import InvalidTransitionError, NotFoundError, StorageError
from store.backend import KeyValueBackend

logger = logging.getLogger(__name__)


class AnalysisStateStore:

    STATE_KEY_PREFIX = "analysis"
    LOCK_KEY_PREFIX = "analysis:lock"
    LOCK_VALUE = "locked"

    def __init__(self, backend: KeyValueBackend, state_ttl: int = 3600, lock_ttl: int = 120):
        self._backend = backend
        self.state_ttl = state_ttl
        self.lock_ttl = lock_ttl

    # ── Job records ─────────────────────────────────────────────

    async def create_queued(
        self, request_id: str, owner_id: str, analysis_input: AnalysisInput
    ) -> AnalysisJob:
        """Write a fresh QUEUED record. The caller guarantees request_id is new."""
        now = utcnow()
        job = AnalysisJob(
            request_id=request_id,
            owner_id=owner_id,
            status=AnalysisStatus.QUEUED,
            input=analysis_input,
            created_at=now,
            updated_at=now,
        )
        await self._backend.set(self._state_key(request_id), job.model_dump_json(), ttl=self.state_ttl)
        logger.debug(f"Created queued analysis {request_id}")
        return job

    async def get_state(self, request_id: str) -> Optional[AnalysisJob]:
        """Return the record, or None if it never existed or has expired."""
        raw = await self._backend.get(self._state_key(request_id))
        if raw is None:
            return None
        try:
            return AnalysisJob.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Analysis {request_id} has a corrupted record: {e}")
            raise StorageError(f"Corrupted record for analysis {request_id}") from e

    async def mark_processing(self, request_id: str) -> AnalysisJob:
        return await self._transition(request_id, AnalysisStatus.PROCESSING)

    async def mark_done(self, request_id: str, result: str) -> AnalysisJob:
        return await self._transition(request_id, AnalysisStatus.DONE, result=result)

    async def mark_failed(self, request_id: str, failure_detail: dict[str, Any]) -> AnalysisJob:
        return await self._transition(
            request_id, AnalysisStatus.FAILED, failure_detail=failure_detail
        )

    # ── Processing lock ─────────────────────────────────────────

    async def acquire_lock(self, request_id: str) -> bool:
        """Try once to take the lock. False means another attempt owns the job."""
        acquired = await self._backend.set_if_absent(
            self._lock_key(request_id), self.LOCK_VALUE, ttl=self.lock_ttl
        )
        if acquired:
            logger.debug(f"Acquired lock for analysis {request_id}")
        else:
            logger.debug(f"Lock already held for analysis {request_id}")
        return acquired

    async def release_lock(self, request_id: str) -> None:
        try:
            await self._backend.delete(self._lock_key(request_id))
            logger.debug(f"Released lock for analysis {request_id}")
        except StorageError:
            # The lock TTL will reclaim the key.
            logger.warning(f"Failed to release lock for analysis {request_id}", exc_info=True)

    @asynccontextmanager
    async def processing_lock(self, request_id: str) -> AsyncIterator[bool]:
        """
        Scoped lock: yields whether it was acquired, and if so releases it on
        every way out of the block (return, skip, or exception).

            async with store.processing_lock(rid) as acquired:
                if not acquired:
                    return
                ...
        """
        acquired = await self.acquire_lock(request_id)
        try:
            yield acquired
        finally:
            if acquired:
                await self.release_lock(request_id)

    # ── Internals ───────────────────────────────────────────────

    def _state_key(self, request_id: str) -> str:
        return f"{self.STATE_KEY_PREFIX}:{request_id}"

    def _lock_key(self, request_id: str) -> str:
        return f"{self.LOCK_KEY_PREFIX}:{request_id}"

    async def _transition(self, request_id: str, target: AnalysisStatus, **fields: Any) -> AnalysisJob:
        current = await self.get_state(request_id)
        if current is None:
            raise NotFoundError(request_id)
        if not current.status.can_transition_to(target):
            raise InvalidTransitionError(request_id, current.status, target)

        # model_validate (not model_copy) so the outcome/status validator runs
        updated = AnalysisJob.model_validate({
            **current.model_dump(),
            **fields,
            "status": target,
            "updated_at": utcnow(),
        })
        await self._save_with_remaining_ttl(updated)
        logger.debug(f"Analysis {request_id}: {current.status.value} → {target.value}")
        return updated

    async def _save_with_remaining_ttl(self, job: AnalysisJob) -> None:
        key = self._state_key(job.request_id)
        remaining = await self._backend.ttl(key)
        # -1 (no expiry) and -2 (gone) are both "unknown": use the default window
        ttl = remaining if remaining > 0 else self.state_ttl
        await self._backend.set(key, job.model_dump_json(), ttl=ttl)
