"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("queued", not "AnalysisStatus.QUEUED")
- They round-trip through the Redis JSON records without custom encoders
- They work as FastAPI response fields
- Typos become immediate errors instead of silent bugs
"""

import enum


class AnalysisStatus(str, enum.Enum):
    QUEUED = "queued"            # accepted, waiting for the delayed callback
    PROCESSING = "processing"    # a webhook delivery holds the lock and is generating
    DONE = "done"                # finished successfully, result stored
    FAILED = "failed"            # generation failed, diagnostic stored

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    def can_transition_to(self, target: "AnalysisStatus") -> bool:
        return target in _TRANSITIONS[self]


_TERMINAL = frozenset({AnalysisStatus.DONE, AnalysisStatus.FAILED})

# Every status must appear here. PROCESSING → PROCESSING covers a redelivery
# after a crashed attempt whose lock has expired.
_TRANSITIONS: dict[AnalysisStatus, frozenset[AnalysisStatus]] = {
    AnalysisStatus.QUEUED: frozenset({AnalysisStatus.PROCESSING, AnalysisStatus.FAILED}),
    AnalysisStatus.PROCESSING: frozenset({
        AnalysisStatus.PROCESSING, AnalysisStatus.DONE, AnalysisStatus.FAILED,
    }),
    AnalysisStatus.DONE: frozenset(),
    AnalysisStatus.FAILED: frozenset(),
}

assert set(_TRANSITIONS) == set(AnalysisStatus), "transition table is incomplete"


class ExternalErrorKind(str, enum.Enum):
    AUTHENTICATION = "authentication"          # bad or revoked credentials
    RATE_LIMITED = "rate_limited"              # provider asked us to slow down
    TIMEOUT = "timeout"                        # call exceeded its deadline
    CONNECTION = "connection"                  # network failure before a response
    MALFORMED_REQUEST = "malformed_request"    # provider rejected our input
    MALFORMED_RESPONSE = "malformed_response"  # provider answered with nothing usable
    UPSTREAM = "upstream"                      # provider-side 5xx or other status error


class ProcessOutcome(str, enum.Enum):
    """What a single webhook delivery did. Returned by the orchestrator, echoed to QStash."""

    DONE = "done"
    FAILED = "failed"
    SKIPPED_LOCKED = "skipped_locked"        # another delivery holds the lock
    SKIPPED_MISSING = "skipped_missing"      # record expired or never existed
    SKIPPED_TERMINAL = "skipped_terminal"    # duplicate delivery after completion
    ERROR = "error"                          # storage failed; nothing could be recorded
