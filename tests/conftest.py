"""
Shared test fixtures.

These replace real infrastructure with lightweight in-memory alternatives:
- Redis → fakeredis (pure Python Redis mock, real SET NX / TTL semantics)
- OpenAI → FakeGenerator (returns canned text or raises a classified error)
- QStash → FakeDispatcher (records what would have been scheduled)
- HTTP server → httpx.AsyncClient with ASGI transport (no network)

This means tests:
- Run without Docker or API keys
- Run in milliseconds (no network, no disk)
- Are fully isolated (each test gets a fresh fake Redis)
"""

import asyncio
import time
import uuid

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import AsyncClient, ASGITransport
from jose import jwt

from api.dependencies import get_orchestrator, get_redis, get_signature_verifier
from api.main import create_app
from config.settings import settings
from integrations.base import DelayedDispatcher, TextGenerator
from integrations.qstash import QStashSignatureVerifier, body_hash
from models.analysis import AnalysisInput
from models.errors import ExternalServiceError
from store.analysis_store import AnalysisStateStore
from store.backend import RedisBackend
from worker.orchestrator import AnalysisOrchestrator
from worker.retry import RetryPolicy

WEBHOOK_URL = "http://test/webhooks/qstash/analyze"
SIGNING_KEY = "sig_current_test_key"
NEXT_SIGNING_KEY = "sig_next_test_key"


class FakeGenerator(TextGenerator):
    """
    Stand-in for OpenAI.

    `outcomes` is consumed one per call: a string is returned, an exception
    is raised. Once exhausted, the last outcome repeats.
    """

    def __init__(self, *outcomes, delay: float = 0.0):
        self.outcomes = list(outcomes) or ["Ann is curious and bold."]
        self.delay = delay
        self.calls: list[AnalysisInput] = []

    async def generate(self, analysis_input: AnalysisInput) -> str:
        self.calls.append(analysis_input)
        if self.delay:
            await asyncio.sleep(self.delay)
        index = min(len(self.calls), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, ExternalServiceError):
            # fresh instance per call so attempts counts don't leak between tests
            raise ExternalServiceError(outcome.kind, outcome.message, outcome.service)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeDispatcher(DelayedDispatcher):
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.scheduled: list[tuple[str, dict, int]] = []

    async def schedule(self, target_url: str, payload: dict, delay_seconds: int) -> str:
        if self.error is not None:
            raise self.error
        self.scheduled.append((target_url, payload, delay_seconds))
        return f"msg_{len(self.scheduled)}"


async def no_sleep(seconds: float) -> None:
    return None


def make_token(user_id: str = "u1", expires_in: int = 3600, secret: str | None = None) -> str:
    now = int(time.time())
    return jwt.encode(
        {"userId": user_id, "iat": now, "exp": now + expires_in},
        secret or settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def auth_headers(user_id: str = "u1") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def make_signature(body: bytes, key: str = SIGNING_KEY, expires_in: int = 300) -> str:
    """Sign a body the way QStash does."""
    now = int(time.time())
    return jwt.encode(
        {
            "iss": "Upstash",
            "sub": WEBHOOK_URL,
            "iat": now,
            "nbf": now,
            "exp": now + expires_in,
            "jti": f"jwt_{uuid.uuid4().hex}",
            "body": body_hash(body),
        },
        key,
        algorithm="HS256",
    )


@pytest.fixture
def sample_input():
    return AnalysisInput(name="Ann", age=30, description="curious")


@pytest_asyncio.fixture
async def fake_redis():
    """Create a fake Redis instance (in-memory, no real Redis needed)."""
    r = FakeRedis()
    yield r
    await r.flushall()


@pytest.fixture
def store(fake_redis, request):
    """Parametrize indirectly with a RedisBackend subclass to inject backend faults."""
    backend_cls = getattr(request, "param", RedisBackend)
    return AnalysisStateStore(backend_cls(fake_redis), state_ttl=3600, lock_ttl=120)


@pytest.fixture
def generator(request):
    """Parametrize indirectly with a tuple of FakeGenerator outcomes."""
    return FakeGenerator(*getattr(request, "param", ()))


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def orchestrator(store, generator, dispatcher):
    return AnalysisOrchestrator(
        store=store,
        generator=generator,
        dispatcher=dispatcher,
        retry_policy=RetryPolicy(max_attempts=3, base_delay=1.0, sleep=no_sleep),
        webhook_url=WEBHOOK_URL,
        dispatch_delay=60,
        include_trace=True,
    )


@pytest.fixture
def signature_verifier():
    return QStashSignatureVerifier(SIGNING_KEY, NEXT_SIGNING_KEY)


@pytest_asyncio.fixture
async def client(fake_redis, orchestrator, signature_verifier):
    """
    Create a test HTTP client that talks directly to the FastAPI app.

    dependency_overrides tells FastAPI: "instead of the objects built in the
    lifespan, use these test versions." The lifespan itself never runs under
    ASGITransport, so no real Redis, QStash or OpenAI client is created.
    """
    app = create_app()

    async def override_get_redis():
        return fake_redis

    async def override_get_orchestrator():
        return orchestrator

    async def override_get_signature_verifier():
        return signature_verifier

    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_orchestrator] = override_get_orchestrator
    app.dependency_overrides[get_signature_verifier] = override_get_signature_verifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
