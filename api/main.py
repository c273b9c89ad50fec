"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Runs startup logic (connect to Redis, build the HTTP and OpenAI clients,
   wire the store and orchestrator)
3. Registers all routers (analyze, webhooks, health) and error handlers
4. Runs shutdown logic (close connections)

Every external client is constructed exactly once here and handed down
explicitly. Nothing else in the codebase creates a Redis, httpx or OpenAI
client, which is what lets the tests swap them all out.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000 --reload
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.asyncio import Redis as AsyncRedis

from config.settings import settings
from api.routers import analyze, health, webhooks
from integrations.openai_client import OpenAITextGenerator
from integrations.qstash import QStashDispatcher, QStashSignatureVerifier
from models.errors import ExternalServiceError, NotFoundError, StorageError
from store.analysis_store import AnalysisStateStore
from store.backend import RedisBackend
from worker.orchestrator import AnalysisOrchestrator
from worker.retry import RetryPolicy

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Runs on startup (before yield) and shutdown (after yield).

    Startup:
    - Connects to Redis
    - Builds the QStash HTTP client and the OpenAI client
    - Wires store → orchestrator and the webhook signature verifier

    Shutdown:
    - Closes Redis, httpx and OpenAI connections
    """
    # ── Startup ─────────────────────────────────────────────────
    app.state.redis = AsyncRedis.from_url(
        settings.redis_url, socket_timeout=settings.REDIS_SOCKET_TIMEOUT
    )
    http_client = httpx.AsyncClient(timeout=settings.QSTASH_TIMEOUT)
    generator = OpenAITextGenerator.from_api_key(
        settings.OPENAI_API_KEY,
        model=settings.OPENAI_MODEL,
        max_output_tokens=settings.OPENAI_MAX_OUTPUT_TOKENS,
        timeout=settings.OPENAI_TIMEOUT,
    )

    store = AnalysisStateStore(
        RedisBackend(app.state.redis),
        state_ttl=settings.ANALYSIS_STATE_TTL,
        lock_ttl=settings.ANALYSIS_LOCK_TTL,
    )
    app.state.orchestrator = AnalysisOrchestrator(
        store=store,
        generator=generator,
        dispatcher=QStashDispatcher(http_client, settings.QSTASH_TOKEN, settings.QSTASH_URL),
        retry_policy=RetryPolicy(
            max_attempts=settings.MAX_RETRIES, base_delay=settings.RETRY_BACKOFF_BASE
        ),
        webhook_url=settings.webhook_url,
        dispatch_delay=settings.DISPATCH_DELAY_SECONDS,
        include_trace=not settings.is_production,
    )
    app.state.signature_verifier = QStashSignatureVerifier(
        settings.QSTASH_CURRENT_SIGNING_KEY, settings.QSTASH_NEXT_SIGNING_KEY
    )
    logger.info(
        f"API ready ({settings.ENVIRONMENT}), webhook {settings.webhook_url}, "
        f"delay {settings.DISPATCH_DELAY_SECONDS}s"
    )

    yield  # app is running and serving requests between startup and shutdown

    # ── Shutdown ────────────────────────────────────────────────
    await generator.close()
    await http_client.aclose()
    await app.state.redis.close()
    logger.info("API shut down")


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed on storage: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Analysis storage is unavailable"})


async def external_service_error_handler(request: Request, exc: ExternalServiceError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed on {exc.service}: {exc}")
    return JSONResponse(
        status_code=502, content={"detail": "Could not schedule the analysis, please retry"}
    )


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    app = FastAPI(
        title="Analysis Pipeline",
        description="Asynchronous personality analysis: queued in Redis, completed by a delayed QStash webhook",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Register routers, each one adds its endpoints to the app
    app.include_router(health.router)
    app.include_router(analyze.router)
    app.include_router(webhooks.router)

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(ExternalServiceError, external_service_error_handler)

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
