"""
FastAPI dependency injection.

How this works:
- An endpoint declares `orchestrator: AnalysisOrchestrator = Depends(get_orchestrator)`
- FastAPI calls the dependency before the endpoint runs
- The objects themselves are built once in api/main.py's lifespan and live on
  app.state; these functions only hand them out

Tests replace any of these with app.dependency_overrides, so no endpoint
ever needs a real Redis, QStash or OpenAI.

Authentication:
    Tokens are issued by the user service, not by us. We only verify them:
    an HS256 JWT signed with JWT_SECRET whose `userId` claim becomes the
    owner of whatever the request creates.
"""

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from redis.asyncio import Redis

from config.settings import settings
from integrations.qstash import QStashSignatureVerifier
from worker.orchestrator import AnalysisOrchestrator

bearer_scheme = HTTPBearer(auto_error=False)


async def get_redis(request: Request) -> Redis:
    """Returns the Redis client stored on the app during startup."""
    return request.app.state.redis


async def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    return request.app.state.orchestrator


async def get_signature_verifier(request: Request) -> QStashSignatureVerifier:
    return request.app.state.signature_verifier


async def get_current_owner(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Resolve the bearer token to the requesting user's id, or answer 401."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="No token provided or invalid format")

    try:
        claims = jwt.decode(
            credentials.credentials, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM]
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    owner_id = claims.get("userId")
    if not owner_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return str(owner_id)
