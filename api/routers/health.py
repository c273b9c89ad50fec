"""
Health check endpoint.

This is the first thing you hit to verify the system is running.
It checks Redis connectivity, since every analysis lives there.

In production, load balancers and container orchestrators (k8s) use
health endpoints to decide if a service is ready to receive traffic.
"""

from fastapi import APIRouter, Depends
from redis.asyncio import Redis

from api.dependencies import get_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    redis: Redis = Depends(get_redis),
) -> dict:
    """Check that Redis is reachable."""
    await redis.ping()

    return {"status": "healthy", "redis": "ok"}
