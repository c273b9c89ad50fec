"""
Key-value backend — the narrow storage contract the state store is written against.

The store only ever needs five primitives:

    get(key)                         → value or None
    set(key, value, ttl)             → overwrite, optional expiry
    set_if_absent(key, value, ttl)   → atomic SET NX, True if we wrote it
    delete(key)
    ttl(key)                         → seconds left, -1 no expiry, -2 missing

RedisBackend implements them on top of redis.asyncio. Every RedisError is
re-raised as StorageError so callers never import redis just to catch
its exceptions.

Atomicity of set_if_absent is what makes the processing lock correct
across processes, so it MUST be a single `SET key value NX EX ttl`
command, never a GET followed by a SET.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from models.errors import StorageError

logger = logging.getLogger(__name__)

TTL_NO_EXPIRY = -1
TTL_MISSING = -2


class KeyValueBackend(ABC):

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def ttl(self, key: str) -> int:
        ...


class RedisBackend(KeyValueBackend):

    def __init__(self, redis_client: Redis):
        self._redis = redis_client

    async def get(self, key: str) -> Optional[str]:
        try:
            data = await self._redis.get(key)
        except RedisError as e:
            logger.error(f"Redis GET {key} failed: {e}")
            raise StorageError(f"GET {key} failed: {e}") from e
        if data is None:
            return None
        return data.decode() if isinstance(data, bytes) else data

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            await self._redis.set(key, value, ex=ttl)
        except RedisError as e:
            logger.error(f"Redis SET {key} failed: {e}")
            raise StorageError(f"SET {key} failed: {e}") from e

    async def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        try:
            # redis-py returns True when written, None when the key already exists
            written = await self._redis.set(key, value, ex=ttl, nx=True)
        except RedisError as e:
            logger.error(f"Redis SET NX {key} failed: {e}")
            raise StorageError(f"SET NX {key} failed: {e}") from e
        return bool(written)

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as e:
            logger.error(f"Redis DEL {key} failed: {e}")
            raise StorageError(f"DEL {key} failed: {e}") from e

    async def ttl(self, key: str) -> int:
        try:
            return int(await self._redis.ttl(key))
        except RedisError as e:
            logger.error(f"Redis TTL {key} failed: {e}")
            raise StorageError(f"TTL {key} failed: {e}") from e
