from typing import Optional

from redis import asyncio as aioredis

from app.core.logger import logger


class RedisKVStore:
    """
    Thin get/put-with-TTL facade over Redis.

    Shared by the rate limiter, the service catalog cache and the processed
    webhook markers. No locking: concurrent writers simply race.
    """

    def __init__(self, url: str, client: Optional[aioredis.Redis] = None):
        self.url = url
        self._client = client

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(self.url, decode_responses=True)
            logger.info("✅ Redis client initialized")
        return self._client

    async def get(self, key: str) -> Optional[str]:
        return await self._get_client().get(key)

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._get_client().set(key, value, ex=ttl)

    async def exists(self, key: str) -> bool:
        return bool(await self._get_client().exists(key))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
