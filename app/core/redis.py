from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.asyncio import Redis

from .config import settings


class RedisManager:
    _instance = None

    @classmethod
    def get_client(cls) -> Redis:
        if cls._instance is None:
            cls._instance = Redis.from_url(settings.REDIS_URL, decode_responses=True)
        return cls._instance

    @classmethod
    async def close(cls):
        if cls._instance is not None:
            await cls._instance.aclose()
            cls._instance = None


@asynccontextmanager
async def sweep_lock(name: str, timeout: int = None) -> AsyncIterator[bool]:
    """
    Non-blocking overlap guard for periodic tasks.

    Yields False when another worker holds the lock. The work itself stays
    idempotent; the lock only avoids running the same sweep twice at once.
    """
    client = RedisManager.get_client()
    lock = client.lock(
        f"moderation:lock:{name}",
        timeout=timeout or settings.SWEEP_LOCK_TIMEOUT_SECONDS,
        blocking=False,
    )
    acquired = await lock.acquire()
    try:
        yield acquired
    finally:
        if acquired:
            await lock.release()


async def check_connection() -> bool:
    try:
        client = RedisManager.get_client()
        await client.ping()
        return True
    except Exception:
        return False
