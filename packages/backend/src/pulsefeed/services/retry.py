"""RetryCoordinator: one deferred Moralis retry per mint per cool-down window.

When Moralis answers 404 for a fresh mint, the token info is cached
without a logo and a single retry is scheduled. A Redis lock
(retry-lock:{mint}, SET NX EX) makes sure concurrent requests for the same
token schedule at most one retry.

Lock lifecycle:
    unlocked -> locked (retry pending) -> retry runs -> unlocked

The lock is released right after the retry, success or not. If release
fails or the process dies with the job pending, the lock TTL expires it.
"""

import json

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from pulsefeed.services.providers import (
    MoralisClient,
    ProviderError,
    apply_moralis_metadata,
)
from pulsefeed.services.scheduler import TaskScheduler

logger = structlog.get_logger()

LOCK_PREFIX = "retry-lock:"


def lock_key(mint: str) -> str:
    return f"{LOCK_PREFIX}{mint}"


class RetryCoordinator:
    def __init__(
        self,
        redis: aioredis.Redis,
        moralis: MoralisClient,
        scheduler: TaskScheduler,
        *,
        lock_ttl: int = 300,
        delay: float = 30.0,
        cache_ttl: int = 300,
    ):
        self.redis = redis
        self.moralis = moralis
        self.scheduler = scheduler
        self.lock_ttl = lock_ttl
        self.delay = delay
        self.cache_ttl = cache_ttl

    async def schedule_retry(self, mint: str, cache_key: str) -> bool:
        """Schedule one deferred enrichment for mint, unless one is pending.

        Returns True if a retry was scheduled. Never raises: a lock-store
        error just means no retry this time.
        """
        key = lock_key(mint)
        try:
            acquired = await self.redis.set(key, "1", nx=True, ex=self.lock_ttl)
        except RedisError as e:
            logger.warning("retry.lock_failed", mint=mint, error=str(e))
            return False

        if not acquired:
            logger.debug("retry.already_pending", mint=mint)
            return False

        self.scheduler.schedule(
            self.delay,
            lambda: self.run_retry(mint, cache_key),
            name=f"moralis-retry:{mint}",
        )
        logger.info("retry.scheduled", mint=mint, delay=self.delay)
        return True

    async def run_retry(self, mint: str, cache_key: str) -> bool:
        """The deferred job body. Returns True if the cache entry was updated."""
        try:
            return await self._enrich(mint, cache_key)
        finally:
            await self._release(mint)

    async def _enrich(self, mint: str, cache_key: str) -> bool:
        try:
            metadata = await self.moralis.fetch_metadata(mint)
        except ProviderError as e:
            logger.info("retry.moralis_failed", mint=mint, error=str(e))
            return False

        raw = await self.redis.get(cache_key)
        if raw is None:
            logger.info("retry.cache_entry_gone", mint=mint, key=cache_key)
            return False

        info = json.loads(raw)
        logo = apply_moralis_metadata(info, metadata)

        # XX: only overwrite a live key, never recreate an expired one.
        stored = await self.redis.set(
            cache_key, json.dumps(info), ex=self.cache_ttl, xx=True
        )
        if not stored:
            logger.info("retry.cache_entry_gone", mint=mint, key=cache_key)
            return False

        logger.info("retry.enriched", mint=mint, logo=bool(logo))
        return True

    async def _release(self, mint: str) -> None:
        try:
            await self.redis.delete(lock_key(mint))
        except RedisError as e:
            logger.warning("retry.unlock_failed", mint=mint, error=str(e))
