"""RelayBridge: one Redis subscription fanned out to every live client.

Payloads are forwarded byte-for-byte as the producer wrote them. Label
normalization happens at query time (EventStore.list_events), never here.
"""

import asyncio
from typing import Optional

import redis.asyncio as aioredis
import structlog

from pulsefeed.events.store import EventStore
from pulsefeed.realtime.feed import LiveFeed

logger = structlog.get_logger()


class RelayBridge:
    """Subscribes to a single channel and forwards each message in order.

    Usage:
        bridge = RelayBridge(redis, feed, "new_contracts", events=store)
        await bridge.start()
        ...
        await bridge.stop()

    A failed subscription is logged, not raised. The bridge never
    resubscribes on its own; reconnects are left to the Redis client.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        feed: LiveFeed,
        channel: str,
        *,
        events: Optional[EventStore] = None,
    ):
        self.redis = redis
        self.feed = feed
        self.channel = channel
        self.events = events
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> bool:
        """Subscribe and start the listener task. Returns False on failure."""
        self._pubsub = self.redis.pubsub()
        try:
            await self._pubsub.subscribe(self.channel)
        except Exception as e:
            logger.error("relay.subscribe_failed", channel=self.channel, error=str(e))
            return False

        logger.info("relay.subscribed", channel=self.channel)
        self._task = asyncio.create_task(self._listen(), name=f"relay:{self.channel}")
        return True

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "message":
                    continue
                await self.handle_message(message["data"])
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("relay.listener_failed", channel=self.channel, error=str(e))

    async def handle_message(self, payload: str) -> int:
        """Store (optionally) and broadcast one raw payload."""
        logger.debug("relay.message_received", channel=self.channel, size=len(payload))
        if self.events is not None:
            try:
                await self.events.append(payload)
            except Exception as e:
                logger.warning("relay.append_failed", error=str(e))
        return await self.feed.broadcast(payload)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self.channel)
                await self._pubsub.aclose()
            except Exception as e:
                logger.warning("relay.unsubscribe_failed", error=str(e))
            self._pubsub = None
        logger.info("relay.stopped", channel=self.channel)
