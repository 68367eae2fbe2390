"""Redis connection helpers and the producer-side publish call.

Redis pub/sub is fire-and-forget. If no one is listening, the message is
lost. The event list (see pulsefeed.events.store) is what gives clients
something to catch up from.
"""

import redis.asyncio as aioredis

from pulsefeed.events.types import ContractEvent


def create_redis(url: str) -> aioredis.Redis:
    """Build a Redis client. Connections are opened lazily on first use."""
    return aioredis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
    )


async def publish_event(
    redis: aioredis.Redis,
    channel: str,
    event: ContractEvent,
) -> int:
    """Publish a contract event. Returns the number of subscribers reached."""
    return await redis.publish(channel, event.to_payload())
