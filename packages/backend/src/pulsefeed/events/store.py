"""Event store: recent contract discoveries kept in Redis.

Two layouts coexist:

1. contract_events: a Redis list of JSON events, LPUSHed by the producer
   (and by the relay), so index 0 is always the newest event.
2. contract_origins[:label]: older hash maps of address -> label with no
   timestamps. Only read when the list is empty.

Reads normalize labels, drop unknown ones, and keep the newest record per
address. Broken records are skipped one by one.
"""

import json
import time
from typing import Callable, Optional, Union

import redis.asyncio as aioredis
import structlog

from pulsefeed.events.types import (
    BASIC,
    PREMIUM,
    ContractEvent,
    EventSequence,
    LegacyMapping,
    normalize_channel,
)

logger = structlog.get_logger()

# Merge order for the fallback: later hashes overwrite earlier ones.
LEGACY_HASH_LABELS = [BASIC, PREMIUM, "calls", "nitro"]


def now_ms() -> int:
    return int(time.time() * 1000)


def _parse_timestamp(raw) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            return None
    return None


class EventStore:
    """Append/read access to the contract event list."""

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        list_key: str = "contract_events",
        legacy_key: str = "contract_origins",
        max_events: int = 1000,
        clock: Callable[[], int] = now_ms,
    ):
        self.redis = redis
        self.list_key = list_key
        self.legacy_key = legacy_key
        self.max_events = max_events
        self.clock = clock

    async def append(self, payload: str) -> None:
        """Push a raw serialized event at the head and trim the tail.

        Both commands go out as one MULTI/EXEC, so readers never see the
        list above max_events.
        """
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lpush(self.list_key, payload)
            pipe.ltrim(self.list_key, 0, self.max_events - 1)
            await pipe.execute()

    async def list_events(self) -> Union[EventSequence, LegacyMapping]:
        records = await self.redis.lrange(self.list_key, 0, -1)
        if records:
            return self._from_records(records)
        return await self._from_legacy_hashes()

    def _from_records(self, records: list[str]) -> EventSequence:
        seen: set[str] = set()
        events: list[ContractEvent] = []
        skipped = 0

        for raw in records:
            try:
                data = json.loads(raw)
            except (TypeError, ValueError):
                skipped += 1
                continue
            if not isinstance(data, dict):
                skipped += 1
                continue

            address = data.get("address")
            if not isinstance(address, str) or not address:
                skipped += 1
                continue

            channel = normalize_channel(data.get("channelName", data.get("channel")))
            if channel is None:
                continue
            if address in seen:
                continue
            seen.add(address)

            timestamp = _parse_timestamp(data.get("timestamp"))
            if timestamp is None:
                timestamp = self.clock()
            events.append(ContractEvent(address, channel, timestamp))

        if skipped:
            logger.warning("events.records_skipped", count=skipped, key=self.list_key)
        return EventSequence(events)

    async def _from_legacy_hashes(self) -> LegacyMapping:
        combined: dict[str, str] = {}

        legacy = await self.redis.hgetall(self.legacy_key)
        for address, label in (legacy or {}).items():
            channel = normalize_channel(label)
            if channel is not None:
                combined[address] = channel

        for label in LEGACY_HASH_LABELS:
            entries = await self.redis.hgetall(f"{self.legacy_key}:{label}")
            channel = normalize_channel(label)
            for address in entries or {}:
                combined[address] = channel

        return LegacyMapping(combined)
