"""EnrichmentCache: token info assembled from DexScreener + Moralis, cached in Redis.

Lookup flow for GET /token-info/{address}:
1. Normalize the address (callers sometimes pass pasted chat text).
2. Cache hit on token_info:{address} -> return it untouched.
3. Miss -> DexScreener pairs and profile, each best-effort.
4. Moralis metadata for the best-known mint. A logo overrides the icon.
   A 404 schedules one background retry (see RetryCoordinator).
5. Cache the merged record for token_cache_ttl seconds.

Provider and cache failures never fail the lookup; the caller gets
whatever could be assembled.
"""

import asyncio
import json
import re
from typing import Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from pulsefeed.services.providers import (
    DexScreenerClient,
    MoralisClient,
    ProviderError,
    TokenNotFoundError,
    apply_moralis_metadata,
)
from pulsefeed.services.retry import RetryCoordinator

logger = structlog.get_logger()

CACHE_PREFIX = "token_info:"
MAX_ADDRESS_LENGTH = 128

# Base58 alphabet (no 0, O, I, l), 32-44 chars: a Solana public key.
# Longer base58 runs (signatures) are not addresses and must not be cut.
_B58 = "1-9A-HJ-NP-Za-km-z"
SOLANA_ADDRESS_RE = re.compile(rf"(?<![{_B58}])[{_B58}]{{32,44}}(?![{_B58}])")


class InvalidAddressError(ValueError):
    pass


def normalize_solana_address(raw: str) -> str:
    """Extract the longest Solana-looking address from raw input.

    Falls back to the stripped input when nothing matches.
    """
    text = (raw or "").strip()
    matches = SOLANA_ADDRESS_RE.findall(text)
    if not matches:
        return text
    return max(matches, key=len)


def cache_key(address: str) -> str:
    return f"{CACHE_PREFIX}{address}"


def merge_token_info(
    address: str,
    pairs: list[dict],
    profile: Optional[dict],
) -> dict:
    """Build the token info record from DexScreener data.

    Profile fields come first; the best pair only fills name/symbol when
    the profile has none. Market values pass through unconverted.
    """
    best_pair = pairs[0] if pairs else None
    info = {
        "address": address,
        "pairs": pairs,
        "bestPair": best_pair,
        "profile": profile,
        "name": None,
        "symbol": None,
        "icon": None,
        "description": None,
        "links": None,
        "price": None,
        "priceChange24h": None,
        "volume24h": None,
        "liquidity": None,
        "marketCap": None,
        "dexId": None,
        "chainId": None,
        "pairAddress": None,
    }

    if profile:
        info["name"] = profile.get("name")
        info["symbol"] = profile.get("symbol")
        info["icon"] = profile.get("icon")
        info["description"] = profile.get("description")
        info["links"] = profile.get("links")

    if best_pair:
        base_token = best_pair.get("baseToken") or {}
        if not info["name"]:
            info["name"] = base_token.get("name")
        if not info["symbol"]:
            info["symbol"] = base_token.get("symbol")

        info["price"] = best_pair.get("priceUsd")
        info["priceChange24h"] = (best_pair.get("priceChange") or {}).get("h24")
        info["volume24h"] = (best_pair.get("volume") or {}).get("h24")
        info["liquidity"] = (best_pair.get("liquidity") or {}).get("usd")
        info["marketCap"] = best_pair.get("marketCap") or best_pair.get("fdv")
        info["dexId"] = best_pair.get("dexId")
        info["chainId"] = best_pair.get("chainId")
        info["pairAddress"] = best_pair.get("pairAddress")

    return info


def best_mint(info: dict) -> str:
    """The pair's base-token address is more canonical than what the caller typed."""
    base_token = (info.get("bestPair") or {}).get("baseToken") or {}
    return base_token.get("address") or info["address"]


class EnrichmentCache:
    def __init__(
        self,
        redis: aioredis.Redis,
        dexscreener: DexScreenerClient,
        moralis: MoralisClient,
        retries: Optional[RetryCoordinator] = None,
        *,
        ttl: int = 300,
    ):
        self.redis = redis
        self.dexscreener = dexscreener
        self.moralis = moralis
        self.retries = retries
        self.ttl = ttl

    async def get(self, raw_address: str) -> dict:
        address = normalize_solana_address(raw_address)
        if not address or len(address) > MAX_ADDRESS_LENGTH:
            raise InvalidAddressError("Token address is required")

        key = cache_key(address)
        cached = await self._read(key)
        if cached is not None:
            return cached

        pairs, profile = await asyncio.gather(
            self._fetch_pairs(address),
            self._fetch_profile(address),
        )
        info = merge_token_info(address, pairs, profile)

        mint = best_mint(info)
        needs_retry = await self._apply_moralis(info, mint)

        await self._write(key, info)

        if needs_retry and self.retries is not None:
            await self.retries.schedule_retry(mint, key)
        return info

    # ─── Cache store ───────────────────────────────────────

    async def _read(self, key: str) -> Optional[dict]:
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            logger.warning("enrichment.cache_read_failed", key=key, error=str(e))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("enrichment.cache_entry_corrupt", key=key)
            return None

    async def _write(self, key: str, info: dict) -> None:
        try:
            await self.redis.set(key, json.dumps(info), ex=self.ttl)
        except RedisError as e:
            logger.warning("enrichment.cache_write_failed", key=key, error=str(e))

    # ─── Providers ─────────────────────────────────────────

    async def _fetch_pairs(self, address: str) -> list[dict]:
        try:
            return await self.dexscreener.fetch_pairs(address)
        except ProviderError as e:
            logger.info("enrichment.pairs_unavailable", address=address, error=str(e))
            return []

    async def _fetch_profile(self, address: str) -> Optional[dict]:
        try:
            return await self.dexscreener.fetch_profile(address)
        except ProviderError as e:
            logger.info("enrichment.profile_unavailable", address=address, error=str(e))
            return None

    async def _apply_moralis(self, info: dict, mint: str) -> bool:
        """Merge Moralis metadata. Returns True when a retry is warranted."""
        try:
            metadata = await self.moralis.fetch_metadata(mint)
        except TokenNotFoundError:
            logger.info("enrichment.moralis_not_found", mint=mint)
            return True
        except ProviderError as e:
            logger.warning("enrichment.moralis_failed", mint=mint, error=str(e))
            return False

        if not apply_moralis_metadata(info, metadata):
            logger.info("enrichment.moralis_no_logo", mint=mint)
        return False
