"""Enrichment cache tests.

Covers:
1. Address extraction from noisy input
2. Cache hits skip every provider
3. Field merge rules (profile first, pair fallback, fdv fallback)
4. Moralis logo overrides the icon; 404 schedules one retry
5. Provider and cache-store failures degrade to partial data
"""

import json

import httpx
import pytest

from pulsefeed.services.enrichment import (
    EnrichmentCache,
    InvalidAddressError,
    cache_key,
    normalize_solana_address,
)
from pulsefeed.services.providers import DexScreenerClient, MoralisClient
from pulsefeed.services.retry import RetryCoordinator

MINT = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
BASE_MINT = "So11111111111111111111111111111111111111112"

PAIR = {
    "chainId": "solana",
    "dexId": "raydium",
    "pairAddress": "PairAddr1111111111111111111111111111111111",
    "baseToken": {"address": BASE_MINT, "name": "Pair Name", "symbol": "PAIR"},
    "priceUsd": "0.00123",
    "priceChange": {"h24": -4.5},
    "volume": {"h24": 125000.5},
    "liquidity": {"usd": 88000},
    "fdv": 1500000,
}

PROFILE = {
    "tokenAddress": MINT.lower(),
    "icon": "https://cdn.dexscreener.com/icon.png",
    "description": "A token",
    "links": [{"type": "twitter", "url": "https://x.com/token"}],
}


def _cache(fake_redis, http_client, scheduler, ttl=300):
    moralis = MoralisClient(http_client, "test-key")
    retries = RetryCoordinator(fake_redis, moralis, scheduler, delay=30)
    return EnrichmentCache(
        fake_redis,
        DexScreenerClient(http_client),
        moralis,
        retries,
        ttl=ttl,
    )


# ─── Address normalization ──────────────────────────────


def test_normalize_extracts_embedded_address():
    raw = f"check out this token: {MINT}!!"
    assert normalize_solana_address(raw) == MINT


def test_normalize_prefers_longest_match():
    short = "1" * 32
    raw = f"{short} and {MINT}"
    assert normalize_solana_address(raw) == MINT


def test_normalize_ignores_longer_base58_runs():
    signature = "5" * 44 + "K" * 44
    assert normalize_solana_address(signature) == signature
    assert normalize_solana_address(f"sig {signature} mint {MINT}") == MINT


def test_normalize_falls_back_to_trimmed_input():
    assert normalize_solana_address("  0xdeadbeef  ") == "0xdeadbeef"
    assert normalize_solana_address("   ") == ""


# ─── Cache behaviour ────────────────────────────────────


@pytest.mark.asyncio
async def test_second_fetch_is_served_from_cache(fake_redis, http_client, upstream, scheduler):
    upstream.pairs = (200, [PAIR])
    upstream.profiles = (200, [PROFILE])
    upstream.moralis_responses = [(200, {"mint": BASE_MINT, "logo": "https://logo/x.png"})]
    cache = _cache(fake_redis, http_client, scheduler)

    first = await cache.get(MINT)
    calls_after_first = dict(upstream.calls)
    second = await cache.get(MINT)

    assert json.dumps(second, sort_keys=True) == json.dumps(first, sort_keys=True)
    assert dict(upstream.calls) == calls_after_first
    assert calls_after_first == {"pairs": 1, "profiles": 1, "moralis": 1}


@pytest.mark.asyncio
async def test_cache_expires_after_ttl(fake_redis, http_client, upstream, scheduler):
    upstream.moralis_responses = [(500, {})]
    cache = _cache(fake_redis, http_client, scheduler)

    await cache.get(MINT)
    fake_redis.advance(299)
    await cache.get(MINT)
    assert upstream.calls["pairs"] == 1

    fake_redis.advance(2)
    await cache.get(MINT)
    assert upstream.calls["pairs"] == 2


@pytest.mark.asyncio
async def test_noisy_input_uses_normalized_cache_key(fake_redis, http_client, upstream, scheduler):
    upstream.moralis_responses = [(500, {})]
    cache = _cache(fake_redis, http_client, scheduler)

    info = await cache.get(f"  look: {MINT} !! ")

    assert info["address"] == MINT
    assert await fake_redis.get(cache_key(MINT)) is not None
    assert await fake_redis.ttl(cache_key(MINT)) == 300


@pytest.mark.asyncio
async def test_blank_address_rejected(fake_redis, http_client, scheduler):
    cache = _cache(fake_redis, http_client, scheduler)
    with pytest.raises(InvalidAddressError):
        await cache.get("   ")


# ─── Merge rules ────────────────────────────────────────


@pytest.mark.asyncio
async def test_merge_profile_and_pair(fake_redis, http_client, upstream, scheduler):
    profile = dict(PROFILE, name="Profile Name")
    upstream.pairs = (200, [PAIR, dict(PAIR, dexId="orca")])
    upstream.profiles = (200, [{"tokenAddress": "other"}, profile])
    upstream.moralis_responses = [(500, {})]
    cache = _cache(fake_redis, http_client, scheduler)

    info = await cache.get(MINT)

    assert info["name"] == "Profile Name"  # profile wins
    assert info["symbol"] == "PAIR"  # pair fills what the profile lacks
    assert info["icon"] == PROFILE["icon"]
    assert info["description"] == "A token"
    assert info["links"] == PROFILE["links"]
    assert info["price"] == "0.00123"
    assert info["priceChange24h"] == -4.5
    assert info["volume24h"] == 125000.5
    assert info["liquidity"] == 88000
    assert info["marketCap"] == 1500000  # fdv fallback
    assert info["dexId"] == "raydium"
    assert info["chainId"] == "solana"
    assert info["pairAddress"] == PAIR["pairAddress"]
    assert len(info["pairs"]) == 2
    assert info["bestPair"]["dexId"] == "raydium"


@pytest.mark.asyncio
async def test_market_cap_preferred_over_fdv(fake_redis, http_client, upstream, scheduler):
    upstream.pairs = (200, [dict(PAIR, marketCap=900000)])
    upstream.moralis_responses = [(500, {})]
    info = await _cache(fake_redis, http_client, scheduler).get(MINT)
    assert info["marketCap"] == 900000


@pytest.mark.asyncio
async def test_both_primary_sources_down_yields_empty_fields(fake_redis, http_client, upstream, scheduler):
    upstream.pairs = (503, {})
    upstream.profiles = (200, httpx.ConnectError("boom"))
    upstream.moralis_responses = [(500, {})]

    info = await _cache(fake_redis, http_client, scheduler).get(MINT)

    assert info["address"] == MINT
    assert info["pairs"] == []
    assert info["bestPair"] is None
    assert info["profile"] is None
    assert info["name"] is None
    assert info["price"] is None
    assert "moralis" not in info


# ─── Moralis ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_moralis_logo_overrides_icon_and_uses_pair_mint(fake_redis, http_client, upstream, scheduler):
    upstream.pairs = (200, [PAIR])
    upstream.profiles = (200, [PROFILE])
    upstream.moralis_responses = [(200, {
        "mint": BASE_MINT,
        "name": "Moralis Name",
        "symbol": "MOR",
        "logo": "https://logo/moralis.png",
        "tokenStandard": "fungible",
    })]

    info = await _cache(fake_redis, http_client, scheduler).get(MINT)

    assert upstream.moralis_mints == [BASE_MINT]
    assert upstream.moralis_keys == ["test-key"]
    assert info["icon"] == "https://logo/moralis.png"
    assert info["moralis"] == {
        "mint": BASE_MINT,
        "name": "Moralis Name",
        "symbol": "MOR",
        "logo": "https://logo/moralis.png",
        "tokenStandard": "fungible",
    }
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_moralis_without_logo_keeps_profile_icon(fake_redis, http_client, upstream, scheduler):
    upstream.profiles = (200, [PROFILE])
    upstream.moralis_responses = [(200, {"mint": MINT, "logo": None})]

    info = await _cache(fake_redis, http_client, scheduler).get(MINT)

    assert info["icon"] == PROFILE["icon"]
    assert info["moralis"]["logo"] is None
    assert upstream.moralis_mints == [MINT]


@pytest.mark.asyncio
async def test_moralis_not_found_schedules_retry(fake_redis, http_client, upstream, scheduler):
    upstream.pairs = (200, [PAIR])

    info = await _cache(fake_redis, http_client, scheduler).get(MINT)

    assert "moralis" not in info
    assert scheduler.pending == 1
    delay, _, name = scheduler.jobs[0]
    assert delay == 30
    assert name == f"moralis-retry:{BASE_MINT}"
    assert await fake_redis.get(f"retry-lock:{BASE_MINT}") == "1"


@pytest.mark.asyncio
async def test_moralis_other_failure_does_not_retry(fake_redis, http_client, upstream, scheduler):
    upstream.moralis_responses = [(500, {"error": "boom"})]

    await _cache(fake_redis, http_client, scheduler).get(MINT)

    assert scheduler.pending == 0
    assert await fake_redis.get(f"retry-lock:{MINT}") is None


# ─── Cache store failures ───────────────────────────────


@pytest.mark.asyncio
async def test_cache_read_failure_refetches(fake_redis, http_client, upstream, scheduler):
    upstream.moralis_responses = [(500, {})]
    cache = _cache(fake_redis, http_client, scheduler)
    await cache.get(MINT)

    fake_redis.fail.add("get")
    info = await cache.get(MINT)

    assert info["address"] == MINT
    assert upstream.calls["pairs"] == 2


@pytest.mark.asyncio
async def test_cache_write_failure_still_returns(fake_redis, http_client, upstream, scheduler):
    upstream.pairs = (200, [PAIR])
    upstream.moralis_responses = [(500, {})]
    fake_redis.fail.add("set")

    info = await _cache(fake_redis, http_client, scheduler).get(MINT)

    assert info["price"] == "0.00123"
    assert await fake_redis.get(cache_key(MINT)) is None


@pytest.mark.asyncio
async def test_corrupt_cache_entry_is_refetched(fake_redis, http_client, upstream, scheduler):
    upstream.moralis_responses = [(500, {})]
    await fake_redis.set(cache_key(MINT), "{broken", ex=300)

    info = await _cache(fake_redis, http_client, scheduler).get(MINT)

    assert info["address"] == MINT
    assert upstream.calls["pairs"] == 1
