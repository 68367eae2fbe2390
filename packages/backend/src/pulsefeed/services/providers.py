"""Upstream token data providers.

DexScreener is the primary source (trading pairs, price, volume, liquidity,
and the token-profile index). Moralis is the secondary source, used for
logos and on-chain metadata. Moralis indexes new mints with a delay, so a
404 from it usually means "not yet" rather than "never".

Both clients share one httpx.AsyncClient and raise ProviderError on any
failure, TokenNotFoundError on a 404.
"""

from typing import Any, Optional

import httpx


class ProviderError(Exception):
    pass


class TokenNotFoundError(ProviderError):
    pass


async def _get_json(
    http: httpx.AsyncClient,
    url: str,
    *,
    provider: str,
    headers: Optional[dict[str, str]] = None,
) -> Any:
    try:
        resp = await http.get(url, headers=headers)
    except httpx.HTTPError as e:
        raise ProviderError(f"{provider} request failed: {e}") from e

    if resp.status_code == 404:
        raise TokenNotFoundError(f"{provider}: not found ({url})")
    if resp.is_error:
        raise ProviderError(f"{provider}: HTTP {resp.status_code}")

    try:
        return resp.json()
    except ValueError as e:
        raise ProviderError(f"{provider}: invalid JSON body") from e


class DexScreenerClient:
    """Trading pairs and token profiles from the DexScreener API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str = "https://api.dexscreener.com",
        chain: str = "solana",
    ):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.chain = chain

    async def fetch_pairs(self, address: str) -> list[dict]:
        """All trading pairs for a token, best (most liquid) first."""
        data = await _get_json(
            self.http,
            f"{self.base_url}/tokens/v1/{self.chain}/{address}",
            provider="dexscreener",
        )
        if not isinstance(data, list):
            return []
        return [pair for pair in data if isinstance(pair, dict)]

    async def fetch_profile(self, address: str) -> Optional[dict]:
        """The token's profile from the latest-profiles index, if listed."""
        data = await _get_json(
            self.http,
            f"{self.base_url}/token-profiles/latest/v1",
            provider="dexscreener",
        )
        if not isinstance(data, list):
            return None
        wanted = address.lower()
        for profile in data:
            if not isinstance(profile, dict):
                continue
            if str(profile.get("tokenAddress", "")).lower() == wanted:
                return profile
        return None


class MoralisClient:
    """Token metadata (name, symbol, logo) from the Moralis Solana gateway."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        base_url: str = "https://solana-gateway.moralis.io",
        network: str = "mainnet",
    ):
        self.http = http
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.network = network

    async def fetch_metadata(self, mint: str) -> dict:
        data = await _get_json(
            self.http,
            f"{self.base_url}/token/{self.network}/{mint}/metadata",
            provider="moralis",
            headers={"accept": "application/json", "X-API-Key": self.api_key},
        )
        if not isinstance(data, dict):
            raise ProviderError("moralis: unexpected response shape")
        return data


def apply_moralis_metadata(info: dict, metadata: dict) -> Optional[str]:
    """Merge Moralis metadata into a token info record in place.

    The Moralis logo wins over DexScreener's icon. Returns the logo, if any.
    """
    logo = metadata.get("logo") or None
    info["moralis"] = {
        "mint": metadata.get("mint"),
        "name": metadata.get("name"),
        "symbol": metadata.get("symbol"),
        "logo": logo,
        "tokenStandard": metadata.get("tokenStandard"),
    }
    if logo:
        info["icon"] = logo
    return logo
