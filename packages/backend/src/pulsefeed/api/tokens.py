"""Token info API: merged DexScreener + Moralis metadata, cached."""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from pulsefeed.api.deps import get_enrichment_cache
from pulsefeed.services.enrichment import EnrichmentCache, InvalidAddressError

logger = structlog.get_logger()
router = APIRouter()


@router.get("/token-info/{address}")
async def get_token_info(
    address: str,
    cache: EnrichmentCache = Depends(get_enrichment_cache),
):
    """Provider outages still answer 200 with partial data."""
    try:
        return await cache.get(address)
    except InvalidAddressError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("tokens.fetch_failed", address=address)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Failed to fetch token information",
                "address": address,
            },
        )
