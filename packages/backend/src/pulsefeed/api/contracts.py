"""Contracts API: the current list of discovered contracts.

Two response shapes, and clients handle both:
- [[address, channel, timestamp], ...] newest first (event list present)
- {address: channel} with no order (legacy hashes only)
"""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from pulsefeed.api.deps import get_event_store
from pulsefeed.events.store import EventStore

logger = structlog.get_logger()
router = APIRouter()


@router.get("/contracts")
async def list_contracts(store: EventStore = Depends(get_event_store)):
    try:
        result = await store.list_events()
    except Exception as e:
        logger.error("contracts.read_failed", error=str(e))
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch contracts from Redis"},
        )
    return result.to_json()
