"""API route aggregation.

All routers registered here get mounted in main.py. Paths are unprefixed
because existing clients call /contracts, /token-info and /license directly.
"""

from fastapi import APIRouter

from pulsefeed.api.contracts import router as contracts_router
from pulsefeed.api.health import router as health_router
from pulsefeed.api.licenses import router as licenses_router
from pulsefeed.api.tokens import router as tokens_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(contracts_router, tags=["contracts"])
api_router.include_router(tokens_router, tags=["tokens"])
api_router.include_router(licenses_router, tags=["licenses"])
