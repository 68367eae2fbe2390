"""FastAPI dependencies for the shared components on app.state.

Components are built once in the lifespan (see pulsefeed.main.wire_app) and
handed to handlers through these functions, so tests can swap any of them
with dependency_overrides or by wiring the app with fakes.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pulsefeed.db.engine import get_db
from pulsefeed.events.store import EventStore
from pulsefeed.services.enrichment import EnrichmentCache
from pulsefeed.services.license_service import LicenseService


def get_event_store(request: Request) -> EventStore:
    return request.app.state.event_store


def get_enrichment_cache(request: Request) -> EnrichmentCache:
    return request.app.state.enrichment_cache


def get_license_service(db: AsyncSession = Depends(get_db)) -> LicenseService:
    return LicenseService(db)
