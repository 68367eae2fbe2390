"""FastAPI application factory.

App factory pattern: create_app() returns a configured FastAPI instance.
The lifespan opens Redis, the HTTP client, and the license database, wires
the components onto app.state, and starts the relay and license sweeper.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import redis.asyncio as aioredis
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from pulsefeed import __version__
from pulsefeed.api import api_router
from pulsefeed.config import Settings, settings
from pulsefeed.db.engine import build_engine, build_session_factory, create_tables
from pulsefeed.events.store import EventStore
from pulsefeed.realtime.feed import LiveFeed
from pulsefeed.realtime.pubsub import create_redis
from pulsefeed.realtime.relay import RelayBridge
from pulsefeed.services.enrichment import EnrichmentCache
from pulsefeed.services.providers import DexScreenerClient, MoralisClient
from pulsefeed.services.retry import RetryCoordinator
from pulsefeed.services.scheduler import TaskScheduler

logger = structlog.get_logger()


def wire_app(
    app: FastAPI,
    *,
    redis: aioredis.Redis,
    http: httpx.AsyncClient,
    engine: AsyncEngine,
    scheduler: Optional[TaskScheduler] = None,
    config: Settings = settings,
) -> None:
    """Build every component from its collaborators and put it on app.state."""
    scheduler = scheduler or TaskScheduler()
    event_store = EventStore(
        redis,
        list_key=config.events_list_key,
        legacy_key=config.legacy_origins_key,
        max_events=config.max_events,
    )
    live_feed = LiveFeed()
    moralis = MoralisClient(http, config.moralis_api_key, base_url=config.moralis_base_url)
    dexscreener = DexScreenerClient(http, base_url=config.dexscreener_base_url)
    retries = RetryCoordinator(
        redis,
        moralis,
        scheduler,
        lock_ttl=config.retry_lock_ttl_seconds,
        delay=config.retry_delay_seconds,
        cache_ttl=config.token_cache_ttl_seconds,
    )

    app.state.redis = redis
    app.state.http = http
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.scheduler = scheduler
    app.state.event_store = event_store
    app.state.live_feed = live_feed
    app.state.enrichment_cache = EnrichmentCache(
        redis,
        dexscreener,
        moralis,
        retries,
        ttl=config.token_cache_ttl_seconds,
    )
    app.state.relay = RelayBridge(
        redis,
        live_feed,
        config.events_channel,
        events=event_store if config.persist_relayed_events else None,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "pulsefeed.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    redis = create_redis(settings.redis_url)
    try:
        await redis.ping()
        logger.info("pulsefeed.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("pulsefeed.redis_unavailable", error=str(e))

    engine = build_engine(settings.database_url, echo=settings.debug)
    try:
        await create_tables(engine)
    except Exception as e:
        logger.error("pulsefeed.license_table_failed", error=str(e))

    http = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    wire_app(app, redis=redis, http=http, engine=engine)

    await app.state.relay.start()

    from pulsefeed.services.license_service import LicenseSweeper
    sweeper = LicenseSweeper(
        app.state.session_factory,
        interval=settings.license_sweep_interval_seconds,
    )
    sweep_task = asyncio.create_task(sweeper.run_loop())
    logger.info("pulsefeed.license_sweeper_started")

    yield

    # Shutdown
    logger.info("pulsefeed.shutdown")

    sweeper.stop()
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass

    await app.state.relay.stop()
    await app.state.scheduler.shutdown()
    await http.aclose()
    await redis.aclose()
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="PulseFeed",
        description="Live contract feed, token info cache, and license checks",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: CORS -> Security -> RequestId -> handler

    from pulsefeed.middleware.request_id import RequestIdMiddleware
    from pulsefeed.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    # Live feed WebSocket
    from pulsefeed.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: pulsefeed.main:app)
app = create_app()
