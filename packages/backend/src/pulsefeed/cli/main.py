"""PulseFeed CLI: run the server, publish test events, inspect the feed.

Usage:
    pulsefeed serve                              # Run the API + live feed
    pulsefeed publish <address> --channel premium # Publish a contract event
    pulsefeed contracts                          # Current contract list
    pulsefeed token <address>                    # Token info via the API
    pulsefeed license <key>                      # License status via the API
    pulsefeed expire-licenses                    # Revoke expired licenses now
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import time
from typing import Optional

import click
import httpx
import redis.asyncio as aioredis

from pulsefeed import __version__
from pulsefeed.config import settings

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:4000"


def _api_url() -> str:
    return os.environ.get("PULSEFEED_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the PulseFeed server."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


def _redis() -> aioredis.Redis:
    from pulsefeed.realtime.pubsub import create_redis
    return create_redis(settings.redis_url)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _channel_color(channel: str) -> str:
    return {"basic": "cyan", "premium": "magenta"}.get(channel, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="pulsefeed")
def main():
    """PulseFeed: live contract feed, token info, and licenses."""


@main.command()
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", default=None, type=int, help="Port (default from settings)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the HTTP API and WebSocket feed."""
    import uvicorn

    uvicorn.run(
        "pulsefeed.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# pulsefeed publish
# ---------------------------------------------------------------------------


@main.command()
@click.argument("address")
@click.option(
    "--channel", "-c",
    type=click.Choice(["basic", "premium"]),
    default="basic",
    show_default=True,
)
@click.option("--store", is_flag=True, help="Also push the event onto the event list")
def publish(address: str, channel: str, store: bool):
    """Publish a contract event the way the scanner does."""
    receivers = _run(_publish_impl(address, channel, store))
    click.secho(f"Published {address} ({channel}) to {receivers} subscriber(s)", fg="green")


async def _publish_impl(address: str, channel: str, store: bool) -> int:
    from pulsefeed.events.store import EventStore
    from pulsefeed.events.types import ContractEvent
    from pulsefeed.realtime.pubsub import publish_event

    event = ContractEvent(address, channel, int(time.time() * 1000))
    redis = _redis()
    try:
        if store:
            await EventStore(
                redis,
                list_key=settings.events_list_key,
                max_events=settings.max_events,
            ).append(event.to_payload())
        return await publish_event(redis, settings.events_channel, event)
    finally:
        await redis.aclose()


# ---------------------------------------------------------------------------
# pulsefeed contracts / token / license
# ---------------------------------------------------------------------------


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def contracts(as_json: bool):
    """Show the current contract list."""
    data = _run(_get_json("/contracts"))
    if as_json:
        click.echo(_pretty_json(data))
        return

    if isinstance(data, dict):
        click.secho("Legacy hashes only (no order, no timestamps)", fg="yellow")
        for address, channel in data.items():
            click.echo(f"{address}  " + click.style(channel, fg=_channel_color(channel)))
        return

    if not data:
        click.echo("No contracts yet.")
        return
    for address, channel, timestamp in data:
        when = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(timestamp / 1000))
        click.echo(f"{when}  {address}  " + click.style(channel, fg=_channel_color(channel)))


@main.command()
@click.argument("address")
def token(address: str):
    """Show token info for an address."""
    click.echo(_pretty_json(_run(_get_json(f"/token-info/{address}"))))


@main.command("license")
@click.argument("key")
def license_status(key: str):
    """Check a license key."""
    data = _run(_get_json("/license/status", params={"key": key}))
    if data.get("active"):
        click.secho(f"Active ({data.get('tier')}) until {data.get('expiresAt')}", fg="green")
    else:
        click.secho("Inactive", fg="red")


async def _get_json(path: str, params: Optional[dict] = None):
    async with _client() as c:
        r = await c.get(path, params=params)
        r.raise_for_status()
        return r.json()


# ---------------------------------------------------------------------------
# pulsefeed expire-licenses
# ---------------------------------------------------------------------------


@main.command("expire-licenses")
def expire_licenses():
    """Revoke every license whose expiry has passed."""
    count = _run(_expire_impl())
    click.echo(f"Revoked {count} expired license(s)")


async def _expire_impl() -> int:
    from pulsefeed.db.engine import build_engine, build_session_factory
    from pulsefeed.services.license_service import LicenseSweeper

    engine = build_engine(settings.database_url)
    try:
        return await LicenseSweeper(build_session_factory(engine)).sweep_once()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    main()
