"""Health check endpoint.

Verifies the server is running and its dependencies (Redis, the license
database) are reachable. The relay's subscription state is reported too.
"""

from fastapi import APIRouter, Request
from sqlalchemy import text

from pulsefeed import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    state = request.app.state
    checks = {"server": "ok", "version": __version__}

    # Check Redis
    try:
        await state.redis.ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"error: {e}"

    # Check the license database
    try:
        async with state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    checks["relay"] = "ok" if state.relay.running else "stopped"

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k != "version"
    ) else "degraded"

    return {"status": status, "clients": state.live_feed.client_count, **checks}
