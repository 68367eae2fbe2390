"""License purchase, status checks, and the expiry sweep.

Keys look like PLS-1A2B-3C4D-5E6F-7A8B-9C0D (10 random bytes as upper-case
hex, five groups of four). Purchases are free for now; the tier only picks
the duration.

Status checks fail closed: an empty, unknown, or malformed key is simply
an inactive license, never an error.
"""

import asyncio
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pulsefeed.db.models import License, as_utc, utcnow

logger = structlog.get_logger()

TIER_DURATIONS = {
    "monthly": timedelta(days=30),
    "yearly": timedelta(days=365),
}

KEY_PREFIX = "PLS"


class InvalidTierError(ValueError):
    pass


def generate_license_key() -> str:
    raw = secrets.token_hex(10).upper()
    groups = [raw[i:i + 4] for i in range(0, len(raw), 4)]
    return "-".join([KEY_PREFIX, *groups])


class LicenseService:
    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def purchase(self, tier: Optional[str]) -> License:
        if not isinstance(tier, str) or tier not in TIER_DURATIONS:
            raise InvalidTierError("Invalid tier")

        now = self.clock()
        lic = License(
            license_key=generate_license_key(),
            tier=tier,
            created_at=now,
            expires_at=now + TIER_DURATIONS[tier],
            revoked=False,
        )
        self.db.add(lic)
        await self.db.commit()

        logger.info("license.purchased", tier=tier, expires_at=lic.expires_at.isoformat())
        return lic

    async def status(self, key: Optional[str]) -> dict:
        """Return {"active": bool, "tier"?, "expires_at"?} for a key."""
        key = (key or "").strip()
        if not key:
            return {"active": False}

        lic = await self.db.get(License, key)
        if lic is None:
            return {"active": False}

        expires_at = as_utc(lic.expires_at)
        return {
            "active": not lic.revoked and expires_at > self.clock(),
            "tier": lic.tier,
            "expires_at": expires_at,
        }

    async def expire_licenses(self) -> int:
        """Revoke every license whose expiry has passed. Returns the count."""
        result = await self.db.execute(
            update(License)
            .where(License.expires_at <= self.clock(), License.revoked.is_(False))
            .values(revoked=True)
        )
        await self.db.commit()
        count = result.rowcount or 0
        if count:
            logger.info("license.expired", count=count)
        return count


class LicenseSweeper:
    """Background loop that periodically revokes expired licenses.

    Runs as a long-lived task in the FastAPI lifespan. Each pass gets its
    own DB session.

    Usage:
        sweeper = LicenseSweeper(session_factory, interval=3600)
        asyncio.create_task(sweeper.run_loop())
    """

    def __init__(self, session_factory: async_sessionmaker, interval: float = 3600.0):
        self.session_factory = session_factory
        self.interval = interval
        self._running = False

    async def run_loop(self) -> None:
        self._running = True
        logger.info("license_sweeper.started", interval=self.interval)

        while self._running:
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("license_sweeper.error")
            await asyncio.sleep(self.interval)

    async def sweep_once(self) -> int:
        async with self.session_factory() as db:
            return await LicenseService(db).expire_licenses()

    def stop(self) -> None:
        self._running = False
        logger.info("license_sweeper.stopping")
