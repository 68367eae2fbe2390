"""SQLAlchemy ORM models.

Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Only licenses live in the relational database; everything real-time lives
in Redis.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, Text, false, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class License(Base):
    """A purchased license key.

    A license is active while it is not revoked and expires_at is in the
    future. The expiry sweep flips revoked once expires_at has passed.
    """

    __tablename__ = "licenses"

    license_key: Mapped[str] = mapped_column(Text, primary_key=True)
    tier: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    revoked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
