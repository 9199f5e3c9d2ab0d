"""
rollcall.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- session_cookies — one authentication cookie per roster origin
- memberships     — known roster members and their Discord binding
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Rollcall ORM models."""


# ---------------------------------------------------------------------------
# SessionCookie — the roster site's login cookie, keyed by origin
# ---------------------------------------------------------------------------
class SessionCookie(Base):
    """The single active session cookie for an origin.

    Overwritten whenever the roster site answers with ``Set-Cookie``, or
    seeded by hand from ``INITIAL_SESSION_COOKIE``.  No expiry is stored:
    a stale cookie is only discovered when a fetch comes back
    unauthenticated.
    """
    __tablename__ = "session_cookies"

    origin: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<SessionCookie origin={self.origin!r} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Membership — one row per roster member ever seen
# ---------------------------------------------------------------------------
class Membership(Base):
    """A roster member, optionally bound to a Discord user.

    ``eligible_for_removal`` means the member vanished from the latest
    roster while still bound; ``/prune`` finishes the offboarding.
    """
    __tablename__ = "memberships"

    external_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    platform_identity: Mapped[int | None] = mapped_column(
        BigInteger, unique=True, default=None
    )  # Discord snowflake
    eligible_for_removal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_memberships_eligible_for_removal", "eligible_for_removal"),
    )

    def __repr__(self) -> str:
        return (
            f"<Membership external_id={self.external_id} "
            f"name={self.display_name!r} bound={self.platform_identity is not None} "
            f"drop={self.eligible_for_removal}>"
        )
