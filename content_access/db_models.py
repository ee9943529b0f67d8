"""
ORM models for the tables the access checks read.

Only the columns the access decision needs are mapped. The billing
integration owns writes to ``subscriptions``; content editing owns
``contents``. Migrations are managed elsewhere.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreatorProfile(Base):
    """Creator profile; ``user_id`` is the owning user."""

    __tablename__ = "creator_profiles"

    id = Column(String(255), primary_key=True, default=_uuid)
    user_id = Column(String(255), nullable=False, unique=True, index=True)
    handle = Column(String(64), nullable=False, unique=True)
    display_name = Column(String(255), nullable=False)
    subscription_price = Column(String(32), nullable=False, default="TIER_500")
    avatar_url = Column(String(1024), nullable=True)
    trial_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Content(Base):
    __tablename__ = "contents"

    id = Column(String(255), primary_key=True, default=_uuid)
    creator_id = Column(
        String(255),
        ForeignKey("creator_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(255), nullable=False, default="")
    is_free = Column(Boolean, nullable=False, default=False)
    status = Column(String(32), nullable=False, default="draft")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Subscription(Base):
    """One subscription per (user, creator)."""

    __tablename__ = "subscriptions"

    id = Column(String(255), primary_key=True, default=_uuid)
    user_id = Column(String(255), nullable=False)
    creator_id = Column(
        String(255),
        ForeignKey("creator_profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    status = Column(String(32), nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "creator_id", name="uq_subscriptions_user_creator"),
        Index("ix_subscriptions_creator_status", "creator_id", "status"),
    )
