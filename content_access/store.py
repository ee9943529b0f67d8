"""
Durable store used by the access checks.

``AccessStore`` is the read-only contract; ``SqlAlchemyAccessStore`` is the
SQLAlchemy implementation. Missing rows come back as None (or are left out of
batch results); database errors propagate to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Set

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from . import db_models as db
from .models import (
    ENTITLING_STATUSES,
    ContentMetadata,
    CreatorProfile,
    SubscriptionRecord,
    SubscriptionStatus,
)


class AccessStore(Protocol):
    def get_content(self, content_id: str) -> Optional[ContentMetadata]:
        ...

    def get_contents(self, content_ids: Iterable[str]) -> List[ContentMetadata]:
        ...

    def get_subscription(self, user_id: str, creator_id: str) -> Optional[SubscriptionRecord]:
        ...

    def find_entitling_creator_ids(self, user_id: str, creator_ids: Iterable[str], now: datetime) -> Set[str]:
        """Creators the user holds an entitling subscription to at ``now``."""
        ...

    def get_creator(self, creator_id: str) -> Optional[CreatorProfile]:
        ...

    def get_creators(self, creator_ids: Iterable[str]) -> List[CreatorProfile]:
        ...


def _to_content(row) -> ContentMetadata:
    return ContentMetadata(id=row.id, is_free=row.is_free, creator_id=row.creator_id, status=row.status)


def _to_creator(row: db.CreatorProfile) -> CreatorProfile:
    return CreatorProfile(
        id=row.id,
        user_id=row.user_id,
        handle=row.handle,
        display_name=row.display_name,
        subscription_price=row.subscription_price,
        trial_enabled=bool(row.trial_enabled),
        avatar_url=row.avatar_url,
    )


class SqlAlchemyAccessStore:
    """AccessStore over a SQLAlchemy session; selects only decision fields."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _content_query(self):
        return select(db.Content.id, db.Content.is_free, db.Content.creator_id, db.Content.status)

    def get_content(self, content_id: str) -> Optional[ContentMetadata]:
        row = self._session.execute(self._content_query().where(db.Content.id == content_id)).first()
        return _to_content(row) if row is not None else None

    def get_contents(self, content_ids: Iterable[str]) -> List[ContentMetadata]:
        ids = sorted(set(content_ids))
        if not ids:
            return []
        rows = self._session.execute(self._content_query().where(db.Content.id.in_(ids))).all()
        return [_to_content(row) for row in rows]

    def get_subscription(self, user_id: str, creator_id: str) -> Optional[SubscriptionRecord]:
        row = self._session.execute(
            select(db.Subscription).where(
                db.Subscription.user_id == user_id,
                db.Subscription.creator_id == creator_id,
            )
        ).scalar_one_or_none()
        if row is None:
            return None
        return SubscriptionRecord(
            id=row.id,
            user_id=row.user_id,
            creator_id=row.creator_id,
            status=row.status,
            current_period_end=row.current_period_end,
        )

    def find_entitling_creator_ids(self, user_id: str, creator_ids: Iterable[str], now: datetime) -> Set[str]:
        ids = sorted(set(creator_ids))
        if not ids:
            return set()
        stmt = select(db.Subscription.creator_id).where(
            db.Subscription.user_id == user_id,
            db.Subscription.creator_id.in_(ids),
            or_(
                db.Subscription.status.in_(sorted(ENTITLING_STATUSES)),
                and_(
                    db.Subscription.status == SubscriptionStatus.CANCELED.value,
                    db.Subscription.current_period_end > now,
                ),
            ),
        )
        return set(self._session.scalars(stmt))

    def get_creator(self, creator_id: str) -> Optional[CreatorProfile]:
        row = self._session.get(db.CreatorProfile, creator_id)
        return _to_creator(row) if row is not None else None

    def get_creators(self, creator_ids: Iterable[str]) -> List[CreatorProfile]:
        ids = sorted(set(creator_ids))
        if not ids:
            return []
        rows = self._session.scalars(select(db.CreatorProfile).where(db.CreatorProfile.id.in_(ids))).all()
        return [_to_creator(row) for row in rows]
