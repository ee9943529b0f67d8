from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from content_access.cache import InMemoryCacheStore
from content_access.config import AccessSettings
from content_access.models import ContentMetadata, CreatorProfile, SubscriptionRecord
from content_access.service import ContentAccessService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeAccessStore:
    """In-memory AccessStore that counts every call."""

    def __init__(self):
        self.contents = {}
        self.creators = {}
        self.subscriptions = {}
        self.calls = Counter()
        self.error = None

    # -- seeding --

    def add_creator(self, creator_id, user_id, handle=None, trial_enabled=False):
        creator = CreatorProfile(
            id=creator_id,
            user_id=user_id,
            handle=handle or creator_id,
            display_name=f"Creator {creator_id}",
            subscription_price="TIER_500",
            trial_enabled=trial_enabled,
        )
        self.creators[creator_id] = creator
        return creator

    def add_content(self, content_id, creator_id, is_free=False):
        content = ContentMetadata(id=content_id, is_free=is_free, creator_id=creator_id)
        self.contents[content_id] = content
        return content

    def add_subscription(self, user_id, creator_id, status, current_period_end=None):
        record = SubscriptionRecord(
            id=f"sub-{user_id}-{creator_id}",
            user_id=user_id,
            creator_id=creator_id,
            status=status,
            current_period_end=current_period_end,
        )
        self.subscriptions[(user_id, creator_id)] = record
        return record

    def _record(self, name):
        self.calls[name] += 1
        if self.error is not None:
            raise self.error

    @property
    def total_calls(self):
        return sum(self.calls.values())

    # -- AccessStore --

    def get_content(self, content_id):
        self._record("get_content")
        return self.contents.get(content_id)

    def get_contents(self, content_ids):
        self._record("get_contents")
        return [self.contents[cid] for cid in set(content_ids) if cid in self.contents]

    def get_subscription(self, user_id, creator_id):
        self._record("get_subscription")
        return self.subscriptions.get((user_id, creator_id))

    def find_entitling_creator_ids(self, user_id, creator_ids, now):
        self._record("find_entitling_creator_ids")
        return {
            creator_id
            for creator_id in creator_ids
            if (user_id, creator_id) in self.subscriptions
            and self.subscriptions[(user_id, creator_id)].is_entitling(now)
        }

    def get_creator(self, creator_id):
        self._record("get_creator")
        return self.creators.get(creator_id)

    def get_creators(self, creator_ids):
        self._record("get_creators")
        return [self.creators[cid] for cid in set(creator_ids) if cid in self.creators]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    store = FakeAccessStore()
    store.add_creator("creator-1", user_id="owner-1", trial_enabled=True)
    store.add_creator("creator-2", user_id="owner-2")
    store.add_content("free-1", "creator-1", is_free=True)
    store.add_content("paid-1", "creator-1")
    store.add_content("paid-2", "creator-1")
    store.add_content("paid-3", "creator-2")
    return store


@pytest.fixture
def cache():
    return InMemoryCacheStore()


@pytest.fixture
def settings():
    return AccessSettings()


@pytest.fixture
def service(store, cache, settings, clock):
    return ContentAccessService(store=store, cache=cache, settings=settings, clock=clock)
