"""Shared fixtures: in-memory gateway, controllable clock and a wired lifecycle."""
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import pytest

from classifieds.application.services.notification_dispatcher import NotificationDispatcher
from classifieds.application.services.quota_guard import QuotaGuard
from classifieds.application.use_cases.listing_lifecycle import ListingLifecycle
from classifieds.domain.entities.actor import Actor
from classifieds.domain.entities.listing import Listing
from classifieds.domain.enums.actor_role import ActorRole
from classifieds.infrastructure.memory.in_memory_gateway import InMemoryGateway
from classifieds.infrastructure.messaging.noop_publisher import NoOpEventPublisher

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TTL = timedelta(hours=24)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class Seeder:
    """Creates listings through the lifecycle so every invariant holds."""

    def __init__(self, lifecycle: ListingLifecycle, moderator: Actor, payload: Callable[..., dict]) -> None:
        self._lifecycle = lifecycle
        self._moderator = moderator
        self._payload = payload

    async def pending(self, owner: Actor, **overrides: Any) -> Listing:
        result = await self._lifecycle.create(owner, self._payload(**overrides))
        assert result.ok, result.error
        return result.listing

    async def active(self, owner: Actor, **overrides: Any) -> Listing:
        listing = await self.pending(owner, **overrides)
        result = await self._lifecycle.approve(self._moderator, listing.id)
        assert result.ok, result.error
        return result.listing


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture()
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture()
def publisher() -> NoOpEventPublisher:
    return NoOpEventPublisher()


@pytest.fixture()
def dispatcher(gateway: InMemoryGateway) -> NotificationDispatcher:
    return NotificationDispatcher(gateway, notify_owner_on_sold=True)


@pytest.fixture()
def quota(gateway: InMemoryGateway) -> QuotaGuard:
    return QuotaGuard(gateway, limit=5)


@pytest.fixture()
def lifecycle(
    gateway: InMemoryGateway,
    quota: QuotaGuard,
    dispatcher: NotificationDispatcher,
    publisher: NoOpEventPublisher,
    clock: FakeClock,
) -> ListingLifecycle:
    return ListingLifecycle(
        gateway,
        quota,
        dispatcher,
        publisher,
        ttl=TTL,
        feed_window_by_ttl=True,
        delete_retry_attempts=3,
        delete_retry_backoff=0,
        clock=clock,
    )


@pytest.fixture()
def owner() -> Actor:
    return Actor(user_id=uuid4())


@pytest.fixture()
def stranger() -> Actor:
    return Actor(user_id=uuid4())


@pytest.fixture()
def moderator() -> Actor:
    return Actor(user_id=uuid4(), role=ActorRole.MODERATOR)


@pytest.fixture()
def payload() -> Callable[..., dict]:
    def _make(**overrides: Any) -> dict:
        data = {
            "server": "Marmara",
            "category": "weapons",
            "title": "+9 Dragon Sword",
            "description": "Full upgraded, never dropped.",
            "price": "1500.50",
            "phone": "+90 555 000 0000",
            "discord": "seller#1234",
            "image_urls": ["https://cdn.example.com/sword.png"],
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture()
def seed(lifecycle: ListingLifecycle, moderator: Actor, payload: Callable[..., dict]) -> Seeder:
    return Seeder(lifecycle, moderator, payload)
