"""Unit tests for the expiration sweep."""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from classifieds.application.interfaces.persistence_gateway import Collection
from classifieds.application.mappers import archive_to_record
from classifieds.application.services.notification_dispatcher import NotificationDispatcher
from classifieds.application.services.quota_guard import QuotaGuard
from classifieds.application.use_cases.expiration_sweeper import ExpirationSweeper
from classifieds.application.use_cases.listing_lifecycle import LifecycleResult, ListingLifecycle
from classifieds.domain.entities.archived_listing import ArchivedListing
from classifieds.domain.enums.listing_status import ListingStatus
from classifieds.domain.errors import InvalidStateError, NotFoundError, TransientStoreError
from classifieds.infrastructure.memory.in_memory_gateway import InMemoryGateway
from conftest import T0, TTL


class FailingArchiveGateway(InMemoryGateway):
    """The archive step fails until ``healthy`` is switched on."""

    def __init__(self) -> None:
        super().__init__()
        self.healthy = False

    async def archive_and_delete(self, listing_id, archive, *, expected=None):  # type: ignore[no-untyped-def]
        if not self.healthy:
            raise TransientStoreError("database unavailable")
        return await super().archive_and_delete(listing_id, archive, expected=expected)


async def _write_orphan_archive(gateway: InMemoryGateway, listing, deleted_by) -> None:  # type: ignore[no-untyped-def]
    archived = ArchivedListing.from_listing(listing, deleted_by=deleted_by, deleted_at=T0)
    await gateway.insert(Collection.ARCHIVED_LISTINGS, archive_to_record(archived))


def _mock_lifecycle(expire: AsyncMock) -> MagicMock:
    lifecycle = MagicMock()
    lifecycle.ttl = TTL
    lifecycle.expire = expire
    return lifecycle


async def _insert_active(gateway: InMemoryGateway, created_at) -> dict:  # type: ignore[no-untyped-def]
    record = {"id": uuid4(), "owner_id": uuid4(), "status": "active", "created_at": created_at}
    await gateway.insert(Collection.LISTINGS, record)
    return record


class TestFindCandidates:
    @pytest.mark.asyncio
    async def test_selects_only_overdue_active_listings(self, gateway) -> None:
        overdue = await _insert_active(gateway, T0)
        await _insert_active(gateway, T0 + timedelta(hours=2))
        await gateway.insert(
            Collection.LISTINGS, {"id": uuid4(), "owner_id": uuid4(), "status": "pending", "created_at": T0}
        )
        sweeper = ExpirationSweeper(gateway, _mock_lifecycle(AsyncMock()))

        candidates = await sweeper.find_candidates(T0 + timedelta(hours=25))

        assert candidates == [overdue["id"]]

    @pytest.mark.asyncio
    async def test_includes_expired_leftovers(self, gateway) -> None:
        leftover = {"id": uuid4(), "owner_id": uuid4(), "status": "expired", "created_at": T0}
        await gateway.insert(Collection.LISTINGS, leftover)
        sweeper = ExpirationSweeper(gateway, _mock_lifecycle(AsyncMock()))

        assert await sweeper.find_candidates(T0 + timedelta(hours=1)) == [leftover["id"]]


class TestSweep:
    @pytest.mark.asyncio
    async def test_expires_and_archives_overdue_listing(self, lifecycle, seed, gateway, owner) -> None:
        listing = await seed.active(owner)
        sweeper = ExpirationSweeper(gateway, lifecycle)

        report = await sweeper.sweep(now=T0 + timedelta(hours=25))

        assert report.processed == 1
        assert report.failed == []
        assert await gateway.get(Collection.LISTINGS, listing.id) is None
        archived = await lifecycle.get_archived(listing.id)
        assert archived.status == ListingStatus.EXPIRED
        assert archived.deleted_by is None
        inbox = await gateway.query(Collection.NOTIFICATIONS, {"user_id": owner.user_id, "type": "info"})
        assert [n["title"] for n in inbox] == ["Listing expired"]

    @pytest.mark.asyncio
    async def test_second_sweep_is_a_noop(self, lifecycle, seed, gateway, owner) -> None:
        await seed.active(owner)
        sweeper = ExpirationSweeper(gateway, lifecycle)
        later = T0 + timedelta(hours=25)

        await sweeper.sweep(now=later)
        report = await sweeper.sweep(now=later)

        assert report.processed == 0
        assert await gateway.count(Collection.ARCHIVED_LISTINGS) == 1
        assert await gateway.count(Collection.NOTIFICATIONS, {"type": "info"}) == 1

    @pytest.mark.asyncio
    async def test_recent_listings_untouched(self, lifecycle, seed, gateway, owner) -> None:
        listing = await seed.active(owner)
        report = await ExpirationSweeper(gateway, lifecycle).sweep(now=T0 + timedelta(hours=23))
        assert report.processed == 0
        assert await gateway.get(Collection.LISTINGS, listing.id) is not None

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_the_batch(self, gateway) -> None:
        first = await _insert_active(gateway, T0)
        second = await _insert_active(gateway, T0 + timedelta(minutes=1))
        third = await _insert_active(gateway, T0 + timedelta(minutes=2))
        expire = AsyncMock(
            side_effect=[
                LifecycleResult(),
                TransientStoreError("timeout"),
                LifecycleResult(error=InvalidStateError("Listing is sold and cannot expire.")),
            ]
        )
        sweeper = ExpirationSweeper(gateway, _mock_lifecycle(expire))

        report = await sweeper.sweep(now=T0 + timedelta(hours=30))

        assert report.processed == 1
        assert [f.listing_id for f in report.failed] == [second["id"], third["id"]]
        assert report.failed[0].reason == "timeout"
        assert expire.await_count == 3
        assert expire.await_args_list[0].args == (first["id"],)

    @pytest.mark.asyncio
    async def test_vanished_listing_is_skipped(self, gateway) -> None:
        await _insert_active(gateway, T0)
        expire = AsyncMock(return_value=LifecycleResult(error=NotFoundError()))
        report = await ExpirationSweeper(gateway, _mock_lifecycle(expire)).sweep(now=T0 + timedelta(hours=30))
        assert report.processed == 0
        assert report.failed == []

    @pytest.mark.asyncio
    async def test_failed_archive_step_leaves_listing_live_and_retries_next_sweep(
        self, publisher, clock, owner, moderator, payload
    ) -> None:
        gateway = FailingArchiveGateway()
        lifecycle = ListingLifecycle(
            gateway,
            QuotaGuard(gateway, limit=5),
            NotificationDispatcher(gateway, notify_owner_on_sold=True),
            publisher,
            ttl=TTL,
            delete_retry_attempts=2,
            delete_retry_backoff=0,
            clock=clock,
        )
        created = await lifecycle.create(owner, payload())
        await lifecycle.approve(moderator, created.listing.id)
        sweeper = ExpirationSweeper(gateway, lifecycle)
        later = T0 + timedelta(hours=25)

        failed = await sweeper.sweep(now=later)

        assert [f.listing_id for f in failed.failed] == [created.listing.id]
        assert (await gateway.get(Collection.LISTINGS, created.listing.id))["status"] == "active"
        assert await gateway.count(Collection.ARCHIVED_LISTINGS) == 0
        assert await gateway.count(Collection.NOTIFICATIONS, {"type": "info"}) == 0

        gateway.healthy = True
        recovered = await sweeper.sweep(now=later)

        assert recovered.processed == 1
        assert await gateway.get(Collection.LISTINGS, created.listing.id) is None
        assert await gateway.count(Collection.ARCHIVED_LISTINGS) == 1
        assert await gateway.count(Collection.NOTIFICATIONS, {"type": "info"}) == 1

    @pytest.mark.asyncio
    async def test_finishes_legacy_expired_rows(self, lifecycle, seed, gateway, owner) -> None:
        listing = await seed.active(owner)
        await gateway.update(Collection.LISTINGS, listing.id, {"status": "expired"})

        report = await ExpirationSweeper(gateway, lifecycle).sweep(now=T0 + timedelta(hours=25))

        assert report.processed == 1
        assert await gateway.get(Collection.LISTINGS, listing.id) is None
        assert (await lifecycle.get_archived(listing.id)).status == ListingStatus.EXPIRED


class TestOrphanCleanup:
    @pytest.mark.asyncio
    async def test_find_orphans_lists_live_rows_with_an_archive(self, lifecycle, seed, gateway, owner) -> None:
        orphan = await seed.active(owner)
        await seed.active(owner)
        await _write_orphan_archive(gateway, orphan, owner.user_id)

        assert await ExpirationSweeper(gateway, lifecycle).find_orphans() == [orphan.id]

    @pytest.mark.asyncio
    async def test_removes_orphans_of_any_status_without_notifying(self, lifecycle, seed, gateway, owner) -> None:
        active = await seed.active(owner)
        pending = await seed.pending(owner)
        await _write_orphan_archive(gateway, active, owner.user_id)
        await _write_orphan_archive(gateway, pending, owner.user_id)
        notifications_before = await gateway.count(Collection.NOTIFICATIONS)

        report = await ExpirationSweeper(gateway, lifecycle).sweep(now=T0 + timedelta(hours=1))

        assert report.orphans_removed == 2
        assert report.processed == 0
        assert await gateway.get(Collection.LISTINGS, active.id) is None
        assert await gateway.get(Collection.LISTINGS, pending.id) is None
        assert await gateway.count(Collection.NOTIFICATIONS) == notifications_before

    @pytest.mark.asyncio
    async def test_overdue_orphan_keeps_its_original_archive(self, lifecycle, seed, gateway, owner) -> None:
        listing = await seed.active(owner)
        await _write_orphan_archive(gateway, listing, owner.user_id)

        report = await ExpirationSweeper(gateway, lifecycle).sweep(now=T0 + timedelta(hours=25))

        assert report.orphans_removed == 1
        assert report.processed == 0
        archived = await lifecycle.get_archived(listing.id)
        assert archived.deleted_by == owner.user_id
        assert archived.status == ListingStatus.ACTIVE
        assert await gateway.count(Collection.ARCHIVED_LISTINGS) == 1
        assert await gateway.count(Collection.NOTIFICATIONS, {"type": "info"}) == 0
