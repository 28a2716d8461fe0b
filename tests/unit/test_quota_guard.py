"""Unit tests for the active-listing quota guard."""
import asyncio
from uuid import uuid4

import pytest

from classifieds.application.interfaces.persistence_gateway import Collection
from classifieds.application.services.quota_guard import QuotaGuard
from classifieds.infrastructure.memory.in_memory_gateway import InMemoryGateway


def _record(owner_id, status: str = "active") -> dict:  # type: ignore[no-untyped-def]
    return {"id": uuid4(), "owner_id": owner_id, "status": status}


async def _seed(gateway: InMemoryGateway, owner_id, count: int, status: str = "active") -> None:  # type: ignore[no-untyped-def]
    for _ in range(count):
        await gateway.insert(Collection.LISTINGS, _record(owner_id, status))


class TestCheck:
    @pytest.mark.asyncio
    async def test_counts_only_active_listings_of_owner(self, gateway: InMemoryGateway) -> None:
        owner = uuid4()
        await _seed(gateway, owner, 2)
        await _seed(gateway, owner, 3, status="pending")
        await _seed(gateway, uuid4(), 4)

        decision = await QuotaGuard(gateway, limit=5).check(owner)

        assert decision.allowed is True
        assert decision.current_count == 2
        assert decision.limit == 5

    @pytest.mark.asyncio
    async def test_not_allowed_at_limit(self, gateway: InMemoryGateway) -> None:
        owner = uuid4()
        await _seed(gateway, owner, 5)
        decision = await QuotaGuard(gateway, limit=5).check(owner)
        assert decision.allowed is False
        assert decision.current_count == 5


class TestReserveOnCreate:
    @pytest.mark.asyncio
    async def test_inserts_below_limit(self, gateway: InMemoryGateway) -> None:
        owner = uuid4()
        record = _record(owner, "pending")
        decision = await QuotaGuard(gateway, limit=1).reserve_on_create(owner, record)
        assert decision.allowed is True
        assert await gateway.get(Collection.LISTINGS, record["id"]) is not None

    @pytest.mark.asyncio
    async def test_rejects_at_limit_without_writing(self, gateway: InMemoryGateway) -> None:
        owner = uuid4()
        await _seed(gateway, owner, 1)
        record = _record(owner, "pending")

        decision = await QuotaGuard(gateway, limit=1).reserve_on_create(owner, record)

        assert decision.allowed is False
        assert decision.current_count == 1
        assert await gateway.get(Collection.LISTINGS, record["id"]) is None


class TestCheckAndReserve:
    @pytest.mark.asyncio
    async def test_activates_below_limit(self, gateway: InMemoryGateway) -> None:
        owner = uuid4()
        record = _record(owner, "pending")
        await gateway.insert(Collection.LISTINGS, record)

        decision = await QuotaGuard(gateway, limit=2).check_and_reserve(
            owner, record["id"], {"status": "active"}, {"status": "pending"}
        )

        assert decision.allowed is True
        assert decision.write is not None and decision.write.applied
        stored = await gateway.get(Collection.LISTINGS, record["id"])
        assert stored["status"] == "active"

    @pytest.mark.asyncio
    async def test_concurrent_activations_never_exceed_limit(self, gateway: InMemoryGateway) -> None:
        owner = uuid4()
        await _seed(gateway, owner, 4)
        pending = [_record(owner, "pending") for _ in range(3)]
        for record in pending:
            await gateway.insert(Collection.LISTINGS, record)
        guard = QuotaGuard(gateway, limit=5)

        decisions = await asyncio.gather(
            *(
                guard.check_and_reserve(owner, r["id"], {"status": "active"}, {"status": "pending"})
                for r in pending
            )
        )

        assert sum(d.allowed for d in decisions) == 1
        assert await gateway.count(Collection.LISTINGS, {"owner_id": owner, "status": "active"}) == 5
