from dataclasses import dataclass
from uuid import UUID

import structlog

from classifieds.application.interfaces.persistence_gateway import (
    Collection,
    CountGuard,
    Filter,
    PersistenceGateway,
    Record,
    WriteResult,
    WriteStatus,
)
from classifieds.config import settings
from classifieds.domain.enums.listing_status import ListingStatus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    current_count: int
    limit: int
    # The guarded write, when the decision was taken together with one
    write: WriteResult | None = None


class QuotaGuard:
    """
    Caps the number of active listings per owner.

    The count and the write that would exceed it are handed to the gateway as
    a single guarded operation, so two concurrent approvals cannot both slip
    under the limit.
    """

    def __init__(self, gateway: PersistenceGateway, limit: int = settings.max_active_listings) -> None:
        self._gateway = gateway
        self.limit = limit

    def guard_for(self, owner_id: UUID) -> CountGuard:
        return CountGuard(
            collection=Collection.LISTINGS,
            filter={"owner_id": owner_id, "status": ListingStatus.ACTIVE.value},
            limit=self.limit,
        )

    async def check(self, owner_id: UUID) -> QuotaDecision:
        """Advisory read; never use it as the only gate before a write."""
        guard = self.guard_for(owner_id)
        current = await self._gateway.count(guard.collection, guard.filter)
        return QuotaDecision(allowed=current < self.limit, current_count=current, limit=self.limit)

    async def reserve_on_create(self, owner_id: UUID, record: Record) -> QuotaDecision:
        """Insert a new listing only while the owner is below the limit."""
        write = await self._gateway.insert(
            Collection.LISTINGS, record, guard=self.guard_for(owner_id)
        )
        return self._decide(owner_id, write)

    async def check_and_reserve(
        self, owner_id: UUID, listing_id: UUID, patch: Record, expected: Filter
    ) -> QuotaDecision:
        """Count and conditionally activate ``listing_id`` in one gateway operation."""
        write = await self._gateway.update(
            Collection.LISTINGS,
            listing_id,
            patch,
            expected=expected,
            guard=self.guard_for(owner_id),
        )
        return self._decide(owner_id, write)

    def _decide(self, owner_id: UUID, write: WriteResult) -> QuotaDecision:
        current = write.observed_count or 0
        if write.status is WriteStatus.GUARD_REJECTED:
            logger.info("quota_exceeded", owner_id=str(owner_id), current=current, limit=self.limit)
            return QuotaDecision(allowed=False, current_count=current, limit=self.limit, write=write)
        return QuotaDecision(allowed=True, current_count=current, limit=self.limit, write=write)
