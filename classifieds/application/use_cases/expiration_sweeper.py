from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

import structlog

from classifieds.application.interfaces.persistence_gateway import Collection, PersistenceGateway
from classifieds.application.use_cases.listing_lifecycle import ListingLifecycle
from classifieds.domain.enums.listing_status import ListingStatus
from classifieds.domain.errors import ConflictError, NotFoundError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SweepFailure:
    listing_id: UUID
    reason: str


@dataclass
class SweepReport:
    processed: int = 0
    orphans_removed: int = 0
    failed: list[SweepFailure] = field(default_factory=list)


class ExpirationSweeper:
    """
    Use case: expire and archive every active listing older than the TTL.

    Before expiring, it removes live rows that already have an archive record
    (any status), so a listing is never both live and archived. Live rows
    already marked ``expired`` are archived as they stand. Each listing is
    handled on its own so one failure never aborts the batch.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        lifecycle: ListingLifecycle,
        *,
        batch_size: int = 500,
    ) -> None:
        self._gateway = gateway
        self._lifecycle = lifecycle
        self._batch_size = batch_size

    async def find_orphans(self) -> list[UUID]:
        """Live listings whose archive record already exists, from the newest archives."""
        archives = await self._gateway.query(
            Collection.ARCHIVED_LISTINGS, order="-deleted_at", limit=self._batch_size
        )
        if not archives:
            return []
        live = await self._gateway.query(
            Collection.LISTINGS, {"id__in": [a["original_id"] for a in archives]}
        )
        return [r["id"] for r in live]

    async def find_candidates(self, now: datetime) -> list[UUID]:
        cutoff = now - self._lifecycle.ttl
        overdue = await self._gateway.query(
            Collection.LISTINGS,
            {"status": ListingStatus.ACTIVE.value, "created_at__lte": cutoff},
            order="created_at",
            limit=self._batch_size,
        )
        leftovers = await self._gateway.query(
            Collection.LISTINGS,
            {"status": ListingStatus.EXPIRED.value},
            order="created_at",
            limit=self._batch_size,
        )
        return [r["id"] for r in leftovers] + [r["id"] for r in overdue]

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or datetime.now(timezone.utc)
        report = SweepReport()

        for listing_id in await self.find_orphans():
            try:
                if await self._lifecycle.settle_if_archived(listing_id):
                    report.orphans_removed += 1
            except Exception as exc:
                logger.exception("listing_orphan_cleanup_failed", listing_id=str(listing_id))
                report.failed.append(SweepFailure(listing_id=listing_id, reason=str(exc) or type(exc).__name__))

        candidates = await self.find_candidates(now)
        logger.info("expiration_sweep_started", candidates=len(candidates), now=now.isoformat())

        for listing_id in candidates:
            try:
                result = await self._lifecycle.expire(listing_id, now=now)
            except Exception as exc:
                logger.exception("listing_sweep_failed", listing_id=str(listing_id))
                report.failed.append(SweepFailure(listing_id=listing_id, reason=str(exc) or type(exc).__name__))
                continue

            if result.ok:
                report.processed += 1
            elif isinstance(result.error, (NotFoundError, ConflictError)):
                # Someone else changed or archived it between the query and now.
                logger.info("listing_sweep_skipped", listing_id=str(listing_id))
            else:
                logger.warning(
                    "listing_sweep_rejected",
                    listing_id=str(listing_id),
                    error=result.error.message,
                )
                report.failed.append(SweepFailure(listing_id=listing_id, reason=result.error.message))

        logger.info(
            "expiration_sweep_completed",
            processed=report.processed,
            orphans_removed=report.orphans_removed,
            failed=len(report.failed),
        )
        return report
